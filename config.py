# --- OCTOPUS API ---
OCTOPUS_BASE_URL = "https://api.octopus.energy"

# Agile tariff the unit rates are read from. Override via TARIFF_PRODUCT_CODE
# and TARIFF_CODE in .env for other regions/products.
TARIFF_PRODUCT_CODE = "AGILE-18-02-21"
TARIFF_CODE = "E-1R-AGILE-18-02-21-H"

# Seconds before an individual HTTP request to the API is abandoned
HTTP_TIMEOUT_SECONDS = 60

# --- TIME SERIES ---
# Width of one tariff/consumption slot as emitted by the API
SLOT_MINUTES = 30

# Beginning of history: where ingestion starts for an empty series (UTC)
EPOCH_START_ISO = "2020-01-01T00:00:00Z"

# Flux range bounds used when looking up the newest stored record.
# The stop bound is in the future because tariffs are published ahead.
WATERMARK_LOOKBACK = "-12mo"
WATERMARK_LOOKAHEAD = "1w"

# --- INFLUXDB ---
INFLUX_URL = "http://localhost:8086"
INFLUX_ORG = "home"
INFLUX_BUCKET = "energy"

# --- SYNC LOOPS ---
SYNC_INTERVAL_SECONDS = 3600  # One cycle per series per hour

# --- WRITE SETTINGS ---
WRITE_SETTINGS = {
    "BATCH_SIZE": 100,
    # Retries after the first attempt, per chunk
    "MAX_RETRIES": 100,
    # Median delay of the first retry
    "BASE_DELAY_SECONDS": 1.0,
    # Upper bound on a single retry delay
    "MAX_DELAY_SECONDS": 300.0,
}

# --- LOGGING ---
LOG_LEVEL = "INFO"
LOG_FILE_PATH = "logs/octopus_sync.log"
