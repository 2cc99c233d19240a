from __future__ import annotations

from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from config import (
    EPOCH_START_ISO,
    HTTP_TIMEOUT_SECONDS,
    INFLUX_BUCKET,
    INFLUX_ORG,
    INFLUX_URL,
    LOG_FILE_PATH as DEFAULT_LOG_FILE_PATH,
    LOG_LEVEL as DEFAULT_LOG_LEVEL,
    OCTOPUS_BASE_URL,
    SYNC_INTERVAL_SECONDS,
    TARIFF_CODE,
    TARIFF_PRODUCT_CODE,
    WRITE_SETTINGS,
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables (.env).

    Notes:
    - Flat fields for each .env variable
      (clear 1:1 mapping, type-safe access).
    - Defaults come from config.py so that operators only need to set
      credentials and meter identifiers.
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # --- Logging ---
    log_level: str = DEFAULT_LOG_LEVEL
    log_file_path: str = DEFAULT_LOG_FILE_PATH

    # --- Octopus API ---
    octopus_api_key: str
    octopus_base_url: str = OCTOPUS_BASE_URL
    http_timeout_seconds: float = HTTP_TIMEOUT_SECONDS
    tariff_product_code: str = TARIFF_PRODUCT_CODE
    tariff_code: str = TARIFF_CODE
    meter_mpan: str
    meter_serial: str

    # --- InfluxDB ---
    influx_url: str = INFLUX_URL
    influx_token: str
    influx_org: str = INFLUX_ORG
    influx_bucket: str = INFLUX_BUCKET

    # --- Sync loops ---
    sync_interval_seconds: float = SYNC_INTERVAL_SECONDS
    epoch_start: str = EPOCH_START_ISO
    write_batch_size: int = int(WRITE_SETTINGS["BATCH_SIZE"])
    write_max_retries: int = int(WRITE_SETTINGS["MAX_RETRIES"])
    write_base_delay_seconds: float = float(WRITE_SETTINGS["BASE_DELAY_SECONDS"])
    write_max_delay_seconds: Optional[float] = float(
        WRITE_SETTINGS["MAX_DELAY_SECONDS"]
    )


def load_settings() -> Settings:
    """Load and validate settings from environment variables (.env)."""
    return Settings()  # type: ignore[call-arg]
