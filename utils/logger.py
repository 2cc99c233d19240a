from __future__ import annotations

import json
import logging
import logging.handlers
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict

from core.config_loader import Settings


class JsonFormatter(logging.Formatter):
    """Formatter that outputs log records as JSON.

    Includes: timestamp (ISO8601 UTC), level, name, message, plus the
    ``series`` a sync loop attached and the formatted exception if any.
    """

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }
        series = getattr(record, "series", None)
        if series is not None:
            payload["series"] = series
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def _coerce_log_level(level_value: str | int) -> int:
    if isinstance(level_value, int):
        return level_value
    # Accept string names like "INFO", "debug", etc.
    name = str(level_value).upper()
    return logging._nameToLevel.get(name, logging.INFO)


def setup_logger(settings: Settings) -> logging.Logger:
    """Configure and return the root logger of the sync service.

    - Level from settings.log_level
    - File rotation: daily at midnight, keep 30 backups
    - Console output to stdout
    - Structured JSON formatting for both handlers
    - Creates the log directory if missing
    """
    logger = logging.getLogger()
    logger.setLevel(_coerce_log_level(settings.log_level))

    log_path = Path(settings.log_file_path)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    # Avoid duplicate handlers if called multiple times
    for h in list(logger.handlers):
        logger.removeHandler(h)
        h.close()

    file_handler = logging.handlers.TimedRotatingFileHandler(
        filename=str(log_path), when="midnight", backupCount=30, encoding="utf-8"
    )
    stream_handler = logging.StreamHandler(stream=sys.stdout)

    formatter = JsonFormatter()
    file_handler.setFormatter(formatter)
    stream_handler.setFormatter(formatter)

    logger.addHandler(file_handler)
    logger.addHandler(stream_handler)

    # The HTTP and InfluxDB client libraries are chatty at DEBUG
    for noisy in ("aiohttp", "influxdb_client", "urllib3"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    return logger
