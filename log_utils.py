# log_utils.py
import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict

from errors import ConfigurationError

LOGGER_NAME = "yara_rest_api"

# trace/fatal/panic are accepted so operators can keep their existing values
LEVELS = {
    "trace": logging.DEBUG,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "fatal": logging.CRITICAL,
    "panic": logging.CRITICAL,
}


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "message": record.getMessage(),
            "name": record.name,
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        if hasattr(record, "extra_data"):
            payload.update(getattr(record, "extra_data"))
        return json.dumps(payload)


def parse_level(name: str) -> int:
    try:
        return LEVELS[name.strip().lower()]
    except (KeyError, AttributeError):
        raise ConfigurationError(
            f"unknown log level {name!r}, expected one of {', '.join(sorted(LEVELS))}"
        ) from None


def configure_logging(level: int = logging.INFO) -> logging.Logger:
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JsonFormatter())
        logger.addHandler(handler)
    return logger
