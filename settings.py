# settings.py
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import load_dotenv

from errors import ConfigurationError
from log_utils import parse_level
from scan_engine import MAX_CONCURRENT_SCANS

DEFAULT_PORT = 8080
DEFAULT_HOST = "0.0.0.0"
DEFAULT_LOG_LEVEL = "info"
MAX_UPLOAD_SIZE = 32 << 24  # 512 MB


def _int_var(environ: Mapping[str, str], name: str, default: int, minimum: int, maximum: Optional[int] = None) -> int:
    raw = (environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from None
    if value < minimum or (maximum is not None and value > maximum):
        bounds = f">= {minimum}" if maximum is None else f"between {minimum} and {maximum}"
        raise ConfigurationError(f"{name} must be {bounds}, got {value}")
    return value


@dataclass(frozen=True)
class Settings:
    rules_dir: str
    port: int = DEFAULT_PORT
    host: str = DEFAULT_HOST
    log_level: str = DEFAULT_LOG_LEVEL
    max_upload_size: int = MAX_UPLOAD_SIZE
    scan_timeout: int = 0
    max_concurrent_scans: int = MAX_CONCURRENT_SCANS

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, require_rules_dir: bool = True) -> "Settings":
        if environ is None:
            # load .env file
            load_dotenv()
            environ = os.environ

        rules_dir = (environ.get("YARA_RULES_DIR") or "").strip()
        if require_rules_dir and not rules_dir:
            raise ConfigurationError("YARA_RULES_DIR is not set")

        log_level = (environ.get("LOG_LEVEL") or DEFAULT_LOG_LEVEL).strip().lower()
        parse_level(log_level)

        return cls(
            rules_dir=rules_dir,
            port=_int_var(environ, "PORT", DEFAULT_PORT, 1, 65535),
            host=(environ.get("HOST") or DEFAULT_HOST).strip(),
            log_level=log_level,
            max_upload_size=_int_var(environ, "MAX_UPLOAD_SIZE", MAX_UPLOAD_SIZE, 1),
            scan_timeout=_int_var(environ, "SCAN_TIMEOUT", 0, 0),
            max_concurrent_scans=_int_var(
                environ, "MAX_CONCURRENT_SCANS", MAX_CONCURRENT_SCANS, 1, MAX_CONCURRENT_SCANS
            ),
        )
