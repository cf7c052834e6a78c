import json
import logging

import pytest

from errors import ConfigurationError
from log_utils import JsonFormatter, parse_level
from settings import MAX_UPLOAD_SIZE, Settings


def test_defaults() -> None:
    settings = Settings.from_env({"YARA_RULES_DIR": "/rules"})
    assert settings.rules_dir == "/rules"
    assert settings.port == 8080
    assert settings.host == "0.0.0.0"
    assert settings.log_level == "info"
    assert settings.max_upload_size == MAX_UPLOAD_SIZE == 512 * 1024 * 1024
    assert settings.scan_timeout == 0
    assert settings.max_concurrent_scans == 32


def test_overrides() -> None:
    settings = Settings.from_env({
        "YARA_RULES_DIR": "/rules",
        "PORT": "9090",
        "HOST": "127.0.0.1",
        "LOG_LEVEL": "WARN",
        "MAX_UPLOAD_SIZE": "1024",
        "SCAN_TIMEOUT": "30",
        "MAX_CONCURRENT_SCANS": "4",
    })
    assert settings.port == 9090
    assert settings.host == "127.0.0.1"
    assert settings.log_level == "warn"
    assert settings.max_upload_size == 1024
    assert settings.scan_timeout == 30
    assert settings.max_concurrent_scans == 4


def test_rules_dir_is_required() -> None:
    with pytest.raises(ConfigurationError):
        Settings.from_env({"PORT": "8080"})


def test_rules_dir_optional_for_side_channel_modes() -> None:
    assert Settings.from_env({"PORT": "9000"}, require_rules_dir=False).port == 9000


@pytest.mark.parametrize(
    "name,value",
    [
        ("PORT", "eighty"),
        ("PORT", "0"),
        ("PORT", "70000"),
        ("MAX_UPLOAD_SIZE", "0"),
        ("SCAN_TIMEOUT", "-1"),
        ("MAX_CONCURRENT_SCANS", "64"),
        ("LOG_LEVEL", "verbose"),
    ],
)
def test_invalid_values(name: str, value: str) -> None:
    with pytest.raises(ConfigurationError):
        Settings.from_env({"YARA_RULES_DIR": "/rules", name: value})


def test_parse_level() -> None:
    assert parse_level("trace") == logging.DEBUG
    assert parse_level("Info") == logging.INFO
    assert parse_level("warn") == logging.WARNING
    assert parse_level("panic") == logging.CRITICAL
    with pytest.raises(ConfigurationError):
        parse_level("silly")


def test_json_formatter() -> None:
    record = logging.LogRecord("yara_rest_api", logging.INFO, __file__, 1, "loaded %d rules", (3,), None)
    record.extra_data = {"rules_dir": "/rules"}
    payload = json.loads(JsonFormatter().format(record))
    assert payload["level"] == "INFO"
    assert payload["message"] == "loaded 3 rules"
    assert payload["rules_dir"] == "/rules"
    assert payload["timestamp"].endswith("Z")
