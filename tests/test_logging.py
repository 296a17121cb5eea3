import json
import logging
import sys

from qr_cleanup.core.config import Settings
from qr_cleanup.core.logging import (
    CompactJSONFormatter,
    JsonFormatter,
    build_logging_config,
    get_formatter,
    setup_logging,
)


def make_record(msg, level=logging.INFO, exc_info=None):
    return logging.LogRecord(
        name="app",
        level=level,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=None,
        exc_info=exc_info,
    )


def test_json_formatter_merges_dict_messages():
    formatter = JsonFormatter(environment="staging", timezone="Europe/Moscow")

    data = json.loads(formatter.format(make_record({"event": "qr_token_cleanup", "cleaned_count": 4})))

    assert data["event"] == "qr_token_cleanup"
    assert data["cleaned_count"] == 4
    assert data["level"] == "INFO"
    assert data["logger"] == "app"
    assert data["environment"] == "staging"
    assert data["time"].endswith("+03:00")


def test_json_formatter_plain_message_and_exception():
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        record = make_record("cleanup failed", level=logging.ERROR, exc_info=sys.exc_info())

    data = json.loads(JsonFormatter().format(record))

    assert data["message"] == "cleanup failed"
    assert data["exception"]["type"] == "RuntimeError"
    assert data["exception"]["message"] == "boom"
    assert "Traceback" in data["exception"]["traceback"]


def test_compact_formatter_drops_traceback():
    try:
        raise ValueError("bad")
    except ValueError:
        record = make_record({"event": "qr_token_cleanup_error"}, level=logging.ERROR,
                             exc_info=sys.exc_info())

    line = CompactJSONFormatter(environment="production").format(record)
    data = json.loads(line)

    assert data["lvl"] == "E"
    assert data["env"] == "production"
    assert data["exc"] == "ValueError"
    assert "traceback" not in line


def test_get_formatter_selects_by_type():
    assert isinstance(get_formatter("compact"), CompactJSONFormatter)
    assert isinstance(get_formatter("json"), JsonFormatter)
    assert get_formatter("json", environment="production").include_trace is False


def test_logging_config_levels():
    s = Settings(_env_file=None, DATABASE_URL="sqlite://", LOG_LEVEL="warning", LOG_FORMAT="compact")

    config = build_logging_config(s)

    assert config["loggers"]["app"]["level"] == "WARNING"
    assert config["formatters"]["json"]["format_type"] == "compact"
    assert config["handlers"]["default"]["stream"] == "ext://sys.stdout"


def test_debug_forces_debug_level():
    s = Settings(_env_file=None, DATABASE_URL="sqlite://", DEBUG=True)

    assert build_logging_config(s)["loggers"]["app"]["level"] == "DEBUG"


def test_setup_logging_survives_broken_database_configuration(database_env_cleared):
    logger = setup_logging()

    assert logger.name == "app"
    assert logger.level == logging.INFO
