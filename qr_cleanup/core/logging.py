"""
Structured JSON logging for the cleanup task
"""
import logging
import logging.config
import json
from datetime import datetime
from typing import Optional

import pytz
from pydantic import ValidationError

from qr_cleanup.core.config import Settings, get_settings


class JsonFormatter(logging.Formatter):
    """
    JSON formatter: one object per line.

    Dict messages are merged into the root object, so
    logger.info({"event": "...", ...}) stays queryable.
    """

    def __init__(self, environment: str = "development", timezone: str = "UTC",
                 include_trace: bool = True):
        super().__init__()
        self.environment = environment
        self.tz = pytz.timezone(timezone)
        self.include_trace = include_trace

    def format(self, record: logging.LogRecord) -> str:
        dt = datetime.fromtimestamp(record.created, tz=pytz.utc).astimezone(self.tz)

        log_data = {
            "time": dt.isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "environment": self.environment,
        }

        if isinstance(record.msg, dict):
            log_data.update(record.msg)
        else:
            log_data["message"] = record.getMessage()

        if record.exc_info:
            exc_type = record.exc_info[0].__name__ if record.exc_info[0] else None
            log_data["exception"] = {
                "type": exc_type,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
            }
            if self.include_trace:
                log_data["exception"]["traceback"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)


class CompactJSONFormatter(logging.Formatter):
    """
    Compact JSON formatter for production use
    Excludes detailed trace information to reduce log size
    """

    def __init__(self, environment: str = "production", timezone: str = "UTC"):
        super().__init__()
        self.environment = environment
        self.tz = pytz.timezone(timezone)

    def format(self, record: logging.LogRecord) -> str:
        dt = datetime.fromtimestamp(record.created, tz=pytz.utc).astimezone(self.tz)

        log_data = {
            "ts": dt.isoformat(),
            "lvl": record.levelname[0],  # First letter only (I, W, E, D)
            "logger": record.name,
            "env": self.environment,
        }

        if isinstance(record.msg, dict):
            log_data.update(record.msg)
        else:
            log_data["msg"] = record.getMessage()

        # Add exception type only (no traceback)
        if record.exc_info and record.exc_info[0]:
            log_data["exc"] = record.exc_info[0].__name__

        return json.dumps(log_data, ensure_ascii=False, separators=(',', ':'), default=str)


def get_formatter(
    format_type: str = "json",
    environment: str = "development",
    timezone: str = "UTC",
) -> logging.Formatter:
    """
    Get appropriate formatter based on configuration

    Args:
        format_type: Type of formatter (json, compact)
        environment: Environment name
        timezone: pytz zone name used for timestamps

    Returns:
        Configured formatter
    """
    if format_type == "compact":
        return CompactJSONFormatter(environment=environment, timezone=timezone)
    return JsonFormatter(
        environment=environment,
        timezone=timezone,
        include_trace=environment != "production",
    )


def build_logging_config(_settings: Settings) -> dict:
    level = "DEBUG" if _settings.DEBUG else _settings.LOG_LEVEL.upper()

    return {
        "version": 1,
        "disable_existing_loggers": False,

        "formatters": {
            "json": {
                "()": get_formatter,
                "format_type": _settings.LOG_FORMAT,
                "environment": _settings.ENVIRONMENT,
                "timezone": _settings.LOG_TIMEZONE,
            },
        },

        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "formatter": "json",
                "stream": "ext://sys.stdout",
            },
        },

        "loggers": {
            "app": {
                "handlers": ["default"],
                "level": level,
                "propagate": True,
            },
            "sqlalchemy.engine": {
                "handlers": ["default"],
                "level": "INFO" if _settings.DEBUG else "WARNING",
                "propagate": False,
            },
        },
    }


def setup_logging(_settings: Optional[Settings] = None) -> logging.Logger:
    if _settings is None:
        try:
            _settings = get_settings()
        except ValidationError:
            # логирование поднимается и при сломанной конфигурации БД
            _settings = Settings.model_construct()
    logging.config.dictConfig(build_logging_config(_settings))
    return logging.getLogger("app")
