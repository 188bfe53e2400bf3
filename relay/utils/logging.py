"""Logging setup for the relay service.

Plain text lines by default. ``LOG_FORMAT=json`` switches to one JSON object
per line, with ``thread_id`` and ``message_id`` carried over from ``extra``.
"""

import json
import logging
import os
import sys
from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel

QUIET_LOGGERS = ("anthropic", "httpx", "httpcore", "aiosqlite", "uvicorn.access")
CONTEXT_FIELDS = ("thread_id", "message_id")


class LogConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: Literal["text", "json"] = "text"
    text_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    date_format: str = "%Y-%m-%d %H:%M:%S"

    @classmethod
    def from_env(cls) -> "LogConfig":
        return cls(level=os.getenv("LOG_LEVEL", "INFO"), format=os.getenv("LOG_FORMAT", "text").lower())


class JsonFormatter(logging.Formatter):
    """Render records as single-line JSON."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                entry[name] = value
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def build_formatter(config: LogConfig) -> logging.Formatter:
    if config.format == "json":
        return JsonFormatter()
    return logging.Formatter(config.text_format, datefmt=config.date_format)


def setup_logging(config: LogConfig | None = None) -> None:
    """Configure the root logger for the service.

    Replaces any handlers installed earlier (uvicorn installs its own).
    """
    config = config or LogConfig.from_env()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(build_formatter(config))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(config.level.upper())

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a module logger; level and handlers come from the root logger."""
    return logging.getLogger(name)
