from __future__ import annotations

import json
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

from core.config import LoggingConfig

_RECORD_FIELDS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}

# Chatty third-party loggers and the level they are held to.
_QUIET_LOGGERS = {
    "discord": logging.INFO,
    "discord.gateway": logging.WARNING,
    "discord.http": logging.WARNING,
    "aiosqlite": logging.WARNING,
    "asyncpg": logging.WARNING,
    "uvicorn.access": logging.WARNING,
}


def record_context(record: logging.LogRecord) -> dict[str, Any]:
    """Fields attached to a record through ``extra=``."""
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _RECORD_FIELDS and not key.startswith("_")
    }


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **record_context(record),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=True, default=str)


class ContextFormatter(logging.Formatter):
    """Human readable lines with any ``extra=`` fields appended as key=value."""

    def __init__(self) -> None:
        super().__init__(fmt="%(asctime)s | %(levelname)s | %(name)s | %(message)s", datefmt="%Y-%m-%d %H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = record_context(record)
        if not context:
            return line
        suffix = " ".join(f"{key}={value}" for key, value in sorted(context.items()))
        head, newline, trace = line.partition("\n")
        return f"{head} | {suffix}{newline}{trace}"


def _file_handler(config: LoggingConfig) -> logging.Handler:
    log_dir = Path(config.directory)
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        filename=log_dir / config.file_name,
        maxBytes=config.max_bytes,
        backupCount=config.backup_count,
        encoding="utf-8",
    )
    handler.setFormatter(JsonFormatter())
    return handler


def configure_logging(config: LoggingConfig) -> None:
    root = logging.getLogger()
    root.setLevel(logging.getLevelNamesMapping().get(config.level, logging.INFO))
    root.handlers.clear()

    console = logging.StreamHandler()
    console.setFormatter(JsonFormatter() if config.json_console else ContextFormatter())
    root.addHandler(console)
    root.addHandler(_file_handler(config))

    for name, level in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(level)
