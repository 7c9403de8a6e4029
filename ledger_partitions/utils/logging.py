"""
Logging setup for the ledger partition manager.

Every provisioning, sweep and migration message carries its context in
``extra=`` (partition name, run date, row counts, error text). Both formatters
render those fields: the console one as trailing ``key=value`` pairs, the JSON
one as top-level keys next to a UTC timestamp, so cron output can be shipped to
an aggregator unchanged.

Usage:
    from ledger_partitions.utils.logging import configure_logging, get_logger

    configure_logging(level="INFO", json_logs=False)
    log = get_logger(__name__)
    log.info("[PROVISION CREATED] transactions_2025_05_01", extra={"partition": "transactions_2025_05_01"})
"""

from __future__ import annotations

import json
import logging
import logging.config
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# Attributes every LogRecord carries; anything else came in through `extra=`.
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None)).keys()
) | {"message", "asctime", "extra"}

CONSOLE_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
CONSOLE_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Chatty third-party loggers held at WARNING unless DEBUG is requested.
QUIET_LOGGERS = ("psycopg.pool",)


def _extras(record: logging.LogRecord) -> Dict[str, Any]:
    fields = {key: value for key, value in vars(record).items() if key not in _RESERVED_ATTRS}
    nested = getattr(record, "extra", None)
    if isinstance(nested, dict):
        fields.update(nested)
    return fields


def _json_formatter(record: logging.LogRecord) -> str:
    """Render a log record as one JSON line."""
    payload: Dict[str, Any] = {
        "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
        "level": record.levelname,
        "logger": record.name,
        "message": record.getMessage(),
    }
    payload.update(_extras(record))
    if record.exc_info:
        payload["exc_info"] = logging.Formatter().formatException(record.exc_info)
    return json.dumps(payload, default=str)


class JsonFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        return _json_formatter(record)


class ConsoleFormatter(logging.Formatter):
    """Human-readable line followed by the record's context fields."""

    def __init__(self, fmt: str = CONSOLE_FORMAT, datefmt: str = CONSOLE_DATEFMT) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields = _extras(record)
        if not fields:
            return line
        context = " ".join(f"{key}={fields[key]}" for key in sorted(fields))
        head, newline, tail = line.partition("\n")
        return f"{head} | {context}{newline}{tail}"


def configure_logging(level: str = "INFO", json_logs: bool = False) -> None:
    """
    Configure root logging for the CLI and scheduled runs.

    Parameters
    ----------
    level : str
        Logging level name (e.g., "DEBUG", "INFO", "WARNING").
    json_logs : bool
        Emit one JSON object per line instead of the console format.
    """
    level = level.upper()
    quiet_level = "DEBUG" if level == "DEBUG" else "WARNING"

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "console": {"()": ConsoleFormatter},
                "json": {"()": JsonFormatter},
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "formatter": "json" if json_logs else "console",
                    "level": level,
                }
            },
            "loggers": {name: {"level": quiet_level} for name in QUIET_LOGGERS},
            "root": {
                "handlers": ["default"],
                "level": level,
            },
        }
    )


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Get a logger with the given name. If name is None, returns the root logger.
    """
    return logging.getLogger(name)


__all__ = ["ConsoleFormatter", "JsonFormatter", "configure_logging", "get_logger"]
