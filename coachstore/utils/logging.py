"""
Logging setup shared by the CLI and library components.

Library code never configures handlers. Each component takes an optional
`logging.Logger` and falls back to `get_logger(__name__)`; call-specific
context (collection, doc_id, attempt, migration id) travels in `extra={...}`.
`configure_logging` is called once by an entry point such as the CLI.

With `json_logs=True` every record becomes one JSON object per line, and the
`extra` fields appear as top-level keys. The driver and state-machine loggers
(`psycopg`, `psycopg.pool`, `transitions`) are held at WARNING unless the
configured level is DEBUG, so pool chatter does not drown out store events.

    configure_logging(level="DEBUG", json_logs=True)
    get_logger("coachstore.client").info("cache hit", extra={"collection": "sports"})
"""

from __future__ import annotations

import json
import logging
import logging.config
from typing import Any, Dict, Optional

# Attributes every LogRecord carries; anything else arrived through `extra=`.
_STANDARD_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None)).keys()
) | {"message", "asctime", "taskName"}

NOISY_LOGGERS = ("psycopg", "psycopg.pool", "transitions")


def _json_formatter(record: logging.LogRecord) -> str:
    """One-line JSON payload with `extra` fields lifted to the top level."""
    payload: Dict[str, Any] = {
        "level": record.levelname,
        "logger": record.name,
        "message": record.getMessage(),
    }
    for key, value in vars(record).items():
        if key in _STANDARD_RECORD_ATTRS or key == "extra" or key.startswith("_"):
            continue
        payload[key] = value
    if record.exc_info:
        payload["exc_info"] = logging.Formatter().formatException(record.exc_info)
    if record.stack_info:
        payload["stack_info"] = record.stack_info
    # extra={"extra": {...}} is flattened too
    if hasattr(record, "extra") and isinstance(record.extra, dict):
        payload.update(record.extra)
    return json.dumps(payload, default=str)


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        return _json_formatter(record)


def _library_levels(level: str) -> Dict[str, Dict[str, Any]]:
    # NOTSET hands the decision back to the root level
    library_level = "NOTSET" if str(level).upper() == "DEBUG" else "WARNING"
    return {name: {"level": library_level} for name in NOISY_LOGGERS}


def configure_logging(
    level: str = "INFO",
    json_logs: bool = False,
    force: bool = True,
) -> None:
    """
    Install the single stream handler on the root logger.

    Parameters
    ----------
    level : str
        Level name applied to the root logger and its handler.
    json_logs : bool
        Emit JSON lines instead of the pipe-separated console format.
    force : bool
        Replace an existing configuration. When False and the root logger
        already has handlers, nothing changes.
    """
    if not force and logging.getLogger().handlers:
        return

    formatter_name = "json" if json_logs else "console"

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "console": {
                    "format": "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
                    "datefmt": "%Y-%m-%d %H:%M:%S",
                },
                "json": {
                    "()": JsonFormatter,
                },
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "formatter": formatter_name,
                    "level": level,
                }
            },
            "loggers": _library_levels(level),
            "root": {
                "handlers": ["default"],
                "level": level,
            },
        }
    )


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Named logger; the root logger when `name` is None."""
    return logging.getLogger(name)


__all__ = ["NOISY_LOGGERS", "configure_logging", "get_logger", "JsonFormatter"]
