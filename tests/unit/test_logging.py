from __future__ import annotations

import json
import logging
import sys

from coachstore.utils.logging import NOISY_LOGGERS, JsonFormatter, _json_formatter, configure_logging, get_logger

EXPECTED_DELAY_MS = 20
EXPECTED_ATTEMPT = 2


def _record(msg: str = "hello") -> logging.LogRecord:
    return logging.LogRecord(
        name="test.logger",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )


def test_json_formatter_promotes_extra_fields() -> None:
    record = _record()
    record.collection = "sports"
    record.attempt = EXPECTED_ATTEMPT

    payload = json.loads(_json_formatter(record))

    assert payload["level"] == "INFO"
    assert payload["logger"] == "test.logger"
    assert payload["message"] == "hello"
    assert payload["collection"] == "sports"
    assert payload["attempt"] == EXPECTED_ATTEMPT
    assert "pathname" not in payload


def test_json_formatter_supports_nested_extra_field() -> None:
    record = _record()
    record.extra = {"delay_ms": EXPECTED_DELAY_MS}

    payload = json.loads(_json_formatter(record))

    assert payload["delay_ms"] == EXPECTED_DELAY_MS


def test_json_formatter_serializes_unknown_types_and_exceptions() -> None:
    try:
        raise ValueError("bad")
    except ValueError:
        record = logging.LogRecord("test.logger", logging.ERROR, __file__, 1, "failed", (), sys.exc_info())
    record.errors = {"sports", "skills"}

    payload = json.loads(JsonFormatter().format(record))

    assert "ValueError: bad" in payload["exc_info"]
    assert isinstance(payload["errors"], str)


def test_configure_logging_sets_root_level_and_formatter() -> None:
    configure_logging(level="WARNING", json_logs=True)

    root = logging.getLogger()
    assert root.level == logging.WARNING
    assert isinstance(root.handlers[0].formatter, JsonFormatter)
    assert get_logger("coachstore.client") is logging.getLogger("coachstore.client")

    configure_logging(level="INFO", json_logs=False)
    assert root.level == logging.INFO


def test_driver_loggers_are_quieted_outside_debug() -> None:
    configure_logging(level="INFO")
    assert all(logging.getLogger(name).level == logging.WARNING for name in NOISY_LOGGERS)
    assert logging.getLogger("coachstore.client").getEffectiveLevel() == logging.INFO

    configure_logging(level="DEBUG")
    assert all(logging.getLogger(name).getEffectiveLevel() == logging.DEBUG for name in NOISY_LOGGERS)

    configure_logging(level="INFO")
