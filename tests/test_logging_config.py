"""Tests for the JSON log formatter."""

from __future__ import annotations

import json
import logging

from timekeeper.logging_config import JsonFormatter, configure_logging


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        "timekeeper.paginator", logging.WARNING, __file__, 1, "Page %d fetched", (3,), None
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_formats_message_and_extra_fields():
    line = JsonFormatter().format(_record(endpoint="/api/1.0/users", page=3, token="secret"))

    entry = json.loads(line)
    assert entry["level"] == "WARNING"
    assert entry["logger"] == "timekeeper.paginator"
    assert entry["message"] == "Page 3 fetched"
    assert entry["endpoint"] == "/api/1.0/users"
    assert entry["page"] == 3
    assert "token" not in entry


def test_configure_logging_installs_single_handler():
    logger = logging.getLogger("timekeeper")
    saved = (logger.handlers[:], logger.level, logger.propagate)
    try:
        configure_logging("debug")
        configure_logging("debug")

        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0].formatter, JsonFormatter)
    finally:
        handlers, level, propagate = saved
        logger.handlers[:] = handlers
        logger.setLevel(level)
        logger.propagate = propagate
