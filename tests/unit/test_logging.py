"""Tests for logging setup."""

from __future__ import annotations

import json
import logging
import sys

import pytest

from healthprobe._internal.logging import _JsonFormatter, get_logger, setup_logging


@pytest.fixture
def _restore_root_logger():
    logger = logging.getLogger("healthprobe")
    saved_handlers = list(logger.handlers)
    saved_level = logger.level
    logger.handlers.clear()
    yield
    logger.handlers[:] = saved_handlers
    logger.setLevel(saved_level)
    logger.propagate = True


@pytest.mark.usefixtures("_restore_root_logger")
class TestSetupLogging:
    def test_installs_single_handler(self):
        logger = setup_logging(logging.DEBUG)
        assert logger.name == "healthprobe"
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1
        assert logger.propagate is False

    def test_repeated_calls_only_update_level(self):
        setup_logging(logging.INFO)
        logger = setup_logging(logging.WARNING)
        assert len(logger.handlers) == 1
        assert logger.level == logging.WARNING
        assert logger.handlers[0].level == logging.WARNING

    def test_json_format_swaps_formatter(self):
        setup_logging()
        logger = setup_logging(json_format=True)
        assert isinstance(logger.handlers[0].formatter, _JsonFormatter)


class TestJsonFormatter:
    def _record(self, **extra) -> logging.LogRecord:
        record = logging.LogRecord(
            name="healthprobe.probes.endpoints",
            level=logging.ERROR,
            pathname=__file__,
            lineno=1,
            msg="%s check failed: %s",
            args=("Readiness", "boom"),
            exc_info=None,
        )
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_core_fields(self):
        entry = json.loads(_JsonFormatter().format(self._record()))
        assert entry["level"] == "ERROR"
        assert entry["logger"] == "healthprobe.probes.endpoints"
        assert entry["message"] == "Readiness check failed: boom"
        assert "timestamp" in entry
        assert "endpoint" not in entry

    def test_extra_fields_included(self):
        record = self._record(endpoint="Readiness Check", group="Health Check Endpoints", user_id=3)
        entry = json.loads(_JsonFormatter().format(record))
        assert entry["endpoint"] == "Readiness Check"
        assert entry["group"] == "Health Check Endpoints"
        assert entry["user_id"] == 3

    def test_exception_included(self):
        try:
            raise ValueError("bad body")
        except ValueError:
            record = self._record()
            record.exc_info = sys.exc_info()
        entry = json.loads(_JsonFormatter().format(record))
        assert "ValueError: bad body" in entry["exception"]


def test_get_logger_is_namespaced():
    assert get_logger("engine.session").name == "healthprobe.engine.session"
