"""Tests for logging configuration."""

import json
import logging

import pytest

from ontop.infrastructure.logging_config import StructuredFormatter, setup_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


class TestStructuredFormatter:
    """Test suite for StructuredFormatter."""

    def test_formats_record_as_json(self):
        record = logging.LogRecord(
            name="ontop.session", level=logging.WARNING, pathname=__file__, lineno=10,
            msg="Import of %s rejected", args=("amd.json",), exc_info=None,
        )
        record.platform = "AMD"

        payload = json.loads(StructuredFormatter().format(record))

        assert payload["level"] == "WARNING"
        assert payload["logger"] == "ontop.session"
        assert payload["message"] == "Import of amd.json rejected"
        assert payload["platform"] == "AMD"
        assert payload["timestamp"].endswith("Z")

    def test_includes_exception(self):
        try:
            raise ValueError("boom")
        except ValueError:
            import sys
            record = logging.LogRecord("x", logging.ERROR, __file__, 1, "failed", None, sys.exc_info())

        payload = json.loads(StructuredFormatter().format(record))
        assert "ValueError: boom" in payload["exception"]


class TestSetupLogging:
    """Test suite for setup_logging."""

    def test_installs_single_handler(self, restore_root_logger):
        setup_logging(log_level="DEBUG")
        setup_logging(log_level="WARNING")

        ours = [h for h in restore_root_logger.handlers if getattr(h, "_ontop_handler", False)]
        assert len(ours) == 1
        assert restore_root_logger.level == logging.WARNING

    def test_json_mode_uses_structured_formatter(self, restore_root_logger):
        setup_logging(use_json=True)
        ours = [h for h in restore_root_logger.handlers if getattr(h, "_ontop_handler", False)]
        assert isinstance(ours[0].formatter, StructuredFormatter)

    def test_unknown_level_falls_back_to_info(self, restore_root_logger):
        setup_logging(log_level="chatty")
        assert restore_root_logger.level == logging.INFO

    def test_keeps_foreign_handlers(self, restore_root_logger):
        foreign = logging.NullHandler()
        restore_root_logger.addHandler(foreign)
        setup_logging()
        assert foreign in restore_root_logger.handlers
