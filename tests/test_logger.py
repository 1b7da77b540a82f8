"""Unit tests for structured logging setup."""
import sys
import json
import logging
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

import pytest
from logger import JSONFormatter, setup_logging


def make_record(message="Stored 3 chunks", **extra):
    record = logging.LogRecord(
        name="services.rag_service",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=message,
        args=(),
        exc_info=None
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    """Test suite for JSONFormatter."""

    def test_basic_fields(self):
        payload = json.loads(JSONFormatter().format(make_record()))

        assert payload["level"] == "INFO"
        assert payload["logger"] == "services.rag_service"
        assert payload["message"] == "Stored 3 chunks"
        assert payload["timestamp"].endswith("Z")

    def test_context_fields_are_promoted(self):
        record = make_record(document_id="D1", stage="index", collection="doc_D1_chunks")

        payload = json.loads(JSONFormatter().format(record))

        assert payload["document_id"] == "D1"
        assert payload["stage"] == "index"
        assert payload["collection"] == "doc_D1_chunks"
        assert "conversation_id" not in payload

    def test_unknown_extra_fields_are_ignored(self):
        payload = json.loads(JSONFormatter().format(make_record(user_secret="x")))

        assert "user_secret" not in payload

    def test_exception_is_included(self):
        try:
            raise ValueError("bad input")
        except ValueError:
            record = make_record()
            record.exc_info = sys.exc_info()

        payload = json.loads(JSONFormatter().format(record))

        assert "ValueError: bad input" in payload["exception"]


class TestSetupLogging:
    """Test suite for setup_logging."""

    @pytest.fixture(autouse=True)
    def restore_root_logger(self):
        root = logging.getLogger()
        handlers, level = list(root.handlers), root.level
        yield
        root.handlers = handlers
        root.setLevel(level)

    def test_json_format(self):
        setup_logging("debug", "json")

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, JSONFormatter)

    def test_text_format(self):
        setup_logging("WARNING", "text")

        root = logging.getLogger()
        assert root.level == logging.WARNING
        assert not isinstance(root.handlers[0].formatter, JSONFormatter)
