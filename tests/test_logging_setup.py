"""
Tests for logging_setup module.

Verifies:
- JSON structured logging format
- Component tagging
- Session ID correlation
- PII-aware logging helpers
- Log level configuration
"""
import json
import logging
from io import StringIO
from datetime import datetime

import pytest

from logging_setup import (
    setup_logging,
    get_logger,
    Component,
    JSONFormatter,
)


@pytest.fixture
def capture_logs():
    """Capture log output to a string buffer."""
    buffer = StringIO()
    handler = logging.StreamHandler(buffer)
    handler.setFormatter(JSONFormatter())

    logger = logging.getLogger()
    logger.handlers = []
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)

    yield buffer

    logger.handlers = []


def _single_entry(buffer: StringIO) -> dict:
    return json.loads(buffer.getvalue().strip())


def test_json_formatter_basic(capture_logs):
    logger = get_logger(Component.DISPATCHER)
    logger.info("Tool executed", tool="add_ingredient")

    log_entry = _single_entry(capture_logs)

    assert log_entry["severity"] == "info"
    assert log_entry["component"] == "dispatcher"
    assert log_entry["message"] == "Tool executed"
    assert log_entry["tool"] == "add_ingredient"
    assert "timestamp" in log_entry


def test_json_formatter_timestamp_format(capture_logs):
    """Timestamp is ISO8601."""
    get_logger(Component.LIFECYCLE).info("Timestamp test")

    timestamp = _single_entry(capture_logs)["timestamp"]
    assert datetime.fromisoformat(timestamp.replace("Z", "+00:00")) is not None


def test_session_id_correlation(capture_logs):
    get_logger(Component.PROTOCOL_CLIENT, session_id="sess_123").info("Connected")

    assert _single_entry(capture_logs)["session_id"] == "sess_123"


def test_session_id_absent_when_not_provided(capture_logs):
    get_logger(Component.STORE).info("No session")

    assert "session_id" not in _single_entry(capture_logs)


def test_pii_logging(capture_logs):
    """User text goes into a dedicated pii field."""
    logger = get_logger(Component.PROTOCOL_CLIENT, session_id="sess_789")
    logger.info_pii("User turn sent", text="Add 2 lbs of chicken")

    log_entry = _single_entry(capture_logs)
    assert log_entry["pii"] == {"text": "Add 2 lbs of chicken"}
    assert log_entry["message"] == "User turn sent"


def test_severity_levels(capture_logs):
    logger = get_logger(Component.LIFECYCLE)

    logger.debug("Debug message")
    logger.info("Info message")
    logger.warning("Warning message")
    logger.error("Error message")

    lines = [line for line in capture_logs.getvalue().strip().split("\n") if line]
    severities = [json.loads(line)["severity"] for line in lines]
    assert severities == ["debug", "info", "warning", "error"]


def test_component_enum():
    assert Component.PROTOCOL_CLIENT.value == "protocol_client"
    assert Component.STATELESS_TRANSPORT.value == "stateless_transport"
    assert Component.DISPATCHER.value == "dispatcher"


def test_component_string_fallback(capture_logs):
    get_logger("custom_component").info("Test")

    assert _single_entry(capture_logs)["component"] == "custom_component"


def test_non_serializable_extra_is_stringified(capture_logs):
    """Values json can't encode (e.g. datetimes) fall back to str()."""
    moment = datetime(2025, 1, 2, 3, 4, 5)
    get_logger(Component.STORE).info("Expiry set", expiry=moment, counts={"fridge": 2})

    log_entry = _single_entry(capture_logs)
    assert log_entry["expiry"] == str(moment)
    assert log_entry["counts"] == {"fridge": 2}


def test_setup_logging_json():
    setup_logging(level="DEBUG", use_json=True)

    root_logger = logging.getLogger()
    assert root_logger.level == logging.DEBUG
    assert len(root_logger.handlers) == 1
    assert isinstance(root_logger.handlers[0].formatter, JSONFormatter)


def test_setup_logging_text():
    setup_logging(level="INFO", use_json=False)

    root_logger = logging.getLogger()
    assert root_logger.level == logging.INFO
    assert len(root_logger.handlers) == 1
    assert not isinstance(root_logger.handlers[0].formatter, JSONFormatter)


def test_setup_logging_unknown_level_falls_back_to_info():
    setup_logging(level="chatty")

    assert logging.getLogger().level == logging.INFO


def test_exception_logging(capture_logs):
    logger = get_logger(Component.DISPATCHER)

    try:
        raise ValueError("Test exception")
    except ValueError:
        logger.exception("Handler crashed")

    log_entry = _single_entry(capture_logs)
    assert log_entry["severity"] == "error"
    assert "ValueError: Test exception" in log_entry["exception"]
