"""
Shared logging infrastructure for kitchen_bridge.

Every component (protocol client, transports, lifecycle timers, dispatcher)
logs through the same structured wrapper so one session's activity can be
followed across components.

Features:
- JSON-formatted structured logs (one object per line)
- Configurable log levels
- Session ID correlation
- Component tagging
- PII-aware logging helpers (user utterances, transcripts)
"""

import json
import logging
import sys
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class Component(str, Enum):
    """System components for log tagging."""
    PROTOCOL_CLIENT = "protocol_client"
    STREAMING_TRANSPORT = "streaming_transport"
    STATELESS_TRANSPORT = "stateless_transport"
    LIFECYCLE = "lifecycle"
    DISPATCHER = "dispatcher"
    STORE = "store"
    CONFIG = "config"
    CLI = "cli"


# Attributes every LogRecord carries; anything else came in via ``extra``.
_RESERVED_ATTRS = frozenset({
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "thread", "threadName", "taskName", "exc_info", "exc_text", "stack_info",
    "component", "session_id", "message",
})


class JSONFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Output fields:
    - ISO8601 timestamp
    - Severity level
    - Component identifier
    - Session ID (if available in extra)
    - Message and additional fields
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "severity": record.levelname.lower(),
            "component": getattr(record, "component", "unknown"),
            "message": record.getMessage(),
        }

        if hasattr(record, "session_id"):
            log_data["session_id"] = record.session_id

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)


class StructuredLogger:
    """
    Component-tagged logger that takes structured fields as keywords.

    Usage:
        logger = StructuredLogger(Component.DISPATCHER, session_id="kb_123")
        logger.info("Tool executed", tool="add_ingredient", success=True)
        logger.info_pii("User turn sent", text="Add 2 lbs of chicken")
    """

    def __init__(self, component: str | Component, session_id: Optional[str] = None):
        self.component = component.value if isinstance(component, Component) else component
        self.session_id = session_id
        self.logger = logging.getLogger(f"kitchen_bridge.{self.component}")

    def _log(self, level: int, message: str, pii: Optional[Dict[str, Any]] = None, **fields):
        exc_info = fields.pop("exc_info", None)
        extra = {"component": self.component, **fields}
        if self.session_id:
            extra["session_id"] = self.session_id
        if pii:
            # Kept in its own field so PII can be filtered downstream
            extra["pii"] = pii
        self.logger.log(level, message, exc_info=exc_info, extra=extra)

    def debug(self, message: str, **fields):
        self._log(logging.DEBUG, message, **fields)

    def info(self, message: str, **fields):
        self._log(logging.INFO, message, **fields)

    def warning(self, message: str, **fields):
        self._log(logging.WARNING, message, **fields)

    def error(self, message: str, **fields):
        self._log(logging.ERROR, message, **fields)

    def exception(self, message: str, **fields):
        """Error level, with the active exception's traceback."""
        fields.setdefault("exc_info", True)
        self._log(logging.ERROR, message, **fields)

    def info_pii(self, message: str, **pii_fields):
        """User-supplied text goes under ``pii`` rather than as plain fields."""
        self._log(logging.INFO, message, pii=pii_fields)


def setup_logging(
    level: str = "INFO",
    use_json: bool = True,
    include_timestamp: bool = True
) -> None:
    """
    Configure the root logger. Call once at startup (the CLI does).

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        use_json: Use JSON formatter (True) or simple text (False)
        include_timestamp: Include timestamps in text logs
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    # stderr keeps stdout free for structured events and CLI output
    console_handler = logging.StreamHandler(sys.stderr)

    if use_json:
        formatter = JSONFormatter()
    else:
        format_str = "%(levelname)s - %(component)s - %(message)s"
        if include_timestamp:
            format_str = "%(asctime)s - " + format_str
        formatter = logging.Formatter(format_str)

    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    log_level = getattr(logging, level.upper(), logging.INFO)
    root_logger.setLevel(log_level)


def get_logger(
    component: str | Component,
    session_id: Optional[str] = None
) -> StructuredLogger:
    """
    Get a structured logger for a component.

    Example:
        logger = get_logger(Component.PROTOCOL_CLIENT, session_id="sess_123")
        logger.info("Connected")
    """
    return StructuredLogger(component, session_id=session_id)
