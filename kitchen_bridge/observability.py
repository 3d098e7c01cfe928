"""
Structured JSON event emission.

Every notable protocol occurrence (connection state changes, requests,
timer firings, tool executions) is written to stdout as one JSON envelope
per line and kept in a bounded in-memory buffer so it can be queried
per session.
"""

from __future__ import annotations

import json
import sys
from collections import deque
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Deque, Dict, List, Optional


class Component(str, Enum):
    """Event-emitting components."""

    PROTOCOL_CLIENT = "protocol_client"
    LIFECYCLE = "lifecycle"
    DISPATCHER = "dispatcher"


class Severity(str, Enum):
    """Event severity levels."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


DEFAULT_PII = {"contains_pii": False, "fields": [], "handling": "none"}

_ENVELOPE_KEYS = ("ts", "session_id", "component", "event_type", "severity", "correlation_id", "pii")


class RecentEvents:
    """
    Bounded FIFO of emitted events.

    Oldest events are evicted once ``max_events`` is reached.
    """

    def __init__(self, max_events: int = 1000):
        self._events: Deque[Dict[str, Any]] = deque(maxlen=max_events)

    def store(self, event: Dict[str, Any]) -> None:
        self._events.append(dict(event))

    def query(
        self,
        session_id: Optional[str] = None,
        event_type: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Return matching events, oldest first."""
        results = [
            e for e in self._events
            if (session_id is None or e.get("session_id") == session_id)
            and (event_type is None or e.get("event_type") == event_type)
        ]
        if limit is not None:
            results = results[-limit:]
        return results

    def clear(self) -> None:
        self._events.clear()

    def __len__(self) -> int:
        return len(self._events)


recent_events = RecentEvents()


class EventEmitter:
    """Emits structured JSON events."""

    def __init__(self, component: Component, store: Optional[RecentEvents] = None):
        self.component = component
        self._store = store if store is not None else recent_events

    def emit(
        self,
        event_type: str,
        session_id: str,
        severity: Severity = Severity.INFO,
        correlation_id: Optional[str] = None,
        pii: Optional[Dict[str, Any]] = None,
        **kwargs: Any,
    ) -> None:
        event = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "session_id": session_id,
            "component": self.component.value,
            "event_type": event_type,
            "severity": severity.value,
            "correlation_id": correlation_id or session_id,
            "pii": pii or DEFAULT_PII,
        }
        # Payload fields never shadow the envelope
        event.update({k: v for k, v in kwargs.items() if k not in _ENVELOPE_KEYS})

        sys.stdout.write(json.dumps(event, ensure_ascii=False, default=str))
        sys.stdout.write("\n")
        sys.stdout.flush()

        self._store.store(event)
