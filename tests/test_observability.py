"""
Structured event emission tests.
"""
import json
from datetime import datetime

from kitchen_bridge.observability import (
    DEFAULT_PII,
    Component,
    EventEmitter,
    RecentEvents,
    Severity,
    recent_events,
)


class TestEventFormat:
    def test_required_fields(self, capsys):
        emitter = EventEmitter(Component.PROTOCOL_CLIENT)
        emitter.emit(event_type="connection.state_changed", session_id="sess_1", from_state="connecting", to_state="connected")

        event = json.loads(capsys.readouterr().out.strip())
        for key in ("ts", "session_id", "component", "event_type", "severity", "correlation_id", "pii"):
            assert key in event
        assert event["component"] == "protocol_client"
        assert event["severity"] == "info"
        assert event["correlation_id"] == "sess_1"
        assert event["pii"] == DEFAULT_PII
        assert event["to_state"] == "connected"
        datetime.fromisoformat(event["ts"])

    def test_payload_cannot_override_envelope(self, capsys):
        EventEmitter(Component.DISPATCHER).emit("tool.executed", "sess_1", component="spoofed", tool="add_ingredient")

        event = json.loads(capsys.readouterr().out.strip())
        assert event["component"] == "dispatcher"
        assert event["tool"] == "add_ingredient"

    def test_non_serializable_values_are_stringified(self, capsys):
        EventEmitter(Component.LIFECYCLE).emit("timer.fired", "sess_1", Severity.WARN, when=datetime(2025, 1, 1))

        event = json.loads(capsys.readouterr().out.strip())
        assert event["severity"] == "warn"
        assert event["when"].startswith("2025-01-01")


class TestRecentEvents:
    def test_emitted_events_are_queryable(self, capsys):
        emitter = EventEmitter(Component.PROTOCOL_CLIENT)
        emitter.emit("request.sent", "sess_a", correlation_id="m1")
        emitter.emit("request.completed", "sess_a", correlation_id="m1")
        emitter.emit("request.sent", "sess_b")
        capsys.readouterr()

        assert len(recent_events) == 3
        assert [e["event_type"] for e in recent_events.query(session_id="sess_a")] == ["request.sent", "request.completed"]
        assert len(recent_events.query(event_type="request.sent")) == 2
        assert recent_events.query(limit=1)[0]["session_id"] == "sess_b"

    def test_store_is_bounded(self):
        store = RecentEvents(max_events=2)
        for i in range(3):
            store.store({"n": i})

        assert [e["n"] for e in store.query()] == [1, 2]
        store.clear()
        assert len(store) == 0

    def test_custom_store(self, capsys):
        store = RecentEvents()
        EventEmitter(Component.LIFECYCLE, store=store).emit("timer.fired", "sess_1")

        assert len(store) == 1
        assert len(recent_events) == 0
