"""
Tests for the request lifecycle timers.

Verifies:
- Acceptance, per-message and heartbeat timers fire once after their budget
- Cancelled or replaced timers never fire
- timer.fired events are emitted
"""
import pytest

from kitchen_bridge.lifecycle import RequestLifecycleTracker
from fakes import ACCEPTANCE_S, HEARTBEAT_S, REQUEST_S, settle


def _tracker(sleep, fired):
    return RequestLifecycleTracker(
        acceptance_timeout_s=ACCEPTANCE_S,
        request_timeout_s=REQUEST_S,
        heartbeat_timeout_s=HEARTBEAT_S,
        on_acceptance_timeout=lambda: fired.append("acceptance"),
        on_request_timeout=lambda message_id: fired.append(("request", message_id)),
        on_heartbeat_timeout=lambda: fired.append("heartbeat"),
        sleep=sleep,
        session_id="sess_123",
    )


@pytest.mark.asyncio
async def test_acceptance_timer_fires_once(manual_sleep, capsys):
    fired = []
    tracker = _tracker(manual_sleep, fired)

    tracker.start_acceptance()
    await settle()
    assert tracker.acceptance_pending
    assert manual_sleep.release(ACCEPTANCE_S) == 1
    await settle()

    assert fired == ["acceptance"]
    assert not tracker.acceptance_pending
    out = capsys.readouterr().out
    assert "timer.fired" in out
    assert '"kind": "acceptance"' in out


@pytest.mark.asyncio
async def test_mark_accepted_cancels_acceptance(manual_sleep):
    fired = []
    tracker = _tracker(manual_sleep, fired)

    tracker.start_acceptance()
    await settle()
    assert tracker.mark_accepted() is True
    assert tracker.mark_accepted() is False

    manual_sleep.release()
    await settle()
    assert fired == []


@pytest.mark.asyncio
async def test_restarting_acceptance_replaces_previous_timer(manual_sleep):
    fired = []
    tracker = _tracker(manual_sleep, fired)

    tracker.start_acceptance()
    await settle()
    tracker.start_acceptance()
    await settle()

    manual_sleep.release(ACCEPTANCE_S)
    await settle()
    assert fired == ["acceptance"]


@pytest.mark.asyncio
async def test_request_timer_fires_with_message_id(manual_sleep, capsys):
    fired = []
    tracker = _tracker(manual_sleep, fired)

    tracker.track_message("msg-1")
    await settle()
    assert tracker.pending_messages == ["msg-1"]

    manual_sleep.release(REQUEST_S)
    await settle()

    assert fired == [("request", "msg-1")]
    assert tracker.pending_messages == []
    assert '"correlation_id": "msg-1"' in capsys.readouterr().out


@pytest.mark.asyncio
async def test_resolved_message_never_fires(manual_sleep):
    fired = []
    tracker = _tracker(manual_sleep, fired)

    tracker.track_message("msg-1")
    await settle()
    assert tracker.resolve_message("msg-1") is True
    assert tracker.resolve_message("msg-1") is False

    manual_sleep.release()
    await settle()
    assert fired == []


@pytest.mark.asyncio
async def test_resolve_oldest_is_fifo(manual_sleep):
    tracker = _tracker(manual_sleep, [])

    tracker.track_message("first")
    tracker.track_message("second")

    assert tracker.resolve_oldest() == "first"
    assert tracker.pending_messages == ["second"]
    assert tracker.resolve_oldest() == "second"
    assert tracker.resolve_oldest() is None
    tracker.cancel_all()


@pytest.mark.asyncio
async def test_tracking_same_message_restarts_its_timer(manual_sleep):
    fired = []
    tracker = _tracker(manual_sleep, fired)

    tracker.track_message("msg-1")
    await settle()
    tracker.track_message("msg-1")
    await settle()

    manual_sleep.release(REQUEST_S)
    await settle()
    assert fired == [("request", "msg-1")]


@pytest.mark.asyncio
async def test_each_chunk_resets_heartbeat(manual_sleep):
    fired = []
    tracker = _tracker(manual_sleep, fired)

    for _ in range(3):
        tracker.touch_stream()
        await settle()
    assert tracker.heartbeat_active

    # only the latest window is still sleeping
    assert manual_sleep.waiting == [HEARTBEAT_S]
    manual_sleep.release(HEARTBEAT_S)
    await settle()
    assert fired == ["heartbeat"]
    assert not tracker.heartbeat_active


@pytest.mark.asyncio
async def test_end_stream_cancels_heartbeat(manual_sleep):
    fired = []
    tracker = _tracker(manual_sleep, fired)

    tracker.touch_stream()
    await settle()
    tracker.end_stream()
    assert not tracker.heartbeat_active

    manual_sleep.release()
    await settle()
    assert fired == []


@pytest.mark.asyncio
async def test_cancel_all_stops_every_timer(manual_sleep):
    fired = []
    tracker = _tracker(manual_sleep, fired)

    tracker.start_acceptance()
    tracker.track_message("msg-1")
    tracker.touch_stream()
    await settle()
    tracker.cancel_all()

    manual_sleep.release()
    await settle()
    assert fired == []
    assert tracker.pending_messages == []
    assert not tracker.acceptance_pending
    assert not tracker.heartbeat_active


@pytest.mark.asyncio
async def test_async_callback_is_awaited(manual_sleep):
    fired = []

    async def on_acceptance():
        fired.append("awaited")

    tracker = RequestLifecycleTracker(
        acceptance_timeout_s=ACCEPTANCE_S,
        on_acceptance_timeout=on_acceptance,
        sleep=manual_sleep,
    )
    tracker.start_acceptance()
    await settle()
    manual_sleep.release()
    await settle()

    assert fired == ["awaited"]


@pytest.mark.asyncio
async def test_failing_callback_does_not_break_tracker(manual_sleep):
    def explode(_message_id):
        raise RuntimeError("boom")

    tracker = RequestLifecycleTracker(
        request_timeout_s=REQUEST_S,
        on_request_timeout=explode,
        sleep=manual_sleep,
    )
    tracker.track_message("msg-1")
    await settle()
    manual_sleep.release()
    await settle()

    # still usable afterwards
    tracker.track_message("msg-2")
    assert tracker.pending_messages == ["msg-2"]
    tracker.cancel_all()
