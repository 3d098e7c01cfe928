"""
Request lifecycle tracking: three independent, cancellable timers.

- acceptance: started on connect, cancelled by the first inbound frame
- per-message: one per outbound message id, cancelled by its response
- heartbeat: restarted on every chunk of an in-progress response

Each timer is an asyncio task sleeping for its budget. A task only fires its
callback if it still occupies its slot when the sleep ends, so a cancelled or
replaced timer never fires.
"""
from __future__ import annotations

import asyncio
import inspect
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from logging_setup import get_logger, Component as LogComponent

from .observability import Component, EventEmitter, Severity

logger = get_logger(LogComponent.LIFECYCLE)


class TimerKind(str, Enum):
    ACCEPTANCE = "acceptance"
    REQUEST = "request"
    HEARTBEAT = "heartbeat"


class RequestLifecycleTracker:
    def __init__(
        self,
        *,
        acceptance_timeout_s: float = 6.0,
        request_timeout_s: float = 30.0,
        heartbeat_timeout_s: float = 20.0,
        on_acceptance_timeout: Optional[Callable[[], Any]] = None,
        on_request_timeout: Optional[Callable[[str], Any]] = None,
        on_heartbeat_timeout: Optional[Callable[[], Any]] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        session_id: str = "unknown",
    ):
        self.acceptance_timeout_s = acceptance_timeout_s
        self.request_timeout_s = request_timeout_s
        self.heartbeat_timeout_s = heartbeat_timeout_s
        self._on_acceptance_timeout = on_acceptance_timeout
        self._on_request_timeout = on_request_timeout
        self._on_heartbeat_timeout = on_heartbeat_timeout
        self._sleep = sleep
        self.session_id = session_id
        self.emitter = EventEmitter(Component.LIFECYCLE)

        self._acceptance_task: Optional[asyncio.Task] = None
        self._heartbeat_task: Optional[asyncio.Task] = None
        # insertion order doubles as send order
        self._message_tasks: Dict[str, asyncio.Task] = {}

    # --- state ---

    @property
    def acceptance_pending(self) -> bool:
        return self._acceptance_task is not None

    @property
    def heartbeat_active(self) -> bool:
        return self._heartbeat_task is not None

    @property
    def pending_messages(self) -> List[str]:
        return list(self._message_tasks)

    # --- acceptance ---

    def start_acceptance(self) -> None:
        self._cancel_acceptance()
        self._acceptance_task = self._schedule(self._acceptance_timer())

    def mark_accepted(self) -> bool:
        """Cancel the acceptance timer. True if it was still pending."""
        was_pending = self._acceptance_task is not None
        self._cancel_acceptance()
        return was_pending

    async def _acceptance_timer(self) -> None:
        await self._sleep(self.acceptance_timeout_s)
        if self._acceptance_task is not asyncio.current_task():
            return
        self._acceptance_task = None
        self._emit_fired(TimerKind.ACCEPTANCE, self.acceptance_timeout_s)
        await self._invoke(self._on_acceptance_timeout)

    def _cancel_acceptance(self) -> None:
        if self._acceptance_task is not None:
            self._acceptance_task.cancel()
            self._acceptance_task = None

    # --- per-message ---

    def track_message(self, message_id: str) -> None:
        self.resolve_message(message_id)
        self._message_tasks[message_id] = self._schedule(self._request_timer(message_id))

    def resolve_message(self, message_id: str) -> bool:
        task = self._message_tasks.pop(message_id, None)
        if task is None:
            return False
        task.cancel()
        return True

    def resolve_oldest(self) -> Optional[str]:
        """Resolve the earliest outstanding message (streaming replies carry no id)."""
        for message_id in self._message_tasks:
            self.resolve_message(message_id)
            return message_id
        return None

    async def _request_timer(self, message_id: str) -> None:
        await self._sleep(self.request_timeout_s)
        if self._message_tasks.get(message_id) is not asyncio.current_task():
            return
        del self._message_tasks[message_id]
        self._emit_fired(TimerKind.REQUEST, self.request_timeout_s, correlation_id=message_id)
        await self._invoke(self._on_request_timeout, message_id)

    # --- heartbeat ---

    def touch_stream(self) -> None:
        """A response chunk arrived: restart the heartbeat window."""
        self._cancel_heartbeat()
        self._heartbeat_task = self._schedule(self._heartbeat_timer())

    def end_stream(self) -> None:
        self._cancel_heartbeat()

    async def _heartbeat_timer(self) -> None:
        await self._sleep(self.heartbeat_timeout_s)
        if self._heartbeat_task is not asyncio.current_task():
            return
        self._heartbeat_task = None
        self._emit_fired(TimerKind.HEARTBEAT, self.heartbeat_timeout_s)
        await self._invoke(self._on_heartbeat_timeout)

    def _cancel_heartbeat(self) -> None:
        if self._heartbeat_task is not None:
            self._heartbeat_task.cancel()
            self._heartbeat_task = None

    # --- shared ---

    def cancel_all(self) -> None:
        self._cancel_acceptance()
        self._cancel_heartbeat()
        for task in self._message_tasks.values():
            task.cancel()
        self._message_tasks.clear()

    def _schedule(self, coro) -> asyncio.Task:
        loop = asyncio.get_running_loop()
        return loop.create_task(coro)

    def _emit_fired(self, kind: TimerKind, threshold_s: float, correlation_id: Optional[str] = None) -> None:
        logger.warning("Timer fired", timer=kind.value, threshold_ms=int(threshold_s * 1000))
        self.emitter.emit(
            "timer.fired",
            session_id=self.session_id,
            severity=Severity.WARN,
            correlation_id=correlation_id,
            kind=kind.value,
            threshold_ms=int(threshold_s * 1000),
        )

    async def _invoke(self, callback: Optional[Callable[..., Any]], *args: Any) -> None:
        if callback is None:
            return
        try:
            result = callback(*args)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(
                "Timer callback failed",
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
