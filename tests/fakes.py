"""
In-memory fakes shared by the protocol tests: a manually released sleep,
a queue-backed websocket, and scripted HTTP sessions.
"""
import asyncio
import json
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import aiohttp

from kitchen_bridge.config import BridgeConfig


ACCEPTANCE_S = 6.0
REQUEST_S = 30.0
HEARTBEAT_S = 20.0


async def settle(rounds: int = 20) -> None:
    """Let every ready task run until the loop goes quiet."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class ManualSleep:
    """
    Injectable sleep whose sleepers only wake when released.

    Timers use distinct budgets, so ``release(seconds)`` fires one kind.
    """

    def __init__(self):
        self._sleepers: List[tuple] = []

    async def __call__(self, seconds: float) -> None:
        fut = asyncio.get_running_loop().create_future()
        self._sleepers.append((seconds, fut))
        await fut

    @property
    def waiting(self) -> List[float]:
        return [s for s, fut in self._sleepers if not fut.done()]

    def release(self, seconds: Optional[float] = None) -> int:
        released = 0
        remaining = []
        for secs, fut in self._sleepers:
            if fut.done():
                continue
            if seconds is None or secs == seconds:
                fut.set_result(None)
                released += 1
            else:
                remaining.append((secs, fut))
        self._sleepers = remaining
        return released


class FakeWebSocket:
    """Queue-backed stand-in for aiohttp's ClientWebSocketResponse."""

    def __init__(self):
        self.sent: List[Dict[str, Any]] = []
        self.closed = False
        self.close_code = None
        self.fail_sends = False
        self._inbox: asyncio.Queue = asyncio.Queue()

    def push(self, frame: Any) -> None:
        data = frame if isinstance(frame, str) else json.dumps(frame)
        self._inbox.put_nowait(SimpleNamespace(type=aiohttp.WSMsgType.TEXT, data=data))

    def push_error(self) -> None:
        self._inbox.put_nowait(SimpleNamespace(type=aiohttp.WSMsgType.ERROR, data=None))

    def end(self) -> None:
        """Peer closes the socket."""
        self._inbox.put_nowait(None)

    async def send_str(self, data: str) -> None:
        if self.fail_sends:
            raise aiohttp.ClientConnectionError("broken pipe")
        self.sent.append(json.loads(data))

    def exception(self):
        return RuntimeError("fake websocket error")

    async def close(self) -> None:
        self.closed = True
        self._inbox.put_nowait(None)

    def __aiter__(self):
        return self

    async def __anext__(self):
        msg = await self._inbox.get()
        if msg is None:
            raise StopAsyncIteration
        return msg

    def sent_of(self, key: str) -> List[Dict[str, Any]]:
        return [frame for frame in self.sent if key in frame]


class FakeWSSession:
    def __init__(self, ws: Optional[FakeWebSocket] = None, fail_connect: bool = False):
        self.ws = ws or FakeWebSocket()
        self.fail_connect = fail_connect
        self.closed = False
        self.urls: List[str] = []

    async def ws_connect(self, url: str, **_kwargs):
        self.urls.append(url)
        if self.fail_connect:
            raise aiohttp.ClientConnectionError("connection refused")
        return self.ws

    async def close(self) -> None:
        self.closed = True


class FakeResponse:
    def __init__(self, status: int = 200, body: Any = None, text: Optional[str] = None):
        self.status = status
        self._body = body
        self._text = text if text is not None else json.dumps(body)

    async def json(self, content_type=None):
        if self._body is None:
            return json.loads(self._text)
        return self._body

    async def text(self):
        return self._text

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeRestSession:
    """
    Scripted HTTP session: each post() pops the next response.

    A response may also be an exception instance, which post() raises.
    """

    def __init__(self, responses: List[Any]):
        self.responses = list(responses)
        self.requests: List[Dict[str, Any]] = []
        self.closed = False

    def post(self, url: str, params=None, json=None):
        self.requests.append({"url": url, "params": params, "json": json})
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        return response

    async def close(self) -> None:
        self.closed = True


def text_response(text: str) -> FakeResponse:
    return FakeResponse(body={"candidates": [{"content": {"role": "model", "parts": [{"text": text}]}}]})


def call_response(name: str, args: Dict[str, Any], call_id: Optional[str] = None) -> FakeResponse:
    call: Dict[str, Any] = {"name": name, "args": args}
    if call_id:
        call["id"] = call_id
    return FakeResponse(body={"candidates": [{"content": {"role": "model", "parts": [{"functionCall": call}]}}]})


def make_config(**overrides) -> BridgeConfig:
    values = dict(
        api_key="test-key",
        live_model="live-test-model",
        text_model="text-test-model",
        live_url="wss://live.example.test/ws",
        rest_url="https://rest.example.test/v1beta/models",
        acceptance_timeout_s=ACCEPTANCE_S,
        request_timeout_s=REQUEST_S,
        heartbeat_timeout_s=HEARTBEAT_S,
    )
    values.update(overrides)
    return BridgeConfig(**values)


