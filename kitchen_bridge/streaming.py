"""
Streaming transport: one long-lived websocket to the Live endpoint.

Only moves frames. Setup, acceptance and response tracking belong to the
protocol client.
"""
from __future__ import annotations

import asyncio
import json
from typing import Any, AsyncIterator, Callable, Dict, Optional, Union
from urllib.parse import quote, urlsplit

import aiohttp

from logging_setup import get_logger, Component

from .errors import ConnectionClosedError, ConnectionFailedError, InvalidEndpointError

logger = get_logger(Component.STREAMING_TRANSPORT)


def build_stream_url(base_url: str, api_key: str) -> str:
    """Append the credential to the websocket URL, rejecting anything that isn't ws(s)://host."""
    parts = urlsplit(base_url or "")
    if parts.scheme not in ("ws", "wss") or not parts.netloc:
        raise InvalidEndpointError(f"Invalid streaming URL: {base_url!r}")
    separator = "&" if parts.query else "?"
    return f"{base_url}{separator}key={quote(api_key, safe='')}"


class StreamingTransport:
    def __init__(
        self,
        url: str,
        session_factory: Callable[[], Any] = aiohttp.ClientSession,
        connect_timeout_s: float = 10.0,
    ):
        self._url = url
        self._session_factory = session_factory
        self._connect_timeout_s = connect_timeout_s
        self._session: Optional[Any] = None
        self._ws: Optional[Any] = None

    @property
    def is_open(self) -> bool:
        return self._ws is not None and not self._ws.closed

    async def open(self) -> None:
        self._session = self._session_factory()
        try:
            self._ws = await asyncio.wait_for(
                self._session.ws_connect(self._url, max_msg_size=0),
                timeout=self._connect_timeout_s,
            )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            await self.close()
            # str(e) may echo the URL, which carries the key
            logger.warning("Websocket connect failed", error_type=type(e).__name__)
            raise ConnectionFailedError(f"Websocket connect failed: {type(e).__name__}") from e
        logger.info("Websocket opened")

    async def send_json(self, frame: Dict[str, Any]) -> None:
        if not self.is_open:
            raise ConnectionClosedError("Websocket is not open")
        try:
            await self._ws.send_str(json.dumps(frame))
        except (aiohttp.ClientError, ConnectionResetError, RuntimeError) as e:
            raise ConnectionClosedError(f"Websocket send failed: {e}") from e

    async def receive(self) -> AsyncIterator[Union[str, bytes]]:
        """Yield text/binary payloads until the socket closes."""
        if self._ws is None:
            raise ConnectionClosedError("Websocket is not open")
        async for msg in self._ws:
            if msg.type in (aiohttp.WSMsgType.TEXT, aiohttp.WSMsgType.BINARY):
                yield msg.data
            elif msg.type == aiohttp.WSMsgType.ERROR:
                raise ConnectionClosedError(f"Websocket error: {self._ws.exception()}")
        logger.info("Websocket closed by peer", close_code=getattr(self._ws, "close_code", None))

    async def close(self) -> None:
        ws, session = self._ws, self._session
        self._ws = None
        self._session = None
        if ws is not None and not ws.closed:
            try:
                await ws.close()
            except Exception as e:
                logger.debug("Websocket close failed", error=str(e), error_type=type(e).__name__)
        if session is not None and not session.closed:
            await session.close()
