"""
Stateless transport: one generateContent POST per request.
"""
from __future__ import annotations

import asyncio
import time
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urlsplit

import aiohttp

from logging_setup import get_logger, Component

from .errors import (
    ConnectionFailedError,
    InvalidEndpointError,
    InvalidPayloadError,
    RequestTimeoutError,
    classify_http_status,
)
from .frames import parse_generate_response

logger = get_logger(Component.STATELESS_TRANSPORT)


def build_generate_url(base_url: str, model: str) -> str:
    parts = urlsplit(base_url or "")
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise InvalidEndpointError(f"Invalid REST URL: {base_url!r}")
    return f"{base_url.rstrip('/')}/{model}:generateContent"


class StatelessTransport:
    def __init__(
        self,
        base_url: str,
        api_key: str,
        model: str,
        timeout_s: float = 30.0,
        session_factory: Optional[Callable[..., Any]] = None,
    ):
        self._url = build_generate_url(base_url, model)
        self._api_key = api_key
        self._timeout_s = timeout_s
        self._session_factory = session_factory
        self._http_session: Optional[Any] = None

    def _get_or_create_session(self):
        """Reuse one HTTP session (and its connection pool) across requests."""
        if self._http_session is None or self._http_session.closed:
            if self._session_factory is not None:
                self._http_session = self._session_factory()
            else:
                self._http_session = aiohttp.ClientSession(
                    timeout=aiohttp.ClientTimeout(total=self._timeout_s)
                )
        return self._http_session

    async def generate(self, body: Dict[str, Any], message_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """POST one request; return the first candidate's raw parts."""
        session = self._get_or_create_session()
        start_ts = time.time()
        try:
            async with session.post(self._url, params={"key": self._api_key}, json=body) as resp:
                latency_ms = int((time.time() - start_ts) * 1000)
                error = classify_http_status(resp.status, message_id=message_id)
                if error is not None:
                    error_text = await resp.text()
                    logger.error(
                        "generateContent failed",
                        status_code=resp.status,
                        error_text=error_text[:500],
                        message_id=message_id,
                        latency_ms=latency_ms,
                    )
                    raise error
                try:
                    data = await resp.json(content_type=None)
                except ValueError as e:
                    raise InvalidPayloadError("Response body is not valid JSON", message_id=message_id) from e
        except asyncio.TimeoutError as e:
            raise RequestTimeoutError("generateContent timed out", message_id=message_id) from e
        except aiohttp.ClientError as e:
            logger.warning(
                "generateContent request failed",
                error=str(e),
                error_type=type(e).__name__,
                message_id=message_id,
            )
            raise ConnectionFailedError(f"Request failed: {type(e).__name__}", message_id=message_id) from e

        parts = parse_generate_response(data)
        logger.info(
            "generateContent completed",
            message_id=message_id,
            part_count=len(parts),
            latency_ms=latency_ms,
        )
        return parts

    async def close(self) -> None:
        if self._http_session is not None and not self._http_session.closed:
            await self._http_session.close()
        self._http_session = None
