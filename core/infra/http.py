"""
http.py – Async HTTP client built on *aiohttp* with bounded retries,
          exponential back-off and per-instance default headers.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

import aiohttp

logger = logging.getLogger(__name__)


RETRYABLE_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError)


async def _read_text(resp: aiohttp.ClientResponse) -> str:
    return await resp.text()


class HttpClient:
    """
    Thin wrapper over *aiohttp.ClientSession* adding:

    * global & per-request headers (keeps user-agent in one place)
    * exponential back-off for network errors (body download included)
      and non-2xx responses:
      the wait before retry *k* (1-based) is ``base_delay * 2 ** (k - 1)``
    * at most ``max_retries + 1`` attempts; the last error is re-raised as is
    * async context-manager support
    """

    def __init__(
        self,
        *,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 30.0,
        max_retries: int = 3,
        base_delay: float = 1.0,
        default_headers: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._external_session = session
        self._timeout = timeout
        self._max_retries = max_retries
        self._base_delay = base_delay
        self._own_session: Optional[aiohttp.ClientSession] = None
        self._default_headers: Dict[str, str] = dict(default_headers or {})

    # ---------------------------------------------- #
    # Async context-manager
    async def __aenter__(self) -> "HttpClient":  # noqa: D401
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # noqa: D401
        await self.close()

    # ---------------------------------------------- #
    # Session management
    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._external_session:
            return self._external_session
        if self._own_session is None or self._own_session.closed:
            timeout = aiohttp.ClientTimeout(total=self._timeout)
            self._own_session = aiohttp.ClientSession(timeout=timeout)
        return self._own_session

    async def close(self) -> None:
        if self._own_session and not self._own_session.closed:
            await self._own_session.close()
            self._own_session = None

    # ---------------------------------------------- #
    # Internal helpers
    def _merge_headers(self, extra: Mapping[str, str] | None) -> Dict[str, str]:
        merged: Dict[str, str] = {**self._default_headers}
        if extra:
            merged.update(extra)
        return merged

    def backoff_delay(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number *attempt* (0-based)."""
        return self._base_delay * 2 ** attempt

    async def _request(
        self,
        method: str,
        url: str,
        *,
        read: Optional[Callable[[aiohttp.ClientResponse], Awaitable[Any]]] = None,
        **kwargs,
    ) -> Any:
        """Perform a request with retries.

        With *read*, the body is consumed inside the retried section and its
        result returned; otherwise the open *aiohttp.ClientResponse* is returned.
        """
        session = await self._ensure_session()

        headers = self._merge_headers(kwargs.pop("headers", None))
        kwargs["headers"] = headers

        attempt = 0
        while True:
            try:
                resp = await session.request(method, url, **kwargs)
                try:
                    resp.raise_for_status()
                except aiohttp.ClientResponseError:
                    resp.release()
                    raise
                if read is None:
                    return resp
                async with resp:
                    return await read(resp)
            except RETRYABLE_ERRORS as e:
                if attempt >= self._max_retries:
                    logger.error(
                        "HTTP %s %s failed after %d attempts: %s", method, url, attempt + 1, e
                    )
                    raise

                delay = self.backoff_delay(attempt)
                logger.warning(
                    "  Retry %d/%d after %.1fs for %s (%s)",
                    attempt + 1,
                    self._max_retries,
                    delay,
                    url,
                    str(e).splitlines()[0] if str(e) else type(e).__name__,
                )
                await asyncio.sleep(delay)
                attempt += 1

    # ---------------------------------------------- #
    # Public helpers
    async def get_text(self, url: str, **kwargs) -> str:
        """GET *url* with retries and return the decoded body."""
        return await self._request("GET", url, read=_read_text, **kwargs)
