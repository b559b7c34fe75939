from __future__ import annotations
import asyncio
import logging
from contextlib import asynccontextmanager
from threading import Lock
from typing import Dict, Optional, Tuple

import httpx

logger = logging.getLogger("toolbridge.http")

DEFAULT_TIMEOUT = httpx.Timeout(30.0, connect=5.0)
RETRY_BACKOFF: Tuple[float, ...] = (0.5, 1, 2)  # seconds
RETRYABLE_STATUS = (408, 429, 500, 502, 503, 504)
RETRYABLE_EXC = (httpx.ConnectError, httpx.TimeoutException, httpx.RemoteProtocolError)


class HttpClient:
    """
    HTTP client with timeouts and bounded retries on top of httpx.AsyncClient.

    ``retries`` counts additional attempts: with ``retries=0`` a request is
    sent exactly once. Clients without a custom transport share one
    AsyncClient per base_url; the shared client is closed when its last
    user calls ``close``.
    """
    _shared_clients: Dict[str, httpx.AsyncClient] = {}
    _shared_users: Dict[str, int] = {}
    _lock = Lock()

    def __init__(
        self,
        timeout: httpx.Timeout | float = DEFAULT_TIMEOUT,
        retries: int = 3,
        backoff: Tuple[float, ...] = RETRY_BACKOFF,
        follow_redirects: bool = True,
        base_url: Optional[str] = None,
        headers: Optional[dict] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if not isinstance(timeout, httpx.Timeout):
            timeout = httpx.Timeout(timeout)
        self.timeout = timeout
        self.retries = retries
        self.backoff = backoff or (0,)
        self.follow_redirects = follow_redirects
        self._key = f"{base_url}"
        self._closed = False

        if transport is not None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=self.follow_redirects,
                base_url=base_url or "",
                headers=headers or {},
                transport=transport,
            )
            self._shared = False
            return

        self._shared = True
        with HttpClient._lock:
            existing = HttpClient._shared_clients.get(self._key)
            if existing is None or existing.is_closed:
                self._client = httpx.AsyncClient(
                    timeout=self.timeout,
                    follow_redirects=self.follow_redirects,
                    base_url=base_url or "",
                    headers=headers or {},
                    http2=True,
                )
                HttpClient._shared_clients[self._key] = self._client
                HttpClient._shared_users[self._key] = 0
            else:
                self._client = existing
            HttpClient._shared_users[self._key] += 1

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._shared:
            with HttpClient._lock:
                if HttpClient._shared_clients.get(self._key) is not self._client:
                    return
                HttpClient._shared_users[self._key] -= 1
                if HttpClient._shared_users[self._key] > 0:
                    return
                del HttpClient._shared_clients[self._key]
                del HttpClient._shared_users[self._key]
        await self._client.aclose()

    def _delay(self, attempt: int) -> float:
        return self.backoff[min(attempt, len(self.backoff) - 1)]

    async def _request(self, method: str, url: str, *, name: Optional[str] = None, **kwargs) -> httpx.Response:
        name = name or method.upper()
        if "timeout" not in kwargs:
            kwargs["timeout"] = self.timeout

        retries = kwargs.pop("retries", self.retries)

        for attempt in range(retries):
            try:
                resp = await self._client.request(method, url, **kwargs)
                resp.raise_for_status()
                return resp
            except httpx.HTTPStatusError as e:
                if e.response.status_code not in RETRYABLE_STATUS:
                    raise
            except RETRYABLE_EXC:
                pass

            delay = self._delay(attempt)
            logger.warning("Retrying %s attempt=%d delay=%ss url=%s", name, attempt + 1, delay, url)
            await asyncio.sleep(delay)

        # Last attempt, errors propagate to the caller
        resp = await self._client.request(method, url, **kwargs)
        resp.raise_for_status()
        return resp

    async def get(self, url: str, **kwargs) -> httpx.Response:
        return await self._request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs) -> httpx.Response:
        return await self._request("POST", url, **kwargs)


@asynccontextmanager
async def client(
    timeout: httpx.Timeout | float = DEFAULT_TIMEOUT,
    retries: int = 3,
    backoff: Tuple[float, ...] = RETRY_BACKOFF,
    follow_redirects: bool = True,
    base_url: Optional[str] = None,
    headers: Optional[dict] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
):
    hc = HttpClient(
        timeout=timeout,
        retries=retries,
        backoff=backoff,
        follow_redirects=follow_redirects,
        base_url=base_url,
        headers=headers,
        transport=transport,
    )
    try:
        yield hc
    finally:
        await hc.close()

__all__ = ["HttpClient", "client", "DEFAULT_TIMEOUT", "RETRY_BACKOFF"]
