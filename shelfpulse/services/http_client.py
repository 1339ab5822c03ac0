import asyncio
import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

# Decide whether HTTP/2 is available (needs the 'h2' package)
try:
    import h2  # type: ignore  # noqa: F401
    _HTTP2_AVAILABLE = True
except ImportError:
    _HTTP2_AVAILABLE = False
    logger.debug("HTTP/2 disabled: 'h2' package not installed.")


class HTTPClient:
    """Pooled async HTTP client with retry for outbound catalog calls."""

    def __init__(self, timeout: float = 10.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        limits = httpx.Limits(
            max_keepalive_connections=20,
            max_connections=100,
            keepalive_expiry=30.0,
        )
        client_timeout = httpx.Timeout(timeout=timeout, connect=5.0)

        self._client = httpx.AsyncClient(
            limits=limits,
            timeout=client_timeout,
            follow_redirects=True,
            http2=_HTTP2_AVAILABLE and transport is None,
            transport=transport,
        )

    async def get(self, url: str, **kwargs) -> httpx.Response:
        return await self._client.get(url, **kwargs)

    async def get_with_retry(self, url: str, retries: int = 3, backoff: float = 0.5, **kwargs) -> httpx.Response:
        """GET with exponential backoff on transport errors.

        The last transport error is re-raised once the retries are used up.
        """
        for attempt in range(retries):
            try:
                return await self.get(url, **kwargs)
            except httpx.RequestError as exc:
                if attempt == retries - 1:
                    raise
                wait_time = backoff * (2 ** attempt)
                logger.warning("GET %s failed (%s); retrying in %.2fs", url, exc, wait_time)
                await asyncio.sleep(wait_time)
        raise RuntimeError("retries must be at least 1")

    async def close(self):
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
