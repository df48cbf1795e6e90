"""
Data Adapters - HTTP client and health probe helper.

Wraps an aiohttp session with:
- Per-request timeout
- HTTP status to ErrorCode mapping
- Exponential backoff retry on UNAVAILABLE failures

Rate limiting is NOT done here: each adapter acquires from its own
limiter before calling the client.
"""

import asyncio
import logging
from typing import Any, Optional

import aiohttp

from data_adapters.clock import ClockProtocol, get_clock
from data_adapters.exceptions import (
    AdapterError,
    AdapterUnavailableError,
    ErrorCode,
    InvalidRequestError,
    RateLimitedError,
)
from data_adapters.models import HealthCheck, HealthStatus


logger = logging.getLogger(__name__)

USER_AGENT = "data-adapters/1.0 (+https://github.com/data-adapters/data-adapters)"
HEALTH_CHECK_TIMEOUT = 5.0
INVALID_REQUEST_STATUSES = frozenset({400, 404, 422})


class HttpClient:
    """
    Async HTTP client owned by a single adapter.

    Usage:
        client = HttpClient("stooq", base_url="https://stooq.com")
        text = await client.get_text("/q/d/l/", params={"s": "aapl.us"})
        await client.close()
    """

    DEFAULT_TIMEOUT = 30.0
    MAX_RETRIES = 2
    RETRY_DELAY = 0.5
    RETRY_BACKOFF_BASE = 2.0

    def __init__(
        self,
        adapter_name: str,
        base_url: str = "",
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = MAX_RETRIES,
        headers: Optional[dict[str, str]] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self._adapter_name = adapter_name
        self._base_url = base_url
        self._timeout = timeout
        self._max_retries = max_retries
        self._headers = {"User-Agent": USER_AGENT, **(headers or {})}
        self._session = session
        self._owns_session = session is None

    @property
    def base_url(self) -> str:
        return self._base_url

    async def get_json(
        self,
        endpoint: str,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> Any:
        """GET an endpoint and decode the JSON body."""
        return await self._request_with_retry(endpoint, params, headers, as_text=False)

    async def get_text(
        self,
        endpoint: str,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> str:
        """GET an endpoint and return the body as text."""
        return await self._request_with_retry(endpoint, params, headers, as_text=True)

    async def get_status(
        self,
        endpoint: str,
        params: Optional[dict[str, Any]] = None,
    ) -> int:
        """GET an endpoint once and return only the status code (no retry)."""
        session = await self._get_session()
        async with session.get(self._build_url(endpoint), params=params) as response:
            return response.status

    async def close(self) -> None:
        """Close the session if this client created it."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    def _build_url(self, endpoint: str) -> str:
        if endpoint.startswith("http"):
            return endpoint
        return f"{self._base_url.rstrip('/')}/{endpoint.lstrip('/')}"

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout),
                headers=self._headers,
            )
            self._owns_session = True
        return self._session

    async def _request_with_retry(
        self,
        endpoint: str,
        params: Optional[dict[str, Any]],
        headers: Optional[dict[str, str]],
        as_text: bool,
    ) -> Any:
        """Request with exponential backoff on UNAVAILABLE failures."""
        last_error: Optional[AdapterUnavailableError] = None

        for attempt in range(self._max_retries + 1):
            try:
                return await self._request(endpoint, params, headers, as_text)
            except AdapterUnavailableError as e:
                last_error = e
                if attempt < self._max_retries:
                    wait_time = self.RETRY_DELAY * (self.RETRY_BACKOFF_BASE ** attempt)
                    logger.warning(
                        f"[{self._adapter_name}] {e.message}, retrying in {wait_time:.1f}s "
                        f"(attempt {attempt + 1}/{self._max_retries + 1})"
                    )
                    await asyncio.sleep(wait_time)

        raise last_error

    async def _request(
        self,
        endpoint: str,
        params: Optional[dict[str, Any]],
        headers: Optional[dict[str, str]],
        as_text: bool,
    ) -> Any:
        url = self._build_url(endpoint)
        session = await self._get_session()

        try:
            async with session.get(url, params=params, headers=headers) as response:
                if response.status == 429:
                    retry_after = response.headers.get("Retry-After")
                    raise RateLimitedError(
                        message=f"Rate limit exceeded for {url}",
                        adapter=self._adapter_name,
                        retry_after_seconds=_parse_retry_after(retry_after),
                    )

                if response.status in INVALID_REQUEST_STATUSES:
                    raise InvalidRequestError(
                        f"HTTP {response.status} for {url}",
                        self._adapter_name,
                        context={"status_code": response.status},
                    )

                if response.status >= 500:
                    raise AdapterUnavailableError(
                        f"HTTP {response.status} for {url}",
                        self._adapter_name,
                        status_code=response.status,
                    )

                if response.status >= 400:
                    raise AdapterError(
                        f"HTTP {response.status} for {url}",
                        self._adapter_name,
                        ErrorCode.UNKNOWN,
                        context={"status_code": response.status},
                    )

                if as_text:
                    return await response.text()

                try:
                    return await response.json(content_type=None)
                except ValueError as e:
                    raise AdapterError(
                        f"Invalid JSON from {url}",
                        self._adapter_name,
                        ErrorCode.UNKNOWN,
                        cause=e,
                    ) from e

        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise AdapterUnavailableError(
                f"Connection error for {url}: {str(e) or e.__class__.__name__}",
                self._adapter_name,
                cause=e,
            ) from e


def _parse_retry_after(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


async def probe_endpoint(
    adapter_name: str,
    client: HttpClient,
    endpoint: str,
    params: Optional[dict[str, Any]] = None,
    timeout: float = HEALTH_CHECK_TIMEOUT,
    clock: Optional[ClockProtocol] = None,
) -> HealthCheck:
    """
    Probe an endpoint and turn the outcome into a HealthCheck.

    2xx is HEALTHY, any other status DEGRADED; timeouts and
    connection failures are UNAVAILABLE. Never raises.
    """
    clock = clock or get_clock()
    started = clock.monotonic()

    try:
        status = await asyncio.wait_for(client.get_status(endpoint, params=params), timeout)
    except asyncio.TimeoutError:
        return HealthCheck.unavailable(
            adapter_name,
            f"Health check timed out after {timeout}s",
            checked_at=clock.now(),
            latency_ms=(clock.monotonic() - started) * 1000,
        )
    except Exception as e:
        logger.debug(f"[{adapter_name}] Health probe failed: {e}")
        return HealthCheck.unavailable(
            adapter_name,
            str(e) or e.__class__.__name__,
            checked_at=clock.now(),
            latency_ms=(clock.monotonic() - started) * 1000,
        )

    latency_ms = (clock.monotonic() - started) * 1000
    ok = 200 <= status < 300
    return HealthCheck(
        adapter=adapter_name,
        status=HealthStatus.HEALTHY if ok else HealthStatus.DEGRADED,
        latency_ms=latency_ms,
        success_rate=1.0 if ok else 0.0,
        last_checked=clock.now(),
        error=None if ok else f"HTTP {status}",
    )
