"""OANDA v20 REST client via httpx async.

Wraps httpx.AsyncClient with bearer authentication, exponential backoff
retry for transient failures, and a uniform mapping of transport, HTTP and
JSON failures onto UpstreamError. Returns raw JSON records; typed parsing
lives in the data layer.
"""

import asyncio
from typing import Any, Self

import httpx

from candlesync.config import OandaSettings
from candlesync.exceptions import UpstreamError
from candlesync.logging import get_logger

logger = get_logger(__name__)


class OandaClient:
    """Async OANDA REST client.

    Usage:
        async with OandaClient(settings) as client:
            instruments = await client.fetch_instruments()

    Pagination is NOT handled here -- callers request a single page and
    decide what to do with it.
    """

    def __init__(
        self,
        settings: OandaSettings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._transport = transport
        self._http: httpx.AsyncClient | None = None

    @property
    def http(self) -> httpx.AsyncClient:
        """Access the underlying httpx client.

        Raises RuntimeError if not connected.
        """
        if self._http is None:
            raise RuntimeError("OandaClient not connected. Call connect() first.")
        return self._http

    async def connect(self) -> None:
        """Create the HTTP session with auth headers and timeout applied."""
        token = self._settings.access_token.get_secret_value()
        self._http = httpx.AsyncClient(
            base_url=self._settings.api_url,
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/json",
            },
            timeout=self._settings.request_timeout,
            transport=self._transport,
        )
        logger.info(
            "oanda_client_connected",
            api_url=self._settings.api_url,
            environment=self._settings.environment,
        )

    async def close(self) -> None:
        """Close the HTTP session if open."""
        if self._http is not None:
            await self._http.aclose()
            self._http = None
            logger.info("oanda_client_closed")

    async def __aenter__(self) -> Self:
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore[no-untyped-def]
        await self.close()

    # ──────────────────────────────────────────────
    # Endpoints
    # ──────────────────────────────────────────────

    async def fetch_instruments(self) -> list[dict]:
        """Fetch the tradable instruments for the configured account.

        Returns the raw instrument records (each with at least a "name" key).
        """
        payload = await self._get(f"/accounts/{self._settings.account_id}/instruments")
        instruments = payload.get("instruments")
        if not isinstance(instruments, list):
            raise UpstreamError("Malformed instruments response: missing 'instruments' list")
        return instruments

    async def fetch_candles(
        self,
        instrument: str,
        granularity: str,
        count: int = 500,
        since: int | None = None,
    ) -> list[dict]:
        """Fetch one page of mid-price candles for an instrument.

        ``since`` is passed as the ``from`` query parameter in Unix seconds.
        Returns the raw candle records in upstream (chronological) order.
        """
        params: dict[str, str] = {
            "price": "M",
            "granularity": granularity,
            "count": str(count),
        }
        if since is not None:
            params["from"] = str(since)

        payload = await self._get(f"/instruments/{instrument}/candles", params)
        candles = payload.get("candles")
        if not isinstance(candles, list):
            raise UpstreamError(
                f"Malformed candles response for {instrument}: missing 'candles' list"
            )
        return candles

    # ──────────────────────────────────────────────
    # Request + retry
    # ──────────────────────────────────────────────

    async def _get(self, path: str, params: dict[str, str] | None = None) -> dict:
        """GET with exponential backoff retry on transient failures.

        Retries up to max_retries attempts with delays base, 2*base, 4*base...
        HTTP 429 gets a longer delay multiplier. Non-transient failures
        (auth, 4xx, malformed JSON) are raised immediately.
        """
        max_retries = max(1, self._settings.max_retries)
        base_delay = self._settings.retry_base_delay

        for attempt in range(max_retries):
            try:
                return await self._get_once(path, params)
            except UpstreamError as e:
                if not e.transient or attempt == max_retries - 1:
                    logger.error(
                        "request_failed_permanently",
                        path=path,
                        status_code=e.status_code,
                        error=str(e),
                        attempts=attempt + 1,
                    )
                    raise

                delay = base_delay * (2**attempt)

                if e.status_code == 429:
                    delay *= 3
                    logger.warning(
                        "rate_limit_exceeded",
                        path=path,
                        attempt=attempt + 1,
                        max_retries=max_retries,
                        delay=delay,
                    )
                else:
                    logger.warning(
                        "request_retry",
                        path=path,
                        attempt=attempt + 1,
                        max_retries=max_retries,
                        delay=delay,
                        error=str(e),
                    )

                await asyncio.sleep(delay)

        return {}  # Unreachable, but satisfies type checker

    async def _get_once(self, path: str, params: dict[str, str] | None) -> dict:
        try:
            response = await self.http.get(path, params=params)
        except httpx.TimeoutException as e:
            raise UpstreamError(f"Timeout requesting {path}", transient=True) from e
        except httpx.TransportError as e:
            raise UpstreamError(
                f"Transport error requesting {path}: {e}", transient=True
            ) from e

        if response.status_code >= 400:
            status = response.status_code
            raise UpstreamError(
                f"HTTP {status} from {path}: {_error_message(response)}",
                status_code=status,
                transient=status == 429 or status >= 500,
            )

        try:
            payload: Any = response.json()
        except ValueError as e:
            raise UpstreamError(f"Invalid JSON from {path}") from e

        if not isinstance(payload, dict):
            raise UpstreamError(f"Unexpected JSON payload from {path}: expected object")
        return payload


def _error_message(response: httpx.Response) -> str:
    """Extract OANDA's errorMessage from an error response, falling back to the body."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict) and "errorMessage" in body:
        return str(body["errorMessage"])
    return response.text[:200]
