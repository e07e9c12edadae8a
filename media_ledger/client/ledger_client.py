"""
HTTP client for the ledger endpoints.

Fetches the server ledger and feeds it into a TokenState. Refreshes are
throttled and de-duplicated so bursts of UI events cause one request.
"""

import asyncio
import logging
import time
from typing import Any, Callable, Dict, Optional

import httpx

from ..core.errors import AuthFailure
from .state import TokenSnapshot, TokenState

logger = logging.getLogger(__name__)

HTTP_TIMEOUT = httpx.Timeout(10.0, connect=5.0)
REFRESH_THROTTLE_SECONDS = 3.5
TOKENS_PATH = "/api/tokens"
BILLING_SYNC_PATH = "/api/billing/sync"


class LedgerClient:
    """Async client for the tokens and billing sync endpoints.

    Args:
        base_url: Server origin, e.g. "https://app.example.com"
        state: TokenState that receives every snapshot
        access_token: Bearer token for the session, if any
        transport: Optional httpx transport (tests inject a MockTransport)
        throttle_seconds: Minimum spacing of non-forced refreshes
        clock: Monotonic time source
    """

    def __init__(
        self,
        base_url: str,
        state: Optional[TokenState] = None,
        access_token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        throttle_seconds: float = REFRESH_THROTTLE_SECONDS,
        clock: Callable[[], float] = time.monotonic
    ):
        if not base_url or not base_url.strip():
            raise ValueError("base_url is required and cannot be empty")
        self.base_url = base_url.rstrip("/")
        self.state = state or TokenState()
        self.access_token = access_token
        self.throttle_seconds = throttle_seconds
        self._transport = transport
        self._clock = clock
        self._last_refresh: Optional[float] = None
        self._in_flight: Optional["asyncio.Future[TokenSnapshot]"] = None

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        return headers

    async def _request(self, method: str, path: str) -> Dict[str, Any]:
        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=HTTP_TIMEOUT,
            transport=self._transport,
        ) as client:
            response = await client.request(method, path, headers=self._headers())

        if response.status_code in (401, 403):
            raise AuthFailure(f"Ledger request rejected ({response.status_code})")
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, dict):
            raise ValueError(f"Unexpected response body from {path}")
        return data

    async def fetch_tokens(self) -> Dict[str, Any]:
        """GET the tokens endpoint and return its JSON body.

        Raises:
            AuthFailure: If the server rejects the session
            httpx.HTTPError: On transport errors or other non-2xx responses
        """
        return await self._request("GET", TOKENS_PATH)

    async def refresh(self) -> TokenSnapshot:
        """Fetch the ledger now and apply it to the state."""
        payload = await self.fetch_tokens()
        self._last_refresh = self._clock()
        return self.state.apply_snapshot(payload)

    async def refresh_throttled(self, force: bool = False) -> Optional[TokenSnapshot]:
        """Refresh unless one ran recently; concurrent callers share one request.

        Returns:
            The new snapshot, or None when the call was throttled
        """
        if self._in_flight is not None:
            return await asyncio.shield(self._in_flight)

        if not force and self._last_refresh is not None:
            if self._clock() - self._last_refresh < self.throttle_seconds:
                logger.debug("Ledger refresh throttled")
                return None

        loop = asyncio.get_running_loop()
        self._in_flight = loop.create_future()
        try:
            snapshot = await self.refresh()
        except asyncio.CancelledError:
            self._in_flight.cancel()
            raise
        except Exception as e:
            self._in_flight.set_exception(e)
            # Waiters, if any, re-raise it; mark retrieved otherwise.
            self._in_flight.exception()
            raise
        else:
            self._in_flight.set_result(snapshot)
            return snapshot
        finally:
            self._in_flight = None

    async def sync_billing(self) -> Dict[str, Any]:
        """POST the billing sync endpoint and apply any ledger fields it carries."""
        payload = await self._request("POST", BILLING_SYNC_PATH)
        self.state.apply_snapshot(payload)
        return payload
