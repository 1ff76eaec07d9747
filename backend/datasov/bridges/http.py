"""
DataSov Bridge - Shared HTTP Ledger Transport

JSON over httpx for both ledger gateways:
- one persistent AsyncClient per connection
- request / error counters for get_metrics()
- polling event subscription with a server-side cursor
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Optional
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from datasov.core.errors import ConnectionLost, LedgerClientError
from datasov.models.events import RawLedgerEvent

logger = logging.getLogger(__name__)


def segment(value: Any) -> str:
    """Quote one URL path segment. Ids are opaque and may contain / ? or #."""
    return quote(str(value), safe="")


class HttpLedgerClient:
    """Base for the httpx ledger clients. Subclasses set ``ledger_name``."""

    ledger_name = "ledger"
    events_path = "/api/v1/events"

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        poll_interval: float = 2.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._poll_interval = poll_interval
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._connected = False
        self._connected_at: Optional[datetime] = None
        self._request_count = 0
        self._error_count = 0
        self._event_cursor: Optional[str] = None

    async def connect(self) -> None:
        headers = {"X-Source-App": "datasov-bridge"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self._timeout,
            headers=headers,
            transport=self._transport,
        )
        try:
            response = await self._client.get("/health")
        except httpx.RequestError as e:
            await self._close()
            raise ConnectionLost(
                f"{self.ledger_name} ledger unreachable",
                {"base_url": self.base_url, "error": str(e)},
            ) from e

        if response.status_code != 200:
            await self._close()
            raise ConnectionLost(
                f"{self.ledger_name} ledger unhealthy",
                {"base_url": self.base_url, "status_code": response.status_code},
            )

        self._connected = True
        self._connected_at = datetime.now(timezone.utc)
        logger.info(f"[LEDGER] Connected to {self.ledger_name} ledger at {self.base_url}")

    async def disconnect(self) -> None:
        await self._close()
        logger.info(f"[LEDGER] Disconnected from {self.ledger_name} ledger")

    async def _close(self) -> None:
        client, self._client = self._client, None
        self._connected = False
        if client is not None:
            await client.aclose()

    def is_healthy(self) -> bool:
        return self._connected and self._client is not None

    def get_metrics(self) -> dict[str, Any]:
        return {
            "is_connected": self._connected,
            "connected_at": self._connected_at.isoformat() if self._connected_at else None,
            "request_count": self._request_count,
            "error_count": self._error_count,
        }

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Any] = None,
        params: Optional[dict[str, Any]] = None,
        allow_404: bool = False,
    ) -> Any:
        if self._client is None or not self._connected:
            raise ConnectionLost(f"Not connected to {self.ledger_name} ledger")

        self._request_count += 1
        try:
            response = await self._client.request(method, path, json=json, params=params)
        except httpx.RequestError as e:
            self._error_count += 1
            raise ConnectionLost(
                f"{self.ledger_name} ledger request failed",
                {"method": method, "path": path, "error": str(e)},
            ) from e

        if allow_404 and response.status_code == 404:
            return None

        if response.status_code not in (200, 201, 202, 204):
            self._error_count += 1
            raise LedgerClientError(
                f"{self.ledger_name} ledger returned {response.status_code}",
                status_code=response.status_code,
                details={"method": method, "path": path, "body": response.text},
            )

        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    async def events(self) -> AsyncIterator[RawLedgerEvent]:
        """
        Poll the ledger's event feed, yielding events in delivery order.

        Transport failures and non-2xx answers are logged and the poll
        resumes from the same cursor, so nothing is skipped. A malformed
        item is logged and skipped; the cursor still moves past it. The
        cursor lives on the client, so a new subscription continues where
        the previous one stopped.
        """
        while True:
            params = {"after": self._event_cursor} if self._event_cursor else None
            try:
                data = await self._request("GET", self.events_path, params=params)
            except (ConnectionLost, LedgerClientError) as e:
                logger.warning(f"[LEDGER] {self.ledger_name} event poll failed: {e.message}")
                await asyncio.sleep(self._poll_interval)
                continue

            data = data or {}
            for item in data.get("events", []):
                try:
                    event = RawLedgerEvent.model_validate(item)
                except ValidationError as e:
                    logger.warning(
                        f"[LEDGER] Skipping malformed {self.ledger_name} event: "
                        f"{e.error_count()} validation error(s)"
                    )
                    continue
                yield event
            self._event_cursor = data.get("cursor") or self._event_cursor

            await asyncio.sleep(self._poll_interval)
