"""
DataSov Bridge - In-Memory Ledger Base

Shared plumbing for the in-memory ledgers:
- connection state and health
- per-method call counters
- injectable failures for any method
- an event feed drained by events()
"""

import asyncio
import logging
import uuid
from collections import Counter
from datetime import datetime
from typing import Any, AsyncIterator, Optional

from datasov.core.clock import Clock, utc_now
from datasov.core.errors import ConnectionLost
from datasov.models.events import RawLedgerEvent

logger = logging.getLogger(__name__)


class InMemoryLedger:
    ledger_name = "ledger"

    def __init__(self, clock: Clock = utc_now) -> None:
        self._clock = clock
        self._connected = False
        self._connected_at: Optional[datetime] = None
        self._failures: dict[str, Exception] = {}
        self._feed: asyncio.Queue[RawLedgerEvent] = asyncio.Queue()
        self.calls: Counter[str] = Counter()
        self.emitted: list[RawLedgerEvent] = []

    # ---- failure injection ----------------------------------------------------

    def fail(self, method: str, error: Exception) -> None:
        """Make every later call to ``method`` raise ``error``."""
        self._failures[method] = error

    def recover(self, method: Optional[str] = None) -> None:
        if method is None:
            self._failures.clear()
        else:
            self._failures.pop(method, None)

    def _call(self, method: str) -> None:
        self.calls[method] += 1
        error = self._failures.get(method)
        if error is not None:
            raise error

    # ---- connection -----------------------------------------------------------

    async def connect(self) -> None:
        self._call("connect")
        self._connected = True
        self._connected_at = self._clock()
        logger.info(f"[LEDGER] Connected to in-memory {self.ledger_name} ledger")

    async def disconnect(self) -> None:
        self._call("disconnect")
        self._connected = False
        logger.info(f"[LEDGER] Disconnected from in-memory {self.ledger_name} ledger")

    def is_healthy(self) -> bool:
        return self._connected

    def _require_connection(self) -> None:
        if not self._connected:
            raise ConnectionLost(f"{self.ledger_name} ledger not connected")

    def get_metrics(self) -> dict[str, Any]:
        return {
            "is_connected": self._connected,
            "connected_at": self._connected_at.isoformat() if self._connected_at else None,
            "request_count": sum(self.calls.values()),
            "error_count": 0,
            "queued_events": self._feed.qsize(),
        }

    # ---- events ---------------------------------------------------------------

    def emit(
        self,
        kind: str,
        identity_id: str,
        payload: Optional[dict[str, Any]] = None,
        timestamp: Optional[datetime] = None,
        ledger_ref: Optional[str] = None,
    ) -> RawLedgerEvent:
        """Queue an event for subscribers."""
        event = RawLedgerEvent(
            kind=kind,
            identity_id=identity_id,
            ledger_ref=ledger_ref or self._new_ref(),
            timestamp=timestamp or self._clock(),
            payload=payload or {},
        )
        self.emitted.append(event)
        self._feed.put_nowait(event)
        return event

    async def events(self) -> AsyncIterator[RawLedgerEvent]:
        self._call("events")
        while True:
            yield await self._feed.get()

    def pending_events(self) -> int:
        return self._feed.qsize()

    def _new_ref(self) -> str:
        return f"{self.ledger_name}_tx_{uuid.uuid4().hex[:16]}"
