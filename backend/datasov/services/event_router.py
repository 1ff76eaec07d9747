"""
DataSov Bridge - Event Router

Consumes both ledgers' event streams and turns each source event into
bridge actions plus exactly one CrossChainEvent.

Per event: RECEIVED -> CLASSIFIED -> DISPATCHED -> EMITTED

Rules:
- One consumer task per source, so each ledger's events are handled FIFO.
  There is no ordering across the two ledgers.
- No retries. A failed action is logged and the event is still emitted,
  with the failure in its details. The ledgers are the system of record;
  reconciliation repairs dropped side effects, so handlers must tolerate
  re-delivery.
- Dispatch is a single table keyed by (origin, kind). Unknown kinds fall
  through to one explicit pass-through handler.
- A failed or ended subscription is reopened with exponential backoff;
  a consumer task only stops when the router is stopped.
"""

import asyncio
import logging
from collections import OrderedDict
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable, Optional

from datasov.bridges.identity_ledger import IdentityLedgerClient
from datasov.bridges.trading_ledger import TradingLedgerClient
from datasov.core.clock import to_millis
from datasov.models.events import (
    AccessGranted,
    AccessRevoked,
    ChainTag,
    CrossChainEvent,
    DataPurchased,
    FeeDistributed,
    IdentityRevoked,
    IdentityVerified,
    RawLedgerEvent,
    SourceEvent,
    decode_event,
)

from .event_bus import BridgeEventBus
from .identity_cache import IdentityCache
from .signing import EventSigner

logger = logging.getLogger(__name__)

Handler = Callable[[SourceEvent], Awaitable[Optional[dict]]]


class RoutingStage(str, Enum):
    RECEIVED = "RECEIVED"
    CLASSIFIED = "CLASSIFIED"
    DISPATCHED = "DISPATCHED"
    EMITTED = "EMITTED"


class EventIdSequencer:
    """
    Builds "{chain}_{timestamp_ms}" ids.

    Every later event from the same chain at an already used millisecond
    gets a monotonic suffix: "{chain}_{timestamp_ms}_{n}", even when other
    timestamps came in between. Counters are kept for the most recent
    ``window`` distinct timestamps per chain.
    """

    def __init__(self, window: int = 10_000) -> None:
        self._window = window
        self._seen: dict[ChainTag, OrderedDict[int, int]] = {}

    def next_id(self, chain: ChainTag, timestamp_ms: int) -> str:
        seen = self._seen.setdefault(chain, OrderedDict())
        seq = seen.get(timestamp_ms, -1) + 1
        seen[timestamp_ms] = seq
        seen.move_to_end(timestamp_ms)
        while len(seen) > self._window:
            seen.popitem(last=False)

        base = f"{chain.value}_{timestamp_ms}"
        return base if seq == 0 else f"{base}_{seq}"


class EventRouter:
    def __init__(
        self,
        identity_ledger: IdentityLedgerClient,
        trading_ledger: TradingLedgerClient,
        cache: IdentityCache,
        bus: BridgeEventBus,
        signer: EventSigner,
        resubscribe_delay: float = 1.0,
        max_resubscribe_delay: float = 30.0,
    ) -> None:
        self._identity_ledger = identity_ledger
        self._trading_ledger = trading_ledger
        self._cache = cache
        self._bus = bus
        self._signer = signer
        self._resubscribe_delay = resubscribe_delay
        self._max_resubscribe_delay = max_resubscribe_delay
        self._ids = EventIdSequencer()
        self._tasks: dict[ChainTag, asyncio.Task] = {}

        self._dispatch: dict[tuple[ChainTag, str], Handler] = {
            (ChainTag.IDENTITY, "IDENTITY_VERIFIED"): self._on_identity_verified,
            (ChainTag.IDENTITY, "IDENTITY_REVOKED"): self._on_identity_revoked,
            (ChainTag.IDENTITY, "ACCESS_GRANTED"): self._on_access_granted,
            (ChainTag.IDENTITY, "ACCESS_REVOKED"): self._on_access_revoked,
            (ChainTag.IDENTITY, "IDENTITY_REGISTERED"): self._pass_through,
            (ChainTag.IDENTITY, "IDENTITY_UPDATED"): self._pass_through,
            (ChainTag.TRADING, "DATA_PURCHASED"): self._on_data_purchased,
            (ChainTag.TRADING, "FEE_DISTRIBUTED"): self._on_fee_distributed,
        }

    # =========================================================================
    # SUBSCRIPTION
    # =========================================================================

    @property
    def is_subscribed(self) -> bool:
        """True while both consumer tasks are alive."""
        return len(self._tasks) == 2 and all(not task.done() for task in self._tasks.values())

    def start(self) -> None:
        """Subscribe to both ledgers' event streams."""
        if self.is_subscribed:
            return
        self._tasks = {
            ChainTag.IDENTITY: asyncio.create_task(
                self._consume(ChainTag.IDENTITY, self._identity_ledger.events),
                name="datasov-router-identity",
            ),
            ChainTag.TRADING: asyncio.create_task(
                self._consume(ChainTag.TRADING, self._trading_ledger.events),
                name="datasov-router-trading",
            ),
        }
        logger.info("[ROUTER] Subscribed to identity and trading ledger events")

    async def stop(self) -> None:
        tasks = list(self._tasks.values())
        self._tasks = {}
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("[ROUTER] Unsubscribed from ledger events")

    async def _consume(
        self,
        origin: ChainTag,
        subscribe: Callable[[], AsyncIterator[RawLedgerEvent]],
    ) -> None:
        """Consume one ledger's stream until cancelled, resubscribing with backoff."""
        delay = self._resubscribe_delay
        while True:
            try:
                async for raw in subscribe():
                    delay = self._resubscribe_delay
                    await self.handle(origin, raw)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception(
                    f"[ROUTER] {origin.value} event stream failed, resubscribing in {delay:.1f}s"
                )
            else:
                logger.warning(
                    f"[ROUTER] {origin.value} event stream ended, resubscribing in {delay:.1f}s"
                )
            await asyncio.sleep(delay)
            delay = min(delay * 2, self._max_resubscribe_delay)

    # =========================================================================
    # HANDLING
    # =========================================================================

    async def handle(self, origin: ChainTag, raw: RawLedgerEvent) -> CrossChainEvent:
        """Route one source event. Always returns the emitted CrossChainEvent."""
        stage = RoutingStage.RECEIVED
        logger.info(
            f"[ROUTER] Handling {origin.value} event {raw.kind} for identity {raw.identity_id}"
        )

        details = dict(raw.payload)
        try:
            stage = RoutingStage.CLASSIFIED
            event = decode_event(origin, raw)

            stage = RoutingStage.DISPATCHED
            handler = self._dispatch.get((origin, event.kind), self._pass_through_unknown)
            outcome = await handler(event)
            if outcome:
                details["bridge_action"] = outcome
        except Exception as e:
            logger.exception(
                f"[ROUTER] Failed to handle {origin.value} event {raw.kind} at {stage.value}"
            )
            details["bridge_error"] = str(e) or type(e).__name__
            details["failed_stage"] = stage.value

        timestamp_ms = to_millis(raw.timestamp)
        cross_chain = self._signer.sign(CrossChainEvent(
            event_id=self._ids.next_id(origin, timestamp_ms),
            timestamp=raw.timestamp,
            chain=origin,
            event_type=raw.kind,
            identity_id=raw.identity_id,
            details=details,
            cross_chain_reference=raw.ledger_ref,
        ))
        await self._bus.emit_cross_chain_event(cross_chain)
        logger.debug(f"[ROUTER] {cross_chain.event_id} {RoutingStage.EMITTED.value}")
        return cross_chain

    # ---- identity ledger ------------------------------------------------------

    async def _on_identity_verified(self, event: IdentityVerified) -> dict:
        self._cache.invalidate(event.identity_id)
        await self._trading_ledger.enable_trading(event.identity_id)
        logger.info(f"[ROUTER] Enabled data trading for identity {event.identity_id}")
        return {"trading_enabled": True}

    async def _on_identity_revoked(self, event: IdentityRevoked) -> dict:
        self._cache.invalidate(event.identity_id)
        await self._trading_ledger.disable_trading(event.identity_id)
        flagged = await self._trading_ledger.flag_listings_for_removal(event.identity_id)
        logger.info(
            f"[ROUTER] Disabled data trading for identity {event.identity_id}, "
            f"flagged {len(flagged)} listings for removal"
        )
        return {"trading_enabled": False, "flagged_listings": flagged}

    async def _on_access_granted(self, event: AccessGranted) -> dict:
        await self._cache.refresh(event.identity_id)
        logger.info(f"[ROUTER] Refreshed access grants for identity {event.identity_id}")
        return {"grants_refreshed": True}

    async def _on_access_revoked(self, event: AccessRevoked) -> dict:
        self._cache.invalidate(event.identity_id)
        logger.info(f"[ROUTER] Invalidated access grants for identity {event.identity_id}")
        return {"grants_invalidated": True}

    # ---- trading ledger -------------------------------------------------------

    async def _on_data_purchased(self, event: DataPurchased) -> dict:
        await self._identity_ledger.append_access_log(
            event.identity_id,
            {
                "listing_id": event.listing_id,
                "consumer": event.buyer,
                "amount": event.amount,
                "trading_ledger_ref": event.ledger_ref,
                "accessed_at": event.timestamp.isoformat(),
            },
        )
        logger.info(f"[ROUTER] Updated access log for identity {event.identity_id}")
        return {"access_logged": True}

    async def _on_fee_distributed(self, event: FeeDistributed) -> dict:
        await self._identity_ledger.record_fee_distribution(
            event.identity_id,
            {
                "listing_id": event.listing_id,
                "fee_amount": event.fee_amount,
                "owner_amount": event.owner_amount,
                "trading_ledger_ref": event.ledger_ref,
                "distributed_at": event.timestamp.isoformat(),
            },
        )
        logger.info(f"[ROUTER] Recorded fee distribution for identity {event.identity_id}")
        return {"fee_recorded": True}

    # ---- pass-through ---------------------------------------------------------

    async def _pass_through(self, event: SourceEvent) -> None:
        logger.info(f"[ROUTER] Passing through {event.kind} for identity {event.identity_id}")
        return None

    async def _pass_through_unknown(self, event: SourceEvent) -> None:
        logger.warning(
            f"[ROUTER] Unknown event kind {event.kind} for identity {event.identity_id}, passing through"
        )
        return None
