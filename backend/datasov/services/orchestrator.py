"""
DataSov Bridge - Orchestrator

Owns the bridge lifecycle and the composite marketplace operations.

START:
1. Connect identity ledger, then trading ledger
   (either fails -> both disconnected, STOPPED, BridgeStartupFailed)
2. Subscribe the event router to both ledgers
3. Schedule reconciliation if BRIDGE_ENABLED

STOP (always completes):
1. Clear the reconciliation timer, so no new run can start
2. Unsubscribe the event router
3. Let an in-flight run finish, bounded by STOP_DRAIN_TIMEOUT_SECONDS
4. Disconnect both ledgers, logging errors

COMPOSITE OPERATIONS are not transactional across ledgers. Identity
validation is advisory: if the trading ledger call fails afterwards,
nothing is rolled back.
"""

import logging
from typing import Callable, Optional, Union

from datasov.bridges.identity_ledger import HttpIdentityLedgerClient, IdentityLedgerClient
from datasov.bridges.trading_ledger import HttpTradingLedgerClient, TradingLedgerClient
from datasov.core.clock import Clock, utc_now
from datasov.core.config import Settings
from datasov.core.errors import BridgeStartupFailed, IdentityValidationFailed, ListingNotFound
from datasov.models.events import BridgeEvent, BridgeEventType, CrossChainEvent
from datasov.models.proofs import AccessProof, IdentityProof, ValidationOutcome
from datasov.models.sync import BridgeStatus, StateSnapshot, SyncResult
from datasov.models.trading import ListingRequest, PurchaseRequest, PurchaseResult

from .event_bus import BridgeEventBus, BridgeEventListener, CrossChainEventListener
from .event_router import EventRouter
from .identity_cache import IdentityCache
from .lifecycle import BridgeLifecycle, BridgeState
from .proof_validator import ProofValidator
from .reconciliation import ReconciliationEngine, ReconciliationScheduler
from .signing import EventSigner

logger = logging.getLogger(__name__)


class BridgeOrchestrator:
    def __init__(
        self,
        identity_ledger: IdentityLedgerClient,
        trading_ledger: TradingLedgerClient,
        settings: Settings,
        signer: Optional[EventSigner] = None,
        clock: Clock = utc_now,
    ) -> None:
        self._identity_ledger = identity_ledger
        self._trading_ledger = trading_ledger
        self._settings = settings
        self._clock = clock

        self._lifecycle = BridgeLifecycle(clock=clock)
        self._bus = BridgeEventBus(log_size=settings.EVENT_LOG_SIZE, clock=clock)
        self._cache = IdentityCache(
            identity_ledger,
            ttl_seconds=settings.IDENTITY_CACHE_TTL_SECONDS,
            clock=clock,
        )
        self._signer = signer or self._build_signer(settings)

        self._validator = ProofValidator(
            identity_ledger, trading_ledger, self._cache, self._bus, clock=clock
        )
        self._router = EventRouter(
            identity_ledger,
            trading_ledger,
            self._cache,
            self._bus,
            self._signer,
            resubscribe_delay=settings.EVENT_RESUBSCRIBE_DELAY_SECONDS,
            max_resubscribe_delay=settings.EVENT_RESUBSCRIBE_MAX_DELAY_SECONDS,
        )
        self._engine = ReconciliationEngine(
            identity_ledger,
            self._validator,
            self._bus,
            owner_scope=settings.RECONCILIATION_OWNER_SCOPE,
            clock=clock,
        )
        self._scheduler = ReconciliationScheduler(
            self._engine,
            interval_seconds=settings.SYNC_INTERVAL_SECONDS,
            on_result=self._on_scheduled_result,
        )
        self._last_sync: Optional[SyncResult] = None
        self._stop_requested = False

    @staticmethod
    def _build_signer(settings: Settings) -> EventSigner:
        if settings.BRIDGE_SIGNING_KEY:
            return EventSigner.from_seed(settings.BRIDGE_SIGNING_KEY, key_id=settings.BRIDGE_KEY_ID)
        return EventSigner(key_id=settings.BRIDGE_KEY_ID)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    @property
    def state(self) -> BridgeState:
        return self._lifecycle.state

    @property
    def is_running(self) -> bool:
        return self._lifecycle.is_running

    @property
    def lifecycle(self) -> BridgeLifecycle:
        return self._lifecycle

    @property
    def signer(self) -> EventSigner:
        return self._signer

    async def start(self) -> None:
        """
        Bring the bridge up.

        Raises:
            BridgeStartupFailed: either ledger could not be connected
        """
        if self._lifecycle.state != BridgeState.STOPPED:
            logger.info(f"[BRIDGE] start() ignored, bridge is {self._lifecycle.state.value}")
            return

        logger.info("[BRIDGE] Starting cross-chain bridge")
        self._lifecycle.transition_to(BridgeState.STARTING, "start")
        self._stop_requested = False

        try:
            await self._identity_ledger.connect()
            await self._trading_ledger.connect()
        except Exception as e:
            logger.error(f"[BRIDGE] Failed to start cross-chain bridge: {e!r}")
            self._stop_requested = False
            await self._disconnect_ledgers()
            self._lifecycle.transition_to(BridgeState.STOPPED, "startup_failed")
            raise BridgeStartupFailed(
                "Failed to start bridge",
                {"error": str(e) or type(e).__name__},
            ) from e

        self._router.start()
        if self._settings.BRIDGE_ENABLED:
            self._scheduler.start()

        self._lifecycle.transition_to(BridgeState.RUNNING, "start")
        logger.info("[BRIDGE] Cross-chain bridge started")
        await self._bus.emit_bridge_event(BridgeEventType.SYNC_STARTED, {"status": "started"})

        if self._stop_requested:
            logger.info("[BRIDGE] Applying stop requested during startup")
            await self.stop()

    async def stop(self) -> None:
        """
        Bring the bridge down. Never raises for ledger faults.

        A stop requested while STARTING is recorded and applied as soon as
        start() has finished bringing the bridge up.
        """
        if self._lifecycle.state == BridgeState.STARTING:
            logger.info("[BRIDGE] stop() requested during startup, deferring")
            self._stop_requested = True
            return
        if self._lifecycle.state != BridgeState.RUNNING:
            logger.info(f"[BRIDGE] stop() ignored, bridge is {self._lifecycle.state.value}")
            return

        logger.info("[BRIDGE] Stopping cross-chain bridge")
        self._lifecycle.transition_to(BridgeState.STOPPING, "stop")

        self._scheduler.clear()
        await self._router.stop()
        drained = await self._scheduler.drain(self._settings.STOP_DRAIN_TIMEOUT_SECONDS)
        await self._disconnect_ledgers()
        self._cache.clear()

        self._lifecycle.transition_to(BridgeState.STOPPED, "stop")
        logger.info("[BRIDGE] Cross-chain bridge stopped")
        await self._bus.emit_bridge_event(
            BridgeEventType.SYNC_COMPLETED,
            {"status": "stopped", "reconciliation_drained": drained},
        )

    async def _disconnect_ledgers(self) -> None:
        for name, ledger in (
            ("identity", self._identity_ledger),
            ("trading", self._trading_ledger),
        ):
            try:
                await ledger.disconnect()
            except Exception:
                logger.exception(f"[BRIDGE] Error disconnecting {name} ledger")

    def _on_scheduled_result(self, result: SyncResult) -> None:
        if not self.is_running:
            logger.info("[SYNC] Discarding reconciliation result, bridge is not running")
            return
        self._last_sync = result

    # =========================================================================
    # PROOFS
    # =========================================================================

    async def generate_identity_proof(self, identity_id: str) -> IdentityProof:
        return await self._validator.generate_identity_proof(identity_id)

    async def validate_identity_proof(self, proof: IdentityProof) -> ValidationOutcome:
        return await self._validator.validate_identity_proof(proof)

    async def generate_access_proof(
        self,
        identity_id: str,
        consumer: str,
        data_type: str,
    ) -> AccessProof:
        return await self._validator.generate_access_proof(identity_id, consumer, data_type)

    # =========================================================================
    # COMPOSITE OPERATIONS
    # =========================================================================

    async def create_data_listing(
        self,
        owner: str,
        listing_id: int,
        price: int,
        data_type: str,
        description: str,
        identity_id: str,
        access_proof: Optional[AccessProof] = None,
    ) -> str:
        """
        List data on the trading ledger for a validated identity.

        The identity proof is issued and validated before the trading
        ledger is touched; a failing identity never gets a listing.

        Returns:
            Trading ledger transaction reference

        Raises:
            IdentityNotFound / IdentityNotVerified: proof cannot be issued
            IdentityValidationFailed: proof issued but rejected
        """
        logger.info(f"[BRIDGE] Creating data listing {listing_id} for identity {identity_id}")

        proof = await self._validator.generate_identity_proof(identity_id)
        outcome = await self._validator.validate_identity_proof(proof)
        if not outcome.valid:
            raise IdentityValidationFailed(
                identity_id,
                outcome.errors,
                failure=outcome.failure.value if outcome.failure else None,
            )

        ledger_ref = await self._trading_ledger.create_listing(ListingRequest(
            owner=owner,
            listing_id=listing_id,
            price=price,
            data_type=data_type,
            description=description,
            identity_id=identity_id,
            access_proof=access_proof,
        ))
        logger.info(f"[BRIDGE] Data listing {listing_id} created: {ledger_ref}")
        return ledger_ref

    async def purchase_data(
        self,
        buyer: str,
        listing_id: int,
        identity_id: str,
        token_mint: Optional[str] = None,
    ) -> PurchaseResult:
        """
        Raises:
            ListingNotFound: no such listing
            AccessNotGranted: buyer holds no usable grant for the listing's data type
        """
        logger.info(f"[BRIDGE] Purchasing listing {listing_id} for {buyer} (identity {identity_id})")

        listing = await self._trading_ledger.get_listing(listing_id)
        if listing is None:
            raise ListingNotFound(listing_id)

        access_proof = await self._validator.generate_access_proof(
            identity_id, buyer, listing.data_type
        )

        result = await self._trading_ledger.purchase(PurchaseRequest(
            listing_id=listing_id,
            buyer=buyer,
            identity_id=identity_id,
            token_mint=token_mint,
            access_proof=access_proof,
        ))
        logger.info(f"[BRIDGE] Listing {listing_id} purchased: {result.ledger_ref}")
        return result

    # =========================================================================
    # STATE
    # =========================================================================

    async def synchronize_state(self) -> SyncResult:
        """Run one reconciliation pass now, outside the timer."""
        result = await self._engine.run()
        self._last_sync = result
        return result

    @property
    def last_sync(self) -> Optional[SyncResult]:
        return self._last_sync

    async def get_state_snapshot(self) -> StateSnapshot:
        identities = await self._identity_ledger.get_identities_by_owner(
            self._settings.RECONCILIATION_OWNER_SCOPE
        )
        listings = await self._trading_ledger.get_active_listings()
        return StateSnapshot(
            timestamp=self._clock(),
            identities=identities,
            listings=listings,
            is_running=self.is_running,
            active_bridges=1 if self.is_running else 0,
            last_sync_at=self._last_sync.completed_at if self._last_sync else None,
        )

    def get_status(self) -> BridgeStatus:
        return BridgeStatus(
            is_running=self.is_running,
            state=self._lifecycle.state.value,
            identity_ledger_healthy=self._identity_ledger.is_healthy(),
            trading_ledger_healthy=self._trading_ledger.is_healthy(),
            event_router_subscribed=self._router.is_subscribed,
            bridge_enabled=self._settings.BRIDGE_ENABLED,
            sync_interval_seconds=self._settings.SYNC_INTERVAL_SECONDS,
            last_sync_at=self._last_sync.completed_at if self._last_sync else None,
            identity_ledger_metrics=self._identity_ledger.get_metrics(),
            trading_ledger_metrics=self._trading_ledger.get_metrics(),
        )

    # =========================================================================
    # LISTENERS
    # =========================================================================

    def on_bridge_event(self, listener: BridgeEventListener) -> Callable[[], None]:
        return self._bus.on_bridge_event(listener)

    def on_cross_chain_event(self, listener: CrossChainEventListener) -> Callable[[], None]:
        return self._bus.on_cross_chain_event(listener)

    def recent_events(self, limit: int = 50) -> list[Union[BridgeEvent, CrossChainEvent]]:
        return self._bus.recent(limit)


def build_bridge(settings: Settings) -> BridgeOrchestrator:
    """Wire the orchestrator to the ledger backend named by LEDGER_BACKEND."""
    if settings.LEDGER_BACKEND == "memory":
        from .mocks import InMemoryIdentityLedger, InMemoryTradingLedger

        logger.warning("[BRIDGE] Using in-memory ledgers")
        identity_ledger: IdentityLedgerClient = InMemoryIdentityLedger()
        trading_ledger: TradingLedgerClient = InMemoryTradingLedger(
            fee_basis_points=settings.MARKETPLACE_FEE_BASIS_POINTS
        )
    elif settings.LEDGER_BACKEND == "http":
        identity_ledger = HttpIdentityLedgerClient(
            settings.IDENTITY_LEDGER_URL,
            api_key=settings.LEDGER_API_KEY,
            timeout=settings.LEDGER_TIMEOUT_SECONDS,
            poll_interval=settings.EVENT_POLL_INTERVAL_SECONDS,
        )
        trading_ledger = HttpTradingLedgerClient(
            settings.TRADING_LEDGER_URL,
            api_key=settings.LEDGER_API_KEY,
            timeout=settings.LEDGER_TIMEOUT_SECONDS,
            poll_interval=settings.EVENT_POLL_INTERVAL_SECONDS,
        )
    else:
        raise ValueError(f"Unknown LEDGER_BACKEND: {settings.LEDGER_BACKEND!r}")

    return BridgeOrchestrator(identity_ledger, trading_ledger, settings)
