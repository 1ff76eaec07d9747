"""
DataSov Bridge - Reconciliation

Periodic best-effort sweep: every VERIFIED identity on the identity ledger
gets a fresh proof which is then validated against both ledgers. Proofs are
issued from a ledger read, never from the identity cache. Drift shows up as
failed identities in the SyncResult.

A run never raises. Per-identity faults are counted and described; a fault
before the loop (e.g. the ledger cannot enumerate identities) still yields a
well-formed SyncResult.
"""

import asyncio
import logging
import time
from typing import Callable, Optional

from datasov.bridges.identity_ledger import ALL_OWNERS, IdentityLedgerClient
from datasov.core.clock import Clock, utc_now
from datasov.models.events import BridgeEventType
from datasov.models.identity import IdentityStatus
from datasov.models.sync import SyncResult

from .event_bus import BridgeEventBus
from .proof_validator import ProofValidator

logger = logging.getLogger(__name__)


def _describe(error: Exception) -> str:
    return str(error) or type(error).__name__


class ReconciliationEngine:
    def __init__(
        self,
        identity_ledger: IdentityLedgerClient,
        validator: ProofValidator,
        bus: BridgeEventBus,
        owner_scope: str = ALL_OWNERS,
        clock: Clock = utc_now,
    ) -> None:
        self._identity_ledger = identity_ledger
        self._validator = validator
        self._bus = bus
        self._owner_scope = owner_scope
        self._clock = clock

    async def run(self) -> SyncResult:
        """One reconciliation pass."""
        logger.info("[SYNC] Starting state synchronization")
        started_at = self._clock()
        started = time.monotonic()

        try:
            identities = await self._identity_ledger.get_identities_by_owner(self._owner_scope)
        except Exception as e:
            logger.exception("[SYNC] State synchronization failed before reconciling identities")
            message = _describe(e)
            await self._bus.emit_bridge_event(BridgeEventType.SYNC_FAILED, {"error": message})
            return SyncResult(
                success=False,
                synced_count=0,
                failed_count=1,
                errors=[message],
                duration_ms=0,
                started_at=started_at,
                completed_at=self._clock(),
            )

        synced_count = 0
        failed_count = 0
        errors: list[str] = []

        for identity in identities:
            if identity.status != IdentityStatus.VERIFIED:
                continue
            try:
                proof = await self._validator.generate_identity_proof(
                    identity.identity_id, fresh=True
                )
                outcome = await self._validator.validate_identity_proof(proof)
            except Exception as e:
                failed_count += 1
                errors.append(f"Error syncing identity {identity.identity_id}: {_describe(e)}")
                logger.warning(f"[SYNC] Error syncing identity {identity.identity_id}: {e!r}")
                continue

            if outcome.valid:
                synced_count += 1
            else:
                failed_count += 1
                errors.append(
                    f"Failed to sync identity {identity.identity_id}: {', '.join(outcome.errors)}"
                )

        duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            f"[SYNC] State synchronization completed: synced={synced_count} "
            f"failed={failed_count} duration_ms={duration_ms}"
        )
        await self._bus.emit_bridge_event(
            BridgeEventType.STATE_UPDATED,
            {
                "synced_count": synced_count,
                "failed_count": failed_count,
                "duration_ms": duration_ms,
            },
        )

        return SyncResult(
            success=failed_count == 0,
            synced_count=synced_count,
            failed_count=failed_count,
            errors=errors,
            duration_ms=duration_ms,
            started_at=started_at,
            completed_at=self._clock(),
        )


class ReconciliationScheduler:
    """
    Fixed-interval timer around a ReconciliationEngine.

    The timer and each run are separate tasks: clear() cancels the timer so
    no new run can start, while a run already in flight is left to finish.
    A tick that lands while a run is still in flight is skipped.
    """

    def __init__(
        self,
        engine: ReconciliationEngine,
        interval_seconds: float,
        on_result: Optional[Callable[[SyncResult], None]] = None,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self._engine = engine
        self._interval = interval_seconds
        self._on_result = on_result
        self._timer: Optional[asyncio.Task] = None
        self._in_flight: Optional[asyncio.Task] = None

    @property
    def is_scheduled(self) -> bool:
        return self._timer is not None and not self._timer.done()

    @property
    def is_run_in_flight(self) -> bool:
        return self._in_flight is not None and not self._in_flight.done()

    def start(self) -> None:
        if self.is_scheduled:
            return
        self._timer = asyncio.create_task(self._tick(), name="datasov-reconciliation-timer")
        logger.info(f"[SYNC] Reconciliation scheduled every {self._interval}s")

    def clear(self) -> None:
        """Stop scheduling. Does not touch an in-flight run."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
            logger.info("[SYNC] Reconciliation timer cleared")

    async def drain(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for the in-flight run, if any, without cancelling it.

        Returns False when the run is still going after ``timeout``.
        """
        task = self._in_flight
        if task is None or task.done():
            return True
        await asyncio.wait({task}, timeout=timeout)
        if not task.done():
            logger.warning(f"[SYNC] In-flight reconciliation still running after {timeout}s")
            return False
        return True

    async def _tick(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            if self.is_run_in_flight:
                logger.warning("[SYNC] Previous reconciliation still running, skipping tick")
                continue
            self._in_flight = asyncio.create_task(
                self._run_once(), name="datasov-reconciliation-run"
            )

    async def _run_once(self) -> None:
        try:
            result = await self._engine.run()
        except Exception:
            logger.exception("[SYNC] Periodic reconciliation failed")
            return
        if self._on_result is not None:
            self._on_result(result)
