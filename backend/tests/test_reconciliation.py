"""
DataSov Bridge - Reconciliation Tests

One run = one SyncResult. A failing identity never aborts the run, and a
run never raises.
"""

import asyncio

import pytest

from datasov.core.errors import ConnectionLost
from datasov.models.events import BridgeEventType
from datasov.models.identity import IdentityStatus
from datasov.models.proofs import RawValidationResult
from datasov.services.reconciliation import ReconciliationEngine, ReconciliationScheduler


@pytest.fixture
def engine(identity_ledger, validator, bus, clock) -> ReconciliationEngine:
    return ReconciliationEngine(identity_ledger, validator, bus, clock=clock)


class TestReconciliationRun:

    @pytest.mark.asyncio
    async def test_all_verified_identities_sync(self, ledgers, engine, make_identity, bus):
        for n in range(4):
            make_identity(f"ID_{n}")

        result = await engine.run()

        assert result.success is True
        assert result.synced_count == 4
        assert result.failed_count == 0
        assert result.errors == []
        event = bus.recent(1)[0]
        assert event.type == BridgeEventType.STATE_UPDATED
        assert event.details["synced_count"] == 4

    @pytest.mark.asyncio
    async def test_k_failing_identities_out_of_n(
        self, ledgers, engine, make_identity, identity_ledger
    ):
        for n in range(5):
            make_identity(f"ID_{n}")
        for failing in ("ID_1", "ID_3"):
            identity_ledger.set_validation_result(
                failing, RawValidationResult(valid=False, errors=["Signature mismatch"])
            )

        result = await engine.run()

        assert result.synced_count == 3
        assert result.failed_count == 2
        assert result.success is False
        assert result.errors == [
            "Failed to sync identity ID_1: Signature mismatch",
            "Failed to sync identity ID_3: Signature mismatch",
        ]

    @pytest.mark.asyncio
    async def test_throwing_identity_does_not_affect_others(
        self, ledgers, engine, make_identity, identity_ledger
    ):
        make_identity("ID_OK_1")
        make_identity("ID_BAD")
        make_identity("ID_OK_2")

        original = identity_ledger.generate_identity_proof_raw

        async def flaky(identity_id):
            if identity_id == "ID_BAD":
                raise ConnectionLost("timeout talking to notary")
            return await original(identity_id)

        identity_ledger.generate_identity_proof_raw = flaky

        result = await engine.run()

        assert result.synced_count == 2
        assert result.failed_count == 1
        assert result.errors == ["Error syncing identity ID_BAD: timeout talking to notary"]

    @pytest.mark.asyncio
    async def test_only_verified_identities_are_reconciled(self, ledgers, engine, make_identity):
        make_identity("ID_V")
        make_identity("ID_P", status=IdentityStatus.PENDING)
        make_identity("ID_R", status=IdentityStatus.REVOKED)

        result = await engine.run()

        assert result.synced_count == 1
        assert result.failed_count == 0

    @pytest.mark.asyncio
    async def test_enumeration_failure_returns_failed_result(
        self, ledgers, engine, identity_ledger, bus
    ):
        identity_ledger.fail("get_identities_by_owner", ConnectionLost("identity ledger down"))

        result = await engine.run()

        assert result.success is False
        assert result.synced_count == 0
        assert result.failed_count == 1
        assert result.errors == ["identity ledger down"]
        assert result.duration_ms == 0
        assert bus.recent(1)[0].type == BridgeEventType.SYNC_FAILED

    @pytest.mark.asyncio
    async def test_proofs_are_issued_from_a_fresh_ledger_read(
        self, ledgers, engine, cache, make_identity, identity_ledger, bus
    ):
        make_identity("ID_1", verification_level="HIGH")
        await cache.get("ID_1")
        make_identity("ID_1", verification_level="CREDENTIAL")

        result = await engine.run()

        assert result.synced_count == 1
        assert identity_ledger.calls["get_identity"] == 2
        validated = [e for e in bus.recent(10) if e.type == BridgeEventType.PROOF_VALIDATED]
        assert validated[-1].details["verification_level"] == "CREDENTIAL"
        assert (await cache.get("ID_1")).verification_level == "CREDENTIAL"

    @pytest.mark.asyncio
    async def test_empty_ledger_is_a_successful_run(self, ledgers, engine):
        result = await engine.run()

        assert result.success is True
        assert result.synced_count == 0


class TestReconciliationScheduler:

    @pytest.mark.asyncio
    async def test_runs_on_interval_and_reports_results(self, ledgers, engine, make_identity):
        make_identity("ID_1")
        results = []
        scheduler = ReconciliationScheduler(engine, interval_seconds=0.01, on_result=results.append)

        scheduler.start()
        try:
            for _ in range(100):
                if results:
                    break
                await asyncio.sleep(0.01)
        finally:
            scheduler.clear()
            await scheduler.drain(1.0)

        assert results
        assert results[0].synced_count == 1

    @pytest.mark.asyncio
    async def test_clear_lets_in_flight_run_finish(self, ledgers, engine, identity_ledger, make_identity):
        make_identity("ID_1")
        gate = asyncio.Event()
        entered = asyncio.Event()
        original = identity_ledger.get_identities_by_owner

        async def gated(owner):
            entered.set()
            await gate.wait()
            return await original(owner)

        identity_ledger.get_identities_by_owner = gated
        results = []
        scheduler = ReconciliationScheduler(engine, interval_seconds=0.01, on_result=results.append)

        scheduler.start()
        await asyncio.wait_for(entered.wait(), timeout=2)
        scheduler.clear()

        assert not scheduler.is_scheduled
        assert scheduler.is_run_in_flight

        gate.set()
        assert await scheduler.drain(2.0) is True
        assert len(results) == 1
        assert results[0].success is True

        await asyncio.sleep(0.05)
        assert len(results) == 1

    @pytest.mark.asyncio
    async def test_drain_times_out_without_cancelling(self, ledgers, engine, identity_ledger):
        gate = asyncio.Event()
        entered = asyncio.Event()

        async def blocked(owner):
            entered.set()
            await gate.wait()
            return []

        identity_ledger.get_identities_by_owner = blocked
        scheduler = ReconciliationScheduler(engine, interval_seconds=0.01)

        scheduler.start()
        await asyncio.wait_for(entered.wait(), timeout=2)
        scheduler.clear()

        assert await scheduler.drain(0.05) is False
        assert scheduler.is_run_in_flight

        gate.set()
        assert await scheduler.drain(2.0) is True

    def test_interval_must_be_positive(self, engine):
        with pytest.raises(ValueError):
            ReconciliationScheduler(engine, interval_seconds=0)
