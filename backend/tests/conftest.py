"""
Pytest fixtures for the bridge tests.

Everything runs against the in-memory ledgers with a frozen clock.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest
import pytest_asyncio

from datasov.core.config import Settings
from datasov.models.identity import AccessGrant, IdentityRecord, IdentityStatus
from datasov.services.event_bus import BridgeEventBus
from datasov.services.identity_cache import IdentityCache
from datasov.services.mocks import InMemoryIdentityLedger, InMemoryTradingLedger
from datasov.services.orchestrator import BridgeOrchestrator
from datasov.services.proof_validator import ProofValidator
from datasov.services.signing import EventSigner

T0 = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> datetime:
        self.now += timedelta(**delta)
        return self.now


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        LEDGER_BACKEND="memory",
        BRIDGE_ENABLED=False,
        SYNC_INTERVAL_SECONDS=300.0,
        STOP_DRAIN_TIMEOUT_SECONDS=2.0,
        IDENTITY_CACHE_TTL_SECONDS=30.0,
        MARKETPLACE_FEE_BASIS_POINTS=250,
    )


@pytest.fixture
def identity_ledger(clock) -> InMemoryIdentityLedger:
    return InMemoryIdentityLedger(clock=clock)


@pytest.fixture
def trading_ledger(clock) -> InMemoryTradingLedger:
    return InMemoryTradingLedger(fee_basis_points=250, clock=clock)


@pytest_asyncio.fixture
async def ledgers(identity_ledger, trading_ledger):
    """Both in-memory ledgers, connected."""
    await identity_ledger.connect()
    await trading_ledger.connect()
    yield identity_ledger, trading_ledger
    await identity_ledger.disconnect()
    await trading_ledger.disconnect()


@pytest.fixture
def bus(clock) -> BridgeEventBus:
    return BridgeEventBus(clock=clock)


@pytest.fixture
def cache(identity_ledger, clock) -> IdentityCache:
    return IdentityCache(identity_ledger, ttl_seconds=30.0, clock=clock)


@pytest.fixture
def validator(identity_ledger, trading_ledger, cache, bus, clock) -> ProofValidator:
    return ProofValidator(identity_ledger, trading_ledger, cache, bus, clock=clock)


@pytest.fixture
def signer() -> EventSigner:
    return EventSigner(key_id="test-bridge")


@pytest.fixture
def bridge(identity_ledger, trading_ledger, settings, signer, clock) -> BridgeOrchestrator:
    return BridgeOrchestrator(identity_ledger, trading_ledger, settings, signer=signer, clock=clock)


@pytest_asyncio.fixture
async def running_bridge(bridge):
    await bridge.start()
    yield bridge
    await bridge.stop()


@pytest.fixture
def make_identity(identity_ledger, clock):
    """Seed an identity directly into the identity ledger (no event emitted)."""

    def _make(
        identity_id: str,
        status: IdentityStatus = IdentityStatus.VERIFIED,
        verification_level: str = "HIGH",
        owner: Optional[str] = None,
        grants: Optional[list[AccessGrant]] = None,
    ) -> IdentityRecord:
        record = IdentityRecord(
            identity_id=identity_id,
            owner=owner or f"owner_{identity_id}",
            provider="datasov-kyc",
            identity_type="NATIONAL_ID",
            status=status,
            verification_level=verification_level,
            access_grants=grants or [],
            created_at=clock() - timedelta(days=10),
            verified_at=clock() if status == IdentityStatus.VERIFIED else None,
            verification_method="document_scan",
        )
        return identity_ledger.put_identity(record)

    return _make


@pytest.fixture
def make_grant(clock):
    def _make(
        identity_id: str,
        consumer: str,
        data_types: list[str],
        is_active: bool = True,
        expires_at: Optional[datetime] = None,
    ) -> AccessGrant:
        return AccessGrant(
            identity_id=identity_id,
            consumer=consumer,
            data_types=frozenset(data_types),
            granted_at=clock() - timedelta(days=1),
            expires_at=expires_at,
            is_active=is_active,
        )

    return _make


@pytest.fixture
def t0() -> datetime:
    return T0
