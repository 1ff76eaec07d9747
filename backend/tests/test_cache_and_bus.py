"""
DataSov Bridge - Identity Cache and Event Bus Tests
"""

import pytest

from datasov.models.events import BridgeEventType
from datasov.services.event_bus import BridgeEventBus


class TestIdentityCache:

    @pytest.mark.asyncio
    async def test_reads_through_then_serves_from_cache(self, ledgers, cache, make_identity, identity_ledger):
        make_identity("ID_1")

        await cache.get("ID_1")
        await cache.get("ID_1")

        assert identity_ledger.calls["get_identity"] == 1

    @pytest.mark.asyncio
    async def test_entries_expire_after_ttl(self, ledgers, cache, make_identity, identity_ledger, clock):
        make_identity("ID_1")
        await cache.get("ID_1")

        clock.advance(seconds=31)
        await cache.get("ID_1")

        assert identity_ledger.calls["get_identity"] == 2

    @pytest.mark.asyncio
    async def test_refresh_replaces_entry(self, ledgers, cache, make_identity, identity_ledger):
        make_identity("ID_1")
        before = await cache.get("ID_1")
        identity_ledger.grant_access("ID_1", "buyer_1", ["APP_USAGE"])

        after = await cache.refresh("ID_1")

        assert before.access_grants == []
        assert len(after.access_grants) == 1
        assert (await cache.get("ID_1")) is after

    @pytest.mark.asyncio
    async def test_absent_identities_are_not_cached(self, ledgers, cache, identity_ledger):
        assert await cache.get("ID_404") is None
        assert "ID_404" not in cache
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_invalidate_and_clear(self, ledgers, cache, make_identity):
        make_identity("ID_1")
        make_identity("ID_2")
        await cache.get("ID_1")
        await cache.get("ID_2")

        cache.invalidate("ID_1")
        assert "ID_1" not in cache
        assert "ID_2" in cache

        cache.clear()
        assert len(cache) == 0


class TestBridgeEventBus:

    @pytest.mark.asyncio
    async def test_sync_and_async_listeners(self, bus):
        seen = []

        async def async_listener(event):
            seen.append(("async", event.type))

        bus.on_bridge_event(lambda event: seen.append(("sync", event.type)))
        bus.on_bridge_event(async_listener)

        await bus.emit_bridge_event(BridgeEventType.SYNC_STARTED, {"status": "started"})

        assert seen == [("sync", BridgeEventType.SYNC_STARTED), ("async", BridgeEventType.SYNC_STARTED)]

    @pytest.mark.asyncio
    async def test_failing_listener_is_isolated(self, bus):
        seen = []

        def broken(event):
            raise RuntimeError("listener bug")

        bus.on_bridge_event(broken)
        bus.on_bridge_event(seen.append)

        event = await bus.emit_bridge_event(BridgeEventType.STATE_UPDATED)

        assert seen == [event]

    @pytest.mark.asyncio
    async def test_unsubscribe(self, bus):
        seen = []
        unsubscribe = bus.on_bridge_event(seen.append)
        unsubscribe()

        await bus.emit_bridge_event(BridgeEventType.SYNC_FAILED)

        assert seen == []

    @pytest.mark.asyncio
    async def test_unsubscribing_twice_is_harmless(self, bus):
        seen = []
        unsubscribe_bridge = bus.on_bridge_event(seen.append)
        unsubscribe_cross_chain = bus.on_cross_chain_event(seen.append)

        for unsubscribe in (unsubscribe_bridge, unsubscribe_cross_chain):
            unsubscribe()
            unsubscribe()

        await bus.emit_bridge_event(BridgeEventType.SYNC_FAILED)
        assert seen == []

    @pytest.mark.asyncio
    async def test_recent_log_is_bounded(self, clock):
        bus = BridgeEventBus(log_size=3, clock=clock)
        for _ in range(5):
            await bus.emit_bridge_event(BridgeEventType.PROOF_VALIDATED)

        assert len(bus.recent(10)) == 3
        assert len(bus.recent(2)) == 2
        assert bus.recent(0) == []
