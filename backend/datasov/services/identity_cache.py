"""
DataSov Bridge - Identity Cache

Read-through, read-only view of identity-ledger records.

Entries are never edited in place: they are either dropped (invalidate)
or replaced wholesale by a fresh ledger read (refresh). There is no local
write path, so concurrent readers never see a half-updated record.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from datasov.bridges.identity_ledger import IdentityLedgerClient
from datasov.core.clock import Clock, utc_now
from datasov.models.identity import IdentityRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CachedIdentity:
    record: Optional[IdentityRecord]
    fetched_at: datetime


class IdentityCache:
    def __init__(
        self,
        ledger: IdentityLedgerClient,
        ttl_seconds: float = 30.0,
        clock: Clock = utc_now,
    ) -> None:
        self._ledger = ledger
        self._ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock
        self._entries: dict[str, CachedIdentity] = {}

    async def get(self, identity_id: str) -> Optional[IdentityRecord]:
        entry = self._entries.get(identity_id)
        if entry is not None and self._clock() - entry.fetched_at < self._ttl:
            return entry.record
        return await self.refresh(identity_id)

    async def refresh(self, identity_id: str) -> Optional[IdentityRecord]:
        """Replace the entry with a fresh ledger read."""
        record = await self._ledger.get_identity(identity_id)
        if record is None:
            # Absence is not cached: a registration may land any moment.
            self._entries.pop(identity_id, None)
        else:
            self._entries[identity_id] = CachedIdentity(record=record, fetched_at=self._clock())
        return record

    def invalidate(self, identity_id: str) -> None:
        if self._entries.pop(identity_id, None) is not None:
            logger.debug(f"[CACHE] Invalidated identity {identity_id}")

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, identity_id: str) -> bool:
        return identity_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)
