"""
DataSov Bridge - Reconciliation and Status Views
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from .identity import IdentityRecord
from .trading import Listing


class SyncResult(BaseModel):
    """Outcome of one reconciliation run. Not persisted by the bridge."""
    success: bool
    synced_count: int = 0
    failed_count: int = 0
    errors: list[str] = Field(default_factory=list)
    duration_ms: int = 0
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class StateSnapshot(BaseModel):
    """Point-in-time read of both ledgers, assembled on demand."""
    timestamp: datetime
    identities: list[IdentityRecord] = Field(default_factory=list)
    listings: list[Listing] = Field(default_factory=list)
    is_running: bool
    active_bridges: int = 0
    last_sync_at: Optional[datetime] = None


class BridgeStatus(BaseModel):
    is_running: bool
    state: str
    identity_ledger_healthy: bool
    trading_ledger_healthy: bool
    event_router_subscribed: bool = False
    bridge_enabled: bool
    sync_interval_seconds: float
    last_sync_at: Optional[datetime] = None
    identity_ledger_metrics: dict[str, Any] = Field(default_factory=dict)
    trading_ledger_metrics: dict[str, Any] = Field(default_factory=dict)
