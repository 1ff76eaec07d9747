"""
DataSov Bridge - Cross-Chain Event Types

Raw ledger events are decoded at the boundary into a closed set of frozen
models, one per known kind and one Unknown variant per origin chain.
All events are immutable.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class ChainTag(str, Enum):
    """Origin chain for events. Prefixes of CrossChainEvent ids."""
    IDENTITY = "identity"
    TRADING = "trading"


class RawLedgerEvent(BaseModel):
    """Event as delivered by a ledger client subscription."""
    model_config = ConfigDict(frozen=True)

    kind: str
    identity_id: str
    ledger_ref: Optional[str] = None
    timestamp: datetime
    payload: dict[str, Any] = Field(default_factory=dict)


class SourceEvent(BaseModel):
    """Base class for decoded source events."""
    model_config = ConfigDict(frozen=True)

    identity_id: str
    ledger_ref: Optional[str] = None
    timestamp: datetime
    payload: dict[str, Any] = Field(default_factory=dict)


# ============================================
# Identity ledger (Chain A)
# ============================================

class IdentityRegistered(SourceEvent):
    kind: Literal["IDENTITY_REGISTERED"] = "IDENTITY_REGISTERED"


class IdentityVerified(SourceEvent):
    """Trading capability is enabled for the identity."""
    kind: Literal["IDENTITY_VERIFIED"] = "IDENTITY_VERIFIED"
    verification_level: Optional[str] = None


class IdentityUpdated(SourceEvent):
    kind: Literal["IDENTITY_UPDATED"] = "IDENTITY_UPDATED"


class IdentityRevoked(SourceEvent):
    """Trading capability is disabled and dependent listings flagged."""
    kind: Literal["IDENTITY_REVOKED"] = "IDENTITY_REVOKED"
    reason: Optional[str] = None


class AccessGranted(SourceEvent):
    kind: Literal["ACCESS_GRANTED"] = "ACCESS_GRANTED"
    consumer: Optional[str] = None
    data_types: list[str] = Field(default_factory=list)


class AccessRevoked(SourceEvent):
    kind: Literal["ACCESS_REVOKED"] = "ACCESS_REVOKED"
    consumer: Optional[str] = None


class UnknownIdentityEvent(SourceEvent):
    """Any identity-ledger kind the bridge does not act on."""
    kind: str


IdentityLedgerEvent = Union[
    IdentityRegistered,
    IdentityVerified,
    IdentityUpdated,
    IdentityRevoked,
    AccessGranted,
    AccessRevoked,
    UnknownIdentityEvent,
]


# ============================================
# Trading ledger (Chain B)
# ============================================

class DataPurchased(SourceEvent):
    """A buyer paid for a listing; the identity ledger gets an access log entry."""
    kind: Literal["DATA_PURCHASED"] = "DATA_PURCHASED"
    listing_id: Optional[int] = None
    buyer: Optional[str] = None
    amount: Optional[int] = None


class FeeDistributed(SourceEvent):
    kind: Literal["FEE_DISTRIBUTED"] = "FEE_DISTRIBUTED"
    listing_id: Optional[int] = None
    fee_amount: Optional[int] = None
    owner_amount: Optional[int] = None


class UnknownTradingEvent(SourceEvent):
    """Any trading-ledger kind the bridge does not act on."""
    kind: str


TradingLedgerEvent = Union[
    DataPurchased,
    FeeDistributed,
    UnknownTradingEvent,
]


_IDENTITY_KINDS: dict[str, type[SourceEvent]] = {
    "IDENTITY_REGISTERED": IdentityRegistered,
    "IDENTITY_VERIFIED": IdentityVerified,
    "IDENTITY_UPDATED": IdentityUpdated,
    "IDENTITY_REVOKED": IdentityRevoked,
    "ACCESS_GRANTED": AccessGranted,
    "ACCESS_REVOKED": AccessRevoked,
}

_TRADING_KINDS: dict[str, type[SourceEvent]] = {
    "DATA_PURCHASED": DataPurchased,
    "FEE_DISTRIBUTED": FeeDistributed,
}


def _decode(
    raw: RawLedgerEvent,
    known: dict[str, type[SourceEvent]],
    unknown: type[SourceEvent],
) -> SourceEvent:
    base = {
        "identity_id": raw.identity_id,
        "ledger_ref": raw.ledger_ref,
        "timestamp": raw.timestamp,
        "payload": raw.payload,
    }
    model = known.get(raw.kind)
    if model is None:
        return unknown.model_validate({**base, "kind": raw.kind})

    # Typed fields are lifted out of the payload; the payload itself is kept.
    typed = {
        name: raw.payload[name]
        for name in model.model_fields
        if name not in base and name != "kind" and name in raw.payload
    }
    return model.model_validate({**base, **typed})


def decode_identity_event(raw: RawLedgerEvent) -> IdentityLedgerEvent:
    return _decode(raw, _IDENTITY_KINDS, UnknownIdentityEvent)  # type: ignore[return-value]


def decode_trading_event(raw: RawLedgerEvent) -> TradingLedgerEvent:
    return _decode(raw, _TRADING_KINDS, UnknownTradingEvent)  # type: ignore[return-value]


def decode_event(origin: ChainTag, raw: RawLedgerEvent) -> SourceEvent:
    if origin == ChainTag.IDENTITY:
        return decode_identity_event(raw)
    return decode_trading_event(raw)


# ============================================
# Bridge output
# ============================================

class CrossChainEvent(BaseModel):
    """Normalized envelope, one per handled source event."""
    model_config = ConfigDict(frozen=True)

    event_id: str
    timestamp: datetime
    chain: ChainTag
    event_type: str
    identity_id: str
    details: dict[str, Any] = Field(default_factory=dict)
    cross_chain_reference: Optional[str] = None
    signature: Optional[str] = None


class BridgeEventType(str, Enum):
    """Bridge lifecycle / observability stream."""
    SYNC_STARTED = "SYNC_STARTED"
    SYNC_COMPLETED = "SYNC_COMPLETED"
    PROOF_VALIDATED = "PROOF_VALIDATED"
    PROOF_INVALID = "PROOF_INVALID"
    STATE_UPDATED = "STATE_UPDATED"
    SYNC_FAILED = "SYNC_FAILED"


class BridgeEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: BridgeEventType
    timestamp: datetime
    details: dict[str, Any] = Field(default_factory=dict)
