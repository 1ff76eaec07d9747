"""
DataSov Bridge - Models
"""

from .events import (
    BridgeEvent,
    BridgeEventType,
    ChainTag,
    CrossChainEvent,
    RawLedgerEvent,
)
from .identity import (
    AccessGrant,
    DataType,
    IdentityRecord,
    IdentityStatus,
    PermissionType,
    VerificationLevel,
    validity_period,
)
from .proofs import (
    AccessProof,
    IdentityProof,
    ProofFailure,
    RawProof,
    RawValidationResult,
    ValidationOutcome,
)
from .sync import BridgeStatus, StateSnapshot, SyncResult
from .trading import Listing, ListingRequest, PurchaseRequest, PurchaseResult

__all__ = [
    # Identity ledger
    "AccessGrant",
    "DataType",
    "IdentityRecord",
    "IdentityStatus",
    "PermissionType",
    "VerificationLevel",
    "validity_period",
    # Proofs
    "AccessProof",
    "IdentityProof",
    "ProofFailure",
    "RawProof",
    "RawValidationResult",
    "ValidationOutcome",
    # Trading ledger
    "Listing",
    "ListingRequest",
    "PurchaseRequest",
    "PurchaseResult",
    # Events
    "BridgeEvent",
    "BridgeEventType",
    "ChainTag",
    "CrossChainEvent",
    "RawLedgerEvent",
    # Views
    "BridgeStatus",
    "StateSnapshot",
    "SyncResult",
]
