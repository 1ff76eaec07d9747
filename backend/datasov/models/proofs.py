"""
DataSov Bridge - Proofs

Proofs are immutable, time-bounded assertions derived from identity-ledger
state. A new proof must be issued after any identity mutation.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

# Fields a proof must carry before any ledger is asked about it.
REQUIRED_PROOF_FIELDS = (
    "identity_id",
    "owner",
    "verification_level",
    "signature",
    "ledger_ref",
)


class IdentityProof(BaseModel):
    """
    Portable identity proof, consumable on the trading ledger.

    Identity fields are optional so that malformed proofs received from
    outside can still be represented and reported field by field.
    """
    model_config = ConfigDict(frozen=True)

    identity_id: Optional[str] = None
    owner: Optional[str] = None
    verification_level: Optional[str] = None
    verification_timestamp: Optional[datetime] = None
    ledger_ref: Optional[str] = None
    signature: Optional[str] = None
    issued_at: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    def missing_fields(self) -> list[str]:
        return [name for name in REQUIRED_PROOF_FIELDS if not getattr(self, name)]


class AccessProof(BaseModel):
    """Snapshot of a grant at issuance time. Never re-checked afterwards."""
    model_config = ConfigDict(frozen=True)

    identity_id: str
    consumer: str
    data_type: str
    permission_type: str
    granted_at: datetime
    expires_at: Optional[datetime] = None
    granted_by: str
    signature: str
    ledger_ref: str
    issued_at: datetime


class ProofFailure(str, Enum):
    """Why a proof was rejected. Reported as a value, never raised."""
    MALFORMED_PROOF = "MalformedProof"
    CRYPTOGRAPHIC_VALIDATION_FAILED = "CryptographicValidationFailed"
    CROSS_LEDGER_VALIDATION_FAILED = "CrossLedgerValidationFailed"
    PROOF_EXPIRED = "ProofExpired"


class ValidationOutcome(BaseModel):
    """Result of validate_identity_proof."""
    valid: bool
    identity_id: Optional[str] = None
    verification_level: Optional[str] = None
    valid_until: Optional[datetime] = None
    failure: Optional[ProofFailure] = None
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class RawProof(BaseModel):
    """Cryptographic material returned by a ledger's proof primitive."""
    signature: str
    ledger_ref: str


class RawValidationResult(BaseModel):
    """A single ledger's verdict on a proof."""
    valid: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
