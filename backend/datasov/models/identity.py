"""
DataSov Bridge - Identity Ledger Records

Read-only copies of identity-ledger state. The identity ledger owns these;
the bridge never writes them back.
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from datasov.core.clock import ensure_aware


class IdentityStatus(str, Enum):
    """Identity lifecycle: PENDING -> VERIFIED -> REVOKED, or PENDING -> REJECTED."""
    PENDING = "PENDING"
    VERIFIED = "VERIFIED"
    REVOKED = "REVOKED"
    REJECTED = "REJECTED"


class VerificationLevel(str, Enum):
    """Ordered verification strength."""
    BASIC = "BASIC"
    ENHANCED = "ENHANCED"
    HIGH = "HIGH"
    CREDENTIAL = "CREDENTIAL"

    @property
    def rank(self) -> int:
        return _LEVEL_ORDER.index(self)


_LEVEL_ORDER = [
    VerificationLevel.BASIC,
    VerificationLevel.ENHANCED,
    VerificationLevel.HIGH,
    VerificationLevel.CREDENTIAL,
]


# Proof validity by verification level. Higher level => longer validity.
VALIDITY_PERIODS: dict[str, timedelta] = {
    VerificationLevel.BASIC: timedelta(days=30),
    VerificationLevel.ENHANCED: timedelta(days=90),
    VerificationLevel.HIGH: timedelta(days=180),
    VerificationLevel.CREDENTIAL: timedelta(days=365),
}

# Unrecognized levels (newer ledger versions) get the shortest window.
DEFAULT_VALIDITY_PERIOD = timedelta(days=7)


def validity_period(verification_level: Optional[str]) -> timedelta:
    """Validity window for a verification level."""
    if verification_level is None:
        return DEFAULT_VALIDITY_PERIOD
    return VALIDITY_PERIODS.get(verification_level, DEFAULT_VALIDITY_PERIOD)


class PermissionType(str, Enum):
    READ_ONLY = "READ_ONLY"
    READ_WRITE = "READ_WRITE"
    FULL_ACCESS = "FULL_ACCESS"


class DataType(str, Enum):
    """Known data tags. Any other string is accepted as a custom tag."""
    LOCATION_HISTORY = "LOCATION_HISTORY"
    APP_USAGE = "APP_USAGE"
    PURCHASE_HISTORY = "PURCHASE_HISTORY"
    HEALTH_DATA = "HEALTH_DATA"
    SOCIAL_MEDIA_ACTIVITY = "SOCIAL_MEDIA_ACTIVITY"
    SEARCH_HISTORY = "SEARCH_HISTORY"


class AccessGrant(BaseModel):
    """Permission for a consumer to access data types under an identity."""
    model_config = ConfigDict(frozen=True)

    identity_id: str
    consumer: str
    permission_type: str = PermissionType.READ_ONLY.value
    data_types: frozenset[str] = frozenset()
    granted_at: datetime
    expires_at: Optional[datetime] = None
    is_active: bool = True

    def is_usable(self, now: datetime) -> bool:
        """Active AND (no expiry OR expiry in the future)."""
        if not self.is_active:
            return False
        return self.expires_at is None or ensure_aware(self.expires_at) > ensure_aware(now)

    def covers(self, consumer: str, data_type: str) -> bool:
        return self.consumer == consumer and data_type in self.data_types


class IdentityRecord(BaseModel):
    """Digital identity as held by the identity ledger."""
    model_config = ConfigDict(frozen=True)

    identity_id: str
    owner: str
    provider: str
    identity_type: str
    status: IdentityStatus
    verification_level: str
    access_grants: list[AccessGrant] = Field(default_factory=list)
    created_at: datetime
    verified_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    revoked_at: Optional[datetime] = None
    revocation_reason: Optional[str] = None
    verification_method: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_verified(self) -> bool:
        return self.status == IdentityStatus.VERIFIED

    def find_usable_grant(
        self,
        consumer: str,
        data_type: str,
        now: datetime,
    ) -> Optional[AccessGrant]:
        """First usable grant matching (consumer, data_type), if any."""
        for grant in self.access_grants:
            if grant.covers(consumer, data_type) and grant.is_usable(now):
                return grant
        return None
