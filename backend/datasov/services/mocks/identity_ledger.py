"""
DataSov Bridge - In-Memory Identity Ledger

This is a MOCK implementation of the identity ledger.
In production the bridge talks to the ledger gateway over HTTP.

Signatures are sha256 digests over the proof material; validation accepts
only signatures this instance issued for a still-VERIFIED identity.
Mutators (register / verify / revoke / grant / revoke access) update the
record and queue the matching ledger event.
"""

import hashlib
from datetime import datetime
from typing import Any, Optional

from datasov.bridges.identity_ledger import ALL_OWNERS, IdentityLedgerClient
from datasov.core.clock import Clock, utc_now
from datasov.core.errors import IdentityNotFound
from datasov.models.identity import (
    AccessGrant,
    IdentityRecord,
    IdentityStatus,
    PermissionType,
    VerificationLevel,
)
from datasov.models.proofs import IdentityProof, RawProof, RawValidationResult

from .base import InMemoryLedger


class InMemoryIdentityLedger(InMemoryLedger, IdentityLedgerClient):
    ledger_name = "identity"

    def __init__(self, clock: Clock = utc_now) -> None:
        super().__init__(clock=clock)
        self._identities: dict[str, IdentityRecord] = {}
        self._issued_signatures: dict[str, str] = {}
        self._validation_overrides: dict[str, RawValidationResult] = {}
        self.access_log: dict[str, list[dict[str, Any]]] = {}
        self.fee_distributions: dict[str, list[dict[str, Any]]] = {}

    # =========================================================================
    # SEEDING / MUTATORS
    # =========================================================================

    def put_identity(self, record: IdentityRecord) -> IdentityRecord:
        """Store a record as-is, without emitting an event."""
        self._identities[record.identity_id] = record
        return record

    def register_identity(
        self,
        identity_id: str,
        owner: str,
        provider: str = "datasov-kyc",
        identity_type: str = "NATIONAL_ID",
        verification_level: str = VerificationLevel.BASIC.value,
        verification_method: Optional[str] = None,
    ) -> IdentityRecord:
        record = IdentityRecord(
            identity_id=identity_id,
            owner=owner,
            provider=provider,
            identity_type=identity_type,
            status=IdentityStatus.PENDING,
            verification_level=verification_level,
            created_at=self._clock(),
            verification_method=verification_method,
        )
        self._identities[identity_id] = record
        self.emit("IDENTITY_REGISTERED", identity_id, {"owner": owner, "provider": provider})
        return record

    def verify_identity(
        self,
        identity_id: str,
        verification_level: Optional[str] = None,
    ) -> IdentityRecord:
        record = self._replace(
            identity_id,
            status=IdentityStatus.VERIFIED,
            verification_level=verification_level or self._get(identity_id).verification_level,
            verified_at=self._clock(),
        )
        self.emit(
            "IDENTITY_VERIFIED",
            identity_id,
            {"verification_level": record.verification_level},
        )
        return record

    def revoke_identity(self, identity_id: str, reason: str = "revoked by provider") -> IdentityRecord:
        record = self._replace(
            identity_id,
            status=IdentityStatus.REVOKED,
            revoked_at=self._clock(),
            revocation_reason=reason,
        )
        self.emit("IDENTITY_REVOKED", identity_id, {"reason": reason})
        return record

    def grant_access(
        self,
        identity_id: str,
        consumer: str,
        data_types: list[str],
        permission_type: str = PermissionType.READ_ONLY.value,
        expires_at: Optional[datetime] = None,
    ) -> AccessGrant:
        grant = AccessGrant(
            identity_id=identity_id,
            consumer=consumer,
            permission_type=permission_type,
            data_types=frozenset(data_types),
            granted_at=self._clock(),
            expires_at=expires_at,
        )
        current = self._get(identity_id)
        self._replace(identity_id, access_grants=[*current.access_grants, grant])
        self.emit(
            "ACCESS_GRANTED",
            identity_id,
            {"consumer": consumer, "data_types": sorted(data_types)},
        )
        return grant

    def revoke_access(self, identity_id: str, consumer: str) -> None:
        current = self._get(identity_id)
        grants = [
            grant.model_copy(update={"is_active": False}) if grant.consumer == consumer else grant
            for grant in current.access_grants
        ]
        self._replace(identity_id, access_grants=grants)
        self.emit("ACCESS_REVOKED", identity_id, {"consumer": consumer})

    def set_validation_result(self, identity_id: str, result: RawValidationResult) -> None:
        """Force the ledger's verdict for one identity's proofs."""
        self._validation_overrides[identity_id] = result

    def _get(self, identity_id: str) -> IdentityRecord:
        record = self._identities.get(identity_id)
        if record is None:
            raise IdentityNotFound(identity_id)
        return record

    def _replace(self, identity_id: str, **changes: Any) -> IdentityRecord:
        record = self._get(identity_id).model_copy(
            update={**changes, "updated_at": self._clock()}
        )
        self._identities[identity_id] = record
        return record

    # =========================================================================
    # CLIENT INTERFACE
    # =========================================================================

    async def get_identity(self, identity_id: str) -> Optional[IdentityRecord]:
        self._call("get_identity")
        self._require_connection()
        return self._identities.get(identity_id)

    async def get_identities_by_owner(self, owner: str) -> list[IdentityRecord]:
        self._call("get_identities_by_owner")
        self._require_connection()
        if owner == ALL_OWNERS:
            return list(self._identities.values())
        return [record for record in self._identities.values() if record.owner == owner]

    async def get_identities_as_provider(self, provider: str) -> list[IdentityRecord]:
        self._call("get_identities_as_provider")
        self._require_connection()
        return [record for record in self._identities.values() if record.provider == provider]

    async def generate_identity_proof_raw(self, identity_id: str) -> RawProof:
        self._call("generate_identity_proof_raw")
        self._require_connection()
        record = self._get(identity_id)
        ledger_ref = self._new_ref()
        signature = self._digest(record.identity_id, record.owner, record.verification_level, ledger_ref)
        self._issued_signatures[signature] = identity_id
        return RawProof(signature=signature, ledger_ref=ledger_ref)

    async def generate_access_proof_raw(
        self,
        identity_id: str,
        consumer: str,
        data_type: str,
    ) -> RawProof:
        self._call("generate_access_proof_raw")
        self._require_connection()
        self._get(identity_id)
        ledger_ref = self._new_ref()
        return RawProof(
            signature=self._digest(identity_id, consumer, data_type, ledger_ref),
            ledger_ref=ledger_ref,
        )

    async def validate_identity_proof_raw(self, proof: IdentityProof) -> RawValidationResult:
        self._call("validate_identity_proof_raw")
        self._require_connection()

        override = self._validation_overrides.get(proof.identity_id or "")
        if override is not None:
            return override

        record = self._identities.get(proof.identity_id or "")
        if record is None:
            return RawValidationResult(valid=False, errors=["Identity not found"])

        errors = []
        if self._issued_signatures.get(proof.signature or "") != record.identity_id:
            errors.append("Invalid signature")
        if record.status != IdentityStatus.VERIFIED:
            errors.append(f"Identity status is {record.status.value}")

        warnings = []
        if proof.verification_level != record.verification_level:
            warnings.append("Verification level changed since proof was issued")
        return RawValidationResult(valid=not errors, errors=errors, warnings=warnings)

    async def append_access_log(self, identity_id: str, entry: dict[str, Any]) -> None:
        self._call("append_access_log")
        self._require_connection()
        self._get(identity_id)
        self.access_log.setdefault(identity_id, []).append(dict(entry))

    async def record_fee_distribution(self, identity_id: str, details: dict[str, Any]) -> None:
        self._call("record_fee_distribution")
        self._require_connection()
        self._get(identity_id)
        self.fee_distributions.setdefault(identity_id, []).append(dict(details))

    @staticmethod
    def _digest(*parts: str) -> str:
        return hashlib.sha256(":".join(parts).encode("utf-8")).hexdigest()
