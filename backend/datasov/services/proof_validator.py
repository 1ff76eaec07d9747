"""
DataSov Bridge - Proof Validator

Issues and validates the proofs that let the trading ledger trust
identity-ledger state without talking to it directly.

VALIDATION PIPELINE (short-circuits on first failure):
1. Format            -> MalformedProof (every missing field listed)
2. Identity ledger   -> CryptographicValidationFailed
3. Trading ledger    -> CrossLedgerValidationFailed (second, independent check)
4. Expiry            -> ProofExpired

An invalid proof is an expected outcome, so it is RETURNED as a
ValidationOutcome, never raised. Ledger transport failures are not
validation outcomes and propagate unchanged.

ACCESS PROOFS:
The grant check happens BEFORE the ledger's cryptographic primitive is
called; no signature is ever produced for ungranted access.
"""

import logging

from datasov.bridges.identity_ledger import IdentityLedgerClient
from datasov.bridges.trading_ledger import TradingLedgerClient
from datasov.core.clock import Clock, ensure_aware, utc_now
from datasov.core.errors import AccessNotGranted, IdentityNotFound, IdentityNotVerified
from datasov.models.events import BridgeEventType
from datasov.models.identity import IdentityRecord, validity_period
from datasov.models.proofs import (
    AccessProof,
    IdentityProof,
    ProofFailure,
    ValidationOutcome,
)

from .event_bus import BridgeEventBus
from .identity_cache import IdentityCache

logger = logging.getLogger(__name__)


class ProofValidator:
    def __init__(
        self,
        identity_ledger: IdentityLedgerClient,
        trading_ledger: TradingLedgerClient,
        cache: IdentityCache,
        bus: BridgeEventBus,
        clock: Clock = utc_now,
    ) -> None:
        self._identity_ledger = identity_ledger
        self._trading_ledger = trading_ledger
        self._cache = cache
        self._bus = bus
        self._clock = clock

    # =========================================================================
    # ISSUANCE
    # =========================================================================

    async def generate_identity_proof(
        self,
        identity_id: str,
        fresh: bool = False,
    ) -> IdentityProof:
        """
        Issue a fresh identity proof.

        Repeated calls for an unchanged identity return distinct proofs
        (new signature and issue time) with the same validity window length.
        With ``fresh`` the record is re-read from the ledger instead of the
        cache.

        Raises:
            IdentityNotFound: no such identity
            IdentityNotVerified: identity status is not VERIFIED
        """
        record = await self._require_identity(identity_id, fresh=fresh)
        if not record.is_verified:
            raise IdentityNotVerified(identity_id, record.status.value)

        raw = await self._identity_ledger.generate_identity_proof_raw(identity_id)
        issued_at = self._clock()

        proof = IdentityProof(
            identity_id=record.identity_id,
            owner=record.owner,
            verification_level=record.verification_level,
            verification_timestamp=record.verified_at or issued_at,
            ledger_ref=raw.ledger_ref,
            signature=raw.signature,
            issued_at=issued_at,
            valid_until=issued_at + validity_period(record.verification_level),
            metadata={
                "identity_type": record.identity_type,
                "provider": record.provider,
                "verification_method": record.verification_method,
                "created_at": record.created_at.isoformat(),
            },
        )
        logger.info(f"[PROOF] Generated identity proof for {identity_id}")
        return proof

    async def generate_access_proof(
        self,
        identity_id: str,
        consumer: str,
        data_type: str,
    ) -> AccessProof:
        """
        Issue an access proof for (consumer, data_type) under an identity.

        Raises:
            IdentityNotFound: no such identity
            AccessNotGranted: no active, unexpired grant matches
        """
        record = await self._require_identity(identity_id)
        now = self._clock()

        grant = record.find_usable_grant(consumer, data_type, now)
        if grant is None:
            logger.warning(
                f"[PROOF] Access not granted: {consumer} -> {identity_id} ({data_type})"
            )
            raise AccessNotGranted(identity_id, consumer, data_type)

        raw = await self._identity_ledger.generate_access_proof_raw(
            identity_id, consumer, data_type
        )

        logger.info(f"[PROOF] Generated access proof for {identity_id} -> {consumer}")
        return AccessProof(
            identity_id=identity_id,
            consumer=consumer,
            data_type=data_type,
            permission_type=grant.permission_type,
            granted_at=grant.granted_at,
            expires_at=grant.expires_at,
            granted_by=record.owner,
            signature=raw.signature,
            ledger_ref=raw.ledger_ref,
            issued_at=now,
        )

    async def _require_identity(self, identity_id: str, fresh: bool = False) -> IdentityRecord:
        if fresh:
            record = await self._cache.refresh(identity_id)
        else:
            record = await self._cache.get(identity_id)
        if record is None:
            raise IdentityNotFound(identity_id)
        return record

    # =========================================================================
    # VALIDATION
    # =========================================================================

    async def validate_identity_proof(self, proof: IdentityProof) -> ValidationOutcome:
        logger.info(f"[PROOF] Validating identity proof for {proof.identity_id}")

        missing = proof.missing_fields()
        if missing:
            return await self._reject(
                proof,
                ProofFailure.MALFORMED_PROOF,
                [f"Missing {name}" for name in missing],
            )

        ledger_result = await self._identity_ledger.validate_identity_proof_raw(proof)
        if not ledger_result.valid:
            return await self._reject(
                proof,
                ProofFailure.CRYPTOGRAPHIC_VALIDATION_FAILED,
                ledger_result.errors or ["Proof validation failed"],
            )

        cross_result = await self._trading_ledger.validate_identity_proof_raw(proof)
        if not cross_result.valid:
            return await self._reject(
                proof,
                ProofFailure.CROSS_LEDGER_VALIDATION_FAILED,
                cross_result.errors or ["Trading ledger rejected proof"],
            )

        if proof.valid_until is not None and ensure_aware(proof.valid_until) <= self._clock():
            return await self._reject(proof, ProofFailure.PROOF_EXPIRED, ["Proof has expired"])

        await self._bus.emit_bridge_event(
            BridgeEventType.PROOF_VALIDATED,
            {
                "identity_id": proof.identity_id,
                "verification_level": proof.verification_level,
            },
        )
        logger.info(f"[PROOF] Identity proof valid for {proof.identity_id}")

        return ValidationOutcome(
            valid=True,
            identity_id=proof.identity_id,
            verification_level=proof.verification_level,
            valid_until=proof.valid_until,
            warnings=ledger_result.warnings + cross_result.warnings,
        )

    async def _reject(
        self,
        proof: IdentityProof,
        failure: ProofFailure,
        errors: list[str],
    ) -> ValidationOutcome:
        logger.warning(
            f"[PROOF] Identity proof rejected for {proof.identity_id}: "
            f"{failure.value} ({', '.join(errors)})"
        )
        await self._bus.emit_bridge_event(
            BridgeEventType.PROOF_INVALID,
            {
                "identity_id": proof.identity_id,
                "failure": failure.value,
                "errors": errors,
            },
        )
        return ValidationOutcome(
            valid=False,
            identity_id=proof.identity_id,
            verification_level=proof.verification_level,
            failure=failure,
            errors=errors,
        )
