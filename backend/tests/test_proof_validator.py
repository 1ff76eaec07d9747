"""
DataSov Bridge - Proof Validator Tests

Validation order: format -> identity ledger -> trading ledger -> expiry.
Invalid proofs are returned, not raised.
"""

from datetime import timedelta

import pytest

from datasov.core.errors import (
    AccessNotGranted,
    ConnectionLost,
    IdentityNotFound,
    IdentityNotVerified,
)
from datasov.models.events import BridgeEventType
from datasov.models.identity import IdentityStatus
from datasov.models.proofs import IdentityProof, ProofFailure, RawValidationResult


class TestProofFormat:
    """Malformed proofs never reach a ledger."""

    @pytest.mark.asyncio
    async def test_every_missing_field_is_reported(self, ledgers, validator, identity_ledger):
        outcome = await validator.validate_identity_proof(IdentityProof(identity_id="ID_1"))

        assert outcome.valid is False
        assert outcome.failure == ProofFailure.MALFORMED_PROOF
        assert outcome.errors == [
            "Missing owner",
            "Missing verification_level",
            "Missing signature",
            "Missing ledger_ref",
        ]
        assert identity_ledger.calls["validate_identity_proof_raw"] == 0

    @pytest.mark.asyncio
    async def test_empty_proof_lists_all_required_fields(self, ledgers, validator):
        outcome = await validator.validate_identity_proof(IdentityProof())

        assert len(outcome.errors) == 5
        assert "Missing identity_id" in outcome.errors

    @pytest.mark.asyncio
    async def test_malformed_proof_emits_proof_invalid(self, ledgers, validator, bus):
        await validator.validate_identity_proof(IdentityProof(owner="someone"))

        event = bus.recent(1)[0]
        assert event.type == BridgeEventType.PROOF_INVALID
        assert event.details["failure"] == ProofFailure.MALFORMED_PROOF.value


class TestIdentityProofIssuance:

    @pytest.mark.asyncio
    async def test_high_identity_verified_at_t0_is_valid_for_180_days(
        self, ledgers, validator, make_identity, t0
    ):
        make_identity("ID_1", verification_level="HIGH")

        proof = await validator.generate_identity_proof("ID_1")

        assert proof.issued_at == t0
        assert proof.valid_until == t0 + timedelta(days=180)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "level,days",
        [
            ("BASIC", 30),
            ("ENHANCED", 90),
            ("HIGH", 180),
            ("CREDENTIAL", 365),
            ("PLATINUM", 7),
        ],
    )
    async def test_validity_window_by_level(self, ledgers, validator, make_identity, level, days):
        make_identity("ID_L", verification_level=level)

        proof = await validator.generate_identity_proof("ID_L")

        assert proof.valid_until - proof.issued_at == timedelta(days=days)

    @pytest.mark.asyncio
    async def test_repeated_proofs_are_distinct_with_same_window(
        self, ledgers, validator, make_identity
    ):
        make_identity("ID_1")

        first = await validator.generate_identity_proof("ID_1")
        second = await validator.generate_identity_proof("ID_1")

        assert first.signature != second.signature
        assert first.valid_until - first.issued_at == second.valid_until - second.issued_at

    @pytest.mark.asyncio
    async def test_proof_carries_identity_metadata(self, ledgers, validator, make_identity):
        record = make_identity("ID_1", owner="wallet_abc")

        proof = await validator.generate_identity_proof("ID_1")

        assert proof.owner == "wallet_abc"
        assert proof.verification_timestamp == record.verified_at
        assert proof.metadata["provider"] == "datasov-kyc"
        assert proof.metadata["verification_method"] == "document_scan"

    @pytest.mark.asyncio
    async def test_unknown_identity_raises(self, ledgers, validator):
        with pytest.raises(IdentityNotFound) as exc:
            await validator.generate_identity_proof("ID_MISSING")
        assert exc.value.identity_id == "ID_MISSING"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [IdentityStatus.PENDING, IdentityStatus.REVOKED, IdentityStatus.REJECTED])
    async def test_unverified_identity_raises(self, ledgers, validator, make_identity, identity_ledger, status):
        make_identity("ID_1", status=status)

        with pytest.raises(IdentityNotVerified):
            await validator.generate_identity_proof("ID_1")
        assert identity_ledger.calls["generate_identity_proof_raw"] == 0


class TestIdentityProofValidation:

    @pytest.mark.asyncio
    async def test_fresh_proof_is_valid(self, ledgers, validator, make_identity, bus):
        make_identity("ID_1")
        proof = await validator.generate_identity_proof("ID_1")

        outcome = await validator.validate_identity_proof(proof)

        assert outcome.valid is True
        assert outcome.identity_id == "ID_1"
        assert outcome.verification_level == "HIGH"
        assert outcome.valid_until == proof.valid_until
        assert bus.recent(1)[0].type == BridgeEventType.PROOF_VALIDATED

    @pytest.mark.asyncio
    async def test_bad_signature_fails_cryptographic_check(
        self, ledgers, validator, make_identity, trading_ledger
    ):
        make_identity("ID_1")
        proof = await validator.generate_identity_proof("ID_1")
        forged = proof.model_copy(update={"signature": "00" * 32})

        outcome = await validator.validate_identity_proof(forged)

        assert outcome.failure == ProofFailure.CRYPTOGRAPHIC_VALIDATION_FAILED
        assert outcome.errors == ["Invalid signature"]
        assert trading_ledger.calls["validate_identity_proof_raw"] == 0

    @pytest.mark.asyncio
    async def test_trading_ledger_rejection_fails_cross_check(
        self, ledgers, validator, make_identity, trading_ledger
    ):
        make_identity("ID_1")
        trading_ledger.set_validation_result(
            "ID_1", RawValidationResult(valid=False, errors=["Unknown identity program"])
        )
        proof = await validator.generate_identity_proof("ID_1")

        outcome = await validator.validate_identity_proof(proof)

        assert outcome.failure == ProofFailure.CROSS_LEDGER_VALIDATION_FAILED
        assert outcome.errors == ["Unknown identity program"]

    @pytest.mark.asyncio
    async def test_expired_proof_is_rejected(self, ledgers, validator, make_identity, clock):
        make_identity("ID_1", verification_level="BASIC")
        proof = await validator.generate_identity_proof("ID_1")

        clock.advance(days=30)
        outcome = await validator.validate_identity_proof(proof)

        assert outcome.valid is False
        assert outcome.failure == ProofFailure.PROOF_EXPIRED

    @pytest.mark.asyncio
    async def test_proof_without_expiry_is_not_rejected_for_expiry(
        self, ledgers, validator, make_identity, clock
    ):
        make_identity("ID_1", verification_level="BASIC")
        proof = await validator.generate_identity_proof("ID_1")
        open_ended = proof.model_copy(update={"valid_until": None})

        clock.advance(days=3650)
        outcome = await validator.validate_identity_proof(open_ended)

        assert outcome.valid is True

    @pytest.mark.asyncio
    async def test_ledger_warnings_are_kept(self, ledgers, validator, make_identity, identity_ledger):
        make_identity("ID_1")
        identity_ledger.set_validation_result(
            "ID_1", RawValidationResult(valid=True, warnings=["Level under review"])
        )
        proof = await validator.generate_identity_proof("ID_1")

        outcome = await validator.validate_identity_proof(proof)

        assert outcome.valid is True
        assert outcome.warnings == ["Level under review"]

    @pytest.mark.asyncio
    async def test_ledger_transport_failure_propagates(
        self, ledgers, validator, make_identity, identity_ledger
    ):
        make_identity("ID_1")
        proof = await validator.generate_identity_proof("ID_1")
        identity_ledger.fail("validate_identity_proof_raw", ConnectionLost("identity ledger down"))

        with pytest.raises(ConnectionLost):
            await validator.validate_identity_proof(proof)


class TestAccessProof:

    @pytest.mark.asyncio
    async def test_matching_grant_issues_proof(self, ledgers, validator, make_identity, make_grant, t0):
        grant = make_grant("ID_1", "buyer_1", ["LOCATION_HISTORY"], expires_at=t0 + timedelta(days=5))
        make_identity("ID_1", owner="wallet_owner", grants=[grant])

        proof = await validator.generate_access_proof("ID_1", "buyer_1", "LOCATION_HISTORY")

        assert proof.consumer == "buyer_1"
        assert proof.permission_type == grant.permission_type
        assert proof.granted_at == grant.granted_at
        assert proof.expires_at == grant.expires_at
        assert proof.granted_by == "wallet_owner"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "consumer,data_type,is_active,expires_in_days",
        [
            ("buyer_2", "LOCATION_HISTORY", True, None),   # other consumer
            ("buyer_1", "HEALTH_DATA", True, None),        # other data type
            ("buyer_1", "LOCATION_HISTORY", False, None),  # inactive
            ("buyer_1", "LOCATION_HISTORY", True, -1),     # expired
            ("buyer_1", "LOCATION_HISTORY", True, 0),      # expires now
        ],
    )
    async def test_unusable_grant_never_reaches_crypto(
        self,
        ledgers,
        validator,
        make_identity,
        make_grant,
        t0,
        identity_ledger,
        consumer,
        data_type,
        is_active,
        expires_in_days,
    ):
        expires_at = None if expires_in_days is None else t0 + timedelta(days=expires_in_days)
        grant = make_grant("ID_1", "buyer_1", ["LOCATION_HISTORY"], is_active=is_active, expires_at=expires_at)
        make_identity("ID_1", grants=[grant])

        with pytest.raises(AccessNotGranted) as exc:
            await validator.generate_access_proof("ID_1", consumer, data_type)

        assert exc.value.consumer == consumer
        assert identity_ledger.calls["generate_access_proof_raw"] == 0

    @pytest.mark.asyncio
    async def test_unknown_identity_raises(self, ledgers, validator, identity_ledger):
        with pytest.raises(IdentityNotFound):
            await validator.generate_access_proof("ID_MISSING", "buyer_1", "APP_USAGE")
        assert identity_ledger.calls["generate_access_proof_raw"] == 0
