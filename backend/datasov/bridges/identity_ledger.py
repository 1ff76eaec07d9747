"""
DataSov Bridge - Identity Ledger (Chain A)

The permissioned identity ledger is the system of record for identities and
access grants. The bridge reads from it, asks it for cryptographic proof
material, and writes best-effort access-log / fee entries back.
"""

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Optional

from datasov.models.events import RawLedgerEvent
from datasov.models.identity import IdentityRecord
from datasov.models.proofs import IdentityProof, RawProof, RawValidationResult

from .http import HttpLedgerClient, segment

# Owner scope understood by the ledger as "every identity".
ALL_OWNERS = "all"


class IdentityLedgerClient(ABC):
    """
    Abstract interface for the identity ledger.

    The bridge uses this to:
    - look up identities and their grants
    - obtain signatures for identity / access proofs
    - validate proofs cryptographically
    - receive identity and access events
    """

    @abstractmethod
    async def connect(self) -> None:
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        pass

    @abstractmethod
    def is_healthy(self) -> bool:
        pass

    @abstractmethod
    async def get_identity(self, identity_id: str) -> Optional[IdentityRecord]:
        """None when the ledger has no such identity."""
        pass

    @abstractmethod
    async def get_identities_by_owner(self, owner: str) -> list[IdentityRecord]:
        """Identities owned by ``owner``; ALL_OWNERS lists every identity."""
        pass

    @abstractmethod
    async def get_identities_as_provider(self, provider: str) -> list[IdentityRecord]:
        pass

    @abstractmethod
    async def generate_identity_proof_raw(self, identity_id: str) -> RawProof:
        pass

    @abstractmethod
    async def generate_access_proof_raw(
        self,
        identity_id: str,
        consumer: str,
        data_type: str,
    ) -> RawProof:
        """
        Cryptographic access-proof primitive.

        Only called after the bridge found a usable grant.
        """
        pass

    @abstractmethod
    async def validate_identity_proof_raw(self, proof: IdentityProof) -> RawValidationResult:
        pass

    @abstractmethod
    async def append_access_log(self, identity_id: str, entry: dict[str, Any]) -> None:
        pass

    @abstractmethod
    async def record_fee_distribution(self, identity_id: str, details: dict[str, Any]) -> None:
        pass

    @abstractmethod
    def events(self) -> AsyncIterator[RawLedgerEvent]:
        """Event subscription, delivered in ledger order."""
        pass

    def get_metrics(self) -> dict[str, Any]:
        return {}


class HttpIdentityLedgerClient(HttpLedgerClient, IdentityLedgerClient):
    """Identity ledger reached through its JSON gateway."""

    ledger_name = "identity"

    async def get_identity(self, identity_id: str) -> Optional[IdentityRecord]:
        path = f"/api/v1/identities/{segment(identity_id)}"
        data = await self._request("GET", path, allow_404=True)
        if data is None:
            return None
        return IdentityRecord.model_validate(data)

    async def get_identities_by_owner(self, owner: str) -> list[IdentityRecord]:
        data = await self._request("GET", "/api/v1/identities", params={"owner": owner})
        return [IdentityRecord.model_validate(item) for item in data or []]

    async def get_identities_as_provider(self, provider: str) -> list[IdentityRecord]:
        data = await self._request("GET", "/api/v1/identities", params={"provider": provider})
        return [IdentityRecord.model_validate(item) for item in data or []]

    async def generate_identity_proof_raw(self, identity_id: str) -> RawProof:
        data = await self._request("POST", f"/api/v1/identities/{segment(identity_id)}/proofs")
        return RawProof.model_validate(data)

    async def generate_access_proof_raw(
        self,
        identity_id: str,
        consumer: str,
        data_type: str,
    ) -> RawProof:
        data = await self._request(
            "POST",
            f"/api/v1/identities/{segment(identity_id)}/access-proofs",
            json={"consumer": consumer, "data_type": data_type},
        )
        return RawProof.model_validate(data)

    async def validate_identity_proof_raw(self, proof: IdentityProof) -> RawValidationResult:
        data = await self._request(
            "POST",
            "/api/v1/proofs/validate",
            json=proof.model_dump(mode="json"),
        )
        return RawValidationResult.model_validate(data)

    async def append_access_log(self, identity_id: str, entry: dict[str, Any]) -> None:
        path = f"/api/v1/identities/{segment(identity_id)}/access-log"
        await self._request("POST", path, json=entry)

    async def record_fee_distribution(self, identity_id: str, details: dict[str, Any]) -> None:
        await self._request(
            "POST",
            f"/api/v1/identities/{segment(identity_id)}/fee-distributions",
            json=details,
        )
