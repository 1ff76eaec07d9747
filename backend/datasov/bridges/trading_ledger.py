"""
DataSov Bridge - Trading Ledger (Chain B)

The open trading ledger hosts tokenized data listings and purchases. It also
runs its own identity-proof check, which the bridge uses as a second,
independent validator.
"""

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Optional

from datasov.models.events import RawLedgerEvent
from datasov.models.proofs import IdentityProof, RawValidationResult
from datasov.models.trading import Listing, ListingRequest, PurchaseRequest, PurchaseResult

from .http import HttpLedgerClient, segment


class TradingLedgerClient(ABC):
    """
    Abstract interface for the trading ledger.

    The bridge uses this to:
    - create listings and execute purchases once proofs check out
    - cross-check identity proofs
    - switch trading on/off per identity as identity state changes
    - receive purchase and fee events
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
    async def create_listing(self, request: ListingRequest) -> str:
        """Returns the ledger transaction reference."""
        pass

    @abstractmethod
    async def get_listing(self, listing_id: int) -> Optional[Listing]:
        pass

    @abstractmethod
    async def get_active_listings(self) -> list[Listing]:
        pass

    @abstractmethod
    async def purchase(self, request: PurchaseRequest) -> PurchaseResult:
        pass

    @abstractmethod
    async def validate_identity_proof_raw(self, proof: IdentityProof) -> RawValidationResult:
        pass

    @abstractmethod
    async def enable_trading(self, identity_id: str) -> None:
        pass

    @abstractmethod
    async def disable_trading(self, identity_id: str) -> None:
        pass

    @abstractmethod
    async def flag_listings_for_removal(self, identity_id: str) -> list[int]:
        """Flags every active listing backed by the identity; returns their ids."""
        pass

    @abstractmethod
    def events(self) -> AsyncIterator[RawLedgerEvent]:
        pass

    def get_metrics(self) -> dict[str, Any]:
        return {}


class HttpTradingLedgerClient(HttpLedgerClient, TradingLedgerClient):
    """Trading ledger reached through its JSON gateway."""

    ledger_name = "trading"

    async def create_listing(self, request: ListingRequest) -> str:
        data = await self._request("POST", "/api/v1/listings", json=request.model_dump(mode="json"))
        return data["ledger_ref"]

    async def get_listing(self, listing_id: int) -> Optional[Listing]:
        path = f"/api/v1/listings/{segment(listing_id)}"
        data = await self._request("GET", path, allow_404=True)
        if data is None:
            return None
        return Listing.model_validate(data)

    async def get_active_listings(self) -> list[Listing]:
        data = await self._request("GET", "/api/v1/listings", params={"active": "true"})
        return [Listing.model_validate(item) for item in data or []]

    async def purchase(self, request: PurchaseRequest) -> PurchaseResult:
        data = await self._request(
            "POST",
            f"/api/v1/listings/{segment(request.listing_id)}/purchases",
            json=request.model_dump(mode="json"),
        )
        return PurchaseResult.model_validate(data)

    async def validate_identity_proof_raw(self, proof: IdentityProof) -> RawValidationResult:
        data = await self._request(
            "POST",
            "/api/v1/identity-proofs/validate",
            json=proof.model_dump(mode="json"),
        )
        return RawValidationResult.model_validate(data)

    async def enable_trading(self, identity_id: str) -> None:
        await self._set_trading(identity_id, True)

    async def disable_trading(self, identity_id: str) -> None:
        await self._set_trading(identity_id, False)

    async def _set_trading(self, identity_id: str, enabled: bool) -> None:
        path = f"/api/v1/traders/{segment(identity_id)}"
        await self._request("PUT", path, json={"enabled": enabled})

    async def flag_listings_for_removal(self, identity_id: str) -> list[int]:
        path = f"/api/v1/traders/{segment(identity_id)}/flag-listings"
        data = await self._request("POST", path)
        return list((data or {}).get("listing_ids", []))
