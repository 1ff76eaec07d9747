"""
DataSov Bridge - In-Memory Trading Ledger

This is a MOCK implementation of the trading ledger marketplace.

Contract:
    - listings are created only through create_listing
    - a purchase settles the listing and splits the price into a
      marketplace fee (basis points, integer division) and the owner share
    - every purchase queues DATA_PURCHASED then FEE_DISTRIBUTED
    - identities with trading disabled fail the secondary proof check
"""

from typing import Any, Optional

from datasov.bridges.trading_ledger import TradingLedgerClient
from datasov.core.clock import Clock, utc_now
from datasov.core.errors import LedgerClientError
from datasov.models.proofs import IdentityProof, RawValidationResult
from datasov.models.trading import Listing, ListingRequest, PurchaseRequest, PurchaseResult

from .base import InMemoryLedger

BASIS_POINTS = 10_000


class InMemoryTradingLedger(InMemoryLedger, TradingLedgerClient):
    ledger_name = "trading"

    def __init__(self, fee_basis_points: int = 250, clock: Clock = utc_now) -> None:
        super().__init__(clock=clock)
        if not 0 <= fee_basis_points <= BASIS_POINTS:
            raise ValueError("fee_basis_points must be between 0 and 10000")
        self.fee_basis_points = fee_basis_points
        self._listings: dict[int, Listing] = {}
        self._trading_disabled: set[str] = set()
        self._validation_overrides: dict[str, RawValidationResult] = {}
        self.purchases: list[PurchaseResult] = []

    def trading_enabled(self, identity_id: str) -> bool:
        return identity_id not in self._trading_disabled

    def set_validation_result(self, identity_id: str, result: RawValidationResult) -> None:
        self._validation_overrides[identity_id] = result

    def put_listing(self, listing: Listing) -> Listing:
        """Store a listing as-is, bypassing identity checks."""
        self._listings[listing.listing_id] = listing
        return listing

    # =========================================================================
    # CLIENT INTERFACE
    # =========================================================================

    async def create_listing(self, request: ListingRequest) -> str:
        self._call("create_listing")
        self._require_connection()
        if request.listing_id in self._listings:
            raise LedgerClientError(f"Listing {request.listing_id} already exists", status_code=409)
        if not self.trading_enabled(request.identity_id):
            raise LedgerClientError(
                f"Trading disabled for identity {request.identity_id}",
                status_code=403,
            )

        self._listings[request.listing_id] = Listing(
            listing_id=request.listing_id,
            owner=request.owner,
            identity_id=request.identity_id,
            price=request.price,
            data_type=request.data_type,
            description=request.description,
            created_at=self._clock(),
        )
        return self._new_ref()

    async def get_listing(self, listing_id: int) -> Optional[Listing]:
        self._call("get_listing")
        self._require_connection()
        return self._listings.get(listing_id)

    async def get_active_listings(self) -> list[Listing]:
        self._call("get_active_listings")
        self._require_connection()
        return [listing for listing in self._listings.values() if listing.is_active]

    async def purchase(self, request: PurchaseRequest) -> PurchaseResult:
        self._call("purchase")
        self._require_connection()
        listing = self._listings.get(request.listing_id)
        if listing is None:
            raise LedgerClientError(f"Listing {request.listing_id} not found", status_code=404)
        if not listing.is_active or listing.flagged_for_removal:
            raise LedgerClientError(f"Listing {request.listing_id} is not active", status_code=409)

        now = self._clock()
        fee_amount = listing.price * self.fee_basis_points // BASIS_POINTS
        ledger_ref = self._new_ref()
        result = PurchaseResult(
            listing_id=listing.listing_id,
            buyer=request.buyer,
            ledger_ref=ledger_ref,
            price=listing.price,
            fee_amount=fee_amount,
            owner_amount=listing.price - fee_amount,
            purchased_at=now,
        )
        self._listings[listing.listing_id] = listing.model_copy(
            update={"is_active": False, "sold_at": now, "buyer": request.buyer}
        )
        self.purchases.append(result)

        self.emit(
            "DATA_PURCHASED",
            listing.identity_id,
            {"listing_id": listing.listing_id, "buyer": request.buyer, "amount": listing.price},
            ledger_ref=ledger_ref,
        )
        self.emit(
            "FEE_DISTRIBUTED",
            listing.identity_id,
            {
                "listing_id": listing.listing_id,
                "fee_amount": result.fee_amount,
                "owner_amount": result.owner_amount,
            },
            ledger_ref=ledger_ref,
        )
        return result

    async def validate_identity_proof_raw(self, proof: IdentityProof) -> RawValidationResult:
        self._call("validate_identity_proof_raw")
        self._require_connection()

        override = self._validation_overrides.get(proof.identity_id or "")
        if override is not None:
            return override
        if not self.trading_enabled(proof.identity_id or ""):
            return RawValidationResult(
                valid=False,
                errors=[f"Trading disabled for identity {proof.identity_id}"],
            )
        return RawValidationResult(valid=True)

    async def enable_trading(self, identity_id: str) -> None:
        self._call("enable_trading")
        self._require_connection()
        self._trading_disabled.discard(identity_id)

    async def disable_trading(self, identity_id: str) -> None:
        self._call("disable_trading")
        self._require_connection()
        self._trading_disabled.add(identity_id)

    async def flag_listings_for_removal(self, identity_id: str) -> list[int]:
        self._call("flag_listings_for_removal")
        self._require_connection()
        flagged = []
        for listing in list(self._listings.values()):
            if listing.identity_id == identity_id and listing.is_active and not listing.flagged_for_removal:
                self._listings[listing.listing_id] = listing.model_copy(
                    update={"flagged_for_removal": True}
                )
                flagged.append(listing.listing_id)
        return flagged

    def get_metrics(self) -> dict[str, Any]:
        metrics = super().get_metrics()
        metrics.update({
            "listing_count": len(self._listings),
            "purchase_count": len(self.purchases),
            "fee_basis_points": self.fee_basis_points,
        })
        return metrics
