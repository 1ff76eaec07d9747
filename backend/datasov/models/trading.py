"""
DataSov Bridge - Trading Ledger Records
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .proofs import AccessProof


class Listing(BaseModel):
    """Tokenized data listing on the trading ledger."""
    model_config = ConfigDict(frozen=True)

    listing_id: int
    owner: str
    identity_id: str
    price: int  # lamports
    data_type: str
    description: str = ""
    is_active: bool = True
    created_at: datetime
    sold_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    buyer: Optional[str] = None
    flagged_for_removal: bool = False


class ListingRequest(BaseModel):
    """Payload handed to the trading ledger once the owner identity validated."""
    owner: str
    listing_id: int
    price: int = Field(..., gt=0)
    data_type: str
    description: str = ""
    identity_id: str
    access_proof: Optional[AccessProof] = None


class PurchaseRequest(BaseModel):
    listing_id: int
    buyer: str
    identity_id: str
    token_mint: Optional[str] = None
    access_proof: AccessProof


class PurchaseResult(BaseModel):
    """Settled purchase. fee = price * fee_bps // 10000, owner gets the rest."""
    listing_id: int
    buyer: str
    ledger_ref: str
    price: int
    fee_amount: int
    owner_amount: int
    purchased_at: datetime
