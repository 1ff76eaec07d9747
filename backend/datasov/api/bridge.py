"""
DataSov Bridge - Bridge API Routes

Thin mapping from HTTP onto the orchestrator. Bridge errors become HTTP
statuses in one place (register_error_handlers):

    IdentityNotFound / ListingNotFound         -> 404
    IdentityNotVerified / AccessNotGranted     -> 403
    IdentityValidationFailed                   -> 422
    ConnectionLost / LedgerClientError         -> 502
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from datasov.core.errors import (
    AccessNotGranted,
    BridgeError,
    ConnectionLost,
    IdentityNotFound,
    IdentityNotVerified,
    IdentityValidationFailed,
    LedgerClientError,
    ListingNotFound,
)
from datasov.dependencies import get_bridge
from datasov.models.proofs import AccessProof, IdentityProof, ValidationOutcome
from datasov.models.sync import BridgeStatus, StateSnapshot, SyncResult
from datasov.models.trading import PurchaseResult
from datasov.services.orchestrator import BridgeOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/bridge", tags=["Bridge"])


# =============================================================================
# REQUEST / RESPONSE BODIES
# =============================================================================

class IdentityProofRequest(BaseModel):
    identity_id: str


class AccessProofRequest(BaseModel):
    identity_id: str
    consumer: str
    data_type: str


class CreateListingRequest(BaseModel):
    owner: str
    listing_id: int
    price: int = Field(..., gt=0, description="Price in lamports")
    data_type: str
    description: str = ""
    identity_id: str
    access_proof: Optional[AccessProof] = None


class CreateListingResponse(BaseModel):
    listing_id: int
    ledger_ref: str


class PurchaseDataRequest(BaseModel):
    buyer: str
    listing_id: int
    identity_id: str
    token_mint: Optional[str] = None


class SigningKeyResponse(BaseModel):
    key_id: str
    algorithm: str = "Ed25519"
    public_key_pem: str


# =============================================================================
# STATUS
# =============================================================================

@router.get("/status", response_model=BridgeStatus)
async def get_status(bridge: BridgeOrchestrator = Depends(get_bridge)) -> BridgeStatus:
    return bridge.get_status()


@router.get("/snapshot", response_model=StateSnapshot)
async def get_snapshot(bridge: BridgeOrchestrator = Depends(get_bridge)) -> StateSnapshot:
    """Identities and active listings, read fresh from both ledgers."""
    return await bridge.get_state_snapshot()


@router.post("/sync", response_model=SyncResult)
async def synchronize(bridge: BridgeOrchestrator = Depends(get_bridge)) -> SyncResult:
    """Run one reconciliation pass now."""
    return await bridge.synchronize_state()


@router.get("/events")
async def recent_events(
    limit: int = Query(50, ge=1, le=500),
    bridge: BridgeOrchestrator = Depends(get_bridge),
) -> list[dict[str, Any]]:
    """Recent bridge and cross-chain events, oldest first."""
    return [event.model_dump(mode="json") for event in bridge.recent_events(limit)]


@router.get("/signing-key", response_model=SigningKeyResponse)
async def signing_key(bridge: BridgeOrchestrator = Depends(get_bridge)) -> SigningKeyResponse:
    """Public key that verifies CrossChainEvent signatures."""
    return SigningKeyResponse(
        key_id=bridge.signer.key_id,
        public_key_pem=bridge.signer.public_key_pem,
    )


# =============================================================================
# PROOFS
# =============================================================================

@router.post("/proofs/identity", response_model=IdentityProof)
async def generate_identity_proof(
    body: IdentityProofRequest,
    bridge: BridgeOrchestrator = Depends(get_bridge),
) -> IdentityProof:
    return await bridge.generate_identity_proof(body.identity_id)


@router.post("/proofs/validate", response_model=ValidationOutcome)
async def validate_identity_proof(
    proof: IdentityProof,
    bridge: BridgeOrchestrator = Depends(get_bridge),
) -> ValidationOutcome:
    """Invalid proofs come back as 200 with valid=false."""
    return await bridge.validate_identity_proof(proof)


@router.post("/proofs/access", response_model=AccessProof)
async def generate_access_proof(
    body: AccessProofRequest,
    bridge: BridgeOrchestrator = Depends(get_bridge),
) -> AccessProof:
    return await bridge.generate_access_proof(body.identity_id, body.consumer, body.data_type)


# =============================================================================
# MARKETPLACE
# =============================================================================

@router.post("/listings", response_model=CreateListingResponse, status_code=201)
async def create_listing(
    body: CreateListingRequest,
    bridge: BridgeOrchestrator = Depends(get_bridge),
) -> CreateListingResponse:
    ledger_ref = await bridge.create_data_listing(
        owner=body.owner,
        listing_id=body.listing_id,
        price=body.price,
        data_type=body.data_type,
        description=body.description,
        identity_id=body.identity_id,
        access_proof=body.access_proof,
    )
    return CreateListingResponse(listing_id=body.listing_id, ledger_ref=ledger_ref)


@router.post("/purchases", response_model=PurchaseResult, status_code=201)
async def purchase_data(
    body: PurchaseDataRequest,
    bridge: BridgeOrchestrator = Depends(get_bridge),
) -> PurchaseResult:
    return await bridge.purchase_data(
        buyer=body.buyer,
        listing_id=body.listing_id,
        identity_id=body.identity_id,
        token_mint=body.token_mint,
    )


# =============================================================================
# ERROR MAPPING
# =============================================================================

_STATUS_BY_ERROR: list[tuple[type[BridgeError], int]] = [
    (IdentityNotFound, 404),
    (ListingNotFound, 404),
    (IdentityNotVerified, 403),
    (AccessNotGranted, 403),
    (IdentityValidationFailed, 422),
    (ConnectionLost, 502),
    (LedgerClientError, 502),
]


def status_for(error: BridgeError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return status_code
    return 500


async def bridge_error_handler(request: Request, exc: BridgeError) -> JSONResponse:
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error(f"[API] {request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=status_code, content=exc.to_dict())


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BridgeError, bridge_error_handler)
