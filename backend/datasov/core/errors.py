"""
DataSov Bridge - Error Taxonomy

Validation failures are NOT exceptions: they come back as a
ValidationOutcome carrying a ProofFailure (see models.proofs).

Raised here:
- Precondition errors abort the single composite operation that hit them.
- Infrastructure errors abort start() but are only logged by stop().
"""

from typing import Any, Optional


class BridgeError(Exception):
    """Base class for every error raised by the bridge."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details: dict[str, Any] = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": type(self).__name__,
            "message": self.message,
            "details": self.details,
        }


# =============================================================================
# PRECONDITION
# =============================================================================

class PreconditionFailed(BridgeError):
    """A composite operation cannot proceed for the given entity."""
    pass


class IdentityNotFound(PreconditionFailed):
    """Raised when the identity ledger has no record for an id."""

    def __init__(self, identity_id: str) -> None:
        super().__init__(
            f"Identity {identity_id} not found",
            {"identity_id": identity_id},
        )
        self.identity_id = identity_id


class IdentityNotVerified(PreconditionFailed):
    """Raised when a proof is requested for an identity that is not VERIFIED."""

    def __init__(self, identity_id: str, status: str) -> None:
        super().__init__(
            f"Identity {identity_id} is not verified (status={status})",
            {"identity_id": identity_id, "status": status},
        )
        self.identity_id = identity_id
        self.status = status


class AccessNotGranted(PreconditionFailed):
    """Raised when no usable grant matches (consumer, data_type)."""

    def __init__(self, identity_id: str, consumer: str, data_type: str) -> None:
        super().__init__(
            f"Access not granted: {consumer} -> {identity_id} ({data_type})",
            {"identity_id": identity_id, "consumer": consumer, "data_type": data_type},
        )
        self.identity_id = identity_id
        self.consumer = consumer
        self.data_type = data_type


class ListingNotFound(PreconditionFailed):
    """Raised when the trading ledger has no listing for an id."""

    def __init__(self, listing_id: int) -> None:
        super().__init__(
            f"Listing {listing_id} not found",
            {"listing_id": listing_id},
        )
        self.listing_id = listing_id


class IdentityValidationFailed(PreconditionFailed):
    """Raised when a freshly issued identity proof does not validate."""

    def __init__(
        self,
        identity_id: str,
        errors: list[str],
        failure: Optional[str] = None,
    ) -> None:
        super().__init__(
            f"Identity proof validation failed for {identity_id}",
            {"identity_id": identity_id, "errors": list(errors), "failure": failure},
        )
        self.identity_id = identity_id
        self.errors = list(errors)
        self.failure = failure


# =============================================================================
# INFRASTRUCTURE
# =============================================================================

class BridgeStartupFailed(BridgeError):
    """Raised when start() cannot bring both ledger connections up."""
    pass


class ConnectionLost(BridgeError):
    """Raised when a ledger cannot be reached."""
    pass


class LedgerClientError(BridgeError):
    """Raised when a ledger answers with an unexpected status."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, {**(details or {}), "status_code": status_code})
        self.status_code = status_code


class LifecycleTransitionError(BridgeError):
    """Raised when the bridge lifecycle is asked for a transition it does not allow."""
    pass
