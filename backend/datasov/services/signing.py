"""
DataSov Bridge - Cross-Chain Event Signing

Every CrossChainEvent leaves the bridge signed with Ed25519 so downstream
consumers can check it came from this bridge without a round trip.

Signature = base64(Ed25519(canonical JSON of every field except signature)).
"""

import base64
import json
import logging
from typing import Any, Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ed25519

from datasov.models.events import CrossChainEvent

logger = logging.getLogger(__name__)

SIGNATURE_ALGORITHM = "Ed25519"


def canonicalize(data: Any) -> bytes:
    """Sorted keys, no whitespace."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=str).encode("utf-8")


class EventSigner:
    """Signs and verifies CrossChainEvents with the bridge key."""

    def __init__(
        self,
        private_key: Optional[ed25519.Ed25519PrivateKey] = None,
        key_id: str = "datasov-bridge",
    ) -> None:
        if private_key is None:
            logger.warning("[SIGN] No bridge signing key configured, using an ephemeral key")
            private_key = ed25519.Ed25519PrivateKey.generate()
        self._private_key = private_key
        self._public_key = private_key.public_key()
        self.key_id = key_id

    @classmethod
    def from_seed(cls, seed_b64: str, key_id: str = "datasov-bridge") -> "EventSigner":
        """Build from a base64 32-byte Ed25519 seed."""
        seed = base64.b64decode(seed_b64)
        return cls(ed25519.Ed25519PrivateKey.from_private_bytes(seed), key_id=key_id)

    @property
    def public_key_pem(self) -> str:
        return self._public_key.public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        ).decode()

    def _signing_payload(self, event: CrossChainEvent) -> bytes:
        return canonicalize(event.model_dump(mode="json", exclude={"signature"}))

    def sign(self, event: CrossChainEvent) -> CrossChainEvent:
        """Returns a signed copy; the input event is left untouched."""
        signature = self._private_key.sign(self._signing_payload(event))
        return event.model_copy(update={"signature": base64.b64encode(signature).decode()})

    def verify(self, event: CrossChainEvent) -> bool:
        if not event.signature:
            return False
        try:
            self._public_key.verify(
                base64.b64decode(event.signature),
                self._signing_payload(event),
            )
        except (InvalidSignature, ValueError):
            return False
        return True
