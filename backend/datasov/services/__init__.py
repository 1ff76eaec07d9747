"""
DataSov Bridge - Services

Bridge coordination:
- proof issuance and validation
- event routing between the ledgers
- periodic reconciliation
- lifecycle orchestration
"""

from .event_bus import BridgeEventBus
from .event_router import EventRouter
from .identity_cache import IdentityCache
from .lifecycle import BridgeLifecycle, BridgeState
from .orchestrator import BridgeOrchestrator, build_bridge
from .proof_validator import ProofValidator
from .reconciliation import ReconciliationEngine, ReconciliationScheduler
from .signing import EventSigner

__all__ = [
    "BridgeEventBus",
    "BridgeLifecycle",
    "BridgeOrchestrator",
    "BridgeState",
    "EventRouter",
    "EventSigner",
    "IdentityCache",
    "ProofValidator",
    "ReconciliationEngine",
    "ReconciliationScheduler",
    "build_bridge",
]
