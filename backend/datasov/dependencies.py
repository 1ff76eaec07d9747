from fastapi import HTTPException, Request, status

from datasov.services.orchestrator import BridgeOrchestrator


def get_bridge(request: Request) -> BridgeOrchestrator:
    """The orchestrator created by the application lifespan."""
    bridge = getattr(request.app.state, "bridge", None)
    if bridge is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Bridge not initialized",
        )
    return bridge
