"""DataSov Bridge - FastAPI Application.

Cross-chain bridge between the identity ledger and the data-trading ledger.
"""

from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from datasov import __version__
from datasov.api import bridge
from datasov.core.config import get_settings
from datasov.core.logging import configure_logging
from datasov.services.orchestrator import build_bridge

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(
        log_level=settings.LOG_LEVEL,
        environment=settings.ENVIRONMENT,
        debug=settings.DEBUG,
    )
    orchestrator = build_bridge(settings)
    await orchestrator.start()
    app.state.bridge = orchestrator
    try:
        yield
    finally:
        await orchestrator.stop()


app = FastAPI(
    title=settings.APP_NAME,
    description="DataSov cross-chain identity / data-trading bridge",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(bridge.router)
bridge.register_error_handlers(app)


@app.get("/")
async def root():
    """Service banner."""
    return {
        "service": settings.APP_NAME,
        "version": __version__,
        "status": "operational",
    }


@app.get("/health")
async def health():
    orchestrator = getattr(app.state, "bridge", None)
    if orchestrator is None:
        return {"status": "starting"}
    status = orchestrator.get_status()
    return {
        "status": "healthy" if status.is_running and status.event_router_subscribed else "degraded",
        "state": status.state,
        "event_router": status.event_router_subscribed,
        "identity_ledger": status.identity_ledger_healthy,
        "trading_ledger": status.trading_ledger_healthy,
    }


def main():
    """Run the gateway with uvicorn."""
    uvicorn.run(
        "datasov.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.ENVIRONMENT == "development",
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
