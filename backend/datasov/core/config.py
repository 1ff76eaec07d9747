from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Bridge settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # App
    APP_NAME: str = "DataSov Bridge"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Ledgers
    LEDGER_BACKEND: str = "http"  # "http" or "memory"
    IDENTITY_LEDGER_URL: str = "http://localhost:10006"
    TRADING_LEDGER_URL: str = "http://localhost:8899"
    LEDGER_API_KEY: Optional[str] = None
    LEDGER_TIMEOUT_SECONDS: float = 30.0
    EVENT_POLL_INTERVAL_SECONDS: float = 2.0
    EVENT_RESUBSCRIBE_DELAY_SECONDS: float = 1.0
    EVENT_RESUBSCRIBE_MAX_DELAY_SECONDS: float = 30.0

    # Bridge
    BRIDGE_ENABLED: bool = True
    SYNC_INTERVAL_SECONDS: float = 300.0
    STOP_DRAIN_TIMEOUT_SECONDS: float = 10.0
    IDENTITY_CACHE_TTL_SECONDS: float = 30.0
    RECONCILIATION_OWNER_SCOPE: str = "all"
    EVENT_LOG_SIZE: int = 500

    # Event signing (base64 Ed25519 seed; ephemeral key when unset)
    BRIDGE_SIGNING_KEY: Optional[str] = None
    BRIDGE_KEY_ID: str = "datasov-bridge"

    # In-memory trading ledger
    MARKETPLACE_FEE_BASIS_POINTS: int = 250


@lru_cache()
def get_settings() -> Settings:
    return Settings()
