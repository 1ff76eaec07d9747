"""In-memory ledgers for local runs and tests."""

from .identity_ledger import InMemoryIdentityLedger
from .trading_ledger import InMemoryTradingLedger

__all__ = ["InMemoryIdentityLedger", "InMemoryTradingLedger"]
