"""
DataSov Bridge - Ledger Clients

Capability interfaces for the two ledgers the bridge coordinates:
- IDENTITY (Chain A): identities, grants, proof cryptography
- TRADING (Chain B): listings, purchases, secondary proof check
"""

from .http import HttpLedgerClient
from .identity_ledger import ALL_OWNERS, HttpIdentityLedgerClient, IdentityLedgerClient
from .trading_ledger import HttpTradingLedgerClient, TradingLedgerClient

__all__ = [
    "ALL_OWNERS",
    "HttpLedgerClient",
    # Identity ledger
    "IdentityLedgerClient",
    "HttpIdentityLedgerClient",
    # Trading ledger
    "TradingLedgerClient",
    "HttpTradingLedgerClient",
]
