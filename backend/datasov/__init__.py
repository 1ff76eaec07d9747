"""
DataSov Bridge

Cross-chain coordination between the permissioned identity ledger
(Chain A) and the open data-trading ledger (Chain B).
"""

__version__ = "1.0.0"
