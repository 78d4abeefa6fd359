"""
govkit Development Ledger

In-process ledger hosting the governance contracts:
  - Contract / external / ExternalFunction   (contract.py)
  - Ledger / Block / Receipt / LogEntry       (chain.py)
"""

from .contract import Contract, ExternalFunction, ValueNotAccepted, external
from .chain import Block, Ledger, LedgerError, LogEntry, Receipt

__all__ = [
    "Block",
    "Contract",
    "ExternalFunction",
    "Ledger",
    "LedgerError",
    "LogEntry",
    "Receipt",
    "ValueNotAccepted",
    "external",
]
