"""
Credence Ledger - signed append-only registry and the chain client over it.
"""

from credence.ledger.chain import ChainClient, LedgerChainClient, Receipt
from credence.ledger.registry import RegistryEntry, SettlementRegistry

__all__ = ["ChainClient", "LedgerChainClient", "Receipt", "RegistryEntry", "SettlementRegistry"]
