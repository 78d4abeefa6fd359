"""
govkit RPC Modules

JSON-RPC method implementations over the development ledger.
"""

from .eth import EthModule
from .evm import EvmModule
from .govkit import GovKitModule
from .net import NetModule

__all__ = [
    "EthModule",
    "EvmModule",
    "GovKitModule",
    "NetModule",
]
