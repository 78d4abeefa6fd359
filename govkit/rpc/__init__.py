"""
govkit RPC Module

JSON-RPC 2.0 interface to the development ledger:
- eth_* / net_* methods used by the governance clients
- evm_* development clock control
- govkit_* deployment metadata
"""

from .server import RPCError, RPCErrorCode, RPCServer

__all__ = [
    "RPCError",
    "RPCErrorCode",
    "RPCServer",
]
