"""
govkit evm_* RPC Methods

Development-only clock control. Every method raises on a ledger that is not
a development chain; clients must opt in explicitly before calling them.
"""

from typing import Union

from ...exceptions import ConfigurationError
from ..server import RPCError, RPCErrorCode, RPCModule, rpc_method


class EvmModule(RPCModule):
    """
    Development RPC methods (evm_* namespace).
    """

    namespace = "evm"

    @rpc_method
    async def mine(self, blocks: Union[int, str] = 1) -> str:
        """Mine empty blocks; returns the new block number (hex)."""
        count = int(blocks, 16) if isinstance(blocks, str) else int(blocks)
        try:
            return hex(self.context.ledger.mine(count))
        except ConfigurationError as e:
            raise RPCError(RPCErrorCode.METHOD_NOT_SUPPORTED, str(e))

    @rpc_method
    async def increaseTime(self, seconds: Union[int, str]) -> int:
        """Advance the timestamp of the next block; returns the pending offset."""
        seconds = int(seconds, 16) if isinstance(seconds, str) else int(seconds)
        try:
            return self.context.ledger.increase_time(seconds)
        except ConfigurationError as e:
            raise RPCError(RPCErrorCode.METHOD_NOT_SUPPORTED, str(e))
