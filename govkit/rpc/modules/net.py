"""
govkit net_* RPC Methods
"""

from ..server import RPCModule, rpc_method


class NetModule(RPCModule):
    """
    Network RPC methods (net_* namespace).
    """

    namespace = "net"

    @rpc_method
    async def version(self) -> str:
        """
        Returns the network ID.

        Returns:
            Chain id as a decimal string
        """
        return str(self.context.ledger.chain_id)

    @rpc_method
    async def listening(self) -> bool:
        return True
