"""
govkit govkit_* RPC Methods

Node-level metadata: where the governance contracts live.
"""

from typing import Any, Dict

from ..server import RPCError, RPCErrorCode, RPCModule, rpc_method


class GovKitModule(RPCModule):
    """
    Governance node methods (govkit_* namespace).
    """

    namespace = "govkit"

    @rpc_method
    async def deployment(self) -> Dict[str, str]:
        """Addresses of the token, timelock, governor and Box."""
        if self.context.deployment is None:
            raise RPCError(RPCErrorCode.RESOURCE_NOT_FOUND, "No governance deployment on this node")
        return self.context.deployment.to_dict()

    @rpc_method
    async def network(self) -> Dict[str, Any]:
        ledger = self.context.ledger
        return {
            "name": ledger.network_name,
            "chainId": ledger.chain_id,
            "development": ledger.development,
            "blockTime": ledger.block_time,
        }
