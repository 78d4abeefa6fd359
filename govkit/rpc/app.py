"""
govkit Development Node

FastAPI application exposing the JSON-RPC server at POST /rpc, backed by an
in-process Ledger with the governance system pre-deployed.
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import FastAPI, Request, Response

from ..config.loader import GovKitConfig
from ..constants import DEV_ACCOUNT_BALANCE, DEV_ACCOUNTS
from ..governance.deploy import Deployment, deploy_governance
from ..ledger import Ledger
from ..logger import get_logger
from .modules import EthModule, EvmModule, GovKitModule, NetModule
from .server import RPCServer

logger = get_logger(__name__)


@dataclass
class NodeContext:
    """Shared state handed to every RPC module."""
    ledger: Ledger
    deployment: Optional[Deployment] = None


def build_rpc_server(context: NodeContext) -> RPCServer:
    server = RPCServer()
    for module_cls in (EthModule, NetModule, EvmModule, GovKitModule):
        server.register_module(module_cls(context))
    return server


def build_dev_node(config: Optional[GovKitConfig] = None, deploy: bool = True) -> NodeContext:
    """
    Create a development ledger, fund the well-known accounts and, unless
    *deploy* is False, deploy the governance system from DEV_ACCOUNTS[0].
    """
    config = config or GovKitConfig()
    ledger = Ledger(
        chain_id=config.network.chain_id,
        network_name=config.network.name,
        development=True,
        block_time=config.rpc.block_time,
    )
    for account in DEV_ACCOUNTS:
        ledger.set_balance(account, DEV_ACCOUNT_BALANCE)

    deployment = None
    if deploy:
        deployment = deploy_governance(
            ledger, DEV_ACCOUNTS[0], config.governor, config.timelock
        )
    return NodeContext(ledger=ledger, deployment=deployment)


def create_app(context: NodeContext) -> FastAPI:
    app = FastAPI(
        title="govkit node",
        description="Development ledger with a governor, timelock and voting token.",
    )
    rpc_server = build_rpc_server(context)
    app.state.context = context
    app.state.rpc_server = rpc_server

    @app.post("/rpc")
    async def rpc_endpoint(request: Request):
        """JSON-RPC 2.0 endpoint"""
        result = await rpc_server.handle_request(await request.body())
        if result is None:
            return Response(status_code=204)
        # handle_request returns a JSON string; send it raw to avoid double-encoding
        return Response(content=result, media_type="application/json")

    @app.get("/")
    async def status():
        ledger = context.ledger
        return {
            "network": ledger.network_name,
            "chainId": ledger.chain_id,
            "blockNumber": ledger.latest_block.number,
            "deployment": context.deployment.to_dict() if context.deployment else None,
        }

    logger.info(f"RPC methods: {', '.join(sorted(rpc_server.get_methods()))}")
    return app
