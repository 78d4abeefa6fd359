"""
JSON-RPC Test Suite

Coverage:
  - RPCServer dispatch, batches, notifications and error codes
  - contract reverts carried by class name
  - development-only methods on non-development ledgers
  - HttpLedgerClient against the FastAPI node (in-process ASGI transport)
  - transport failures surfacing as TransportError
"""

import json
import os
import sys

import httpx
import pytest

# ── Path setup ────────────────────────────────────────────────────────
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from govkit.client.contracts import ContractHandle
from govkit.client.orchestrator import (
    Ballot,
    DevelopmentTimeTravel,
    Orchestrator,
    ProposalRequest,
)
from govkit.client.provider import HttpLedgerClient
from govkit.client.store import InMemoryProposalStore
from govkit.constants import DEV_ACCOUNTS
from govkit.exceptions import ConfigurationError, TransportError
from govkit.governance.deploy import Deployment
from govkit.governance.governor import GovernorEngine, NonexistentProposal
from govkit.governance.proposals import ProposalState, VoteType
from govkit.governance.targets import Box
from govkit.ledger import Ledger
from govkit.rpc.app import NodeContext, build_dev_node, build_rpc_server, create_app
from govkit.rpc.server import RPCErrorCode


URL = "http://testserver/rpc"
PROPOSER = DEV_ACCOUNTS[0]


async def no_sleep(seconds):
    return None


async def rpc(server, method, *params, request_id=1):
    raw = await server.handle_request(
        {"jsonrpc": "2.0", "method": method, "params": list(params), "id": request_id}
    )
    return json.loads(raw)


@pytest.fixture
def node():
    return build_dev_node()


@pytest.fixture
def server(node):
    return build_rpc_server(node)


def http_client(node) -> HttpLedgerClient:
    return HttpLedgerClient(URL, transport=httpx.ASGITransport(app=create_app(node)))


# ══════════════════════════════════════════════════════════════════════
#  SERVER
# ══════════════════════════════════════════════════════════════════════


class TestRPCServer:

    @pytest.mark.asyncio
    async def test_chain_id(self, server):
        response = await rpc(server, "eth_chainId")
        assert response == {"jsonrpc": "2.0", "id": 1, "result": hex(31337)}

    @pytest.mark.asyncio
    async def test_method_not_found(self, server):
        response = await rpc(server, "eth_mining")
        assert response["error"]["code"] == RPCErrorCode.METHOD_NOT_FOUND

    @pytest.mark.asyncio
    async def test_parse_error(self, server):
        response = json.loads(await server.handle_request("{not json"))
        assert response["error"]["code"] == RPCErrorCode.PARSE_ERROR

    @pytest.mark.asyncio
    async def test_batch(self, server):
        raw = await server.handle_request(json.dumps([
            {"jsonrpc": "2.0", "method": "net_version", "params": [], "id": 1},
            {"jsonrpc": "2.0", "method": "eth_blockNumber", "params": [], "id": 2},
            {"jsonrpc": "2.0", "method": "net_listening", "params": []},
        ]))
        responses = json.loads(raw)
        assert [r["id"] for r in responses] == [1, 2]
        assert responses[0]["result"] == "31337"

    @pytest.mark.asyncio
    async def test_notification(self, server):
        assert await server.handle_request(
            {"jsonrpc": "2.0", "method": "net_version", "params": []}
        ) is None

    @pytest.mark.asyncio
    async def test_revert_carries_class_name(self, node, server):
        data = GovernorEngine.encode_call("state", 12345)
        response = await rpc(
            server, "eth_call", {"to": node.deployment.governor, "data": "0x" + data.hex()}, "latest"
        )
        error = response["error"]
        assert error["code"] == RPCErrorCode.EXECUTION_ERROR
        assert error["data"]["name"] == "NonexistentProposal"

    @pytest.mark.asyncio
    async def test_invalid_address(self, server):
        response = await rpc(server, "eth_getBalance", "0x1234")
        assert response["error"]["code"] == RPCErrorCode.INVALID_PARAMS

    @pytest.mark.asyncio
    async def test_unknown_block(self, server):
        response = await rpc(server, "eth_getBlockByNumber", "0xffff", False)
        assert response["error"]["code"] == RPCErrorCode.RESOURCE_NOT_FOUND

    @pytest.mark.asyncio
    async def test_clock_control_refused_off_development(self):
        server = build_rpc_server(NodeContext(ledger=Ledger(network_name="sepolia")))
        response = await rpc(server, "evm_mine", 1)
        assert response["error"]["code"] == RPCErrorCode.METHOD_NOT_SUPPORTED
        response = await rpc(server, "govkit_deployment")
        assert response["error"]["code"] == RPCErrorCode.RESOURCE_NOT_FOUND

    @pytest.mark.asyncio
    async def test_contract_creation_not_supported(self, server):
        response = await rpc(server, "eth_sendTransaction", {"from": PROPOSER, "data": "0x"})
        assert response["error"]["code"] == RPCErrorCode.METHOD_NOT_SUPPORTED


# ══════════════════════════════════════════════════════════════════════
#  HTTP CLIENT
# ══════════════════════════════════════════════════════════════════════


class TestHttpLedgerClient:

    @pytest.mark.asyncio
    async def test_basic_reads(self, node):
        async with http_client(node) as client:
            assert await client.chain_id() == 31337
            assert await client.block_number() == node.ledger.latest_block.number
            assert await client.timestamp() == node.ledger.latest_block.timestamp
            assert await client.is_development() is True
            deployment = Deployment.from_dict(await client.request("govkit_deployment"))
            assert deployment == node.deployment

    @pytest.mark.asyncio
    async def test_revert_raised_as_original_class(self, node):
        async with http_client(node) as client:
            governor = ContractHandle(client, GovernorEngine, node.deployment.governor)
            with pytest.raises(NonexistentProposal):
                await governor.call("state", 12345)
            with pytest.raises(NonexistentProposal):
                await governor.transact(PROPOSER, "castVote", 12345, VoteType.FOR)

    @pytest.mark.asyncio
    async def test_clock_control(self, node):
        async with http_client(node) as client:
            start = await client.block_number()
            assert await client.mine(3) == start + 3
            before = await client.timestamp()
            await client.increase_time(100)
            await client.mine()
            assert await client.timestamp() == before + 101

    @pytest.mark.asyncio
    async def test_full_lifecycle_over_http(self, node):
        async with http_client(node) as client:
            orch = Orchestrator(
                client=client,
                deployment=node.deployment,
                proposer=PROPOSER,
                store=InMemoryProposalStore(),
                time_travel=await DevelopmentTimeTravel.for_client(client),
                sleep=no_sleep,
            )
            request = ProposalRequest.from_action(
                node.deployment.box, Box, "store", [100], "Proposal #1 - update value of box to 100"
            )
            report = await orch.run(request, [Ballot(voter=PROPOSER, support=VoteType.FOR)])

            assert report.state == ProposalState.EXECUTED
            box = ContractHandle(client, Box, node.deployment.box)
            assert await box.call("retrieve") == 100


class TestTransportFailures:

    @pytest.mark.asyncio
    async def test_connection_refused(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with HttpLedgerClient(URL, transport=httpx.MockTransport(refuse)) as client:
            with pytest.raises(TransportError):
                await client.chain_id()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("response", [
        httpx.Response(200, text="not json"),
        httpx.Response(200, json=[1, 2]),
        httpx.Response(502, text="bad gateway"),
    ])
    async def test_malformed_responses(self, response):
        async with HttpLedgerClient(URL, transport=httpx.MockTransport(lambda request: response)) as client:
            with pytest.raises(TransportError):
                await client.block_number()

    @pytest.mark.asyncio
    async def test_method_not_supported_maps_to_configuration_error(self):
        def not_supported(request):
            body = json.loads(request.content)
            return httpx.Response(200, json={
                "jsonrpc": "2.0",
                "id": body["id"],
                "error": {"code": RPCErrorCode.METHOD_NOT_SUPPORTED, "message": "not a development chain"},
            })

        async with HttpLedgerClient(URL, transport=httpx.MockTransport(not_supported)) as client:
            with pytest.raises(ConfigurationError):
                await client.mine()
