"""
Contract handles: typed calls against a deployed contract through a LedgerClient.
"""

from typing import Any, Optional, Type

from ..ledger import Contract
from .provider import LedgerClient


class ContractHandle:
    """
    Binds a contract class (for its ABI) to an address on a ledger.

    Usage:
        governor = ContractHandle(client, GovernorEngine, deployment.governor)
        state = await governor.call("state", proposal_id)
        tx_hash = await governor.transact(voter, "castVote", proposal_id, 1)
    """

    def __init__(self, client: LedgerClient, contract_cls: Type[Contract], address: str):
        self.client = client
        self.contract_cls = contract_cls
        self.address = address

    def encode(self, name: str, *args: Any) -> bytes:
        return self.contract_cls.encode_call(name, *args)

    async def call(self, name: str, *args: Any, sender: Optional[str] = None) -> Any:
        """Read-only call; returns the decoded result."""
        data = await self.client.call(self.address, self.encode(name, *args), sender=sender)
        return self.contract_cls.decode_result(name, data)

    async def transact(self, sender: str, name: str, *args: Any, value: int = 0) -> str:
        """Submit a state-changing call; returns the transaction hash."""
        return await self.client.send_transaction(
            sender, self.address, self.encode(name, *args), value
        )

    def __repr__(self) -> str:
        return f"<ContractHandle {self.contract_cls.__name__} at {self.address}>"
