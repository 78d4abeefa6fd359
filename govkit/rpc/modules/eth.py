"""
govkit eth_* RPC Methods

The subset of the Ethereum JSON-RPC namespace the governance clients need,
served from the in-process development ledger.

Architecture:
    - self.context.ledger     → Ledger (blocks, accounts, contracts, receipts)
    - self.context.deployment → Deployment addresses (may be None)

Reverts raised by contracts propagate to RPCServer, which maps them to
EXECUTION_ERROR carrying the exception class name.
"""

from typing import Any, Dict, Optional, Union

from eth_utils import decode_hex, encode_hex, is_address, to_checksum_address

from ...constants import ZERO_ADDRESS
from ...ledger import LedgerError
from ...logger import get_logger
from ..server import RPCError, RPCErrorCode, RPCModule, rpc_method

logger = get_logger(__name__)


def _parse_hex_int(value: Union[str, int, None], default: int = 0) -> int:
    if value is None:
        return default
    if isinstance(value, int):
        return value
    return int(value, 16) if value.startswith("0x") else int(value)


def _parse_address(value: Optional[str], field: str) -> str:
    if not value or not is_address(value):
        raise RPCError(RPCErrorCode.INVALID_PARAMS, f"Invalid '{field}' address: {value!r}")
    return to_checksum_address(value)


class EthModule(RPCModule):
    """
    Ethereum RPC methods (eth_* namespace).
    """

    namespace = "eth"

    @property
    def _ledger(self):
        return self.context.ledger

    @rpc_method
    async def chainId(self) -> str:
        return hex(self._ledger.chain_id)

    @rpc_method
    async def blockNumber(self) -> str:
        return hex(self._ledger.latest_block.number)

    @rpc_method
    async def getBlockByNumber(self, block: Union[str, int] = "latest", full: bool = False) -> Dict:
        number = block if block == "latest" else _parse_hex_int(block)
        try:
            return self._ledger.get_block(number).to_dict()
        except LedgerError:
            raise RPCError(RPCErrorCode.RESOURCE_NOT_FOUND, f"Unknown block {block}")

    @rpc_method
    async def getBalance(self, address: str, block: str = "latest") -> str:
        return hex(self._ledger.balance_of(_parse_address(address, "address")))

    @rpc_method
    async def call(self, transaction: Dict, block: str = "latest") -> str:
        """
        Read-only contract call against the latest block.

        Returns:
            ABI-encoded return data (hex)
        """
        to = _parse_address(transaction.get("to"), "to")
        sender = transaction.get("from") or ZERO_ADDRESS
        data = decode_hex(transaction.get("data", transaction.get("input", "0x")))
        return encode_hex(self._ledger.call(to, data, sender=_parse_address(sender, "from")))

    @rpc_method
    async def sendTransaction(self, transaction: Dict) -> str:
        """
        Execute a transaction and mine it into its own block.

        The development ledger holds no keys: the 'from' account is trusted
        as given, like an unlocked account on a local node.

        Returns:
            Transaction hash
        """
        sender = _parse_address(transaction.get("from"), "from")
        data = decode_hex(transaction.get("data", transaction.get("input", "0x")))
        value = _parse_hex_int(transaction.get("value"))
        to = transaction.get("to")
        if to is None:
            raise RPCError(
                RPCErrorCode.METHOD_NOT_SUPPORTED,
                "Contract creation over RPC is not supported; deploy with govkit node",
            )
        receipt = self._ledger.transact(sender, _parse_address(to, "to"), data, value)
        logger.debug(f"eth_sendTransaction {receipt.tx_hash} mined in block {receipt.block_number}")
        return receipt.tx_hash

    @rpc_method
    async def getTransactionReceipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        receipt = self._ledger.get_receipt(tx_hash)
        return receipt.to_dict() if receipt else None
