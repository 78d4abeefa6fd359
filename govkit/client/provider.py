"""
Ledger Clients

Async access to a ledger for the orchestration layer:

    LedgerClient          abstract interface
    LocalLedgerClient     wraps an in-process Ledger (tests, embedded use)
    HttpLedgerClient      JSON-RPC over httpx (a `govkit node` or any
                          compatible endpoint)

Contract reverts surface as their original exception class on both
clients; network and protocol failures surface as TransportError and are
the only errors the orchestrator retries.
"""

import asyncio
import itertools
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional

import httpx
from eth_utils import decode_hex, encode_hex

from ..constants import (
    CONFIRMATION_TIMEOUT,
    CONNECTION_TIMEOUT,
    DEVELOPMENT_CHAIN_ID,
    POLL_INTERVAL,
    ZERO_ADDRESS,
)
from ..exceptions import (
    ConfigurationError,
    ConfirmationTimeout,
    GovKitException,
    TransportError,
    ValidationError,
    rebuild_revert,
)
from ..ledger import Ledger, Receipt
from ..logger import get_logger

logger = get_logger(__name__)

Sleep = Callable[[float], Awaitable[Any]]

# JSON-RPC error codes with a dedicated meaning on the client side
_EXECUTION_ERROR = -32015
_INVALID_PARAMS = -32602
_METHOD_NOT_FOUND = -32601
_METHOD_NOT_SUPPORTED = -32004


class RPCClientError(GovKitException):
    """The node answered with a JSON-RPC error that is not a contract revert."""

    def __init__(self, code: int, message: str):
        self.code = code
        super().__init__(f"RPC error {code}: {message}")


class LedgerClient(ABC):
    """Async ledger access used by contract handles and the orchestrator."""

    @abstractmethod
    async def chain_id(self) -> int:
        ...

    @abstractmethod
    async def block_number(self) -> int:
        ...

    @abstractmethod
    async def timestamp(self) -> int:
        """Timestamp of the latest block."""

    @abstractmethod
    async def call(self, to: str, data: bytes, sender: Optional[str] = None) -> bytes:
        ...

    @abstractmethod
    async def send_transaction(self, sender: str, to: str, data: bytes, value: int = 0) -> str:
        """Submit a transaction; returns its hash."""

    @abstractmethod
    async def get_receipt(self, tx_hash: str) -> Optional[Receipt]:
        ...

    @abstractmethod
    async def is_development(self) -> bool:
        ...

    @abstractmethod
    async def mine(self, blocks: int = 1) -> int:
        """Development only."""

    @abstractmethod
    async def increase_time(self, seconds: int) -> int:
        """Development only."""

    async def close(self) -> None:
        pass

    async def wait_for_receipt(
        self,
        tx_hash: str,
        confirmations: int = 1,
        timeout: float = CONFIRMATION_TIMEOUT,
        poll_interval: float = POLL_INTERVAL,
        sleep: Sleep = asyncio.sleep,
    ) -> Receipt:
        """
        Poll until *tx_hash* is mined and buried under *confirmations* blocks.

        Raises:
            ConfirmationTimeout: the confirmations were not reached in time
        """
        waited = 0.0
        while True:
            receipt = await self.get_receipt(tx_hash)
            if receipt is not None:
                depth = await self.block_number() - receipt.block_number + 1
                if depth >= confirmations:
                    return receipt
                logger.debug(f"{tx_hash}: {depth}/{confirmations} confirmations")
            if waited >= timeout:
                raise ConfirmationTimeout(tx_hash, confirmations, timeout)
            await sleep(poll_interval)
            waited += poll_interval


# ══════════════════════════════════════════════════════════════════════
#  IN-PROCESS
# ══════════════════════════════════════════════════════════════════════

class LocalLedgerClient(LedgerClient):
    """Client over an in-process Ledger."""

    def __init__(self, ledger: Ledger):
        self.ledger = ledger

    async def chain_id(self) -> int:
        return self.ledger.chain_id

    async def block_number(self) -> int:
        return self.ledger.latest_block.number

    async def timestamp(self) -> int:
        return self.ledger.latest_block.timestamp

    async def call(self, to: str, data: bytes, sender: Optional[str] = None) -> bytes:
        return self.ledger.call(to, data, sender=sender or ZERO_ADDRESS)

    async def send_transaction(self, sender: str, to: str, data: bytes, value: int = 0) -> str:
        return self.ledger.transact(sender, to, data, value).tx_hash

    async def get_receipt(self, tx_hash: str) -> Optional[Receipt]:
        return self.ledger.get_receipt(tx_hash)

    async def is_development(self) -> bool:
        return self.ledger.development

    async def mine(self, blocks: int = 1) -> int:
        return self.ledger.mine(blocks)

    async def increase_time(self, seconds: int) -> int:
        return self.ledger.increase_time(seconds)


# ══════════════════════════════════════════════════════════════════════
#  JSON-RPC
# ══════════════════════════════════════════════════════════════════════

class HttpLedgerClient(LedgerClient):
    """
    JSON-RPC client over httpx.

    Usage:
        async with HttpLedgerClient("http://127.0.0.1:8545/rpc") as client:
            print(await client.block_number())
    """

    def __init__(
        self,
        url: str,
        timeout: float = CONNECTION_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)
        self._ids = itertools.count(1)

    async def __aenter__(self) -> "HttpLedgerClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    async def request(self, method: str, *params: Any) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": list(params),
            "id": next(self._ids),
        }
        try:
            response = await self._client.post(self.url, json=payload)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPError as e:
            raise TransportError(f"{method}: {type(e).__name__}: {e}") from e
        except ValueError as e:
            raise TransportError(f"{method}: malformed response ({e})") from e

        if not isinstance(body, dict) or "jsonrpc" not in body:
            raise TransportError(f"{method}: malformed response {body!r}")
        error = body.get("error")
        if error is not None:
            raise self._error(error)
        return body.get("result")

    @staticmethod
    def _error(error: dict) -> Exception:
        code = error.get("code")
        message = error.get("message", "")
        data = error.get("data")
        if code == _EXECUTION_ERROR and isinstance(data, dict) and "name" in data:
            return rebuild_revert(data["name"], data.get("message", message))
        if code == _INVALID_PARAMS:
            return ValidationError(message)
        if code == _METHOD_NOT_SUPPORTED:
            return ConfigurationError(message)
        return RPCClientError(code, message)

    async def chain_id(self) -> int:
        return int(await self.request("eth_chainId"), 16)

    async def block_number(self) -> int:
        return int(await self.request("eth_blockNumber"), 16)

    async def timestamp(self) -> int:
        block = await self.request("eth_getBlockByNumber", "latest", False)
        return int(block["timestamp"], 16)

    async def call(self, to: str, data: bytes, sender: Optional[str] = None) -> bytes:
        tx = {"to": to, "data": encode_hex(data)}
        if sender:
            tx["from"] = sender
        return decode_hex(await self.request("eth_call", tx, "latest"))

    async def send_transaction(self, sender: str, to: str, data: bytes, value: int = 0) -> str:
        tx = {"from": sender, "to": to, "data": encode_hex(data), "value": hex(value)}
        return await self.request("eth_sendTransaction", tx)

    async def get_receipt(self, tx_hash: str) -> Optional[Receipt]:
        data = await self.request("eth_getTransactionReceipt", tx_hash)
        return Receipt.from_dict(data) if data else None

    async def is_development(self) -> bool:
        try:
            network = await self.request("govkit_network")
        except RPCClientError as e:
            if e.code != _METHOD_NOT_FOUND:
                raise
            return await self.chain_id() == DEVELOPMENT_CHAIN_ID
        return bool(network.get("development"))

    async def mine(self, blocks: int = 1) -> int:
        return int(await self.request("evm_mine", blocks), 16)

    async def increase_time(self, seconds: int) -> int:
        return int(await self.request("evm_increaseTime", seconds))
