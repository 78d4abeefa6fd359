"""
Development Ledger

An in-process, append-only ledger that hosts govkit contracts. It stands in
for a real chain behind the same boundary a JSON-RPC node offers:

  - every mutating call is serialized and mined into its own block
  - a failing call reverts every state change it made (all-or-nothing)
  - reads see the latest mined block; transactions see the pending block
  - receipts report the block they were mined in, so callers can count
    confirmations before relying on an effect

Block mining and time travel exist only on development ledgers and must be
requested explicitly.
"""

import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from eth_abi import encode
from eth_utils import keccak, to_checksum_address

from ..constants import (
    DEV_BLOCK_TIME,
    DEVELOPMENT_CHAIN_ID,
    DEVELOPMENT_CHAINS,
    ZERO_ADDRESS,
)
from ..crypto.hashing import generate_contract_address
from ..exceptions import ConfigurationError, GovKitException, InsufficientBalance
from ..logger import get_logger
from .contract import Contract

logger = get_logger(__name__)


class LedgerError(GovKitException):
    """Misuse of the ledger API itself (not a contract revert)."""


# ══════════════════════════════════════════════════════════════════════
#  DATA
# ══════════════════════════════════════════════════════════════════════

@dataclass
class Block:
    number: int
    timestamp: int
    transactions: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "number": hex(self.number),
            "timestamp": hex(self.timestamp),
            "transactions": list(self.transactions),
        }


@dataclass
class LogEntry:
    address: str
    event: str
    args: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "event": self.event,
            "args": {k: _jsonable(v) for k, v in self.args.items()},
        }


@dataclass
class Receipt:
    tx_hash: str
    block_number: int
    block_timestamp: int
    sender: str
    to: Optional[str]
    status: int = 1
    logs: List[LogEntry] = field(default_factory=list)
    contract_address: Optional[str] = None
    return_data: bytes = b""

    def events(self, name: str) -> List[LogEntry]:
        return [log for log in self.logs if log.event == name]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "transactionHash": self.tx_hash,
            "blockNumber": hex(self.block_number),
            "blockTimestamp": hex(self.block_timestamp),
            "from": self.sender,
            "to": self.to,
            "status": hex(self.status),
            "logs": [log.to_dict() for log in self.logs],
            "contractAddress": self.contract_address,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Receipt":
        return cls(
            tx_hash=data["transactionHash"],
            block_number=int(data["blockNumber"], 16),
            block_timestamp=int(data.get("blockTimestamp", "0x0"), 16),
            sender=data["from"],
            to=data.get("to"),
            status=int(data.get("status", "0x1"), 16),
            logs=[
                LogEntry(address=log["address"], event=log["event"], args=log["args"])
                for log in data.get("logs", [])
            ],
            contract_address=data.get("contractAddress"),
        )


@dataclass
class Frame:
    """One level of the call stack inside a transaction."""
    sender: str
    value: int
    address: str


def _jsonable(value: Any) -> Any:
    if isinstance(value, bytes):
        return "0x" + value.hex()
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, int) and not isinstance(value, bool) and abs(value) >= 2**53:
        return str(value)
    return value


# ══════════════════════════════════════════════════════════════════════
#  LEDGER
# ══════════════════════════════════════════════════════════════════════

class Ledger:
    """
    Serialized, block-per-transaction development ledger.
    """

    def __init__(
        self,
        chain_id: int = DEVELOPMENT_CHAIN_ID,
        network_name: str = "localhost",
        development: Optional[bool] = None,
        block_time: int = DEV_BLOCK_TIME,
        genesis_timestamp: Optional[int] = None,
    ):
        self.chain_id = chain_id
        self.network_name = network_name
        self.development = (
            network_name in DEVELOPMENT_CHAINS if development is None else development
        )
        self.block_time = block_time

        genesis = int(time.time()) if genesis_timestamp is None else genesis_timestamp
        self._blocks: List[Block] = [Block(number=0, timestamp=genesis)]
        self._contracts: Dict[str, Contract] = {}
        self._balances: Dict[str, int] = {}
        self._nonces: Dict[str, int] = {}
        self._receipts: Dict[str, Receipt] = {}
        self._time_offset = 0

        self._lock = threading.RLock()
        self._context: Optional[Block] = None
        self._frames: List[Frame] = []
        self._logs: List[LogEntry] = []

    # ── Clock ─────────────────────────────────────────────────────────

    @property
    def latest_block(self) -> Block:
        return self._blocks[-1]

    @property
    def block_number(self) -> int:
        """Pending block inside a transaction, latest block otherwise."""
        return self._context.number if self._context else self.latest_block.number

    @property
    def timestamp(self) -> int:
        return self._context.timestamp if self._context else self.latest_block.timestamp

    def get_block(self, number: Union[int, str] = "latest") -> Block:
        if number == "latest":
            return self.latest_block
        if not 0 <= int(number) < len(self._blocks):
            raise LedgerError(f"Unknown block {number}")
        return self._blocks[int(number)]

    def _pending_header(self) -> Block:
        latest = self.latest_block
        return Block(
            number=latest.number + 1,
            timestamp=latest.timestamp + self.block_time + self._time_offset,
        )

    def _mine(self, block: Block) -> None:
        self._blocks.append(block)
        self._time_offset = 0

    # ── Accounts ──────────────────────────────────────────────────────

    def balance_of(self, address: str) -> int:
        return self._balances.get(to_checksum_address(address), 0)

    def nonce_of(self, address: str) -> int:
        return self._nonces.get(to_checksum_address(address), 0)

    def has_code(self, address: str) -> bool:
        return to_checksum_address(address) in self._contracts

    def contract_at(self, address: str) -> Contract:
        contract = self._contracts.get(to_checksum_address(address))
        if contract is None:
            raise LedgerError(f"No contract at {address}")
        return contract

    def _transfer_value(self, sender: str, to: str, value: int) -> None:
        if value <= 0:
            return
        balance = self._balances.get(sender, 0)
        if balance < value:
            raise InsufficientBalance(f"{sender} has {balance}, needs {value}")
        self._balances[sender] = balance - value
        self._balances[to] = self._balances.get(to, 0) + value

    # ── Call frames ───────────────────────────────────────────────────

    @property
    def current_frame(self) -> Optional[Frame]:
        return self._frames[-1] if self._frames else None

    def record_log(self, address: str, event: str, args: Dict[str, Any]) -> None:
        self._logs.append(LogEntry(address=address, event=event, args=dict(args)))

    def _run_frame(self, sender: str, to: str, value: int, data: bytes) -> bytes:
        contract = self._contracts.get(to)
        if contract is None:
            # Plain value transfer to an account without code
            return b""
        self._frames.append(Frame(sender=sender, value=value, address=to))
        try:
            return contract.dispatch(data)
        finally:
            self._frames.pop()

    def call_contract(self, caller: str, target: str, value: int, data: bytes) -> bytes:
        """Nested call made by a contract during a transaction or read."""
        if not self._frames:
            raise LedgerError("call_contract outside of an execution frame")
        target = to_checksum_address(target)
        self._transfer_value(caller, target, value)
        return self._run_frame(caller, target, value, data)

    # ── Snapshots ─────────────────────────────────────────────────────

    def _snapshot(self) -> Dict[str, Any]:
        return {
            "contracts": {addr: (c, c.snapshot()) for addr, c in self._contracts.items()},
            "balances": dict(self._balances),
        }

    def _restore(self, snap: Dict[str, Any]) -> None:
        self._contracts = {addr: c for addr, (c, _) in snap["contracts"].items()}
        for contract, state in snap["contracts"].values():
            contract.restore(state)
        self._balances = snap["balances"]

    def _tx_hash(self, sender: str, to: Optional[str], nonce: int, value: int, data: bytes) -> str:
        payload = encode(
            ["address", "address", "uint256", "uint256", "uint256", "bytes32"],
            [sender, to or ZERO_ADDRESS, nonce, value, self.chain_id, keccak(data)],
        )
        return "0x" + keccak(payload).hex()

    # ── Transactions ──────────────────────────────────────────────────

    def _execute(self, sender: str, to: Optional[str], value: int, data: bytes, body) -> Receipt:
        with self._lock:
            sender = to_checksum_address(sender)
            nonce = self._nonces.get(sender, 0)
            header = self._pending_header()
            tx_hash = self._tx_hash(sender, to, nonce, value, data)

            snap = self._snapshot()
            self._context = header
            self._logs = []
            try:
                result = body(sender, nonce)
            except Exception:
                self._restore(snap)
                raise
            finally:
                self._context = None
                self._frames = []

            self._nonces[sender] = nonce + 1
            header.transactions.append(tx_hash)
            receipt = Receipt(
                tx_hash=tx_hash,
                block_number=header.number,
                block_timestamp=header.timestamp,
                sender=sender,
                to=to,
                logs=self._logs,
                contract_address=result if to is None else None,
                return_data=b"" if to is None else result,
            )
            self._logs = []
            self._receipts[tx_hash] = receipt
            self._mine(header)
            return receipt

    def deploy(self, sender: str, contract: Contract, value: int = 0) -> Receipt:
        """Deploy *contract*; runs its constructor hook in the deployment transaction."""

        def body(tx_sender: str, nonce: int) -> str:
            address = generate_contract_address(tx_sender, nonce)
            contract.address = address
            contract.ledger = self
            self._contracts[address] = contract
            self._transfer_value(tx_sender, address, value)
            self._frames.append(Frame(sender=tx_sender, value=value, address=address))
            try:
                contract.constructor()
            finally:
                self._frames.pop()
            return address

        receipt = self._execute(sender, None, value, b"", body)
        logger.info(
            f"Deployed {type(contract).__name__} at {receipt.contract_address} "
            f"(block {receipt.block_number})"
        )
        return receipt

    def transact(self, sender: str, to: str, data: bytes = b"", value: int = 0) -> Receipt:
        """Submit a state-mutating call and mine it into a new block."""
        to = to_checksum_address(to)

        def body(tx_sender: str, nonce: int) -> bytes:
            self._transfer_value(tx_sender, to, value)
            return self._run_frame(tx_sender, to, value, data)

        return self._execute(sender, to, value, data, body)

    def call(self, to: str, data: bytes, sender: str = ZERO_ADDRESS) -> bytes:
        """Read-only call against the latest block; never mutates state."""
        with self._lock:
            to = to_checksum_address(to)
            snap = self._snapshot()
            saved_logs = self._logs
            self._logs = []
            try:
                return self._run_frame(to_checksum_address(sender), to, 0, data)
            finally:
                self._restore(snap)
                self._frames = []
                self._logs = saved_logs

    # ── Receipts ──────────────────────────────────────────────────────

    def get_receipt(self, tx_hash: str) -> Optional[Receipt]:
        return self._receipts.get(tx_hash)

    def confirmations(self, tx_hash: str) -> int:
        receipt = self._receipts.get(tx_hash)
        if receipt is None:
            return 0
        return self.latest_block.number - receipt.block_number + 1

    # ── Development helpers ───────────────────────────────────────────

    def _require_development(self, operation: str) -> None:
        if not self.development:
            raise ConfigurationError(
                f"{operation} is only available on development chains "
                f"(network={self.network_name})"
            )

    def mine(self, blocks: int = 1) -> int:
        """Mine *blocks* empty blocks; returns the new block number."""
        self._require_development("mine")
        with self._lock:
            for _ in range(blocks):
                self._mine(self._pending_header())
            logger.debug(f"Moved {blocks} blocks (now at {self.latest_block.number})")
            return self.latest_block.number

    def increase_time(self, seconds: int) -> int:
        """Shift the timestamp of the next mined block forward by *seconds*."""
        self._require_development("increase_time")
        with self._lock:
            self._time_offset += int(seconds)
            logger.debug(f"Moved {seconds} seconds")
            return self._time_offset

    def set_balance(self, address: str, amount: int) -> None:
        self._require_development("set_balance")
        with self._lock:
            self._balances[to_checksum_address(address)] = amount

    def __repr__(self) -> str:
        return (
            f"<Ledger chain={self.chain_id} network={self.network_name} "
            f"block={self.latest_block.number}>"
        )
