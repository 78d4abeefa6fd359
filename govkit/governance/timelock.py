"""
Timelock Controller

Role-gated scheduler that enforces a minimum delay between scheduling a
batch of calls and executing it:
  - PROPOSER_ROLE schedules (and, by default, cancels)
  - EXECUTOR_ROLE executes; granting it to the zero address opens
    execution to anyone once an operation is ready
  - CANCELLER_ROLE cancels pending operations
  - DEFAULT_ADMIN_ROLE grants and revokes roles; the timelock administers
    itself so the deployer's admin role can be dropped

Operations are identified by keccak256 of (targets, values, payloads,
predecessor, salt) and move through Unset -> Waiting -> Ready -> Done.
Execution is all-or-nothing: the first failing call reverts the batch.
"""

from enum import IntEnum
from typing import Any, Dict, Optional, Sequence

from eth_utils import to_checksum_address

from ..constants import MIN_DELAY, ZERO_ADDRESS, ZERO_BYTES32
from ..crypto.hashing import hash_operation, hash_operation_batch
from ..exceptions import (
    ContractRevert,
    ExecutionError,
    StateGuardError,
    ValidationError,
)
from ..logger import get_logger
from ..ledger import external
from .access import AccessControl, Unauthorized, role_id

logger = get_logger(__name__)

# Marker stored for executed operations
DONE_TIMESTAMP = 1


# ══════════════════════════════════════════════════════════════════════
#  EXCEPTIONS
# ══════════════════════════════════════════════════════════════════════

class TimelockError(ContractRevert):
    """Timelock-specific errors."""


class DelayTooShort(TimelockError, ValidationError):
    """Requested delay is below the minimum delay."""


class InvalidOperationLength(TimelockError, ValidationError):
    """Targets, values and payloads differ in length."""


class OperationAlreadyScheduled(TimelockError, StateGuardError):
    """The operation id is already waiting or ready."""


class OperationAlreadyDone(TimelockError, StateGuardError):
    """The operation id was already executed; it cannot be scheduled again."""


class NotReady(TimelockError, StateGuardError):
    """Execution attempted before the ready timestamp."""
    retryable = True


class PredecessorNotExecuted(TimelockError, StateGuardError):
    """The required predecessor operation has not been executed."""
    retryable = True


class OperationNotPending(TimelockError, StateGuardError):
    """Cancel attempted on an operation that is unset or done."""


class TargetCallFailed(TimelockError, ExecutionError):
    """A call in the batch reverted; the whole batch is rolled back."""


class OperationState(IntEnum):
    UNSET = 0
    WAITING = 1
    READY = 2
    DONE = 3


# ══════════════════════════════════════════════════════════════════════
#  TIMELOCK CONTROLLER
# ══════════════════════════════════════════════════════════════════════

class TimelockController(AccessControl):
    """
    Delayed, role-gated execution of call batches.
    """

    PROPOSER_ROLE = role_id("PROPOSER_ROLE")
    EXECUTOR_ROLE = role_id("EXECUTOR_ROLE")
    CANCELLER_ROLE = role_id("CANCELLER_ROLE")

    accepts_value = True

    def __init__(
        self,
        min_delay: int = MIN_DELAY,
        proposers: Sequence[str] = (),
        executors: Sequence[str] = (),
        admin: Optional[str] = None,
    ):
        super().__init__()
        if min_delay < 0:
            raise ValueError("min_delay must be >= 0")
        self._min_delay = int(min_delay)
        self._proposers = [to_checksum_address(a) for a in proposers]
        self._executors = [to_checksum_address(a) for a in executors]
        self._admin = to_checksum_address(admin) if admin else None
        self._timestamps: Dict[bytes, int] = {}

    def constructor(self) -> None:
        self._grant_role(self.DEFAULT_ADMIN_ROLE, self.address)
        if self._admin is not None:
            self._grant_role(self.DEFAULT_ADMIN_ROLE, self._admin)
        for proposer in self._proposers:
            self._grant_role(self.PROPOSER_ROLE, proposer)
            self._grant_role(self.CANCELLER_ROLE, proposer)
        for executor in self._executors:
            self._grant_role(self.EXECUTOR_ROLE, executor)
        self.emit("MinDelayChange", oldDuration=0, newDuration=self._min_delay)

    # ── Role constants ────────────────────────────────────────────────

    @external("PROPOSER_ROLE()", returns=("bytes32",), view=True)
    def proposer_role(self) -> bytes:
        return self.PROPOSER_ROLE

    @external("EXECUTOR_ROLE()", returns=("bytes32",), view=True)
    def executor_role(self) -> bytes:
        return self.EXECUTOR_ROLE

    @external("CANCELLER_ROLE()", returns=("bytes32",), view=True)
    def canceller_role(self) -> bytes:
        return self.CANCELLER_ROLE

    @external("DEFAULT_ADMIN_ROLE()", returns=("bytes32",), view=True)
    def default_admin_role(self) -> bytes:
        return self.DEFAULT_ADMIN_ROLE

    def is_proposer(self, account: str) -> bool:
        return self.has_role(self.PROPOSER_ROLE, account)

    def is_executor(self, account: str) -> bool:
        return (
            self.has_role(self.EXECUTOR_ROLE, ZERO_ADDRESS)
            or self.has_role(self.EXECUTOR_ROLE, account)
        )

    def is_canceller(self, account: str) -> bool:
        return self.has_role(self.CANCELLER_ROLE, account)

    # ── Operation queries ─────────────────────────────────────────────

    @external("getMinDelay()", returns=("uint256",), view=True)
    def get_min_delay(self) -> int:
        return self._min_delay

    @external("getTimestamp(bytes32)", returns=("uint256",), view=True)
    def get_timestamp(self, op_id: bytes) -> int:
        return self._timestamps.get(op_id, 0)

    @external("getOperationState(bytes32)", returns=("uint8",), view=True)
    def get_operation_state(self, op_id: bytes) -> int:
        timestamp = self.get_timestamp(op_id)
        if timestamp == 0:
            return OperationState.UNSET
        if timestamp == DONE_TIMESTAMP:
            return OperationState.DONE
        if timestamp > self.block_timestamp:
            return OperationState.WAITING
        return OperationState.READY

    @external("isOperation(bytes32)", returns=("bool",), view=True)
    def is_operation(self, op_id: bytes) -> bool:
        return self.get_operation_state(op_id) != OperationState.UNSET

    @external("isOperationPending(bytes32)", returns=("bool",), view=True)
    def is_operation_pending(self, op_id: bytes) -> bool:
        return self.get_operation_state(op_id) in (OperationState.WAITING, OperationState.READY)

    @external("isOperationReady(bytes32)", returns=("bool",), view=True)
    def is_operation_ready(self, op_id: bytes) -> bool:
        return self.get_operation_state(op_id) == OperationState.READY

    @external("isOperationDone(bytes32)", returns=("bool",), view=True)
    def is_operation_done(self, op_id: bytes) -> bool:
        return self.get_operation_state(op_id) == OperationState.DONE

    @external("hashOperation(address,uint256,bytes,bytes32,bytes32)", returns=("bytes32",), view=True)
    def hash_operation(self, target: str, value: int, data: bytes, predecessor: bytes, salt: bytes) -> bytes:
        return hash_operation(target, value, data, predecessor, salt)

    @external(
        "hashOperationBatch(address[],uint256[],bytes[],bytes32,bytes32)",
        returns=("bytes32",),
        view=True,
    )
    def hash_operation_batch(
        self,
        targets: Sequence[str],
        values: Sequence[int],
        payloads: Sequence[bytes],
        predecessor: bytes,
        salt: bytes,
    ) -> bytes:
        return hash_operation_batch(targets, values, payloads, predecessor, salt)

    # ── Scheduling ────────────────────────────────────────────────────

    @external("schedule(address,uint256,bytes,bytes32,bytes32,uint256)")
    def schedule(self, target: str, value: int, data: bytes, predecessor: bytes, salt: bytes, delay: int) -> None:
        self._check_role(self.PROPOSER_ROLE, self.msg_sender)
        op_id = hash_operation(target, value, data, predecessor, salt)
        self._schedule(op_id, delay)
        self.emit("CallScheduled", id=op_id, index=0, target=target, value=value,
                  data=data, predecessor=predecessor, delay=delay)
        if salt != ZERO_BYTES32:
            self.emit("CallSalt", id=op_id, salt=salt)

    @external("scheduleBatch(address[],uint256[],bytes[],bytes32,bytes32,uint256)")
    def schedule_batch(
        self,
        targets: Sequence[str],
        values: Sequence[int],
        payloads: Sequence[bytes],
        predecessor: bytes,
        salt: bytes,
        delay: int,
    ) -> None:
        self._check_role(self.PROPOSER_ROLE, self.msg_sender)
        self._check_lengths(targets, values, payloads)
        op_id = hash_operation_batch(targets, values, payloads, predecessor, salt)
        self._schedule(op_id, delay)
        for index, (target, value, data) in enumerate(zip(targets, values, payloads)):
            self.emit("CallScheduled", id=op_id, index=index, target=target, value=value,
                      data=data, predecessor=predecessor, delay=delay)
        if salt != ZERO_BYTES32:
            self.emit("CallSalt", id=op_id, salt=salt)

    def _schedule(self, op_id: bytes, delay: int) -> None:
        state = self.get_operation_state(op_id)
        if state == OperationState.DONE:
            raise OperationAlreadyDone(f"Operation 0x{op_id.hex()} already executed")
        if state != OperationState.UNSET:
            raise OperationAlreadyScheduled(f"Operation 0x{op_id.hex()} already scheduled")
        if delay < self._min_delay:
            raise DelayTooShort(f"Delay {delay}s < minimum {self._min_delay}s")
        ready = self.block_timestamp + delay
        self._timestamps[op_id] = ready
        logger.info(f"Timelock: scheduled 0x{op_id.hex()} (ready at {ready})")

    @external("cancel(bytes32)")
    def cancel(self, op_id: bytes) -> None:
        self._check_role(self.CANCELLER_ROLE, self.msg_sender)
        if not self.is_operation_pending(op_id):
            raise OperationNotPending(f"Operation 0x{op_id.hex()} is not pending")
        del self._timestamps[op_id]
        self.emit("Cancelled", id=op_id)
        logger.info(f"Timelock: cancelled 0x{op_id.hex()}")

    # ── Execution ─────────────────────────────────────────────────────

    @external("execute(address,uint256,bytes,bytes32,bytes32)", payable=True)
    def execute(self, target: str, value: int, data: bytes, predecessor: bytes, salt: bytes) -> None:
        self._check_executor()
        op_id = hash_operation(target, value, data, predecessor, salt)
        self._before_call(op_id, predecessor)
        self._call(op_id, 0, target, value, data)
        self._after_call(op_id)

    @external("executeBatch(address[],uint256[],bytes[],bytes32,bytes32)", payable=True)
    def execute_batch(
        self,
        targets: Sequence[str],
        values: Sequence[int],
        payloads: Sequence[bytes],
        predecessor: bytes,
        salt: bytes,
    ) -> None:
        self._check_executor()
        self._check_lengths(targets, values, payloads)
        op_id = hash_operation_batch(targets, values, payloads, predecessor, salt)
        self._before_call(op_id, predecessor)
        for index, (target, value, data) in enumerate(zip(targets, values, payloads)):
            self._call(op_id, index, target, value, data)
        self._after_call(op_id)

    def _check_executor(self) -> None:
        if not self.is_executor(self.msg_sender):
            raise Unauthorized(f"{self.msg_sender} is missing role 0x{self.EXECUTOR_ROLE.hex()}")

    def _before_call(self, op_id: bytes, predecessor: bytes) -> None:
        if not self.is_operation_ready(op_id):
            raise NotReady(
                f"Operation 0x{op_id.hex()} not ready "
                f"(state={OperationState(self.get_operation_state(op_id)).name})"
            )
        if predecessor != ZERO_BYTES32 and not self.is_operation_done(predecessor):
            raise PredecessorNotExecuted(f"Predecessor 0x{predecessor.hex()} not executed")

    def _call(self, op_id: bytes, index: int, target: str, value: int, data: bytes) -> None:
        try:
            self.call_contract(target, value, data)
        except ContractRevert as exc:
            raise TargetCallFailed(
                f"Call {index} to {target} failed: {type(exc).__name__}: {exc}"
            ) from exc
        self.emit("CallExecuted", id=op_id, index=index, target=target, value=value, data=data)

    def _after_call(self, op_id: bytes) -> None:
        if not self.is_operation_ready(op_id):
            raise NotReady(f"Operation 0x{op_id.hex()} changed state during execution")
        self._timestamps[op_id] = DONE_TIMESTAMP
        logger.info(f"Timelock: executed 0x{op_id.hex()}")

    # ── Administration ────────────────────────────────────────────────

    @external("updateDelay(uint256)")
    def update_delay(self, new_delay: int) -> None:
        if self.msg_sender != self.address:
            raise Unauthorized("updateDelay can only be called by the timelock itself")
        self.emit("MinDelayChange", oldDuration=self._min_delay, newDuration=new_delay)
        self._min_delay = new_delay

    @staticmethod
    def _check_lengths(targets: Sequence[Any], values: Sequence[Any], payloads: Sequence[Any]) -> None:
        if not (len(targets) == len(values) == len(payloads)):
            raise InvalidOperationLength(
                f"targets={len(targets)} values={len(values)} payloads={len(payloads)}"
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "minDelay": self._min_delay,
            "operations": {
                "0x" + op_id.hex(): ts for op_id, ts in self._timestamps.items()
            },
        }
