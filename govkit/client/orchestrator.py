"""
Proposal Orchestrator

Drives one proposal through its lifecycle from outside the ledger:

    propose → (wait for Active) → vote → (wait for deadline) → queue
            → (wait for eta) → execute

Every step is idempotent. Before submitting anything the driver re-derives
the proposal id from its inputs and re-reads the on-ledger state, so a step
whose transaction already landed (a crash, a lost response) is skipped
instead of submitted twice.

Only TransportError is retried, with exponential backoff. Contract reverts
propagate, except time-based guards (``retryable``) which are re-checked on
the next attempt. Terminal outcomes the driver cannot continue from raise
OrchestrationAborted subclasses.

Waiting polls the ledger every ``poll_interval`` seconds. On development
ledgers a DevelopmentTimeTravel may be injected to mine blocks and move
time forward instead; it is never used implicitly.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, Type

from eth_utils import is_address, to_checksum_address

from ..config.loader import OrchestratorConfig
from ..constants import (
    CONFIRMATION_TIMEOUT,
    CONFIRMATIONS,
    MAX_RETRIES,
    POLL_INTERVAL,
    RETRY_BASE_DELAY,
    RETRY_MAX_DELAY,
)
from ..crypto.hashing import description_hash, hash_proposal, to_hex32
from ..exceptions import (
    ConfigurationError,
    ConfirmationTimeout,
    GovKitException,
    OrchestrationAborted,
    ProposalCanceledExternally,
    ProposalDefeated,
    ProposalExpiredError,
    RetriesExhausted,
    StateGuardError,
    TransportError,
    ValidationError,
    VotingClosed,
)
from ..governance.checkpoints import GovernanceToken
from ..governance.deploy import Deployment
from ..governance.governor import GovernorEngine, NonexistentProposal
from ..governance.proposals import ProposalState, VoteType
from ..ledger import Contract, Receipt
from ..logger import get_logger
from .contracts import ContractHandle
from .provider import LedgerClient
from .store import ProposalStore

logger = get_logger(__name__)

Sleep = Callable[[float], Awaitable[Any]]


# ══════════════════════════════════════════════════════════════════════
#  REQUESTS AND REPORTS
# ══════════════════════════════════════════════════════════════════════

@dataclass
class ProposalRequest:
    """The (targets, values, calldatas, description) tuple that identifies a proposal."""
    targets: List[str]
    values: List[int]
    calldatas: List[bytes]
    description: str

    @classmethod
    def from_action(
        cls,
        target: str,
        contract_cls: Type[Contract],
        func: str,
        args: Sequence[Any],
        description: str,
        value: int = 0,
    ) -> "ProposalRequest":
        """Single-action proposal calling ``contract_cls.func(*args)`` on *target*."""
        return cls(
            targets=[target],
            values=[value],
            calldatas=[contract_cls.encode_call(func, *args)],
            description=description,
        )

    def validate(self) -> None:
        if not self.targets:
            raise ValidationError("A proposal needs at least one action")
        if not (len(self.targets) == len(self.values) == len(self.calldatas)):
            raise ValidationError(
                f"targets={len(self.targets)} values={len(self.values)} "
                f"calldatas={len(self.calldatas)}"
            )
        for target in self.targets:
            if not is_address(target):
                raise ValidationError(f"Invalid target address {target!r}")
        if any(v < 0 for v in self.values):
            raise ValidationError("Action values must be >= 0")

    @property
    def description_hash(self) -> bytes:
        return description_hash(self.description)

    @property
    def proposal_id(self) -> int:
        return hash_proposal(self.targets, self.values, self.calldatas, self.description_hash)

    def lifecycle_args(self) -> Tuple[List[str], List[int], List[bytes], bytes]:
        """Arguments of queue / execute / cancel."""
        return (
            [to_checksum_address(t) for t in self.targets],
            list(self.values),
            list(self.calldatas),
            self.description_hash,
        )


@dataclass(frozen=True)
class Ballot:
    voter: str
    support: int = VoteType.FOR
    reason: str = ""


@dataclass
class StepReport:
    step: str
    proposal_id: int
    state: Optional[ProposalState]
    operation_id: Optional[bytes] = None
    tx_hash: Optional[str] = None
    skipped: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step": self.step,
            "proposalId": str(self.proposal_id),
            "state": self.state.label if self.state is not None else None,
            "operationId": "0x" + self.operation_id.hex() if self.operation_id else None,
            "txHash": self.tx_hash,
            "skipped": self.skipped,
        }


@dataclass
class ProposalReport:
    proposal_id: int
    state: Optional[ProposalState] = None
    operation_id: Optional[bytes] = None
    steps: List[StepReport] = field(default_factory=list)

    def add(self, report: StepReport) -> StepReport:
        self.steps.append(report)
        self.state = report.state
        if report.operation_id:
            self.operation_id = report.operation_id
        return report

    def to_dict(self) -> Dict[str, Any]:
        return {
            "proposalId": str(self.proposal_id),
            "proposalIdHex": to_hex32(self.proposal_id),
            "state": self.state.label if self.state is not None else None,
            "operationId": "0x" + self.operation_id.hex() if self.operation_id else None,
            "steps": [s.to_dict() for s in self.steps],
        }


@dataclass
class OrchestratorSettings:
    confirmations: int = CONFIRMATIONS
    confirmation_timeout: float = CONFIRMATION_TIMEOUT
    poll_interval: float = POLL_INTERVAL
    max_retries: int = MAX_RETRIES
    retry_base_delay: float = RETRY_BASE_DELAY
    retry_max_delay: float = RETRY_MAX_DELAY

    @classmethod
    def from_config(cls, config: OrchestratorConfig) -> "OrchestratorSettings":
        return cls(
            confirmations=config.confirmations,
            confirmation_timeout=config.confirmation_timeout,
            poll_interval=config.poll_interval,
            max_retries=config.max_retries,
            retry_base_delay=config.retry_base_delay,
            retry_max_delay=config.retry_max_delay,
        )

    def backoff(self, attempt: int) -> float:
        """Delay before retry number *attempt* (1-based)."""
        return min(self.retry_base_delay * (2 ** (attempt - 1)), self.retry_max_delay)


async def with_retries(
    step: str,
    attempt: Callable[[], Awaitable[Any]],
    settings: OrchestratorSettings,
    sleep: Sleep = asyncio.sleep,
) -> Any:
    """
    Await *attempt* until it succeeds, retrying TransportError and retryable
    state guards with exponential backoff.

    Raises:
        RetriesExhausted: every one of ``settings.max_retries`` attempts failed
    """
    last_error: Optional[Exception] = None
    for n in range(1, settings.max_retries + 1):
        try:
            return await attempt()
        except TransportError as e:
            last_error = e
            logger.warning(f"{step}: transport failure on attempt {n}: {e}")
        except StateGuardError as e:
            if not e.retryable:
                raise
            last_error = e
            logger.info(f"{step}: {type(e).__name__} on attempt {n}, re-checking")
        if n < settings.max_retries:
            await sleep(settings.backoff(n))
    logger.error(f"{step}: retries exhausted after {settings.max_retries} attempts")
    raise RetriesExhausted(step, settings.max_retries, last_error)


# ══════════════════════════════════════════════════════════════════════
#  TIME TRAVEL
# ══════════════════════════════════════════════════════════════════════

class DevelopmentTimeTravel:
    """
    Explicit block mining / time warping on a development ledger.

    Build it with ``await DevelopmentTimeTravel.for_client(client)``; that
    refuses clients that are not connected to a development chain.
    """

    def __init__(self, client: LedgerClient):
        self.client = client

    @classmethod
    async def for_client(cls, client: LedgerClient) -> "DevelopmentTimeTravel":
        if not await client.is_development():
            raise ConfigurationError("Time travel is only available on development chains")
        return cls(client)

    async def move_blocks(self, blocks: int) -> int:
        logger.info(f"Moving {blocks} blocks")
        return await self.client.mine(blocks)

    async def move_time(self, seconds: int) -> int:
        logger.info(f"Moving {seconds} seconds")
        await self.client.increase_time(seconds)
        return await self.client.mine(1)


# ══════════════════════════════════════════════════════════════════════
#  ORCHESTRATOR
# ══════════════════════════════════════════════════════════════════════

class Orchestrator:
    """
    Finite-state driver for proposal lifecycles.

    The proposer submits, queues and executes; ballots carry their own voters.
    """

    def __init__(
        self,
        client: LedgerClient,
        deployment: Deployment,
        proposer: str,
        store: ProposalStore,
        settings: Optional[OrchestratorSettings] = None,
        time_travel: Optional[DevelopmentTimeTravel] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.client = client
        self.deployment = deployment
        self.proposer = to_checksum_address(proposer)
        self.store = store
        self.settings = settings or OrchestratorSettings()
        self.time_travel = time_travel
        self._sleep = sleep
        self.governor = ContractHandle(client, GovernorEngine, deployment.governor)
        self.token = ContractHandle(client, GovernanceToken, deployment.token)
        self._clock_mode: Optional[str] = None

    # ── Retry machinery ───────────────────────────────────────────────

    async def retry(self, step: str, attempt: Callable[[], Awaitable[Any]]) -> Any:
        """Run *attempt* under this driver's retry budget and backoff."""
        return await with_retries(step, attempt, self.settings, self._sleep)

    async def _read(self, name: str, *args: Any) -> Any:
        return await self.retry(f"read {name}", lambda: self.governor.call(name, *args))

    async def _submit(
        self,
        step: str,
        sender: str,
        func: str,
        args: Sequence[Any],
        already_done: Callable[[], Awaitable[bool]],
    ) -> Optional[Receipt]:
        """
        Submit ``governor.func(*args)`` unless *already_done* reports the
        effect is present, waiting for the configured confirmations.

        A transaction sent by an earlier attempt is re-confirmed rather than
        re-checked, so a confirmation timeout never turns into a skip. When a
        send failed without returning a hash and the effect is visible anyway,
        the step still waits out the confirmation depth before returning.

        Returns None when the step was skipped.
        """
        sent: List[str] = []
        blind_target: List[Optional[int]] = []

        async def attempt() -> Optional[Receipt]:
            if sent:
                if await self.client.get_receipt(sent[-1]) is not None:
                    return await self._confirm(sent[-1])
                logger.warning(f"{step}: {sent[-1]} is not on the ledger, re-checking")
            if await already_done():
                if blind_target:
                    await self._settle(step, blind_target)
                logger.info(f"{step}: already on the ledger, skipping")
                return None
            try:
                tx_hash = await self.governor.transact(sender, func, *args)
            except TransportError:
                # The transaction may have landed; its block is at most the current head
                if not blind_target:
                    blind_target.append(None)
                raise
            sent.append(tx_hash)
            logger.info(f"{step}: submitted {tx_hash}")
            return await self._confirm(tx_hash)

        return await self.retry(step, attempt)

    async def _settle(self, step: str, target: List[Optional[int]]) -> None:
        """
        Wait until the head is ``confirmations - 1`` blocks past the head seen
        when the effect was first observed.
        """
        depth = self.settings.confirmations - 1
        if depth <= 0:
            return
        if target[0] is None:
            target[0] = await self.client.block_number() + depth
            if self.time_travel is not None:
                await self.time_travel.move_blocks(depth)
        waited = 0.0
        while await self.client.block_number() < target[0]:
            if waited >= self.settings.confirmation_timeout:
                raise ConfirmationTimeout(
                    f"{step} (hash lost)", self.settings.confirmations, self.settings.confirmation_timeout
                )
            await self._sleep(self.settings.poll_interval)
            waited += self.settings.poll_interval

    async def _confirm(self, tx_hash: str) -> Receipt:
        if self.time_travel is not None and self.settings.confirmations > 1:
            await self.time_travel.move_blocks(self.settings.confirmations - 1)
        return await self.client.wait_for_receipt(
            tx_hash,
            confirmations=self.settings.confirmations,
            timeout=self.settings.confirmation_timeout,
            poll_interval=self.settings.poll_interval,
            sleep=self._sleep,
        )

    # ── Ledger reads ──────────────────────────────────────────────────

    async def state(self, proposal_id: int) -> Optional[ProposalState]:
        """Current state, or None when the proposal does not exist."""
        try:
            return ProposalState(await self._read("state", proposal_id))
        except NonexistentProposal:
            return None

    async def _require_state(self, proposal_id: int) -> ProposalState:
        state = await self.state(proposal_id)
        if state is None:
            raise OrchestrationAborted(proposal_id, "Unknown", f"Proposal {proposal_id} does not exist")
        return state

    async def _has_voted(self, proposal_id: int, voter: str) -> bool:
        return await self._read("hasVoted", proposal_id, voter)

    async def _operation_id(self, proposal_id: int) -> Optional[bytes]:
        op_id = await self._read("proposalOperationId", proposal_id)
        return op_id if any(op_id) else None

    async def _clock_is_timestamp(self) -> bool:
        if self._clock_mode is None:
            self._clock_mode = await self.retry(
                "read CLOCK_MODE", lambda: self.token.call("CLOCK_MODE")
            )
        return "mode=timestamp" in self._clock_mode

    # ── Waiting ───────────────────────────────────────────────────────

    async def _advance_clock(self, target: int) -> None:
        """Move the voting clock to *target* with time travel, or wait one poll."""
        if self.time_travel is None:
            await self._sleep(self.settings.poll_interval)
            return
        now = await self._read("clock")
        delta = max(target - now, 1)
        if await self._clock_is_timestamp():
            await self.retry("move time", lambda: self.time_travel.move_time(delta))
        else:
            await self.retry("move blocks", lambda: self.time_travel.move_blocks(delta))

    async def _advance_time(self, target_timestamp: int) -> None:
        if self.time_travel is None:
            await self._sleep(self.settings.poll_interval)
            return
        now = await self.retry("read timestamp", self.client.timestamp)
        delta = max(target_timestamp - now, 1)
        await self.retry("move time", lambda: self.time_travel.move_time(delta))

    @staticmethod
    def _abort(proposal_id: int, state: ProposalState) -> OrchestrationAborted:
        if state == ProposalState.DEFEATED:
            return ProposalDefeated(proposal_id, state.label)
        if state == ProposalState.CANCELED:
            return ProposalCanceledExternally(proposal_id, state.label)
        if state == ProposalState.EXPIRED:
            return ProposalExpiredError(proposal_id, state.label)
        return OrchestrationAborted(proposal_id, state.label)

    # ── Steps ─────────────────────────────────────────────────────────

    async def propose(self, request: ProposalRequest) -> StepReport:
        request.validate()
        proposal_id = request.proposal_id
        chain_id = await self.retry("read chain id", self.client.chain_id)

        async def exists() -> bool:
            return await self.state(proposal_id) is not None

        receipt = await self._submit(
            "propose",
            self.proposer,
            "propose",
            (request.targets, request.values, request.calldatas, request.description),
            exists,
        )
        if receipt is not None:
            created = receipt.events("ProposalCreated")
            if created and int(created[0].args["proposalId"]) != proposal_id:
                raise GovKitException(
                    f"Ledger reported proposal {created[0].args['proposalId']}, "
                    f"expected {proposal_id}"
                )

        self.store.record(chain_id, request.description_hash, proposal_id)
        state = await self.state(proposal_id)
        logger.info(f"Proposal {proposal_id} is {state.label}")
        return StepReport(
            step="propose",
            proposal_id=proposal_id,
            state=state,
            tx_hash=receipt.tx_hash if receipt else None,
            skipped=receipt is None,
        )

    async def vote(self, proposal_id: int, ballots: Sequence[Ballot]) -> StepReport:
        """Wait for the voting window, then cast every ballot not yet cast."""
        while True:
            state = await self._require_state(proposal_id)
            if state != ProposalState.PENDING:
                break
            await self._advance_clock(await self._read("proposalSnapshot", proposal_id))

        if state == ProposalState.CANCELED:
            raise self._abort(proposal_id, state)
        if state != ProposalState.ACTIVE:
            logger.info(f"Proposal {proposal_id} is {state.label}; voting is over")
            return StepReport("vote", proposal_id, state, skipped=True)

        last_tx: Optional[str] = None
        for ballot in ballots:
            voter = to_checksum_address(ballot.voter)

            async def voted(voter: str = voter) -> bool:
                if await self._has_voted(proposal_id, voter):
                    return True
                current = await self._require_state(proposal_id)
                if current != ProposalState.ACTIVE:
                    raise VotingClosed(proposal_id, current.label, f"Voting on {proposal_id} closed")
                return False

            try:
                receipt = await self._submit(
                    f"vote {voter}",
                    voter,
                    "castVoteWithReason",
                    (proposal_id, int(ballot.support), ballot.reason),
                    voted,
                )
            except VotingClosed as e:
                logger.warning(f"Proposal {proposal_id} is {e.state}; {voter} and later ballots not cast")
                break
            if receipt is not None:
                last_tx = receipt.tx_hash

        state = await self._require_state(proposal_id)
        return StepReport("vote", proposal_id, state, tx_hash=last_tx, skipped=last_tx is None)

    async def _await_outcome(self, proposal_id: int) -> ProposalState:
        """Wait until voting has ended and return the first post-vote state."""
        while True:
            state = await self._require_state(proposal_id)
            if state not in (ProposalState.PENDING, ProposalState.ACTIVE):
                return state
            deadline = await self._read("proposalDeadline", proposal_id)
            await self._advance_clock(deadline + 1)

    async def queue(self, request: ProposalRequest) -> StepReport:
        proposal_id = request.proposal_id
        state = await self._await_outcome(proposal_id)
        if state in (ProposalState.DEFEATED, ProposalState.CANCELED, ProposalState.EXPIRED):
            raise self._abort(proposal_id, state)

        async def queued() -> bool:
            return await self.state(proposal_id) in (ProposalState.QUEUED, ProposalState.EXECUTED)

        receipt = await self._submit(
            "queue", self.proposer, "queue", request.lifecycle_args(), queued
        )
        state = await self._require_state(proposal_id)
        op_id = await self._operation_id(proposal_id)
        if receipt is not None:
            logger.info(f"Proposal {proposal_id} queued as operation 0x{op_id.hex()}")
        return StepReport(
            "queue", proposal_id, state,
            operation_id=op_id,
            tx_hash=receipt.tx_hash if receipt else None,
            skipped=receipt is None,
        )

    async def execute(self, request: ProposalRequest) -> StepReport:
        proposal_id = request.proposal_id
        while True:
            state = await self._require_state(proposal_id)
            if state == ProposalState.EXECUTED:
                break
            if state != ProposalState.QUEUED:
                raise self._abort(proposal_id, state)
            eta = await self._read("proposalEta", proposal_id)
            if await self.retry("read timestamp", self.client.timestamp) >= eta:
                break
            await self._advance_time(eta)

        async def executed() -> bool:
            return await self.state(proposal_id) == ProposalState.EXECUTED

        receipt = await self._submit(
            "execute", self.proposer, "execute", request.lifecycle_args(), executed
        )
        state = await self._require_state(proposal_id)
        if receipt is not None:
            logger.info(f"Proposal {proposal_id} executed in block {receipt.block_number}")
        return StepReport(
            "execute", proposal_id, state,
            operation_id=await self._operation_id(proposal_id),
            tx_hash=receipt.tx_hash if receipt else None,
            skipped=receipt is None,
        )

    # ── Full lifecycle ────────────────────────────────────────────────

    async def run(self, request: ProposalRequest, ballots: Sequence[Ballot]) -> ProposalReport:
        """Drive *request* from submission to execution."""
        report = ProposalReport(proposal_id=request.proposal_id)
        report.add(await self.propose(request))
        report.add(await self.vote(request.proposal_id, ballots))
        report.add(await self.queue(request))
        report.add(await self.execute(request))
        logger.info(f"Proposal {request.proposal_id} finished: {report.state.label}")
        return report

    async def run_many(
        self, items: Sequence[Tuple[ProposalRequest, Sequence[Ballot]]]
    ) -> List[ProposalReport]:
        """Drive independent proposals concurrently."""
        ids = [request.proposal_id for request, _ in items]
        if len(set(ids)) != len(ids):
            raise ValidationError("run_many requires distinct proposals")
        return list(await asyncio.gather(*(self.run(request, ballots) for request, ballots in items)))
