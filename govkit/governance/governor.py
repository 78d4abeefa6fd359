"""
Governor Engine

Proposal lifecycle state machine:

    Pending -> Active -> Succeeded -> Queued -> Executed
                     +-> Defeated        +-> Expired (only with a grace period)
    Pending / Active -> Canceled (by the proposer or a canceller)

State is derived on every read from the voting clock, the stored tallies,
the terminal flags and the timelock operation, so callers that stop
polling never observe a stale state.

Voting power is read from the token at the last timepoint before voting
opens (voteStart - 1), never at vote time, so nothing mined in an Active
block can change a weight. Approved proposals are executed through the
TimelockController; the governor itself holds no privileges on targets.
"""

from typing import Any, Dict, Iterable, Optional, Sequence, Tuple

from eth_utils import to_checksum_address

from ..constants import (
    GOVERNOR_NAME,
    PROPOSAL_THRESHOLD,
    QUORUM_DENOMINATOR,
    QUORUM_NUMERATOR,
    VOTING_DELAY,
    VOTING_PERIOD,
    ZERO_BYTES32,
)
from ..crypto.hashing import (
    description_hash,
    hash_operation_batch,
    hash_proposal,
    timelock_salt,
)
from ..exceptions import (
    AuthorizationError,
    ContractRevert,
    StateGuardError,
    ValidationError,
)
from ..logger import get_logger
from ..ledger import Contract, external
from .access import Unauthorized
from .checkpoints import GovernanceToken, Trace
from .proposals import ProposalCore, ProposalState, VoteRecord, VoteType
from .timelock import OperationState, TimelockController

logger = get_logger(__name__)


# ══════════════════════════════════════════════════════════════════════
#  EXCEPTIONS
# ══════════════════════════════════════════════════════════════════════

class GovernorError(ContractRevert):
    """Base governor error."""


class NonexistentProposal(GovernorError, ValidationError):
    """No proposal is recorded under the given id."""


class InvalidProposalLength(GovernorError, ValidationError):
    """Targets, values and calldatas are empty or differ in length."""


class InvalidVoteType(GovernorError, ValidationError):
    """Support value is not Against, For or Abstain."""


class InvalidGovernanceParameter(GovernorError, ValidationError):
    """A governance setting is out of range."""


class ProposalAlreadyExists(GovernorError, StateGuardError):
    """The same (targets, values, calldatas, description) was already proposed."""


class BelowProposalThreshold(GovernorError, AuthorizationError):
    """Proposer's voting power is under the proposal threshold."""


class ProposalNotActive(GovernorError, StateGuardError):
    """Vote cast outside the voting window."""
    retryable = True


class AlreadyVoted(GovernorError, StateGuardError):
    """The voter already cast a ballot on this proposal."""


class ProposalNotSucceeded(GovernorError, StateGuardError):
    """Queue attempted on a proposal that has not succeeded."""
    retryable = True


class AlreadyQueued(GovernorError, StateGuardError):
    """The proposal is already scheduled in the timelock."""


class ProposalNotQueued(GovernorError, StateGuardError):
    """Execute attempted on a proposal that is not queued."""
    retryable = True


class TimelockNotReady(GovernorError, StateGuardError):
    """Execute attempted before the timelock ready timestamp."""
    retryable = True


class ProposalExpired(GovernorError, StateGuardError):
    """Execute attempted after the grace period ran out."""


class AlreadyExecuted(GovernorError, StateGuardError):
    """The proposal was already executed."""


class ProposalNotCancelable(GovernorError, StateGuardError):
    """The proposal's state does not allow the caller to cancel it."""


class OnlyGovernance(GovernorError, AuthorizationError):
    """Setting changes must come through an executed proposal."""


# ══════════════════════════════════════════════════════════════════════
#  GOVERNOR
# ══════════════════════════════════════════════════════════════════════

class GovernorEngine(Contract):
    """
    Token-weighted governor with timelocked execution.

    Responsibilities:
        - Accept proposals from accounts above the proposal threshold
        - Record one ballot per voter, weighted at the proposal snapshot
        - Derive proposal state (quorum counts For, Against and Abstain)
        - Queue succeeded proposals in the timelock and execute them once ready
        - Cancel proposals according to the cancel policy
    """

    def __init__(
        self,
        token: str,
        timelock: str,
        voting_delay: int = VOTING_DELAY,
        voting_period: int = VOTING_PERIOD,
        proposal_threshold: int = PROPOSAL_THRESHOLD,
        quorum_numerator: int = QUORUM_NUMERATOR,
        quorum_denominator: int = QUORUM_DENOMINATOR,
        grace_period: Optional[int] = None,
        cancellers: Iterable[str] = (),
        name: str = GOVERNOR_NAME,
    ):
        super().__init__()
        if voting_period <= 0:
            raise ValueError("voting_period must be > 0")
        if quorum_denominator <= 0 or not 0 <= quorum_numerator <= quorum_denominator:
            raise ValueError("quorum fraction must be within [0, 1]")
        self._name = name
        self._token = to_checksum_address(token)
        self._timelock = to_checksum_address(timelock)
        self._voting_delay = int(voting_delay)
        self._voting_period = int(voting_period)
        self._proposal_threshold = int(proposal_threshold)
        self._initial_quorum_numerator = int(quorum_numerator)
        self._quorum_denominator = int(quorum_denominator)
        self._quorum_numerators = Trace()
        self._grace_period = int(grace_period or 0)
        self._cancellers = {to_checksum_address(a) for a in cancellers}
        self._proposals: Dict[int, ProposalCore] = {}

    def constructor(self) -> None:
        self._quorum_numerators.push(self.clock(), self._initial_quorum_numerator)

    # ── Cross-contract helpers ────────────────────────────────────────

    def _token_call(self, name: str, *args: Any) -> Any:
        data = GovernanceToken.encode_call(name, *args)
        return GovernanceToken.decode_result(name, self.call_contract(self._token, 0, data))

    def _timelock_call(self, name: str, *args: Any, value: int = 0) -> Any:
        data = TimelockController.encode_call(name, *args)
        return TimelockController.decode_result(
            name, self.call_contract(self._timelock, value, data)
        )

    def _only_governance(self) -> None:
        if self.msg_sender != self._timelock:
            raise OnlyGovernance(f"{self.msg_sender} is not the governance executor")

    # ── Configuration views ───────────────────────────────────────────

    @external("name()", returns=("string",), view=True)
    def name(self) -> str:
        return self._name

    @external("COUNTING_MODE()", returns=("string",), view=True)
    def counting_mode(self) -> str:
        return "support=bravo&quorum=for,against,abstain"

    @external("token()", returns=("address",), view=True)
    def token(self) -> str:
        return self._token

    @external("timelock()", returns=("address",), view=True)
    def timelock(self) -> str:
        return self._timelock

    @external("clock()", returns=("uint48",), view=True)
    def clock(self) -> int:
        return self._token_call("clock")

    @external("votingDelay()", returns=("uint256",), view=True)
    def voting_delay(self) -> int:
        return self._voting_delay

    @external("votingPeriod()", returns=("uint256",), view=True)
    def voting_period(self) -> int:
        return self._voting_period

    @external("proposalThreshold()", returns=("uint256",), view=True)
    def proposal_threshold(self) -> int:
        return self._proposal_threshold

    @external("gracePeriod()", returns=("uint256",), view=True)
    def grace_period(self) -> int:
        """Seconds a queued proposal stays executable after eta; 0 = forever."""
        return self._grace_period

    @external("quorumNumerator()", returns=("uint256",), view=True)
    def quorum_numerator(self) -> int:
        return self._quorum_numerators.latest()

    @external("quorumDenominator()", returns=("uint256",), view=True)
    def quorum_denominator(self) -> int:
        return self._quorum_denominator

    @external("quorum(uint256)", returns=("uint256",), view=True)
    def quorum(self, timepoint: int) -> int:
        supply = self._token_call("getPastTotalSupply", timepoint)
        numerator = self._quorum_numerators.upper_lookup(timepoint)
        return supply * numerator // self._quorum_denominator

    @external("getVotes(address,uint256)", returns=("uint256",), view=True)
    def get_votes(self, account: str, timepoint: int) -> int:
        return self._token_call("getPastVotes", account, timepoint)

    @external("isCanceller(address)", returns=("bool",), view=True)
    def is_canceller(self, account: str) -> bool:
        return to_checksum_address(account) in self._cancellers

    # ── Proposal views ────────────────────────────────────────────────

    @external("hashProposal(address[],uint256[],bytes[],bytes32)", returns=("uint256",), view=True)
    def hash_proposal(
        self,
        targets: Sequence[str],
        values: Sequence[int],
        calldatas: Sequence[bytes],
        desc_hash: bytes,
    ) -> int:
        return hash_proposal(targets, values, calldatas, desc_hash)

    def _get(self, proposal_id: int) -> ProposalCore:
        proposal = self._proposals.get(proposal_id)
        if proposal is None:
            raise NonexistentProposal(f"Unknown proposal {proposal_id}")
        return proposal

    @external("state(uint256)", returns=("uint8",), view=True)
    def state(self, proposal_id: int) -> int:
        return self._state(self._get(proposal_id))

    def _state(self, proposal: ProposalCore) -> ProposalState:
        if proposal.executed:
            return ProposalState.EXECUTED
        if proposal.canceled:
            return ProposalState.CANCELED

        now = self.clock()
        if now < proposal.vote_start:
            return ProposalState.PENDING
        if now <= proposal.vote_end:
            return ProposalState.ACTIVE
        if not (self._quorum_reached(proposal) and self._vote_succeeded(proposal)):
            return ProposalState.DEFEATED
        if proposal.eta == 0:
            return ProposalState.SUCCEEDED

        # Queued: the timelock may have executed or cancelled the operation directly
        op_state = self._timelock_call("getOperationState", proposal.operation_id)
        if op_state == OperationState.DONE:
            return ProposalState.EXECUTED
        if op_state == OperationState.UNSET:
            return ProposalState.CANCELED
        if self._grace_period and self.block_timestamp >= proposal.eta + self._grace_period:
            return ProposalState.EXPIRED
        return ProposalState.QUEUED

    @staticmethod
    def _weight_timepoint(proposal: ProposalCore) -> int:
        # Last timepoint at which the proposal cannot yet be voted on
        return max(proposal.vote_start - 1, 0)

    def _quorum_reached(self, proposal: ProposalCore) -> bool:
        return proposal.votes.total >= self.quorum(self._weight_timepoint(proposal))

    @staticmethod
    def _vote_succeeded(proposal: ProposalCore) -> bool:
        return proposal.votes.for_votes > proposal.votes.against_votes

    @external("proposalSnapshot(uint256)", returns=("uint256",), view=True)
    def proposal_snapshot(self, proposal_id: int) -> int:
        return self._get(proposal_id).vote_start

    @external("proposalDeadline(uint256)", returns=("uint256",), view=True)
    def proposal_deadline(self, proposal_id: int) -> int:
        return self._get(proposal_id).vote_end

    @external("proposalProposer(uint256)", returns=("address",), view=True)
    def proposal_proposer(self, proposal_id: int) -> str:
        return self._get(proposal_id).proposer

    @external("proposalEta(uint256)", returns=("uint256",), view=True)
    def proposal_eta(self, proposal_id: int) -> int:
        return self._get(proposal_id).eta

    @external("proposalOperationId(uint256)", returns=("bytes32",), view=True)
    def proposal_operation_id(self, proposal_id: int) -> bytes:
        return self._get(proposal_id).operation_id or ZERO_BYTES32

    @external("proposalNeedsQueuing(uint256)", returns=("bool",), view=True)
    def proposal_needs_queuing(self, proposal_id: int) -> bool:
        return True

    @external("proposalVotes(uint256)", returns=("uint256", "uint256", "uint256"), view=True)
    def proposal_votes(self, proposal_id: int) -> Tuple[int, int, int]:
        votes = self._get(proposal_id).votes
        return votes.against_votes, votes.for_votes, votes.abstain_votes

    @external("hasVoted(uint256,address)", returns=("bool",), view=True)
    def has_voted(self, proposal_id: int, account: str) -> bool:
        return to_checksum_address(account) in self._get(proposal_id).votes.ballots

    def get_proposal(self, proposal_id: int) -> ProposalCore:
        return self._get(proposal_id)

    # ── Propose ───────────────────────────────────────────────────────

    @external("propose(address[],uint256[],bytes[],string)", returns=("uint256",))
    def propose(
        self,
        targets: Sequence[str],
        values: Sequence[int],
        calldatas: Sequence[bytes],
        description: str,
    ) -> int:
        proposer = self.msg_sender
        if not targets or not (len(targets) == len(values) == len(calldatas)):
            raise InvalidProposalLength(
                f"targets={len(targets)} values={len(values)} calldatas={len(calldatas)}"
            )

        desc_hash = description_hash(description)
        proposal_id = hash_proposal(targets, values, calldatas, desc_hash)
        if proposal_id in self._proposals:
            raise ProposalAlreadyExists(
                f"Proposal {proposal_id} already exists "
                f"(state={self._state(self._proposals[proposal_id]).label})"
            )

        now = self.clock()
        votes = self._token_call("getPastVotes", proposer, max(now - 1, 0))
        if votes < self._proposal_threshold:
            raise BelowProposalThreshold(
                f"{proposer} has {votes} votes, threshold is {self._proposal_threshold}"
            )

        vote_start = now + self._voting_delay
        vote_end = vote_start + self._voting_period
        self._proposals[proposal_id] = ProposalCore(
            proposal_id=proposal_id,
            proposer=proposer,
            targets=[to_checksum_address(t) for t in targets],
            values=list(values),
            calldatas=[bytes(c) for c in calldatas],
            description=description,
            description_hash=desc_hash,
            vote_start=vote_start,
            vote_end=vote_end,
        )
        self.emit(
            "ProposalCreated",
            proposalId=proposal_id,
            proposer=proposer,
            targets=list(targets),
            values=list(values),
            calldatas=list(calldatas),
            voteStart=vote_start,
            voteEnd=vote_end,
            description=description,
        )
        logger.info(
            f"Proposal {proposal_id} created by {proposer} "
            f"(voting {vote_start} → {vote_end})"
        )
        return proposal_id

    # ── Voting ────────────────────────────────────────────────────────

    @external("castVote(uint256,uint8)", returns=("uint256",))
    def cast_vote(self, proposal_id: int, support: int) -> int:
        return self._cast_vote(proposal_id, self.msg_sender, support, "")

    @external("castVoteWithReason(uint256,uint8,string)", returns=("uint256",))
    def cast_vote_with_reason(self, proposal_id: int, support: int, reason: str) -> int:
        return self._cast_vote(proposal_id, self.msg_sender, support, reason)

    def _cast_vote(self, proposal_id: int, voter: str, support: int, reason: str) -> int:
        proposal = self._get(proposal_id)
        state = self._state(proposal)
        if state != ProposalState.ACTIVE:
            raise ProposalNotActive(f"Proposal {proposal_id} is {state.label}")
        if not VoteType.is_valid(support):
            raise InvalidVoteType(f"Invalid support value {support}")
        if voter in proposal.votes.ballots:
            raise AlreadyVoted(f"{voter} already voted on proposal {proposal_id}")

        weight = self._token_call("getPastVotes", voter, self._weight_timepoint(proposal))
        proposal.votes.add(VoteRecord(
            proposal_id=proposal_id,
            voter=voter,
            support=support,
            weight=weight,
            reason=reason,
        ))
        self.emit(
            "VoteCast",
            voter=voter,
            proposalId=proposal_id,
            support=support,
            weight=weight,
            reason=reason,
        )
        logger.info(
            f"Vote: {voter} → {VoteType(support).name} on proposal {proposal_id} "
            f"(weight={weight})"
        )
        return weight

    # ── Queue / execute ───────────────────────────────────────────────

    def _operation(
        self,
        targets: Sequence[str],
        values: Sequence[int],
        calldatas: Sequence[bytes],
        desc_hash: bytes,
    ) -> Tuple[bytes, bytes]:
        salt = timelock_salt(self.address, desc_hash)
        return hash_operation_batch(targets, values, calldatas, ZERO_BYTES32, salt), salt

    @external("queue(address[],uint256[],bytes[],bytes32)", returns=("uint256",))
    def queue(
        self,
        targets: Sequence[str],
        values: Sequence[int],
        calldatas: Sequence[bytes],
        desc_hash: bytes,
    ) -> int:
        proposal_id = hash_proposal(targets, values, calldatas, desc_hash)
        proposal = self._get(proposal_id)
        state = self._state(proposal)
        if state == ProposalState.EXECUTED:
            raise AlreadyExecuted(f"Proposal {proposal_id} already executed")
        if proposal.eta != 0 and state in (ProposalState.QUEUED, ProposalState.EXPIRED):
            raise AlreadyQueued(f"Proposal {proposal_id} already queued (eta={proposal.eta})")
        if state != ProposalState.SUCCEEDED:
            raise ProposalNotSucceeded(f"Proposal {proposal_id} is {state.label}")

        op_id, salt = self._operation(targets, values, calldatas, desc_hash)
        delay = self._timelock_call("getMinDelay")
        self._timelock_call(
            "scheduleBatch",
            list(targets), list(values), list(calldatas), ZERO_BYTES32, salt, delay,
        )
        proposal.eta = self.block_timestamp + delay
        proposal.operation_id = op_id
        self.emit("ProposalQueued", proposalId=proposal_id, etaSeconds=proposal.eta)
        logger.info(
            f"Proposal {proposal_id} queued as operation 0x{op_id.hex()} "
            f"(eta={proposal.eta})"
        )
        return proposal_id

    @external("execute(address[],uint256[],bytes[],bytes32)", returns=("uint256",), payable=True)
    def execute(
        self,
        targets: Sequence[str],
        values: Sequence[int],
        calldatas: Sequence[bytes],
        desc_hash: bytes,
    ) -> int:
        proposal_id = hash_proposal(targets, values, calldatas, desc_hash)
        proposal = self._get(proposal_id)
        state = self._state(proposal)
        if state == ProposalState.EXECUTED:
            raise AlreadyExecuted(f"Proposal {proposal_id} already executed")
        if state == ProposalState.EXPIRED:
            raise ProposalExpired(
                f"Proposal {proposal_id} expired at {proposal.eta + self._grace_period}"
            )
        if state != ProposalState.QUEUED:
            raise ProposalNotQueued(f"Proposal {proposal_id} is {state.label}")
        if self.block_timestamp < proposal.eta:
            raise TimelockNotReady(
                f"Proposal {proposal_id} ready at {proposal.eta}, now {self.block_timestamp}"
            )

        # Marked before the external calls; a failing call reverts the flag with the batch
        proposal.executed = True
        _, salt = self._operation(targets, values, calldatas, desc_hash)
        self._timelock_call(
            "executeBatch",
            list(targets), list(values), list(calldatas), ZERO_BYTES32, salt,
            value=self.msg_value,
        )
        self.emit("ProposalExecuted", proposalId=proposal_id)
        logger.info(f"Proposal {proposal_id} executed")
        return proposal_id

    # ── Cancel ────────────────────────────────────────────────────────

    @external("cancel(address[],uint256[],bytes[],bytes32)", returns=("uint256",))
    def cancel(
        self,
        targets: Sequence[str],
        values: Sequence[int],
        calldatas: Sequence[bytes],
        desc_hash: bytes,
    ) -> int:
        proposal_id = hash_proposal(targets, values, calldatas, desc_hash)
        proposal = self._get(proposal_id)
        state = self._state(proposal)
        if state == ProposalState.EXECUTED:
            raise AlreadyExecuted(f"Proposal {proposal_id} already executed")

        caller = self.msg_sender
        if caller != proposal.proposer and caller not in self._cancellers:
            raise Unauthorized(f"{caller} may not cancel proposal {proposal_id}")
        if state not in (ProposalState.PENDING, ProposalState.ACTIVE):
            raise ProposalNotCancelable(f"Proposal {proposal_id} is {state.label}")

        proposal.canceled = True
        self.emit("ProposalCanceled", proposalId=proposal_id)
        logger.info(f"Proposal {proposal_id} canceled by {caller}")
        return proposal_id

    # ── Self-governance settings ──────────────────────────────────────

    @external("setVotingDelay(uint48)")
    def set_voting_delay(self, new_delay: int) -> None:
        self._only_governance()
        self.emit("VotingDelaySet", oldVotingDelay=self._voting_delay, newVotingDelay=new_delay)
        self._voting_delay = new_delay

    @external("setVotingPeriod(uint32)")
    def set_voting_period(self, new_period: int) -> None:
        self._only_governance()
        if new_period == 0:
            raise InvalidGovernanceParameter("Voting period must be > 0")
        self.emit("VotingPeriodSet", oldVotingPeriod=self._voting_period, newVotingPeriod=new_period)
        self._voting_period = new_period

    @external("setProposalThreshold(uint256)")
    def set_proposal_threshold(self, new_threshold: int) -> None:
        self._only_governance()
        self.emit(
            "ProposalThresholdSet",
            oldProposalThreshold=self._proposal_threshold,
            newProposalThreshold=new_threshold,
        )
        self._proposal_threshold = new_threshold

    @external("updateQuorumNumerator(uint256)")
    def update_quorum_numerator(self, new_numerator: int) -> None:
        self._only_governance()
        if new_numerator > self._quorum_denominator:
            raise InvalidGovernanceParameter(
                f"Quorum numerator {new_numerator} > denominator {self._quorum_denominator}"
            )
        old = self._quorum_numerators.latest()
        self._quorum_numerators.push(self.clock(), new_numerator)
        self.emit("QuorumNumeratorUpdated", oldQuorumNumerator=old, newQuorumNumerator=new_numerator)

    @external("setGracePeriod(uint256)")
    def set_grace_period(self, new_grace_period: int) -> None:
        self._only_governance()
        self.emit("GracePeriodSet", oldGracePeriod=self._grace_period, newGracePeriod=new_grace_period)
        self._grace_period = new_grace_period

    @external("setCanceller(address,bool)")
    def set_canceller(self, account: str, enabled: bool) -> None:
        self._only_governance()
        account = to_checksum_address(account)
        if enabled:
            self._cancellers.add(account)
        else:
            self._cancellers.discard(account)
        self.emit("CancellerSet", account=account, enabled=enabled)

    @external("updateTimelock(address)")
    def update_timelock(self, new_timelock: str) -> None:
        self._only_governance()
        self.emit("TimelockChange", oldTimelock=self._timelock, newTimelock=new_timelock)
        self._timelock = to_checksum_address(new_timelock)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "name": self._name,
            "token": self._token,
            "timelock": self._timelock,
            "votingDelay": self._voting_delay,
            "votingPeriod": self._voting_period,
            "proposalThreshold": str(self._proposal_threshold),
            "quorumNumerator": self._quorum_numerators.latest(),
            "quorumDenominator": self._quorum_denominator,
            "gracePeriod": self._grace_period or None,
            "proposals": len(self._proposals),
        }
