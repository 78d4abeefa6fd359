"""
Governor Engine Test Suite

Coverage:
  - full lifecycle: propose, vote, queue, execute (Box value 100)
  - state derivation: defeat by majority, quorum, abstain counted for quorum
  - snapshot voting power
  - proposal, vote, queue and execute guards
  - cancel policy for proposers and cancellers
  - grace period expiry
  - self-governance through executed proposals
  - all-or-nothing execution
  - timestamp clock mode
"""

import os
import sys

import pytest
from eth_utils import to_checksum_address

# ── Path setup ────────────────────────────────────────────────────────
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from govkit.config.loader import GovernorConfig, TimelockConfig
from govkit.constants import TOKEN_INITIAL_SUPPLY, ZERO_BYTES32
from govkit.crypto.hashing import description_hash, hash_proposal, timelock_salt
from govkit.governance.access import Unauthorized
from govkit.governance.checkpoints import GovernanceToken
from govkit.governance.deploy import deploy_governance
from govkit.governance.governor import (
    AlreadyExecuted,
    AlreadyQueued,
    AlreadyVoted,
    BelowProposalThreshold,
    GovernorEngine,
    InvalidProposalLength,
    InvalidVoteType,
    NonexistentProposal,
    OnlyGovernance,
    ProposalAlreadyExists,
    ProposalExpired,
    ProposalNotActive,
    ProposalNotCancelable,
    ProposalNotQueued,
    ProposalNotSucceeded,
    TimelockNotReady,
)
from govkit.governance.proposals import ProposalState, VoteType
from govkit.governance.targets import Box
from govkit.governance.timelock import OperationState, TargetCallFailed, TimelockController
from govkit.ledger import Ledger


DEPLOYER = to_checksum_address("0x" + "a1" * 20)
ALICE = to_checksum_address("0x" + "b2" * 20)
BOB = to_checksum_address("0x" + "c3" * 20)
GUARDIAN = to_checksum_address("0x" + "d4" * 20)
STRANGER = to_checksum_address("0x" + "e5" * 20)
RECIPIENT = to_checksum_address("0x" + "f6" * 20)

DELAY = 3600
DESCRIPTION = "Proposal #1 - update value of box to 100"
ONE_PERCENT = TOKEN_INITIAL_SUPPLY // 100


# ══════════════════════════════════════════════════════════════════════
#  HELPERS
# ══════════════════════════════════════════════════════════════════════

class Governance:
    """A deployed governance system plus shortcuts for driving proposals."""

    def __init__(self, min_delay: int = DELAY, **governor_kwargs):
        self.ledger = Ledger(genesis_timestamp=1_700_000_000)
        self.deployment = deploy_governance(
            self.ledger,
            DEPLOYER,
            GovernorConfig(**governor_kwargs),
            TimelockConfig(min_delay=min_delay),
        )

    # ── Raw calls ─────────────────────────────────────────────────────

    def view(self, cls, address, name, *args):
        return cls.decode_result(name, self.ledger.call(address, cls.encode_call(name, *args)))

    def governor(self, name, *args):
        return self.view(GovernorEngine, self.deployment.governor, name, *args)

    def send(self, sender, name, *args, value=0):
        return self.ledger.transact(
            sender, self.deployment.governor, GovernorEngine.encode_call(name, *args), value=value
        )

    def box_value(self) -> int:
        return self.view(Box, self.deployment.box, "retrieve")

    def state(self, proposal_id: int) -> ProposalState:
        return ProposalState(self.governor("state", proposal_id))

    # ── Setup ─────────────────────────────────────────────────────────

    def give_votes(self, voter: str, amount: int) -> None:
        token = self.deployment.token
        self.ledger.transact(DEPLOYER, token, GovernanceToken.encode_call("transfer", voter, amount))
        self.ledger.transact(voter, token, GovernanceToken.encode_call("delegate", voter))

    # ── Lifecycle ─────────────────────────────────────────────────────

    def store_action(self, value: int = 100, description: str = DESCRIPTION):
        return (
            [self.deployment.box],
            [0],
            [Box.encode_call("store", value)],
            description,
        )

    def propose(self, action, proposer: str = DEPLOYER) -> int:
        receipt = self.send(proposer, "propose", *action)
        return receipt.events("ProposalCreated")[0].args["proposalId"]

    def lifecycle_args(self, action):
        targets, values, calldatas, description = action
        return targets, values, calldatas, description_hash(description)

    def vote(self, proposal_id: int, voter: str = DEPLOYER, support: int = VoteType.FOR):
        return self.send(voter, "castVote", proposal_id, support)

    def start_voting(self, proposal_id: int) -> None:
        snapshot = self.governor("proposalSnapshot", proposal_id)
        now = self.governor("clock")
        if now < snapshot:
            self.ledger.mine(snapshot - now)

    def end_voting(self, proposal_id: int) -> None:
        deadline = self.governor("proposalDeadline", proposal_id)
        now = self.governor("clock")
        if now <= deadline:
            self.ledger.mine(deadline - now + 1)

    def wait_for_eta(self, proposal_id: int) -> None:
        eta = self.governor("proposalEta", proposal_id)
        remaining = eta - self.ledger.latest_block.timestamp
        if remaining > 0:
            self.ledger.increase_time(remaining)
        self.ledger.mine()

    def pass_vote(self, action) -> int:
        proposal_id = self.propose(action)
        self.start_voting(proposal_id)
        self.vote(proposal_id)
        self.end_voting(proposal_id)
        return proposal_id

    def queue(self, action, sender: str = DEPLOYER):
        return self.send(sender, "queue", *self.lifecycle_args(action))

    def execute(self, action, sender: str = DEPLOYER, value: int = 0):
        return self.send(sender, "execute", *self.lifecycle_args(action), value=value)

    def cancel(self, action, sender: str = DEPLOYER):
        return self.send(sender, "cancel", *self.lifecycle_args(action))


@pytest.fixture
def gov():
    return Governance()


# ══════════════════════════════════════════════════════════════════════
#  TESTS
# ══════════════════════════════════════════════════════════════════════


class TestDeployment:

    def test_wiring(self, gov):
        d = gov.deployment
        assert to_checksum_address(gov.governor("token")) == d.token
        assert to_checksum_address(gov.governor("timelock")) == d.timelock
        assert to_checksum_address(gov.view(Box, d.box, "owner")) == d.timelock
        assert gov.governor("votingDelay") == 1
        assert gov.governor("votingPeriod") == 5
        assert gov.governor("quorumNumerator") == 4
        assert gov.governor("quorumDenominator") == 100
        assert gov.governor("COUNTING_MODE") == "support=bravo&quorum=for,against,abstain"

    def test_timelock_roles(self, gov):
        d = gov.deployment
        has_role = lambda role, account: gov.view(TimelockController, d.timelock, "hasRole", role, account)
        assert has_role(TimelockController.PROPOSER_ROLE, d.governor)
        assert has_role(TimelockController.CANCELLER_ROLE, d.governor)
        assert has_role(TimelockController.EXECUTOR_ROLE, "0x" + "00" * 20)
        assert not has_role(TimelockController.DEFAULT_ADMIN_ROLE, DEPLOYER)
        assert not has_role(TimelockController.PROPOSER_ROLE, DEPLOYER)

    def test_quorum_at_snapshot(self, gov):
        now = gov.governor("clock")
        assert gov.governor("quorum", now) == TOKEN_INITIAL_SUPPLY * 4 // 100


class TestLifecycle:

    def test_store_100(self, gov):
        action = gov.store_action(100)
        expected_id = hash_proposal(
            action[0], action[1], action[2], description_hash(DESCRIPTION)
        )

        proposal_id = gov.propose(action)
        assert proposal_id == expected_id
        assert gov.governor("hashProposal", *gov.lifecycle_args(action)) == expected_id
        assert gov.state(proposal_id) == ProposalState.PENDING
        assert to_checksum_address(gov.governor("proposalProposer", proposal_id)) == DEPLOYER

        gov.start_voting(proposal_id)
        assert gov.state(proposal_id) == ProposalState.ACTIVE

        receipt = gov.send(DEPLOYER, "castVoteWithReason", proposal_id, VoteType.FOR, "Don't ask, just I do")
        cast = receipt.events("VoteCast")[0].args
        assert cast["weight"] == TOKEN_INITIAL_SUPPLY
        assert cast["reason"] == "Don't ask, just I do"
        assert gov.governor("hasVoted", proposal_id, DEPLOYER)
        assert gov.governor("proposalVotes", proposal_id) == (0, TOKEN_INITIAL_SUPPLY, 0)

        gov.end_voting(proposal_id)
        assert gov.state(proposal_id) == ProposalState.SUCCEEDED

        queued = gov.queue(action)
        eta = queued.block_timestamp + DELAY
        assert gov.state(proposal_id) == ProposalState.QUEUED
        assert gov.governor("proposalEta", proposal_id) == eta
        assert queued.events("ProposalQueued")[0].args["etaSeconds"] == eta
        assert gov.governor("proposalOperationId", proposal_id) != ZERO_BYTES32

        with pytest.raises(TimelockNotReady):
            gov.execute(action)

        gov.wait_for_eta(proposal_id)
        executed = gov.execute(action)

        assert gov.state(proposal_id) == ProposalState.EXECUTED
        assert gov.box_value() == 100
        assert executed.events("ProposalExecuted")[0].args["proposalId"] == proposal_id

    def test_operation_id_uses_governor_salt(self, gov):
        action = gov.store_action()
        proposal_id = gov.pass_vote(action)
        gov.queue(action)

        targets, values, calldatas, desc_hash = gov.lifecycle_args(action)
        salt = timelock_salt(gov.deployment.governor, desc_hash)
        op_id = gov.view(
            TimelockController, gov.deployment.timelock, "hashOperationBatch",
            targets, values, calldatas, ZERO_BYTES32, salt,
        )
        assert gov.governor("proposalOperationId", proposal_id) == op_id

    def test_state_follows_direct_timelock_execution(self, gov):
        action = gov.store_action()
        proposal_id = gov.pass_vote(action)
        gov.queue(action)
        gov.wait_for_eta(proposal_id)

        targets, values, calldatas, desc_hash = gov.lifecycle_args(action)
        salt = timelock_salt(gov.deployment.governor, desc_hash)
        gov.ledger.transact(
            STRANGER,
            gov.deployment.timelock,
            TimelockController.encode_call(
                "executeBatch", targets, values, calldatas, ZERO_BYTES32, salt
            ),
        )

        assert gov.state(proposal_id) == ProposalState.EXECUTED
        with pytest.raises(AlreadyExecuted):
            gov.execute(action)

    def test_unknown_proposal(self, gov):
        with pytest.raises(NonexistentProposal):
            gov.governor("state", 12345)


class TestVoteCounting:

    def test_defeated_by_majority(self, gov):
        gov.give_votes(ALICE, 10 * ONE_PERCENT)
        action = gov.store_action()
        proposal_id = gov.propose(action)
        gov.start_voting(proposal_id)
        gov.vote(proposal_id, ALICE, VoteType.FOR)
        gov.vote(proposal_id, DEPLOYER, VoteType.AGAINST)
        gov.end_voting(proposal_id)
        assert gov.state(proposal_id) == ProposalState.DEFEATED

    def test_defeated_without_votes(self, gov):
        proposal_id = gov.propose(gov.store_action())
        gov.end_voting(proposal_id)
        assert gov.state(proposal_id) == ProposalState.DEFEATED

    def test_tie_is_defeated(self, gov):
        gov.give_votes(ALICE, 5 * ONE_PERCENT)
        gov.give_votes(BOB, 5 * ONE_PERCENT)
        proposal_id = gov.propose(gov.store_action())
        gov.start_voting(proposal_id)
        gov.vote(proposal_id, ALICE, VoteType.FOR)
        gov.vote(proposal_id, BOB, VoteType.AGAINST)
        gov.end_voting(proposal_id)
        assert gov.state(proposal_id) == ProposalState.DEFEATED

    def test_below_quorum(self, gov):
        gov.give_votes(ALICE, 3 * ONE_PERCENT)
        proposal_id = gov.propose(gov.store_action())
        gov.start_voting(proposal_id)
        gov.vote(proposal_id, ALICE, VoteType.FOR)
        gov.end_voting(proposal_id)
        assert gov.state(proposal_id) == ProposalState.DEFEATED

    def test_abstain_counts_towards_quorum(self, gov):
        gov.give_votes(ALICE, 3 * ONE_PERCENT)
        gov.give_votes(BOB, ONE_PERCENT)
        proposal_id = gov.propose(gov.store_action())
        gov.start_voting(proposal_id)
        gov.vote(proposal_id, ALICE, VoteType.FOR)
        gov.vote(proposal_id, BOB, VoteType.ABSTAIN)
        gov.end_voting(proposal_id)

        assert gov.governor("proposalVotes", proposal_id) == (0, 3 * ONE_PERCENT, ONE_PERCENT)
        assert gov.state(proposal_id) == ProposalState.SUCCEEDED

    def test_weight_taken_at_snapshot(self, gov):
        gov.give_votes(BOB, ONE_PERCENT)
        proposal_id = gov.propose(gov.store_action())
        gov.start_voting(proposal_id)

        # Tokens moved after the snapshot do not change either side's weight
        gov.ledger.transact(
            DEPLOYER, gov.deployment.token,
            GovernanceToken.encode_call("transfer", BOB, 50 * ONE_PERCENT),
        )
        deployer_weight = gov.vote(proposal_id, DEPLOYER).events("VoteCast")[0].args["weight"]
        bob_weight = gov.vote(proposal_id, BOB).events("VoteCast")[0].args["weight"]

        assert deployer_weight == 99 * ONE_PERCENT
        assert bob_weight == ONE_PERCENT

    def test_undelegated_holder_votes_with_zero_weight(self, gov):
        gov.ledger.transact(
            DEPLOYER, gov.deployment.token,
            GovernanceToken.encode_call("transfer", ALICE, ONE_PERCENT),
        )
        proposal_id = gov.propose(gov.store_action())
        gov.start_voting(proposal_id)
        assert gov.vote(proposal_id, ALICE).events("VoteCast")[0].args["weight"] == 0

    def test_delegation_in_first_active_block_does_not_count(self, gov):
        gov.ledger.transact(
            DEPLOYER, gov.deployment.token,
            GovernanceToken.encode_call("transfer", BOB, 10 * ONE_PERCENT),
        )
        proposal_id = gov.propose(gov.store_action())

        receipt = gov.ledger.transact(
            BOB, gov.deployment.token, GovernanceToken.encode_call("delegate", BOB)
        )
        assert receipt.block_number == gov.governor("proposalSnapshot", proposal_id)
        assert gov.state(proposal_id) == ProposalState.ACTIVE

        assert gov.vote(proposal_id, BOB).events("VoteCast")[0].args["weight"] == 0
        assert gov.governor("proposalVotes", proposal_id) == (0, 0, 0)


class TestVoteGuards:

    def test_vote_while_pending(self):
        gov = Governance(voting_delay=5)
        proposal_id = gov.propose(gov.store_action())
        with pytest.raises(ProposalNotActive):
            gov.vote(proposal_id)
        assert gov.state(proposal_id) == ProposalState.PENDING

    def test_vote_after_deadline(self, gov):
        proposal_id = gov.propose(gov.store_action())
        gov.end_voting(proposal_id)
        with pytest.raises(ProposalNotActive):
            gov.vote(proposal_id)

    def test_double_vote(self, gov):
        proposal_id = gov.propose(gov.store_action())
        gov.start_voting(proposal_id)
        gov.vote(proposal_id)
        with pytest.raises(AlreadyVoted):
            gov.vote(proposal_id, support=VoteType.AGAINST)
        assert gov.governor("proposalVotes", proposal_id) == (0, TOKEN_INITIAL_SUPPLY, 0)

    def test_invalid_support(self, gov):
        proposal_id = gov.propose(gov.store_action())
        gov.start_voting(proposal_id)
        with pytest.raises(InvalidVoteType):
            gov.vote(proposal_id, support=3)
        assert not gov.governor("hasVoted", proposal_id, DEPLOYER)


class TestProposeGuards:

    def test_threshold(self):
        gov = Governance(proposal_threshold=ONE_PERCENT)
        with pytest.raises(BelowProposalThreshold):
            gov.propose(gov.store_action(), proposer=STRANGER)
        assert gov.propose(gov.store_action()) > 0

    def test_duplicate(self, gov):
        gov.propose(gov.store_action())
        with pytest.raises(ProposalAlreadyExists):
            gov.propose(gov.store_action())

    def test_same_action_new_description(self, gov):
        first = gov.propose(gov.store_action(description="first"))
        second = gov.propose(gov.store_action(description="second"))
        assert first != second

    @pytest.mark.parametrize("targets,values,calldatas", [
        ([], [], []),
        (["0x" + "11" * 20], [0, 0], [b""]),
        (["0x" + "11" * 20], [0], []),
    ])
    def test_invalid_length(self, gov, targets, values, calldatas):
        with pytest.raises(InvalidProposalLength):
            gov.send(DEPLOYER, "propose", targets, values, calldatas, "bad")


class TestQueueExecuteGuards:

    def test_queue_while_active(self, gov):
        action = gov.store_action()
        proposal_id = gov.propose(action)
        gov.start_voting(proposal_id)
        with pytest.raises(ProposalNotSucceeded):
            gov.queue(action)

    def test_queue_defeated(self, gov):
        action = gov.store_action()
        proposal_id = gov.propose(action)
        gov.end_voting(proposal_id)
        with pytest.raises(ProposalNotSucceeded):
            gov.queue(action)

    def test_queue_twice(self, gov):
        action = gov.store_action()
        gov.pass_vote(action)
        gov.queue(action)
        with pytest.raises(AlreadyQueued):
            gov.queue(action)

    def test_execute_without_queue(self, gov):
        action = gov.store_action()
        gov.pass_vote(action)
        with pytest.raises(ProposalNotQueued):
            gov.execute(action)

    def test_execute_twice(self, gov):
        action = gov.store_action()
        proposal_id = gov.pass_vote(action)
        gov.queue(action)
        gov.wait_for_eta(proposal_id)
        gov.execute(action)
        with pytest.raises(AlreadyExecuted):
            gov.execute(action)
        with pytest.raises(AlreadyExecuted):
            gov.queue(action)

    def test_anyone_may_queue_and_execute(self, gov):
        action = gov.store_action()
        proposal_id = gov.pass_vote(action)
        gov.queue(action, sender=STRANGER)
        gov.wait_for_eta(proposal_id)
        gov.execute(action, sender=STRANGER)
        assert gov.box_value() == 100

    def test_failed_action_reverts_execution(self, gov):
        action = (
            [gov.deployment.box, RECIPIENT],
            [0, 10],
            [Box.encode_call("store", 5), b""],
            "Proposal #2 - store 5 and pay recipient",
        )
        proposal_id = gov.pass_vote(action)
        gov.queue(action)
        gov.wait_for_eta(proposal_id)

        with pytest.raises(TargetCallFailed):
            gov.execute(action)
        assert gov.box_value() == 0
        assert gov.state(proposal_id) == ProposalState.QUEUED

        gov.ledger.set_balance(gov.deployment.timelock, 10)
        gov.execute(action)
        assert gov.box_value() == 5
        assert gov.ledger.balance_of(RECIPIENT) == 10
        assert gov.state(proposal_id) == ProposalState.EXECUTED

    def test_execute_forwards_value(self, gov):
        action = ([RECIPIENT], [7], [b""], "Proposal #3 - pay recipient")
        proposal_id = gov.pass_vote(action)
        gov.queue(action)
        gov.wait_for_eta(proposal_id)

        gov.ledger.set_balance(DEPLOYER, 7)
        gov.execute(action, value=7)
        assert gov.ledger.balance_of(RECIPIENT) == 7


class TestCancel:

    def test_proposer_cancels_pending(self, gov):
        action = gov.store_action()
        proposal_id = gov.propose(action)
        receipt = gov.cancel(action)
        assert receipt.events("ProposalCanceled")[0].args["proposalId"] == proposal_id
        assert gov.state(proposal_id) == ProposalState.CANCELED

        gov.start_voting(proposal_id)
        with pytest.raises(ProposalNotActive):
            gov.vote(proposal_id)

    def test_proposer_cancels_active(self, gov):
        action = gov.store_action()
        proposal_id = gov.propose(action)
        gov.start_voting(proposal_id)
        gov.cancel(action)
        assert gov.state(proposal_id) == ProposalState.CANCELED

    def test_stranger_cannot_cancel(self, gov):
        action = gov.store_action()
        gov.propose(action)
        with pytest.raises(Unauthorized):
            gov.cancel(action, sender=STRANGER)

    def test_proposer_cannot_cancel_succeeded(self, gov):
        action = gov.store_action()
        gov.pass_vote(action)
        with pytest.raises(ProposalNotCancelable):
            gov.cancel(action)

    def test_canceller_cancels_active_proposal_of_another(self):
        gov = Governance(cancellers=[GUARDIAN])
        assert gov.governor("isCanceller", GUARDIAN)

        action = gov.store_action()
        proposal_id = gov.propose(action)
        gov.start_voting(proposal_id)
        gov.cancel(action, sender=GUARDIAN)

        assert gov.state(proposal_id) == ProposalState.CANCELED

    def test_canceller_cannot_cancel_succeeded(self):
        gov = Governance(cancellers=[GUARDIAN])
        action = gov.store_action()
        gov.pass_vote(action)
        with pytest.raises(ProposalNotCancelable):
            gov.cancel(action, sender=GUARDIAN)

    def test_canceller_stops_queued_operation_in_timelock(self):
        gov = Governance(cancellers=[GUARDIAN])
        timelock = gov.deployment.timelock
        assert gov.view(
            TimelockController, timelock, "hasRole", TimelockController.CANCELLER_ROLE, GUARDIAN
        )

        action = gov.store_action()
        proposal_id = gov.pass_vote(action)
        gov.queue(action)
        op_id = gov.governor("proposalOperationId", proposal_id)

        gov.ledger.transact(GUARDIAN, timelock, TimelockController.encode_call("cancel", op_id))

        assert gov.state(proposal_id) == ProposalState.CANCELED
        state = gov.view(TimelockController, timelock, "getOperationState", op_id)
        assert state == OperationState.UNSET

        gov.wait_for_eta(proposal_id)
        with pytest.raises(ProposalNotQueued):
            gov.execute(action)

    def test_cannot_cancel_executed(self, gov):
        action = gov.store_action()
        proposal_id = gov.pass_vote(action)
        gov.queue(action)
        gov.wait_for_eta(proposal_id)
        gov.execute(action)
        with pytest.raises(AlreadyExecuted):
            gov.cancel(action)

    def test_cannot_cancel_twice(self, gov):
        action = gov.store_action()
        gov.propose(action)
        gov.cancel(action)
        with pytest.raises(ProposalNotCancelable):
            gov.cancel(action)


class TestGracePeriod:

    def test_no_expiry_by_default(self, gov):
        action = gov.store_action()
        proposal_id = gov.pass_vote(action)
        gov.queue(action)
        gov.ledger.increase_time(365 * 24 * 3600)
        gov.ledger.mine()
        assert gov.state(proposal_id) == ProposalState.QUEUED
        gov.execute(action)
        assert gov.box_value() == 100

    def test_expired(self):
        gov = Governance(grace_period=600)
        assert gov.governor("gracePeriod") == 600

        action = gov.store_action()
        proposal_id = gov.pass_vote(action)
        gov.queue(action)
        gov.ledger.increase_time(DELAY + 600)
        gov.ledger.mine()

        assert gov.state(proposal_id) == ProposalState.EXPIRED
        with pytest.raises(ProposalExpired):
            gov.execute(action)
        with pytest.raises(AlreadyQueued):
            gov.queue(action)


class TestSelfGovernance:

    def test_settings_require_governance(self, gov):
        with pytest.raises(OnlyGovernance):
            gov.send(DEPLOYER, "setVotingDelay", 3)
        with pytest.raises(OnlyGovernance):
            gov.send(DEPLOYER, "updateQuorumNumerator", 10)

    def test_voting_delay_changed_by_proposal(self, gov):
        action = (
            [gov.deployment.governor],
            [0],
            [GovernorEngine.encode_call("setVotingDelay", 3)],
            "Proposal #4 - lengthen voting delay",
        )
        proposal_id = gov.pass_vote(action)
        gov.queue(action)
        gov.wait_for_eta(proposal_id)
        gov.execute(action)

        assert gov.governor("votingDelay") == 3
        next_id = gov.propose(gov.store_action())
        snapshot = gov.governor("proposalSnapshot", next_id)
        assert snapshot == gov.ledger.latest_block.number + 3

    def test_quorum_numerator_history(self, gov):
        action = (
            [gov.deployment.governor],
            [0],
            [GovernorEngine.encode_call("updateQuorumNumerator", 10)],
            "Proposal #5 - raise quorum",
        )
        proposal_id = gov.pass_vote(action)
        before = gov.governor("clock")
        gov.queue(action)
        gov.wait_for_eta(proposal_id)
        gov.execute(action)

        assert gov.governor("quorumNumerator") == 10
        assert gov.governor("quorum", before) == TOKEN_INITIAL_SUPPLY * 4 // 100
        assert gov.governor("quorum", gov.governor("clock")) == TOKEN_INITIAL_SUPPLY * 10 // 100


class TestTimestampClock:

    def test_lifecycle_in_seconds(self):
        gov = Governance(clock_mode="timestamp", voting_delay=10, voting_period=50)
        action = gov.store_action()
        proposal_id = gov.propose(action)

        snapshot = gov.governor("proposalSnapshot", proposal_id)
        assert snapshot == gov.ledger.latest_block.timestamp + 10
        assert gov.governor("proposalDeadline", proposal_id) == snapshot + 50

        gov.ledger.increase_time(10)
        gov.ledger.mine()
        assert gov.state(proposal_id) == ProposalState.ACTIVE
        gov.vote(proposal_id)

        gov.ledger.increase_time(60)
        gov.ledger.mine()
        assert gov.state(proposal_id) == ProposalState.SUCCEEDED

        gov.queue(action)
        gov.wait_for_eta(proposal_id)
        gov.execute(action)
        assert gov.box_value() == 100
