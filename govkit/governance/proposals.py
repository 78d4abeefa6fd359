"""
Governance Proposals

Lifecycle states, vote types and the per-proposal records kept by the
governor. State is never stored directly: only the terminal flags
(canceled / executed) and the timelock linkage are persisted, and
GovernorEngine.state() derives everything else from the clock and tallies.
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, List, Optional

from ..constants import VOTE_ABSTAIN, VOTE_AGAINST, VOTE_FOR
from ..crypto.hashing import to_hex32


class ProposalState(IntEnum):
    """Derived lifecycle stage (numbering matches the on-ledger uint8)."""
    PENDING = 0      # Voting has not started
    ACTIVE = 1       # Voting in progress
    CANCELED = 2     # Canceled by proposer or canceller (terminal)
    DEFEATED = 3     # Voting ended without quorum or majority (terminal)
    SUCCEEDED = 4    # Voting ended with quorum and majority
    QUEUED = 5       # Scheduled in the timelock
    EXPIRED = 6      # Queued past the configured grace period (terminal)
    EXECUTED = 7     # Executed through the timelock (terminal)

    @property
    def label(self) -> str:
        return self.name.title()

    @property
    def is_terminal(self) -> bool:
        return self in (
            ProposalState.CANCELED,
            ProposalState.DEFEATED,
            ProposalState.EXPIRED,
            ProposalState.EXECUTED,
        )


class VoteType(IntEnum):
    """Ballot support values."""
    AGAINST = VOTE_AGAINST
    FOR = VOTE_FOR
    ABSTAIN = VOTE_ABSTAIN

    @classmethod
    def is_valid(cls, support: int) -> bool:
        return support in {member.value for member in cls}


@dataclass(frozen=True)
class VoteRecord:
    """One ballot; at most one per (proposal, voter)."""
    proposal_id: int
    voter: str
    support: int
    weight: int
    reason: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "proposalId": str(self.proposal_id),
            "voter": self.voter,
            "support": VoteType(self.support).name,
            "weight": str(self.weight),
            "reason": self.reason,
        }


@dataclass
class ProposalVote:
    """Running tally for a proposal."""
    against_votes: int = 0
    for_votes: int = 0
    abstain_votes: int = 0
    ballots: Dict[str, VoteRecord] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return self.against_votes + self.for_votes + self.abstain_votes

    def add(self, record: VoteRecord) -> None:
        if record.support == VoteType.FOR:
            self.for_votes += record.weight
        elif record.support == VoteType.AGAINST:
            self.against_votes += record.weight
        else:
            self.abstain_votes += record.weight
        self.ballots[record.voter] = record

    def to_dict(self) -> Dict[str, Any]:
        return {
            "againstVotes": str(self.against_votes),
            "forVotes": str(self.for_votes),
            "abstainVotes": str(self.abstain_votes),
            "voters": len(self.ballots),
        }


@dataclass
class ProposalCore:
    """
    Stored proposal record.

    Fields:
        proposer:         Account that submitted the proposal
        targets/values/calldatas: The action tuple list
        description:      Free text; its keccak256 is part of the id
        vote_start:       First timepoint at which votes are accepted (snapshot)
        vote_end:         Last timepoint at which votes are accepted
        eta:              Timelock ready timestamp, 0 until queued
        operation_id:     Timelock operation id, set when queued
    """
    proposal_id: int
    proposer: str
    targets: List[str]
    values: List[int]
    calldatas: List[bytes]
    description: str
    description_hash: bytes
    vote_start: int
    vote_end: int
    eta: int = 0
    operation_id: Optional[bytes] = None
    canceled: bool = False
    executed: bool = False
    votes: ProposalVote = field(default_factory=ProposalVote)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "proposalId": str(self.proposal_id),
            "proposalIdHex": to_hex32(self.proposal_id),
            "proposer": self.proposer,
            "targets": list(self.targets),
            "values": [str(v) for v in self.values],
            "calldatas": ["0x" + c.hex() for c in self.calldatas],
            "description": self.description,
            "descriptionHash": "0x" + self.description_hash.hex(),
            "voteStart": self.vote_start,
            "voteEnd": self.vote_end,
            "eta": self.eta,
            "operationId": "0x" + self.operation_id.hex() if self.operation_id else None,
            "canceled": self.canceled,
            "executed": self.executed,
            "votes": self.votes.to_dict(),
        }

    def __repr__(self) -> str:
        return (
            f"<Proposal {self.proposal_id} by {self.proposer} "
            f"actions={len(self.targets)} start={self.vote_start} end={self.vote_end}>"
        )
