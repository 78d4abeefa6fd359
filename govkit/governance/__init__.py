"""
govkit Governance Module

Ledger-hosted governance contracts:
- Checkpointed voting token (voting power oracle)
- Timelock controller
- Governor engine (proposal lifecycle)
- Box action target
"""

from .access import AccessControl, Ownable, Unauthorized, role_id
from .checkpoints import GovernanceToken, Trace
from .deploy import Deployment, deploy_governance
from .governor import GovernorEngine, GovernorError
from .proposals import ProposalCore, ProposalState, ProposalVote, VoteRecord, VoteType
from .targets import Box
from .timelock import OperationState, TimelockController, TimelockError

__all__ = [
    "AccessControl",
    "Ownable",
    "Unauthorized",
    "role_id",
    "GovernanceToken",
    "Trace",
    "Deployment",
    "deploy_governance",
    "GovernorEngine",
    "GovernorError",
    "ProposalCore",
    "ProposalState",
    "ProposalVote",
    "VoteRecord",
    "VoteType",
    "Box",
    "OperationState",
    "TimelockController",
    "TimelockError",
]
