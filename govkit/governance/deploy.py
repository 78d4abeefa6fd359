"""
Governance Deployment

Deploys and wires the full system on a ledger, in order:

    1. GovernanceToken, initial supply minted to the deployer, self-delegated
    2. TimelockController(min_delay, proposers=[], executors=[], admin=deployer)
    3. GovernorEngine(token, timelock, ...)
    4. Roles: governor gets PROPOSER and CANCELLER, configured cancellers get
       CANCELLER, EXECUTOR goes to the zero address (anyone may execute a
       ready operation), deployer admin revoked
    5. Box owned by the deployer, ownership then transferred to the timelock

After step 4 only executed proposals can change the timelock's roles, and
after step 5 only the timelock can change the Box.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..config.loader import GovernorConfig, TimelockConfig
from ..constants import ZERO_ADDRESS
from ..logger import get_logger
from ..ledger import Ledger
from .checkpoints import GovernanceToken
from .governor import GovernorEngine
from .targets import Box
from .timelock import TimelockController

logger = get_logger(__name__)


@dataclass
class Deployment:
    """Addresses of a deployed governance system."""
    token: str
    timelock: str
    governor: str
    box: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "token": self.token,
            "timelock": self.timelock,
            "governor": self.governor,
            "box": self.box,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Deployment":
        return cls(
            token=data["token"],
            timelock=data["timelock"],
            governor=data["governor"],
            box=data["box"],
        )


def deploy_governance(
    ledger: Ledger,
    deployer: str,
    governor_config: Optional[GovernorConfig] = None,
    timelock_config: Optional[TimelockConfig] = None,
) -> Deployment:
    """Deploy token, timelock, governor and Box, then hand control to governance."""
    governor_config = governor_config or GovernorConfig()
    timelock_config = timelock_config or TimelockConfig()

    token_receipt = ledger.deploy(
        deployer, GovernanceToken(owner=deployer, clock_mode=governor_config.clock_mode)
    )
    token = token_receipt.contract_address
    ledger.transact(deployer, token, GovernanceToken.encode_call("delegate", deployer))
    logger.info(f"Delegated voting power of {deployer} to itself")

    timelock = ledger.deploy(
        deployer,
        TimelockController(
            min_delay=timelock_config.min_delay,
            proposers=[],
            executors=[],
            admin=deployer,
        ),
    ).contract_address

    governor = ledger.deploy(
        deployer,
        GovernorEngine(
            token=token,
            timelock=timelock,
            voting_delay=governor_config.voting_delay,
            voting_period=governor_config.voting_period,
            proposal_threshold=governor_config.proposal_threshold,
            quorum_numerator=governor_config.quorum_numerator,
            quorum_denominator=governor_config.quorum_denominator,
            grace_period=governor_config.grace_period,
            cancellers=governor_config.cancellers,
            name=governor_config.name,
        ),
    ).contract_address

    grants = [
        ("grantRole", TimelockController.PROPOSER_ROLE, governor),
        ("grantRole", TimelockController.CANCELLER_ROLE, governor),
        *[("grantRole", TimelockController.CANCELLER_ROLE, c) for c in governor_config.cancellers],
        ("grantRole", TimelockController.EXECUTOR_ROLE, ZERO_ADDRESS),
        ("revokeRole", TimelockController.DEFAULT_ADMIN_ROLE, deployer),
    ]
    for func, role, account in grants:
        ledger.transact(deployer, timelock, TimelockController.encode_call(func, role, account))
    logger.info(f"Timelock roles set up; {deployer} is no longer admin")

    box = ledger.deploy(deployer, Box(owner=deployer)).contract_address
    ledger.transact(deployer, box, Box.encode_call("transferOwnership", timelock))
    logger.info(f"Box ownership transferred to timelock {timelock}")

    deployment = Deployment(token=token, timelock=timelock, governor=governor, box=box)
    logger.info(f"Governance deployed: {deployment.to_dict()}")
    return deployment
