"""
govkit Constants

Governance and ledger defaults, plus the few values read from a local
`.env` file (network name, RPC url, logging). TOML configuration in
`govkit.config` builds on these.
"""
import ast
from dotenv import dotenv_values

# =============================================================================
# ENVIRONMENT CONFIGURATION
# =============================================================================
_config = dotenv_values(".env")

NETWORK_DEFAULTS = {
    'GOVKIT_NETWORK':                  'localhost',
    'GOVKIT_RPC_URL':                  'http://127.0.0.1:8545/rpc',
    'GOVKIT_PROPOSAL_FILE':            'proposals.json',
}

LOGGER_DEFAULTS = {
    'LOG_LEVEL':                       'INFO',
    'LOG_FORMAT':                      '%(asctime)s - %(levelname)s - %(name)s - %(message)s',
    'LOG_DATE_FORMAT':                 '%Y-%m-%dT%H:%M:%S',
    'LOG_CONSOLE_HIGHLIGHTING':        'True',
    'LOG_FILE_OUTPUT':                 'True',
}

LOG_MAX_FILE_SIZE = 10 * 1024 * 1024 # 10MB
LOG_BACKUP_COUNT = 5


# ==================================================================================
# LEDGER PARAMETERS
# ==================================================================================
ZERO_ADDRESS = '0x0000000000000000000000000000000000000000'
ZERO_BYTES32 = b'\x00' * 32

# Well-known development accounts (unlocked on the development node)
DEV_ACCOUNTS = (
    '0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266',
    '0x70997970C51812dc3A010C7d01b50e0d17dc79C8',
    '0x3C44CdDdB6a900fa2b585dd299e03d12FA4293BC',
    '0x90F79bf6EB2c4f870365E785982E1f101E93b906',
)
DEV_ACCOUNT_BALANCE = 10_000 * 10**18

# Chains on which blocks may be mined and time advanced on demand
DEVELOPMENT_CHAINS = ('hardhat', 'localhost')
DEVELOPMENT_CHAIN_ID = 31337

# Seconds between consecutive development blocks
DEV_BLOCK_TIME = 1


# ==================================================================================
# GOVERNANCE PARAMETERS
# ==================================================================================
# votingDelay / votingPeriod are expressed in the token clock unit (blocks by default)
VOTING_DELAY = 1
VOTING_PERIOD = 5
PROPOSAL_THRESHOLD = 0
QUORUM_NUMERATOR = 4
QUORUM_DENOMINATOR = 100

# Timelock delay in seconds
MIN_DELAY = 3600

# No expiry for queued proposals unless configured
GRACE_PERIOD = None

# Vote support values
VOTE_AGAINST = 0
VOTE_FOR = 1
VOTE_ABSTAIN = 2

GOVERNOR_NAME = 'MyGovernor'
TOKEN_NAME = 'GovernanceToken'
TOKEN_SYMBOL = 'GT'
TOKEN_INITIAL_SUPPLY = 1_000_000 * 10**18

# Default proposal used by the CLI scripts
FUNC = 'store'
FUNC_ARGS = (100,)
DESCRIPTION = 'Proposal #1 - update value of box to 100'
VOTE_REASON = "Don't ask, just I do"


# ==================================================================================
# ORCHESTRATION PARAMETERS
# ==================================================================================
CONFIRMATIONS = 1
CONFIRMATION_TIMEOUT = 120.0
POLL_INTERVAL = 2.0
MAX_RETRIES = 5
RETRY_BASE_DELAY = 1.0
RETRY_MAX_DELAY = 30.0
CONNECTION_TIMEOUT = 10.0


# ==================================================================================
# ENVIRONMENT VALUES
# ==================================================================================
class ConfigString(str):
    """A string read from the environment that remembers its built-in default."""

    def __new__(cls, value, default):
        obj = super().__new__(cls, value)
        obj._default = default
        return obj

    def default(self):
        return self._default


class ConfigBool(int):
    """A "True"/"False" environment flag; truthy like a bool, with its default attached."""

    def __new__(cls, value, default):
        obj = super().__new__(cls, bool(value))
        obj._default = default
        return obj

    def default(self):
        return self._default

    def __repr__(self):
        return repr(bool(self))

    __str__ = __repr__

    def __eq__(self, other):
        return bool(self) == other

    __hash__ = int.__hash__


def _as_bool(raw):
    """ast-parse "true"/"false" in any casing; anything else is returned unchanged."""
    if isinstance(raw, str) and raw.strip().casefold() in ("true", "false"):
        return ast.literal_eval(raw.strip().capitalize())
    return raw


def _load_env_values(defaults):
    values = {}
    for key, fallback in defaults.items():
        raw = _config.get(key)
        if raw is None:
            raw = fallback
        parsed, parsed_default = _as_bool(raw), _as_bool(fallback)
        if isinstance(parsed, bool):
            values[key] = ConfigBool(parsed, parsed_default)
        else:
            values[key] = ConfigString(raw, parsed_default)
    return values


globals().update(_load_env_values(NETWORK_DEFAULTS | LOGGER_DEFAULTS))
