"""
govkit TOML Configuration Loader

Loads every section of govkit.toml with environment variable overrides.

Environment variable mapping:
    [network] name          → GOVKIT_NETWORK
    [network] rpc_url       → GOVKIT_RPC_URL
    [network] chain_id      → GOVKIT_CHAIN_ID
    [governor] grace_period → GOVKIT_GRACE_PERIOD
    [timelock] min_delay    → GOVKIT_MIN_DELAY
    [orchestrator] ...      → GOVKIT_CONFIRMATIONS, GOVKIT_MAX_RETRIES, GOVKIT_POLL_INTERVAL,
                              GOVKIT_PROPOSAL_FILE
    [rpc] host / port       → GOVKIT_RPC_HOST, GOVKIT_RPC_PORT
"""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from .. import constants
from ..exceptions import ConfigurationError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section dataclasses, one per [section] of govkit.toml
# ---------------------------------------------------------------------------


@dataclass
class NetworkConfig:
    """[network] section."""
    name: str = "localhost"
    chain_id: int = constants.DEVELOPMENT_CHAIN_ID
    rpc_url: str = "http://127.0.0.1:8545/rpc"
    connection_timeout: float = constants.CONNECTION_TIMEOUT

    @property
    def is_development(self) -> bool:
        return self.name in constants.DEVELOPMENT_CHAINS

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NetworkConfig":
        return cls(
            name=data.get("name", str(constants.GOVKIT_NETWORK)),
            chain_id=data.get("chain_id", constants.DEVELOPMENT_CHAIN_ID),
            rpc_url=data.get("rpc_url", str(constants.GOVKIT_RPC_URL)),
            connection_timeout=data.get("connection_timeout", constants.CONNECTION_TIMEOUT),
        )

    def apply_env(self) -> None:
        """Override from environment variables."""
        if v := os.environ.get("GOVKIT_NETWORK"):
            self.name = v
        if v := os.environ.get("GOVKIT_CHAIN_ID"):
            self.chain_id = int(v)
        if v := os.environ.get("GOVKIT_RPC_URL"):
            self.rpc_url = v


@dataclass
class GovernorConfig:
    """[governor] section. Delay and period are in token clock units."""
    name: str = constants.GOVERNOR_NAME
    voting_delay: int = constants.VOTING_DELAY
    voting_period: int = constants.VOTING_PERIOD
    proposal_threshold: int = constants.PROPOSAL_THRESHOLD
    quorum_numerator: int = constants.QUORUM_NUMERATOR
    quorum_denominator: int = constants.QUORUM_DENOMINATOR
    grace_period: Optional[int] = constants.GRACE_PERIOD
    clock_mode: str = "blocknumber"
    cancellers: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GovernorConfig":
        return cls(
            name=data.get("name", constants.GOVERNOR_NAME),
            voting_delay=data.get("voting_delay", constants.VOTING_DELAY),
            voting_period=data.get("voting_period", constants.VOTING_PERIOD),
            proposal_threshold=data.get("proposal_threshold", constants.PROPOSAL_THRESHOLD),
            quorum_numerator=data.get("quorum_numerator", constants.QUORUM_NUMERATOR),
            quorum_denominator=data.get("quorum_denominator", constants.QUORUM_DENOMINATOR),
            grace_period=data.get("grace_period", constants.GRACE_PERIOD),
            clock_mode=data.get("clock_mode", "blocknumber"),
            cancellers=data.get("cancellers", []),
        )

    def apply_env(self) -> None:
        if v := os.environ.get("GOVKIT_GRACE_PERIOD"):
            self.grace_period = int(v) or None

    def validate(self) -> None:
        if self.voting_delay < 0:
            raise ConfigurationError("governor.voting_delay must be >= 0")
        if self.voting_period <= 0:
            raise ConfigurationError("governor.voting_period must be > 0")
        if self.proposal_threshold < 0:
            raise ConfigurationError("governor.proposal_threshold must be >= 0")
        if self.quorum_denominator <= 0:
            raise ConfigurationError("governor.quorum_denominator must be > 0")
        if not 0 <= self.quorum_numerator <= self.quorum_denominator:
            raise ConfigurationError(
                f"governor.quorum_numerator must be within [0, {self.quorum_denominator}]"
            )
        if self.grace_period is not None and self.grace_period <= 0:
            raise ConfigurationError("governor.grace_period must be > 0 or unset")
        if self.clock_mode not in ("blocknumber", "timestamp"):
            raise ConfigurationError(f"Invalid governor.clock_mode: {self.clock_mode}")


@dataclass
class TimelockConfig:
    """[timelock] section. Delay is in seconds."""
    min_delay: int = constants.MIN_DELAY

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TimelockConfig":
        return cls(min_delay=data.get("min_delay", constants.MIN_DELAY))

    def apply_env(self) -> None:
        if v := os.environ.get("GOVKIT_MIN_DELAY"):
            self.min_delay = int(v)

    def validate(self) -> None:
        if self.min_delay < 0:
            raise ConfigurationError("timelock.min_delay must be >= 0")


@dataclass
class OrchestratorConfig:
    """[orchestrator] section."""
    confirmations: int = constants.CONFIRMATIONS
    confirmation_timeout: float = constants.CONFIRMATION_TIMEOUT
    poll_interval: float = constants.POLL_INTERVAL
    max_retries: int = constants.MAX_RETRIES
    retry_base_delay: float = constants.RETRY_BASE_DELAY
    retry_max_delay: float = constants.RETRY_MAX_DELAY
    proposal_file: str = "proposals.json"
    time_travel: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OrchestratorConfig":
        return cls(
            confirmations=data.get("confirmations", constants.CONFIRMATIONS),
            confirmation_timeout=data.get("confirmation_timeout", constants.CONFIRMATION_TIMEOUT),
            poll_interval=data.get("poll_interval", constants.POLL_INTERVAL),
            max_retries=data.get("max_retries", constants.MAX_RETRIES),
            retry_base_delay=data.get("retry_base_delay", constants.RETRY_BASE_DELAY),
            retry_max_delay=data.get("retry_max_delay", constants.RETRY_MAX_DELAY),
            proposal_file=data.get("proposal_file", str(constants.GOVKIT_PROPOSAL_FILE)),
            time_travel=data.get("time_travel", True),
        )

    def apply_env(self) -> None:
        if v := os.environ.get("GOVKIT_CONFIRMATIONS"):
            self.confirmations = int(v)
        if v := os.environ.get("GOVKIT_MAX_RETRIES"):
            self.max_retries = int(v)
        if v := os.environ.get("GOVKIT_POLL_INTERVAL"):
            self.poll_interval = float(v)
        if v := os.environ.get("GOVKIT_PROPOSAL_FILE"):
            self.proposal_file = v

    def validate(self) -> None:
        if self.confirmations < 1:
            raise ConfigurationError("orchestrator.confirmations must be >= 1")
        if self.max_retries < 1:
            raise ConfigurationError("orchestrator.max_retries must be >= 1")
        if self.poll_interval <= 0 or self.confirmation_timeout <= 0:
            raise ConfigurationError("orchestrator intervals must be > 0")
        if self.retry_base_delay < 0 or self.retry_max_delay < self.retry_base_delay:
            raise ConfigurationError("orchestrator retry delays are inconsistent")


@dataclass
class RPCConfig:
    """[rpc] section: development node served by `govkit node`."""
    host: str = "127.0.0.1"
    port: int = 8545
    block_time: int = constants.DEV_BLOCK_TIME

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RPCConfig":
        return cls(
            host=data.get("host", "127.0.0.1"),
            port=data.get("port", 8545),
            block_time=data.get("block_time", constants.DEV_BLOCK_TIME),
        )

    def apply_env(self) -> None:
        if v := os.environ.get("GOVKIT_RPC_HOST"):
            self.host = v
        if v := os.environ.get("GOVKIT_RPC_PORT"):
            self.port = int(v)


@dataclass
class ActionConfig:
    """[action] section: the default proposal submitted by the CLI."""
    function: str = constants.FUNC
    args: List[Any] = field(default_factory=lambda: list(constants.FUNC_ARGS))
    description: str = constants.DESCRIPTION
    vote_reason: str = constants.VOTE_REASON

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ActionConfig":
        return cls(
            function=data.get("function", constants.FUNC),
            args=data.get("args", list(constants.FUNC_ARGS)),
            description=data.get("description", constants.DESCRIPTION),
            vote_reason=data.get("vote_reason", constants.VOTE_REASON),
        )


# ---------------------------------------------------------------------------
# Root config
# ---------------------------------------------------------------------------


@dataclass
class GovKitConfig:
    """Complete govkit.toml."""
    network: NetworkConfig = field(default_factory=NetworkConfig)
    governor: GovernorConfig = field(default_factory=GovernorConfig)
    timelock: TimelockConfig = field(default_factory=TimelockConfig)
    orchestrator: OrchestratorConfig = field(default_factory=OrchestratorConfig)
    rpc: RPCConfig = field(default_factory=RPCConfig)
    action: ActionConfig = field(default_factory=ActionConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GovKitConfig":
        return cls(
            network=NetworkConfig.from_dict(data.get("network", {})),
            governor=GovernorConfig.from_dict(data.get("governor", {})),
            timelock=TimelockConfig.from_dict(data.get("timelock", {})),
            orchestrator=OrchestratorConfig.from_dict(data.get("orchestrator", {})),
            rpc=RPCConfig.from_dict(data.get("rpc", {})),
            action=ActionConfig.from_dict(data.get("action", {})),
        )

    @classmethod
    def from_file(cls, config_path: str) -> "GovKitConfig":
        """
        Load configuration from a TOML file.

        Args:
            config_path: Path to govkit.toml

        Returns:
            GovKitConfig instance (defaults when the file does not exist)
        """
        path = Path(config_path)
        if not path.exists():
            logger.debug("Config file not found: %s, using defaults", config_path)
            cfg = cls()
            cfg.apply_env()
            return cfg

        try:
            with open(path, "rb") as f:
                raw = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigurationError(f"Invalid TOML in {config_path}: {e}") from e

        cfg = cls.from_dict(raw)
        cfg.apply_env()
        return cfg

    # --- env overrides ----------------------------------------------------

    def apply_env(self) -> None:
        """Apply environment variable overrides to all sections."""
        self.network.apply_env()
        self.governor.apply_env()
        self.timelock.apply_env()
        self.orchestrator.apply_env()
        self.rpc.apply_env()

    # --- validation -------------------------------------------------------

    def validate(self) -> bool:
        """
        Validate all configuration sections.

        Raises:
            ConfigurationError: on invalid config
        """
        if self.network.chain_id < 1:
            raise ConfigurationError("network.chain_id must be >= 1")
        self.governor.validate()
        self.timelock.validate()
        self.orchestrator.validate()
        if not 0 < self.rpc.port < 65536:
            raise ConfigurationError(f"Invalid rpc.port: {self.rpc.port}")
        return True

    # --- serialisation ----------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dict (for diagnostics, NOT for re-creating TOML)."""
        return {
            "network": {
                "name": self.network.name,
                "chain_id": self.network.chain_id,
                "rpc_url": self.network.rpc_url,
                "development": self.network.is_development,
            },
            "governor": {
                "voting_delay": self.governor.voting_delay,
                "voting_period": self.governor.voting_period,
                "proposal_threshold": self.governor.proposal_threshold,
                "quorum": f"{self.governor.quorum_numerator}/{self.governor.quorum_denominator}",
                "grace_period": self.governor.grace_period,
                "clock_mode": self.governor.clock_mode,
            },
            "timelock": {
                "min_delay": self.timelock.min_delay,
            },
            "orchestrator": {
                "confirmations": self.orchestrator.confirmations,
                "poll_interval": self.orchestrator.poll_interval,
                "max_retries": self.orchestrator.max_retries,
                "proposal_file": self.orchestrator.proposal_file,
            },
            "rpc": {
                "host": self.rpc.host,
                "port": self.rpc.port,
            },
            "action": {
                "function": self.action.function,
                "args": list(self.action.args),
                "description": self.action.description,
            },
        }


# -----------------------------------------------------------------------
# Convenience function
# -----------------------------------------------------------------------

def load_config(path: Optional[str] = None) -> GovKitConfig:
    """
    Load and validate govkit configuration.

    Resolution order:
        1. Explicit *path* argument
        2. GOVKIT_CONFIG env var
        3. ./govkit.toml in current directory
        4. Defaults (with env overrides)
    """
    if path is None:
        path = os.environ.get("GOVKIT_CONFIG", "govkit.toml")

    cfg = GovKitConfig.from_file(path)
    cfg.validate()
    return cfg
