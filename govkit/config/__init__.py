"""
govkit Configuration

Loads every section of govkit.toml at startup.
Environment variables override TOML values.
"""

from .loader import (
    ActionConfig,
    GovernorConfig,
    GovKitConfig,
    NetworkConfig,
    OrchestratorConfig,
    RPCConfig,
    TimelockConfig,
    load_config,
)

__all__ = [
    "ActionConfig",
    "GovernorConfig",
    "GovKitConfig",
    "NetworkConfig",
    "OrchestratorConfig",
    "RPCConfig",
    "TimelockConfig",
    "load_config",
]
