"""
govkit Client Module

Off-ledger side of the system:
- Ledger clients (in-process and JSON-RPC)
- Contract handles
- Proposal store
- Lifecycle orchestrator
"""

from .contracts import ContractHandle
from .orchestrator import (
    Ballot,
    DevelopmentTimeTravel,
    Orchestrator,
    OrchestratorSettings,
    ProposalReport,
    ProposalRequest,
    StepReport,
)
from .provider import HttpLedgerClient, LedgerClient, LocalLedgerClient, RPCClientError
from .store import InMemoryProposalStore, JsonFileProposalStore, ProposalStore

__all__ = [
    "ContractHandle",
    "Ballot",
    "DevelopmentTimeTravel",
    "Orchestrator",
    "OrchestratorSettings",
    "ProposalReport",
    "ProposalRequest",
    "StepReport",
    "HttpLedgerClient",
    "LedgerClient",
    "LocalLedgerClient",
    "RPCClientError",
    "InMemoryProposalStore",
    "JsonFileProposalStore",
    "ProposalStore",
]
