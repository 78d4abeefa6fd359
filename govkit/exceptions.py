"""
govkit Exceptions

Error taxonomy shared by the ledger contracts and the client-side
orchestration. Concrete errors combine a module base (e.g. GovernorError)
with one of the category classes below so callers can decide how to react
without knowing every concrete type.
"""

from typing import Dict, Optional, Type


class GovKitException(Exception):
    """Base exception for govkit."""
    pass


# ── Categories ────────────────────────────────────────────────────────

class ValidationError(GovKitException):
    """Malformed input, rejected before any state mutation."""
    pass


class StateGuardError(GovKitException):
    """
    A lifecycle or timing guard rejected the call.

    ``retryable`` is True when the guard is time based and the same call
    may succeed later; identity based guards (double vote, double
    execution) are never retryable.
    """
    retryable: bool = False


class AuthorizationError(GovKitException):
    """Caller lacks the required role, ownership or voting power."""
    pass


class ExecutionError(GovKitException):
    """A target call failed while executing a batch of actions."""
    pass


class TransportError(GovKitException):
    """RPC disconnect, malformed response or similar transient failure."""
    pass


class ConfirmationTimeout(TransportError):
    """A submitted transaction did not reach the required confirmations in time."""

    def __init__(self, tx_hash: str, confirmations: int, timeout: float):
        self.tx_hash = tx_hash
        self.confirmations = confirmations
        self.timeout = timeout
        super().__init__(
            f"Transaction {tx_hash} not confirmed "
            f"({confirmations} confirmations) within {timeout}s"
        )


class ConfigurationError(GovKitException):
    """Configuration error."""
    pass


# ── Ledger reverts ────────────────────────────────────────────────────

_REVERT_REGISTRY: Dict[str, Type["ContractRevert"]] = {}


class ContractRevert(GovKitException):
    """
    Raised inside a contract to abort the current transaction.

    Every subclass is registered by name so a revert that crossed the
    JSON-RPC boundary can be raised again as the same class.
    """

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        _REVERT_REGISTRY[cls.__name__] = cls


def revert_class(name: str) -> Optional[Type[ContractRevert]]:
    """Look up a registered revert class by name."""
    return _REVERT_REGISTRY.get(name)


def rebuild_revert(name: str, message: str) -> ContractRevert:
    """Instantiate a registered revert class without running its __init__."""
    cls = revert_class(name) or ContractRevert
    exc = cls.__new__(cls)
    Exception.__init__(exc, message)
    return exc


class InsufficientBalance(ContractRevert, ValidationError):
    """Native value transfer exceeds the sender's balance."""
    pass


class UnknownSelector(ContractRevert, ValidationError):
    """Calldata does not match any external function of the contract."""
    pass


class FutureLookup(ContractRevert, StateGuardError):
    """Historical lookup for a timepoint that is not yet final."""
    retryable = True


# ── Orchestration ─────────────────────────────────────────────────────

class RetriesExhausted(GovKitException):
    """The retry budget for a ledger-mutating step ran out."""

    def __init__(self, step: str, attempts: int, last_error: Exception):
        self.step = step
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"{step}: gave up after {attempts} attempts ({last_error})"
        )


class OrchestrationAborted(GovKitException):
    """The proposal reached a terminal state the driver cannot continue from."""

    def __init__(self, proposal_id: int, state: str, message: str = ""):
        self.proposal_id = proposal_id
        self.state = state
        super().__init__(message or f"Proposal {proposal_id} ended in state {state}")


class ProposalDefeated(OrchestrationAborted):
    """Voting ended without the proposal succeeding."""
    pass


class ProposalCanceledExternally(OrchestrationAborted):
    """The proposal was canceled while the driver was running."""
    pass


class ProposalExpiredError(OrchestrationAborted):
    """The queued proposal passed its grace period."""
    pass


class VotingClosed(OrchestrationAborted):
    """The voting window ended before every ballot was cast."""
    pass
