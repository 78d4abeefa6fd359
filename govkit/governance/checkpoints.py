"""
Checkpointed Voting Power

Implements the voting-power oracle consumed by the governor:
  - ERC20-style balances with transfer / mint
  - Delegation: an account's balance only counts as votes once delegated
    (to itself or to another account)
  - Per-account checkpoint history of delegated votes, plus total supply
    history, queried by binary search at any past timepoint

The governor only reads from this contract; it never writes checkpoints.
"""

from bisect import bisect_right
from typing import Dict, List, Tuple

from eth_utils import to_checksum_address

from ..constants import (
    TOKEN_INITIAL_SUPPLY,
    TOKEN_NAME,
    TOKEN_SYMBOL,
    ZERO_ADDRESS,
)
from ..exceptions import ContractRevert, FutureLookup, ValidationError
from ..ledger import external
from .access import Ownable


# ══════════════════════════════════════════════════════════════════════
#  EXCEPTIONS
# ══════════════════════════════════════════════════════════════════════

class TokenError(ContractRevert):
    """Base voting-token error."""


class InsufficientTokenBalance(TokenError, ValidationError):
    """Sender balance is too low for the transfer."""


class InvalidReceiver(TokenError, ValidationError):
    """Transfer or mint to the zero address."""


class CheckpointUnorderedInsertion(TokenError):
    """A checkpoint was written for a timepoint older than the latest one."""


# ══════════════════════════════════════════════════════════════════════
#  CHECKPOINT TRACE
# ══════════════════════════════════════════════════════════════════════

class Trace:
    """
    Ordered (timepoint, amount) history with strictly increasing timepoints.

    Writing twice at the same timepoint replaces the last entry.
    """

    def __init__(self):
        self._keys: List[int] = []
        self._values: List[int] = []

    def push(self, key: int, value: int) -> Tuple[int, int]:
        old = self.latest()
        if self._keys and key < self._keys[-1]:
            raise CheckpointUnorderedInsertion(
                f"Checkpoint at {key} precedes latest {self._keys[-1]}"
            )
        if self._keys and self._keys[-1] == key:
            self._values[-1] = value
        else:
            self._keys.append(key)
            self._values.append(value)
        return old, value

    def latest(self) -> int:
        return self._values[-1] if self._values else 0

    def upper_lookup(self, key: int) -> int:
        """Amount of the latest checkpoint with timepoint <= key, or 0."""
        idx = bisect_right(self._keys, key)
        return self._values[idx - 1] if idx else 0

    def at(self, pos: int) -> Tuple[int, int]:
        return self._keys[pos], self._values[pos]

    def __len__(self) -> int:
        return len(self._keys)


# ══════════════════════════════════════════════════════════════════════
#  VOTING TOKEN
# ══════════════════════════════════════════════════════════════════════

class GovernanceToken(Ownable):
    """
    Voting token with delegation and checkpoints.

    The clock is the ledger block number by default; ``clock_mode="timestamp"``
    switches every checkpoint (and therefore the governor's voting
    schedule) to seconds.
    """

    def __init__(
        self,
        owner: str,
        name: str = TOKEN_NAME,
        symbol: str = TOKEN_SYMBOL,
        initial_supply: int = TOKEN_INITIAL_SUPPLY,
        clock_mode: str = "blocknumber",
    ):
        super().__init__(owner)
        if clock_mode not in ("blocknumber", "timestamp"):
            raise ValueError(f"Unsupported clock mode: {clock_mode}")
        self._name = name
        self._symbol = symbol
        self._initial_supply = initial_supply
        self._clock_mode = clock_mode
        self._total_supply = 0
        self._balances: Dict[str, int] = {}
        self._delegates: Dict[str, str] = {}
        self._checkpoints: Dict[str, Trace] = {}
        self._total_checkpoints = Trace()

    def constructor(self) -> None:
        if self._initial_supply:
            self._mint(self._owner, self._initial_supply)

    # ── Clock ─────────────────────────────────────────────────────────

    @external("clock()", returns=("uint48",), view=True)
    def clock(self) -> int:
        if self._clock_mode == "timestamp":
            return self.block_timestamp
        return self.block_number

    @external("CLOCK_MODE()", returns=("string",), view=True)
    def clock_mode(self) -> str:
        return f"mode={self._clock_mode}&from=default"

    # ── ERC20 ─────────────────────────────────────────────────────────

    @external("name()", returns=("string",), view=True)
    def name(self) -> str:
        return self._name

    @external("symbol()", returns=("string",), view=True)
    def symbol(self) -> str:
        return self._symbol

    @external("decimals()", returns=("uint8",), view=True)
    def decimals(self) -> int:
        return 18

    @external("totalSupply()", returns=("uint256",), view=True)
    def total_supply(self) -> int:
        return self._total_supply

    @external("balanceOf(address)", returns=("uint256",), view=True)
    def balance_of(self, account: str) -> int:
        return self._balances.get(to_checksum_address(account), 0)

    @external("transfer(address,uint256)", returns=("bool",))
    def transfer(self, to: str, amount: int) -> bool:
        if to == ZERO_ADDRESS:
            raise InvalidReceiver("Cannot transfer to the zero address")
        self._update(self.msg_sender, to_checksum_address(to), amount)
        return True

    @external("mint(address,uint256)")
    def mint(self, to: str, amount: int) -> None:
        self._check_owner()
        if to == ZERO_ADDRESS:
            raise InvalidReceiver("Cannot mint to the zero address")
        self._mint(to_checksum_address(to), amount)

    def _mint(self, to: str, amount: int) -> None:
        self._update(ZERO_ADDRESS, to, amount)

    def _update(self, sender: str, to: str, amount: int) -> None:
        if sender == ZERO_ADDRESS:
            self._total_supply += amount
            self._total_checkpoints.push(self.clock(), self._total_supply)
        else:
            balance = self._balances.get(sender, 0)
            if balance < amount:
                raise InsufficientTokenBalance(
                    f"{sender} has {balance}, needs {amount}"
                )
            self._balances[sender] = balance - amount
        self._balances[to] = self._balances.get(to, 0) + amount
        self.emit("Transfer", sender=sender, to=to, value=amount)
        self._move_delegate_votes(self.delegates(sender), self.delegates(to), amount)

    # ── Delegation ────────────────────────────────────────────────────

    @external("delegates(address)", returns=("address",), view=True)
    def delegates(self, account: str) -> str:
        if account == ZERO_ADDRESS:
            return ZERO_ADDRESS
        return self._delegates.get(to_checksum_address(account), ZERO_ADDRESS)

    @external("delegate(address)")
    def delegate(self, delegatee: str) -> None:
        """Delegate the caller's votes; delegating to self activates them."""
        account = self.msg_sender
        delegatee = to_checksum_address(delegatee)
        previous = self.delegates(account)
        self._delegates[account] = delegatee
        self.emit(
            "DelegateChanged",
            delegator=account,
            fromDelegate=previous,
            toDelegate=delegatee,
        )
        self._move_delegate_votes(previous, delegatee, self.balance_of(account))

    def _move_delegate_votes(self, src: str, dst: str, amount: int) -> None:
        if src == dst or amount <= 0:
            return
        now = self.clock()
        if src != ZERO_ADDRESS:
            trace = self._checkpoints.setdefault(src, Trace())
            old, new = trace.push(now, trace.latest() - amount)
            self.emit("DelegateVotesChanged", delegate=src, previousVotes=old, newVotes=new)
        if dst != ZERO_ADDRESS:
            trace = self._checkpoints.setdefault(dst, Trace())
            old, new = trace.push(now, trace.latest() + amount)
            self.emit("DelegateVotesChanged", delegate=dst, previousVotes=old, newVotes=new)

    # ── Voting power ──────────────────────────────────────────────────

    @external("getVotes(address)", returns=("uint256",), view=True)
    def get_votes(self, account: str) -> int:
        trace = self._checkpoints.get(to_checksum_address(account))
        return trace.latest() if trace else 0

    @external("getPastVotes(address,uint256)", returns=("uint256",), view=True)
    def voting_power_at(self, account: str, timepoint: int) -> int:
        """Votes of *account* at *timepoint* (latest checkpoint at or before it)."""
        self._check_lookup(timepoint)
        trace = self._checkpoints.get(to_checksum_address(account))
        return trace.upper_lookup(timepoint) if trace else 0

    @external("getPastTotalSupply(uint256)", returns=("uint256",), view=True)
    def total_supply_at(self, timepoint: int) -> int:
        self._check_lookup(timepoint)
        return self._total_checkpoints.upper_lookup(timepoint)

    @external("numCheckpoints(address)", returns=("uint32",), view=True)
    def num_checkpoints(self, account: str) -> int:
        trace = self._checkpoints.get(to_checksum_address(account))
        return len(trace) if trace else 0

    @external("checkpoints(address,uint32)", returns=("uint48", "uint208"), view=True)
    def checkpoint_at(self, account: str, pos: int) -> Tuple[int, int]:
        trace = self._checkpoints.get(to_checksum_address(account))
        if trace is None or pos >= len(trace):
            raise TokenError(f"No checkpoint {pos} for {account}")
        return trace.at(pos)

    def _check_lookup(self, timepoint: int) -> None:
        current = self.clock()
        if timepoint > current:
            raise FutureLookup(f"Timepoint {timepoint} is after current clock {current}")
