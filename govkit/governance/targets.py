"""
Action targets governed through the timelock.
"""

from ..ledger import external
from .access import Ownable


class Box(Ownable):
    """Ownable single-value store; ownership is handed to the timelock."""

    def __init__(self, owner: str):
        super().__init__(owner)
        self._value = 0

    @external("store(uint256)")
    def store(self, new_value: int) -> None:
        self._check_owner()
        self._value = new_value
        self.emit("ValueChanged", newValue=new_value)

    @external("retrieve()", returns=("uint256",), view=True)
    def retrieve(self) -> int:
        return self._value
