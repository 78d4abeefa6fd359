"""
Access control for governance contracts.

Provides single-owner (Ownable) and role-based (AccessControl) guards.
"""

from typing import Dict, Set

from eth_utils import keccak, to_checksum_address

from ..constants import ZERO_ADDRESS
from ..exceptions import AuthorizationError, ContractRevert, ValidationError
from ..ledger import Contract, external


class Unauthorized(ContractRevert, AuthorizationError):
    """Caller is not the owner, or lacks the required role."""


class InvalidAccount(ContractRevert, ValidationError):
    """Zero address where a real account is required."""


def role_id(name: str) -> bytes:
    """Role identifier: keccak256 of the role name."""
    return keccak(text=name)


class Ownable(Contract):
    """Single privileged owner."""

    def __init__(self, owner: str):
        super().__init__()
        if owner == ZERO_ADDRESS:
            raise InvalidAccount("Owner cannot be the zero address")
        self._owner = to_checksum_address(owner)

    @external("owner()", returns=("address",), view=True)
    def owner(self) -> str:
        return self._owner

    @external("transferOwnership(address)")
    def transfer_ownership(self, new_owner: str) -> None:
        self._check_owner()
        if new_owner == ZERO_ADDRESS:
            raise InvalidAccount("New owner cannot be the zero address")
        previous, self._owner = self._owner, to_checksum_address(new_owner)
        self.emit("OwnershipTransferred", previousOwner=previous, newOwner=self._owner)

    def _check_owner(self) -> None:
        if self.msg_sender != self._owner:
            raise Unauthorized(f"{self.msg_sender} is not the owner")


class AccessControl(Contract):
    """
    Role-based access control.

    Each role has an admin role whose members may grant and revoke it;
    DEFAULT_ADMIN_ROLE administers every role unless changed.
    """

    DEFAULT_ADMIN_ROLE = b"\x00" * 32

    def __init__(self):
        super().__init__()
        self._roles: Dict[bytes, Set[str]] = {}
        self._role_admins: Dict[bytes, bytes] = {}

    @external("hasRole(bytes32,address)", returns=("bool",), view=True)
    def has_role(self, role: bytes, account: str) -> bool:
        return to_checksum_address(account) in self._roles.get(role, set())

    @external("getRoleAdmin(bytes32)", returns=("bytes32",), view=True)
    def get_role_admin(self, role: bytes) -> bytes:
        return self._role_admins.get(role, self.DEFAULT_ADMIN_ROLE)

    @external("grantRole(bytes32,address)")
    def grant_role(self, role: bytes, account: str) -> None:
        self._check_role(self.get_role_admin(role), self.msg_sender)
        self._grant_role(role, account)

    @external("revokeRole(bytes32,address)")
    def revoke_role(self, role: bytes, account: str) -> None:
        self._check_role(self.get_role_admin(role), self.msg_sender)
        self._revoke_role(role, account)

    @external("renounceRole(bytes32,address)")
    def renounce_role(self, role: bytes, caller_confirmation: str) -> None:
        if to_checksum_address(caller_confirmation) != self.msg_sender:
            raise Unauthorized("Roles can only be renounced for self")
        self._revoke_role(role, caller_confirmation)

    def _check_role(self, role: bytes, account: str) -> None:
        if not self.has_role(role, account):
            raise Unauthorized(f"{account} is missing role 0x{role.hex()}")

    def _set_role_admin(self, role: bytes, admin_role: bytes) -> None:
        self._role_admins[role] = admin_role

    def _grant_role(self, role: bytes, account: str) -> bool:
        account = to_checksum_address(account)
        members = self._roles.setdefault(role, set())
        if account in members:
            return False
        members.add(account)
        self.emit("RoleGranted", role=role, account=account, sender=self.msg_sender)
        return True

    def _revoke_role(self, role: bytes, account: str) -> bool:
        account = to_checksum_address(account)
        members = self._roles.get(role, set())
        if account not in members:
            return False
        members.discard(account)
        self.emit("RoleRevoked", role=role, account=account, sender=self.msg_sender)
        return True
