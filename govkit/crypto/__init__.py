"""
govkit Crypto Module

Deterministic hashing for proposal ids, timelock operation ids and
contract addresses.
"""

from .hashing import (
    description_hash,
    generate_contract_address,
    hash_operation,
    hash_operation_batch,
    hash_proposal,
    timelock_salt,
    to_hex32,
)

__all__ = [
    "description_hash",
    "generate_contract_address",
    "hash_operation",
    "hash_operation_batch",
    "hash_proposal",
    "timelock_salt",
    "to_hex32",
]
