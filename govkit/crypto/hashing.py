"""
govkit Hashing Module

Deterministic identifiers used on both sides of the ledger boundary:
- proposal ids:        keccak256(abi.encode(targets, values, calldatas, descriptionHash))
- timelock operations: keccak256(abi.encode(targets, values, payloads, predecessor, salt))
- description hashes:  keccak256(utf8(description))
- contract addresses:  keccak256(rlp([sender, nonce]))[-20:]

Every id is a pure function of its inputs, so a client that crashed can
re-derive it instead of parsing event logs.
"""

from typing import Sequence, Union

import rlp
from eth_abi import encode
from eth_utils import keccak, to_canonical_address, to_checksum_address


def description_hash(description: str) -> bytes:
    """keccak256 of the UTF-8 encoded description."""
    return keccak(text=description)


def hash_proposal(
    targets: Sequence[str],
    values: Sequence[int],
    calldatas: Sequence[bytes],
    desc_hash: bytes,
) -> int:
    """Proposal id as an unsigned 256-bit integer."""
    payload = encode(
        ["address[]", "uint256[]", "bytes[]", "bytes32"],
        [list(targets), list(values), list(calldatas), desc_hash],
    )
    return int.from_bytes(keccak(payload), "big")


def hash_operation(
    target: str,
    value: int,
    data: bytes,
    predecessor: bytes,
    salt: bytes,
) -> bytes:
    """Timelock id of a single-call operation."""
    payload = encode(
        ["address", "uint256", "bytes", "bytes32", "bytes32"],
        [target, value, data, predecessor, salt],
    )
    return keccak(payload)


def hash_operation_batch(
    targets: Sequence[str],
    values: Sequence[int],
    payloads: Sequence[bytes],
    predecessor: bytes,
    salt: bytes,
) -> bytes:
    """Timelock id of a batch operation."""
    payload = encode(
        ["address[]", "uint256[]", "bytes[]", "bytes32", "bytes32"],
        [list(targets), list(values), list(payloads), predecessor, salt],
    )
    return keccak(payload)


def timelock_salt(governor: str, desc_hash: bytes) -> bytes:
    """
    Salt used by the governor when scheduling: the governor address
    left-aligned in 32 bytes, XORed with the description hash.
    """
    padded = to_canonical_address(governor) + b"\x00" * 12
    return bytes(a ^ b for a, b in zip(padded, desc_hash))


def generate_contract_address(sender: str, nonce: int) -> str:
    """
    Contract address using CREATE opcode logic.

    Address = keccak256(rlp([sender, nonce]))[-20:]
    """
    sender_bytes = to_canonical_address(sender)
    hash_bytes = keccak(rlp.encode([sender_bytes, nonce]))
    return to_checksum_address(hash_bytes[-20:])


def to_hex32(value: Union[int, bytes]) -> str:
    """Render a proposal id or 32-byte hash as 0x-prefixed hex."""
    if isinstance(value, int):
        value = value.to_bytes(32, "big")
    return "0x" + value.hex()
