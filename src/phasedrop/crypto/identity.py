"""Account identities and 32-byte hash values.

Accounts are 20-byte EVM-style addresses. Callers may hand us hex strings
in any case (with or without the 0x prefix) or raw 20-byte values; every
component works on the checksummed string form so that dictionary keys,
event payloads and snapshots agree.

Hashes (commitments, proof elements, leaves) are 32 raw bytes internally
and 0x-prefixed lowercase hex at the edges.
"""

from __future__ import annotations

from typing import Any, Optional, Union

from eth_utils import (
    decode_hex,
    encode_hex,
    is_address,
    is_hex,
    to_canonical_address,
    to_checksum_address,
)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
ZERO_HASH = b"\x00" * 32

AccountLike = Union[str, bytes]
HashLike = Union[str, bytes]


def parse_account(value: Any) -> Optional[str]:
    """Return the checksummed form of an address, or None if malformed."""
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray)):
        if len(value) != 20:
            return None
        return to_checksum_address(bytes(value))
    if not isinstance(value, str):
        return None
    candidate = value.strip()
    if not candidate:
        return None
    if not candidate.lower().startswith("0x"):
        candidate = "0x" + candidate
    if not is_address(candidate):
        return None
    return to_checksum_address(candidate)


def normalize_account(value: Any) -> str:
    """Checksummed form of an address. Raises ValueError if malformed."""
    account = parse_account(value)
    if account is None:
        raise ValueError(f"Not a 20-byte address: {value!r}")
    return account


def is_null_account(account: Optional[str]) -> bool:
    return account is None or account == ZERO_ADDRESS


def account_bytes(account: AccountLike) -> bytes:
    """The 20 raw bytes of an address."""
    return to_canonical_address(normalize_account(account))


def to_hash32(value: HashLike) -> bytes:
    """Coerce a 32-byte hash. Raises ValueError/TypeError if malformed."""
    if isinstance(value, (bytes, bytearray)):
        raw = bytes(value)
    elif isinstance(value, str):
        if not is_hex(value):
            raise ValueError(f"Not a hex string: {value!r}")
        raw = decode_hex(value)
    else:
        raise TypeError(f"Unsupported hash type: {type(value).__name__}")
    if len(raw) != 32:
        raise ValueError(f"Expected 32 bytes, got {len(raw)}")
    return raw


def hash_hex(value: bytes) -> str:
    return encode_hex(value)
