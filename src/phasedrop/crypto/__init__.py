"""Cryptographic primitives — account identities, keccak leaves, proof verification."""

from phasedrop.crypto.identity import ZERO_ADDRESS, normalize_account, parse_account
from phasedrop.crypto.merkle import leaf_for_account, verify, verify_account

__all__ = [
    "ZERO_ADDRESS",
    "leaf_for_account",
    "normalize_account",
    "parse_account",
    "verify",
    "verify_account",
]
