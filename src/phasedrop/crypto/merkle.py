"""Membership proof verification against a Merkle commitment.

Uses keccak-256 as the hash function. Sibling pairs are sorted before
hashing, so a proof is just the ordered list of sibling hashes from the
leaf up to the root; no left/right position flags are needed and the
order in which the tree builder placed the pair does not matter.

The leaf for an account is keccak256 of its 20 raw address bytes. No
other field (amount, index) is committed into the leaf: the per-claim
amount is a property of the phase, not of the member.
"""

from __future__ import annotations

from typing import Any, Iterable

from eth_utils import keccak

from phasedrop.crypto.identity import AccountLike, HashLike, account_bytes, to_hash32


def leaf_for_account(account: AccountLike) -> bytes:
    """Compute the leaf hash committed for an account."""
    return keccak(account_bytes(account))


def hash_pair(a: bytes, b: bytes) -> bytes:
    """Hash two nodes together in sorted order."""
    if a <= b:
        return keccak(a + b)
    return keccak(b + a)


def process_proof(proof: Iterable[HashLike], leaf: HashLike) -> bytes:
    """Walk a proof from the leaf and return the candidate root.

    Raises ValueError/TypeError on malformed input; use verify() when a
    plain yes/no answer is needed.
    """
    computed = to_hash32(leaf)
    for sibling in proof:
        computed = hash_pair(computed, to_hash32(sibling))
    return computed


def verify(proof: Any, root: HashLike, leaf: HashLike) -> bool:
    """Return True iff the proof connects leaf to root.

    Never raises: any malformed proof, root or leaf is "not verified".
    An empty proof is valid and means the leaf must equal the root.
    """
    if proof is None or isinstance(proof, (str, bytes, bytearray)):
        return False
    try:
        return process_proof(proof, leaf) == to_hash32(root)
    except (TypeError, ValueError):
        return False


def verify_account(proof: Any, root: HashLike, account: AccountLike) -> bool:
    """Verify membership of an account identity."""
    try:
        leaf = leaf_for_account(account)
    except (TypeError, ValueError):
        return False
    return verify(proof, root, leaf)
