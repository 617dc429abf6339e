"""Single-owner administrative capability.

Every administrator-only operation calls require_owner(caller) before it
reads or writes anything else.
"""

from __future__ import annotations

from phasedrop.crypto.identity import is_null_account, normalize_account, parse_account
from phasedrop.errors import NotOwner, ZeroAddress


class Ownable:
    """Holds the designated administrator identity."""

    def __init__(self, owner: str) -> None:
        owner_addr = parse_account(owner)
        if is_null_account(owner_addr):
            raise ZeroAddress(f"Owner must be a non-null address, got {owner!r}")
        self._owner = owner_addr

    @property
    def owner(self) -> str:
        return self._owner

    def require_owner(self, caller: str) -> None:
        if parse_account(caller) != self._owner:
            raise NotOwner(f"{caller} is not the owner")

    def transfer_ownership(self, caller: str, new_owner: str) -> tuple[str, str]:
        """Hand the capability to a new identity.

        Returns:
            Tuple of (previous owner, new owner).
        """
        self.require_owner(caller)
        target = parse_account(new_owner)
        if is_null_account(target):
            raise ZeroAddress(f"New owner must be a non-null address, got {new_owner!r}")
        previous = self._owner
        self._owner = normalize_account(target)
        return previous, self._owner
