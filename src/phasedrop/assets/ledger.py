"""Asset ledger abstraction — the fungible token the distributor pays out of.

The distributor never keeps token balances itself. It asks the ledger
how much it holds and asks it to move funds. Anything that satisfies
the AssetLedger protocol can back a distributor: the in-memory token
below (tests, local runs, the CLI), or an ERC-20 contract through
Web3TokenLedger.

The in-memory token mirrors a plain owner-mintable ERC-20: zero initial
supply, only the owner mints, transfers fail rather than overdraw.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Optional, Protocol, runtime_checkable

from eth_utils import keccak, to_checksum_address

from phasedrop.crypto.identity import is_null_account, normalize_account
from phasedrop.errors import NotOwner, ZeroAddress

logger = logging.getLogger(__name__)

TransferHook = Callable[[str, str, int], None]


@runtime_checkable
class AssetLedger(Protocol):
    """Contract for the external asset ledger.

    The distributor only ever reads its own balance and transfers out of
    it. transfer() returns False (or raises) when the move did not
    happen; the distributor treats either as fatal to the operation.
    """

    @property
    def asset_id(self) -> str:
        """Identifier of the asset (token contract address)."""
        ...

    def balance_of(self, account: str) -> int:
        """Balance held by an account, in smallest units."""
        ...

    def transfer(self, sender: str, recipient: str, amount: int) -> bool:
        """Move funds from sender to recipient. Returns success."""
        ...


class InMemoryAssetLedger:
    """Owner-mintable fungible token kept in a dictionary.

    Usage:
        token = InMemoryAssetLedger(owner="0x...")
        token.mint(owner, distributor.address, 10**24)
        token.balance_of(distributor.address)

    on_transfer, if given, is called after every successful transfer
    with (sender, recipient, amount). It models the callback hook a
    token contract may run on the recipient side.
    """

    def __init__(
        self,
        owner: str,
        name: str = "AIRDROP",
        symbol: str = "AIR",
        asset_id: Optional[str] = None,
        on_transfer: Optional[TransferHook] = None,
    ) -> None:
        owner_addr = normalize_account(owner)
        if is_null_account(owner_addr):
            raise ZeroAddress("Token owner cannot be the null address")
        self.name = name
        self.symbol = symbol
        self._owner = owner_addr
        self._asset_id = (
            normalize_account(asset_id)
            if asset_id is not None
            else to_checksum_address(keccak(text=f"{name}:{symbol}:{owner_addr}")[-20:])
        )
        self._balances: Dict[str, int] = {}
        self._total_supply = 0
        self.on_transfer = on_transfer

    @property
    def asset_id(self) -> str:
        return self._asset_id

    @property
    def owner(self) -> str:
        return self._owner

    @property
    def total_supply(self) -> int:
        return self._total_supply

    def balance_of(self, account: str) -> int:
        return self._balances.get(normalize_account(account), 0)

    def mint(self, caller: str, to: str, amount: int) -> None:
        """Create new supply. Owner only."""
        if normalize_account(caller) != self._owner:
            raise NotOwner(f"{caller} is not the token owner")
        recipient = normalize_account(to)
        if is_null_account(recipient):
            raise ZeroAddress("Cannot mint to the null address")
        if amount < 0:
            raise ValueError("Mint amount must be non-negative")
        self._balances[recipient] = self._balances.get(recipient, 0) + amount
        self._total_supply += amount

    def transfer(self, sender: str, recipient: str, amount: int) -> bool:
        src = normalize_account(sender)
        dst = normalize_account(recipient)
        if amount < 0:
            raise ValueError("Transfer amount must be non-negative")
        if is_null_account(dst):
            return False
        available = self._balances.get(src, 0)
        if available < amount:
            logger.debug("transfer refused: %s holds %d, needs %d", src, available, amount)
            return False
        self._balances[src] = available - amount
        self._balances[dst] = self._balances.get(dst, 0) + amount
        if self.on_transfer is not None:
            try:
                self.on_transfer(src, dst, amount)
            except Exception:
                # A failing hook reverts the transfer it was called for.
                self._balances[dst] -= amount
                self._balances[src] = available
                raise
        return True

    def transfer_ownership(self, caller: str, new_owner: str) -> None:
        if normalize_account(caller) != self._owner:
            raise NotOwner(f"{caller} is not the token owner")
        target = normalize_account(new_owner)
        if is_null_account(target):
            raise ZeroAddress("New owner cannot be the null address")
        self._owner = target

    # ------------------------------------------------------------------
    # Snapshot support
    # ------------------------------------------------------------------

    def to_dict(self) -> dict:
        return {
            "asset_id": self._asset_id,
            "name": self.name,
            "symbol": self.symbol,
            "owner": self._owner,
            "balances": dict(sorted(self._balances.items())),
        }

    @staticmethod
    def from_dict(data: dict) -> InMemoryAssetLedger:
        ledger = InMemoryAssetLedger(
            owner=data["owner"],
            name=data.get("name", "AIRDROP"),
            symbol=data.get("symbol", "AIR"),
            asset_id=data["asset_id"],
        )
        for account, balance in data.get("balances", {}).items():
            ledger._balances[normalize_account(account)] = int(balance)
        ledger._total_supply = sum(ledger._balances.values())
        return ledger
