"""Claim ledger — per-phase record of accounts that have redeemed.

Sparse: a phase has an entry only once someone claims in it, and an
absent (phase, account) pair means "not claimed". Records are write-once
from the outside. The only removal path is the redemption engine undoing
a mark it made in the same operation when the checkpoint or the asset
transfer fails.
"""

from __future__ import annotations

from typing import Dict, Iterator, Set


class ClaimLedger:
    """Usage:
        ledger = ClaimLedger()
        if not ledger.has_claimed(0, account):
            ledger.mark_claimed(0, account)
    """

    def __init__(self) -> None:
        self._claims: Dict[int, Set[str]] = {}

    def has_claimed(self, phase_index: int, account: str) -> bool:
        """Never raises; unknown phases simply have no claims."""
        claimed = self._claims.get(phase_index)
        return claimed is not None and account in claimed

    def mark_claimed(self, phase_index: int, account: str) -> None:
        """Record a redemption. Callers check has_claimed first."""
        self._claims.setdefault(phase_index, set()).add(account)

    def claim_count(self, phase_index: int) -> int:
        return len(self._claims.get(phase_index, ()))

    def claimants(self, phase_index: int) -> Iterator[str]:
        return iter(sorted(self._claims.get(phase_index, ())))

    def _unmark(self, phase_index: int, account: str) -> None:
        """Undo an uncommitted mark. Redemption engine rollback only."""
        claimed = self._claims.get(phase_index)
        if claimed is None:
            return
        claimed.discard(account)
        if not claimed:
            del self._claims[phase_index]

    def to_dict(self) -> dict[str, list[str]]:
        return {str(k): sorted(v) for k, v in sorted(self._claims.items())}

    def load(self, data: dict[str, list[str]]) -> None:
        if self._claims:
            raise RuntimeError("Ledger already populated. Create a new ledger.")
        self._claims = {int(k): set(v) for k, v in data.items() if v}
