"""Phase models — one time-boxed distribution round.

Integer widths are chosen up front and validated on every write path:
- per-claim amounts fit 64 unsigned bits,
- expiry timestamps fit 64 unsigned bits,
- the registry holds at most MAX_PHASES entries (an 8-bit index).

Invariants enforced by the registry, not by these records:
- per_claim_amount > 0 always,
- expiry strictly in the future at creation and at any update,
- redeemed_count and claimed_amount only ever grow.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from phasedrop.crypto.identity import hash_hex, to_hash32

AMOUNT_BITS = 64
MAX_AMOUNT = (1 << AMOUNT_BITS) - 1
TIMESTAMP_BITS = 64
MAX_TIMESTAMP = (1 << TIMESTAMP_BITS) - 1
MAX_PHASES = 255


@dataclass
class Phase:
    """A distribution round.

    Mutable — administrator updates and redemptions change it in place.
    `index` equals its position in the registry and never changes.
    """
    index: int
    commitment: bytes
    per_claim_amount: int
    expiry: int
    active: bool = False
    redeemed_count: int = 0
    claimed_amount: int = 0

    def is_expired(self, now: int) -> bool:
        return now > self.expiry

    def remaining_time(self, now: int) -> int:
        return max(self.expiry - now, 0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "commitment": hash_hex(self.commitment),
            "per_claim_amount": self.per_claim_amount,
            "expiry": self.expiry,
            "active": self.active,
            "redeemed_count": self.redeemed_count,
            "claimed_amount": self.claimed_amount,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> Phase:
        return Phase(
            index=int(data["index"]),
            commitment=to_hash32(data["commitment"]),
            per_claim_amount=int(data["per_claim_amount"]),
            expiry=int(data["expiry"]),
            active=bool(data["active"]),
            redeemed_count=int(data.get("redeemed_count", 0)),
            claimed_amount=int(data.get("claimed_amount", 0)),
        )


@dataclass(frozen=True)
class PhaseStatus:
    """Read-only view returned by the safe status query.

    is_active is True only when the phase is flagged active, has not
    expired, and the distributor is not paused.
    """
    is_active: bool
    remaining_time: int
    per_claim_amount: int


INACTIVE_STATUS = PhaseStatus(is_active=False, remaining_time=0, per_claim_amount=0)


@dataclass(frozen=True)
class BatchOutcome:
    """Aggregate result of a batch redemption.

    success_count covers every committed entry: `claimed` holds those
    whose transfer was confirmed, `pending` those whose transfer was
    broadcast with an unknown outcome.
    """
    phase_index: int
    success_count: int
    skip_count: int
    claimed: tuple[str, ...] = ()
    pending: tuple[str, ...] = ()
