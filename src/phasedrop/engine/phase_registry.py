"""Phase registry — append-only, bounded sequence of distribution rounds.

Phases are never deleted. A phase's index is its position in the
registry and is stable for the life of the distributor. The registry
also owns the current-phase pointer used by claim entry points that do
not name a phase.

The registry is a pure state machine: it validates and mutates phases
but does not emit events or touch the asset ledger. Event logging is
handled by the distributor facade.
"""

from __future__ import annotations

import logging
from typing import Iterator, Optional

from phasedrop.crypto.identity import HashLike, to_hash32
from phasedrop.errors import (
    AmountTooLarge,
    ClaimingEnded,
    ExpiryNotInFuture,
    InvalidPhase,
    RegistryFull,
    TimestampTooLarge,
    ZeroAmount,
)
from phasedrop.models.phase import (
    INACTIVE_STATUS,
    MAX_AMOUNT,
    MAX_PHASES,
    MAX_TIMESTAMP,
    Phase,
    PhaseStatus,
)

logger = logging.getLogger(__name__)


def validate_amount(amount: int, max_amount: int = MAX_AMOUNT) -> int:
    """Check a per-claim amount against the positive, fixed-width rule."""
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise TypeError(f"Amount must be an integer, got {type(amount).__name__}")
    if amount <= 0:
        raise ZeroAmount(f"Per-claim amount must be positive, got {amount}")
    if amount > max_amount:
        raise AmountTooLarge(
            f"Per-claim amount {amount} exceeds maximum {max_amount}"
        )
    return amount


def validate_expiry(expiry: int, now: int) -> int:
    """Check that an expiry is strictly after now and fits the timestamp width."""
    if isinstance(expiry, bool) or not isinstance(expiry, int):
        raise TypeError(f"Expiry must be an integer, got {type(expiry).__name__}")
    if expiry <= now:
        raise ExpiryNotInFuture(f"Expiry {expiry} is not after current time {now}")
    if expiry > MAX_TIMESTAMP:
        raise TimestampTooLarge(f"Expiry {expiry} exceeds maximum timestamp {MAX_TIMESTAMP}")
    return expiry


class PhaseRegistry:
    """Ordered registry of phases plus the current-phase pointer.

    Usage:
        registry = PhaseRegistry()
        phase = registry.create_phase(root, 1_000_000, now + 3600, True, now=now)
        registry.update_phase(phase.index, per_claim_amount=2_000_000, now=now)
        registry.deactivate_phase(phase.index)
        status = registry.status(phase.index, now=now, paused=False)
    """

    def __init__(
        self,
        max_phases: int = MAX_PHASES,
        max_amount: int = MAX_AMOUNT,
    ) -> None:
        if max_phases <= 0:
            raise ValueError("max_phases must be positive")
        self._phases: list[Phase] = []
        self._current_phase_id = 0
        self._max_phases = max_phases
        self._max_amount = max_amount

    @property
    def current_phase_id(self) -> int:
        return self._current_phase_id

    @property
    def count(self) -> int:
        return len(self._phases)

    @property
    def max_phases(self) -> int:
        return self._max_phases

    def __iter__(self) -> Iterator[Phase]:
        return iter(self._phases)

    def in_range(self, index: int) -> bool:
        return (
            isinstance(index, int)
            and not isinstance(index, bool)
            and 0 <= index < len(self._phases)
        )

    def get(self, index: int) -> Phase:
        """Return the live phase record. Raises InvalidPhase if out of range."""
        if not self.in_range(index):
            raise InvalidPhase(f"Phase {index} does not exist ({self.count} phases)")
        return self._phases[index]

    def create_phase(
        self,
        commitment: HashLike,
        per_claim_amount: int,
        expiry: int,
        activate_now: bool,
        now: int,
    ) -> Phase:
        """Append a new phase.

        All inputs are validated before anything is written. If
        activate_now is set the current-phase pointer moves to it.
        """
        root = to_hash32(commitment)
        validate_amount(per_claim_amount, self._max_amount)
        validate_expiry(expiry, now)
        if len(self._phases) >= self._max_phases:
            raise RegistryFull(f"Registry holds the maximum of {self._max_phases} phases")

        phase = Phase(
            index=len(self._phases),
            commitment=root,
            per_claim_amount=per_claim_amount,
            expiry=expiry,
            active=bool(activate_now),
        )
        self._phases.append(phase)
        if phase.active:
            self._current_phase_id = phase.index
        logger.info(
            "phase %d created (amount=%d expiry=%d active=%s)",
            phase.index, per_claim_amount, expiry, phase.active,
        )
        return phase

    def update_phase(
        self,
        index: int,
        now: int,
        commitment: Optional[HashLike] = None,
        per_claim_amount: Optional[int] = None,
        expiry: Optional[int] = None,
    ) -> tuple[Phase, list[str]]:
        """Update selected fields of a phase in place.

        None means "leave unchanged" for each field. Every supplied field
        is re-validated with the creation rules, and all are validated
        before any is written.

        Returns:
            Tuple of (updated phase, names of fields that were supplied).
        """
        phase = self.get(index)
        root = to_hash32(commitment) if commitment is not None else None
        if per_claim_amount is not None:
            validate_amount(per_claim_amount, self._max_amount)
        if expiry is not None:
            validate_expiry(expiry, now)

        changed: list[str] = []
        if root is not None:
            phase.commitment = root
            changed.append("commitment")
        if per_claim_amount is not None:
            phase.per_claim_amount = per_claim_amount
            changed.append("per_claim_amount")
        if expiry is not None:
            phase.expiry = expiry
            changed.append("expiry")
        logger.info("phase %d updated (%s)", index, ", ".join(changed) or "no fields")
        return phase, changed

    def set_active_phase(self, index: int, now: int) -> Phase:
        """Activate a phase and make it current."""
        phase = self.get(index)
        if phase.is_expired(now):
            raise ClaimingEnded(f"Phase {index} expired at {phase.expiry}")
        phase.active = True
        self._current_phase_id = index
        logger.info("phase %d activated and made current", index)
        return phase

    def deactivate_phase(self, index: int) -> Phase:
        """Deactivate a phase. The current-phase pointer does not move."""
        phase = self.get(index)
        phase.active = False
        logger.info("phase %d deactivated", index)
        return phase

    def status(self, index: int, now: int, paused: bool) -> PhaseStatus:
        """Safe status query: out-of-range indexes report all-false/zero."""
        if not self.in_range(index):
            return INACTIVE_STATUS
        phase = self._phases[index]
        return PhaseStatus(
            is_active=phase.active and not phase.is_expired(now) and not paused,
            remaining_time=phase.remaining_time(now),
            per_claim_amount=phase.per_claim_amount,
        )

    # ------------------------------------------------------------------
    # Snapshot support
    # ------------------------------------------------------------------

    def to_list(self) -> list[dict]:
        return [p.to_dict() for p in self._phases]

    def load(self, phases: list[dict], current_phase_id: int) -> None:
        """Replace contents from a snapshot. Only valid on an empty registry."""
        if self._phases:
            raise RuntimeError("Registry already populated. Create a new registry.")
        loaded = [Phase.from_dict(d) for d in phases]
        for position, phase in enumerate(loaded):
            if phase.index != position:
                raise ValueError(
                    f"Snapshot phase at position {position} has index {phase.index}"
                )
        if len(loaded) > self._max_phases:
            raise ValueError(f"Snapshot holds {len(loaded)} phases, max {self._max_phases}")
        if loaded and not 0 <= current_phase_id < len(loaded):
            raise ValueError(f"Snapshot current phase {current_phase_id} out of range")
        self._phases = loaded
        self._current_phase_id = current_phase_id
