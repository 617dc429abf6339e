"""Core data models for phasedrop."""

from phasedrop.models.phase import (
    AMOUNT_BITS,
    MAX_AMOUNT,
    MAX_PHASES,
    MAX_TIMESTAMP,
    BatchOutcome,
    Phase,
    PhaseStatus,
)

__all__ = [
    "AMOUNT_BITS",
    "MAX_AMOUNT",
    "MAX_PHASES",
    "MAX_TIMESTAMP",
    "BatchOutcome",
    "Phase",
    "PhaseStatus",
]
