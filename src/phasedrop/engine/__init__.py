"""Distribution engine — phase registry, claim ledger, redemption."""

from phasedrop.engine.claim_ledger import ClaimLedger
from phasedrop.engine.invariants import check_invariants
from phasedrop.engine.phase_registry import PhaseRegistry
from phasedrop.engine.redemption import ClaimReceipt, RedemptionEngine

__all__ = [
    "ClaimLedger",
    "ClaimReceipt",
    "PhaseRegistry",
    "RedemptionEngine",
    "check_invariants",
]
