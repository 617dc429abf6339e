"""Accounting invariants over registry, ledger and counters.

Returns a list of violations. Empty = consistent.
"""

from __future__ import annotations

from phasedrop.engine.claim_ledger import ClaimLedger
from phasedrop.engine.phase_registry import PhaseRegistry
from phasedrop.engine.redemption import RedemptionEngine


def check_invariants(
    registry: PhaseRegistry,
    ledger: ClaimLedger,
    engine: RedemptionEngine,
) -> list[str]:
    errors: list[str] = []
    recipients = 0
    paid = 0
    for phase in registry:
        records = ledger.claim_count(phase.index)
        if phase.redeemed_count != records:
            errors.append(
                f"phase {phase.index}: redeemed_count {phase.redeemed_count} "
                f"!= {records} claim records"
            )
        if phase.per_claim_amount <= 0:
            errors.append(f"phase {phase.index}: per_claim_amount must be positive")
        if phase.claimed_amount < 0 or phase.redeemed_count < 0:
            errors.append(f"phase {phase.index}: negative counter")
        recipients += phase.redeemed_count
        paid += phase.claimed_amount

    if engine.total_recipients != recipients:
        errors.append(
            f"total_recipients {engine.total_recipients} != sum of redeemed_count {recipients}"
        )
    if engine.total_claimed != paid:
        errors.append(f"total_claimed {engine.total_claimed} != sum of claimed_amount {paid}")
    if registry.count and not registry.in_range(registry.current_phase_id):
        errors.append(f"current phase {registry.current_phase_id} out of range")
    return errors
