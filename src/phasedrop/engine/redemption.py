"""Redemption engine — turns a membership proof into exactly one payout.

Single claim checks, in order, each short-circuiting with its own error:
    InvalidPhase → PhaseNotActive → ClaimingEnded → InvalidAccount
    → ZeroAddress → AlreadyClaimed → InvalidProof → InsufficientBalance

Then, strictly in this order:
    1. mark the claim, bump redeemed_count / claimed_amount / totals
    2. checkpoint the committed state (if a checkpoint is configured)
    3. transfer the per-claim amount out of the distributor's holdings

State is committed and checkpointed before the transfer, so a transfer
hook that calls back into the distributor already sees the claim and a
crash after the transfer cannot lose it. If the transfer definitely did
not happen (the ledger returned False or raised before sending), the
effects of step 1 are undone, checkpointed again, and TransferFailed is
raised. If the ledger raises TransferPending the transfer may have
happened: the claim stays committed and the error propagates.

Batch redemption hoists the phase-level checks and the funding check to
the whole batch, then treats each (account, proof) entry on its own:
null or malformed identities, already-claimed accounts and failed proofs
are skipped and counted, never raised. An entry whose transfer fails is
undone and counted as skipped; an entry whose transfer is pending stays
committed and is reported in BatchOutcome.pending.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence

from phasedrop.assets.ledger import AssetLedger
from phasedrop.crypto.identity import is_null_account, parse_account
from phasedrop.crypto.merkle import verify_account
from phasedrop.engine.claim_ledger import ClaimLedger
from phasedrop.engine.phase_registry import PhaseRegistry
from phasedrop.errors import (
    AlreadyClaimed,
    ArrayLengthMismatch,
    ClaimingEnded,
    DistributorError,
    InsufficientBalance,
    InvalidAccount,
    InvalidProof,
    PhaseNotActive,
    TransferFailed,
    TransferPending,
    ZeroAddress,
)
from phasedrop.models.phase import BatchOutcome, Phase

logger = logging.getLogger(__name__)

Checkpoint = Callable[[], None]


@dataclass(frozen=True)
class ClaimReceipt:
    """A committed, paid redemption."""
    phase_index: int
    account: str
    amount: int


class RedemptionEngine:
    """Claim orchestration over the registry, ledger and asset.

    Usage:
        engine = RedemptionEngine(registry, ledger, token, holder=address)
        receipt = engine.claim(0, account, proof, now=now)
        outcome = engine.batch_claim(0, accounts, proofs, now=now)

    checkpoint, if given, is called after every claim commit and every
    rollback, before and after the transfer respectively. It is how a
    durable store learns about a claim before any funds move.
    """

    def __init__(
        self,
        registry: PhaseRegistry,
        ledger: ClaimLedger,
        asset: AssetLedger,
        holder: str,
        checkpoint: Optional[Checkpoint] = None,
    ) -> None:
        self._registry = registry
        self._ledger = ledger
        self._asset = asset
        self._holder = holder
        self._checkpoint = checkpoint
        self._total_claimed = 0
        self._total_recipients = 0

    @property
    def total_claimed(self) -> int:
        return self._total_claimed

    @property
    def total_recipients(self) -> int:
        return self._total_recipients

    def holdings(self) -> int:
        return self._asset.balance_of(self._holder)

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def claim(self, phase_index: int, account: Any, proof: Any, now: int) -> ClaimReceipt:
        """Redeem one account's entitlement in a phase."""
        phase = self._claimable_phase(phase_index, now)

        claimant = parse_account(account)
        if claimant is None:
            raise InvalidAccount(f"Not a 20-byte address: {account!r}")
        if is_null_account(claimant):
            raise ZeroAddress("The null address cannot claim")
        if self._ledger.has_claimed(phase.index, claimant):
            raise AlreadyClaimed(f"{claimant} already claimed in phase {phase.index}")
        if not verify_account(proof, phase.commitment, claimant):
            raise InvalidProof(f"Proof does not place {claimant} in phase {phase.index}")

        amount = phase.per_claim_amount
        available = self.holdings()
        if available < amount:
            raise InsufficientBalance(
                f"Distributor holds {available}, claim needs {amount}"
            )

        self._commit(phase, claimant, amount)
        try:
            failure = self._pay(phase, claimant, amount)
        except TransferPending as e:
            logger.warning(
                "phase %d: claim by %s kept, transfer pending (%s)",
                phase.index, claimant, e.tx_hash,
            )
            raise
        if isinstance(failure, DistributorError):
            raise failure
        if isinstance(failure, Exception):
            raise TransferFailed(f"Transfer of {amount} to {claimant} failed") from failure
        if failure is not None:
            raise TransferFailed(f"Transfer of {amount} to {claimant} was refused")

        logger.info("phase %d: %s claimed %d", phase.index, claimant, amount)
        return ClaimReceipt(phase_index=phase.index, account=claimant, amount=amount)

    def batch_claim(
        self,
        phase_index: int,
        accounts: Sequence[Any],
        proofs: Sequence[Any],
        now: int,
    ) -> BatchOutcome:
        """Redeem for many accounts, skipping entries that cannot succeed.

        Fails as a whole only on phase-level problems, a length mismatch,
        holdings below per_claim_amount × len(accounts), or a failing
        checkpoint.
        """
        phase = self._claimable_phase(phase_index, now)
        if len(accounts) != len(proofs):
            raise ArrayLengthMismatch(
                f"{len(accounts)} accounts but {len(proofs)} proofs"
            )

        amount = phase.per_claim_amount
        required = amount * len(accounts)
        available = self.holdings()
        if available < required:
            raise InsufficientBalance(
                f"Distributor holds {available}, batch needs up to {required}"
            )

        claimed: list[str] = []
        pending: list[str] = []
        skipped = 0
        for position, (raw_account, proof) in enumerate(zip(accounts, proofs)):
            account = parse_account(raw_account)
            if is_null_account(account):
                logger.debug("batch entry %d skipped: null or malformed identity", position)
                skipped += 1
                continue
            if self._ledger.has_claimed(phase.index, account):
                logger.debug("batch entry %d skipped: %s already claimed", position, account)
                skipped += 1
                continue
            if not verify_account(proof, phase.commitment, account):
                logger.debug("batch entry %d skipped: invalid proof for %s", position, account)
                skipped += 1
                continue

            self._commit(phase, account, amount)
            try:
                failure = self._pay(phase, account, amount)
            except TransferPending as e:
                logger.warning(
                    "batch entry %d kept: transfer to %s pending (%s)",
                    position, account, e.tx_hash,
                )
                pending.append(account)
                continue
            if failure is not None:
                logger.warning(
                    "batch entry %d skipped: transfer to %s failed (%s)",
                    position, account, failure,
                )
                skipped += 1
                continue
            claimed.append(account)

        logger.info(
            "phase %d batch: %d claimed, %d pending, %d skipped",
            phase.index, len(claimed), len(pending), skipped,
        )
        return BatchOutcome(
            phase_index=phase.index,
            success_count=len(claimed) + len(pending),
            skip_count=skipped,
            claimed=tuple(claimed),
            pending=tuple(pending),
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _claimable_phase(self, phase_index: int, now: int) -> Phase:
        phase = self._registry.get(phase_index)
        if not phase.active:
            raise PhaseNotActive(f"Phase {phase_index} is not active")
        if phase.is_expired(now):
            raise ClaimingEnded(f"Phase {phase_index} ended at {phase.expiry}")
        return phase

    def _commit(self, phase: Phase, account: str, amount: int) -> None:
        """Record the claim and checkpoint it. Nothing is kept if the checkpoint fails."""
        self._apply(phase, account, amount)
        try:
            self._save_checkpoint()
        except Exception:
            self._revert(phase, account, amount)
            raise

    def _undo(self, phase: Phase, account: str, amount: int) -> None:
        """Roll back a commit whose transfer definitely did not happen."""
        self._revert(phase, account, amount)
        self._save_checkpoint()

    def _apply(self, phase: Phase, account: str, amount: int) -> None:
        self._ledger.mark_claimed(phase.index, account)
        phase.redeemed_count += 1
        phase.claimed_amount += amount
        self._total_claimed += amount
        self._total_recipients += 1

    def _revert(self, phase: Phase, account: str, amount: int) -> None:
        self._ledger._unmark(phase.index, account)
        phase.redeemed_count -= 1
        phase.claimed_amount -= amount
        self._total_claimed -= amount
        self._total_recipients -= 1

    def _save_checkpoint(self) -> None:
        if self._checkpoint is not None:
            self._checkpoint()

    def _pay(self, phase: Phase, account: str, amount: int) -> Optional[object]:
        """Transfer after commit. Undo the commit and return the failure, if any.

        Returns None on success, the raised exception if the ledger raised,
        or False if it reported failure. TransferPending propagates with
        the commit left in place.
        """
        try:
            ok = self._asset.transfer(self._holder, account, amount)
        except TransferPending:
            raise
        except Exception as e:
            self._undo(phase, account, amount)
            return e
        if not ok:
            self._undo(phase, account, amount)
            return False
        return None

    # ------------------------------------------------------------------
    # Snapshot support
    # ------------------------------------------------------------------

    def counters(self) -> dict[str, int]:
        return {
            "total_claimed": self._total_claimed,
            "total_recipients": self._total_recipients,
        }

    def load_counters(self, data: dict[str, int]) -> None:
        self._total_claimed = int(data.get("total_claimed", 0))
        self._total_recipients = int(data.get("total_recipients", 0))
