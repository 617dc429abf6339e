"""Merkle distributor — unified facade over the distribution engine.

This is the primary interface for programmatic access. It owns one
instance of every component and wires them together:
- Phase registry (create, update, activate, deactivate, status)
- Claim ledger (exactly-once redemption per phase and account)
- Redemption engine (single and batch claims, payout)
- Capability checks (owner, pause switch, non-reentrant guard)
- Persistence (event log, state snapshots)

Every mutating entry point takes the calling identity first and runs
inside the non-reentrant guard, so no two operations interleave and a
transfer hook cannot re-enter. Capability checks run before any phase
or claim rule. Events raised during an operation are buffered and only
appended to the event log once the operation has committed; a failed
operation leaves no audit record because it left no state change.
The exception is TransferPending: the claim it was raised for stays
recorded, so its events are published with a "pending" flag.

An optional checkpoint callable receives a snapshot() each time a claim
is committed ahead of its transfer, and again if that claim is undone.
A durable store hooked in here always holds the claim before any funds
move.
"""

from __future__ import annotations

import dataclasses
import logging
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Iterator, Optional, Sequence

from eth_utils import keccak, to_checksum_address

from phasedrop.access import NonReentrant, Ownable, Pausable
from phasedrop.assets.ledger import AssetLedger
from phasedrop.crypto.identity import (
    HashLike,
    hash_hex,
    is_null_account,
    normalize_account,
    parse_account,
)
from phasedrop.engine.claim_ledger import ClaimLedger
from phasedrop.engine.invariants import check_invariants
from phasedrop.engine.phase_registry import PhaseRegistry
from phasedrop.engine.redemption import ClaimReceipt, RedemptionEngine
from phasedrop.errors import TransferFailed, TransferPending, ZeroAddress, ZeroRecipient
from phasedrop.models.phase import MAX_PHASES, BatchOutcome, Phase, PhaseStatus
from phasedrop.persistence.event_log import EventKind, EventLog, EventRecord

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1

Clock = Callable[[], int]
Checkpoint = Callable[[dict[str, Any]], None]


def system_clock() -> int:
    """Current network time in whole seconds."""
    return int(time.time())


class MerkleDistributor:
    """Phased, proof-gated distributor of a fungible asset.

    Usage:
        token = InMemoryAssetLedger(owner=admin)
        dist = MerkleDistributor(token, root, 1_000_000, now + 7 * 86400, owner=admin)
        token.mint(admin, dist.address, 10**12)

        dist.claim(account, proof)
        dist.create_phase(admin, root2, 2_000_000, now + 86400, activate_now=True)
        outcome = dist.batch_distribute(admin, 1, [a, b], [proof_a, proof_b])

    Persistence (optional):
        dist = MerkleDistributor(..., event_log=EventLog(path))
        store.save(dist.snapshot())
        dist = MerkleDistributor.restore(
            store.load(), token, event_log=log, checkpoint=store.save,
        )
    """

    def __init__(
        self,
        asset: AssetLedger,
        commitment: HashLike,
        per_claim_amount: int,
        expiry: int,
        owner: str,
        address: Optional[str] = None,
        clock: Clock = system_clock,
        event_log: Optional[EventLog] = None,
        max_phases: int = MAX_PHASES,
        checkpoint: Optional[Checkpoint] = None,
    ) -> None:
        self._setup(asset, owner, address, clock, event_log, max_phases, checkpoint)

        with self._operation("initialize"):
            now = self._clock()
            phase = self._registry.create_phase(
                commitment, per_claim_amount, expiry, True, now=now,
            )
            self._emit_phase_created(self._access.owner, phase, now)
            self._emit(EventKind.PHASE_ACTIVATED, self._access.owner, {"phase": phase.index}, now)
        logger.info("distributor %s initialised for asset %s", self._address, asset.asset_id)

    def _setup(
        self,
        asset: AssetLedger,
        owner: str,
        address: Optional[str],
        clock: Clock,
        event_log: Optional[EventLog],
        max_phases: int,
        checkpoint: Optional[Checkpoint] = None,
    ) -> None:
        if asset is None or is_null_account(parse_account(asset.asset_id)):
            raise ZeroAddress("Asset ledger must have a non-null asset id")
        self._access = Ownable(owner)
        if address is None:
            address = to_checksum_address(
                keccak(text=f"phasedrop:{asset.asset_id}:{self._access.owner}")[-20:]
            )
        self._address = normalize_account(address)
        if is_null_account(self._address):
            raise ZeroAddress("Distributor address cannot be the null address")

        self._asset = asset
        self._clock = clock
        self._pause = Pausable()
        self._guard = NonReentrant()
        self._registry = PhaseRegistry(max_phases=max_phases)
        self._ledger = ClaimLedger()
        self._checkpoint_hook = checkpoint
        self._engine = RedemptionEngine(
            self._registry, self._ledger, asset, self._address, checkpoint=self._checkpoint,
        )

        self._event_log = event_log if event_log is not None else EventLog()
        # Continue numbering from a persisted log to avoid ID collision on restart
        self._event_counter = self._event_log.count
        self._pending: list[tuple[EventKind, str, dict[str, Any], int]] = []

    # ------------------------------------------------------------------
    # Read accessors
    # ------------------------------------------------------------------

    @property
    def address(self) -> str:
        """Identity under which the distributor holds its funds."""
        return self._address

    @property
    def asset(self) -> AssetLedger:
        return self._asset

    @property
    def owner(self) -> str:
        return self._access.owner

    @property
    def paused(self) -> bool:
        return self._pause.paused

    @property
    def phase_count(self) -> int:
        return self._registry.count

    @property
    def current_phase_id(self) -> int:
        return self._registry.current_phase_id

    @property
    def total_claimed(self) -> int:
        return self._engine.total_claimed

    @property
    def total_recipients(self) -> int:
        return self._engine.total_recipients

    @property
    def event_log(self) -> EventLog:
        return self._event_log

    def get_phase(self, phase_index: int) -> Phase:
        """Return a copy of a phase. Raises InvalidPhase if out of range."""
        return dataclasses.replace(self._registry.get(phase_index))

    def phases(self) -> list[Phase]:
        return [dataclasses.replace(p) for p in self._registry]

    def is_claimed_for_phase(self, phase_index: int, account: Any) -> bool:
        claimant = parse_account(account)
        if claimant is None:
            return False
        return self._ledger.has_claimed(phase_index, claimant)

    def phase_status(self, phase_index: int) -> PhaseStatus:
        return self._registry.status(phase_index, now=self._clock(), paused=self._pause.paused)

    def holdings(self) -> int:
        return self._engine.holdings()

    def check_invariants(self) -> list[str]:
        return check_invariants(self._registry, self._ledger, self._engine)

    def summary(self) -> dict[str, Any]:
        """Return a distributor-wide status summary."""
        now = self._clock()
        return {
            "address": self._address,
            "asset_id": self._asset.asset_id,
            "owner": self._access.owner,
            "paused": self._pause.paused,
            "holdings": self.holdings(),
            "current_phase_id": self._registry.current_phase_id,
            "phase_count": self._registry.count,
            "total_claimed": self._engine.total_claimed,
            "total_recipients": self._engine.total_recipients,
            "phases": [
                {
                    **p.to_dict(),
                    "remaining_time": p.remaining_time(now),
                }
                for p in self._registry
            ],
            "events": self._event_log.count,
        }

    # ------------------------------------------------------------------
    # Redemption
    # ------------------------------------------------------------------

    def claim(self, caller: str, proof: Sequence[HashLike]) -> ClaimReceipt:
        """Claim from the current phase."""
        with self._operation("claim"):
            self._pause.require_not_paused()
            return self._claim(caller, self._registry.current_phase_id, proof)

    def claim_for_phase(
        self, caller: str, phase_index: int, proof: Sequence[HashLike],
    ) -> ClaimReceipt:
        """Claim from an explicitly named phase."""
        with self._operation("claim_for_phase"):
            self._pause.require_not_paused()
            return self._claim(caller, phase_index, proof)

    def batch_distribute(
        self,
        caller: str,
        phase_index: int,
        accounts: Sequence[Any],
        proofs: Sequence[Sequence[HashLike]],
    ) -> BatchOutcome:
        """Redeem on behalf of many accounts (owner only)."""
        with self._operation("batch_distribute"):
            self._access.require_owner(caller)
            self._pause.require_not_paused()
            now = self._clock()
            outcome = self._engine.batch_claim(phase_index, accounts, proofs, now=now)
            self._emit(
                EventKind.BATCH_PROCESSED,
                self._access.owner,
                {
                    "phase": outcome.phase_index,
                    "success_count": outcome.success_count,
                    "skip_count": outcome.skip_count,
                    "claimed": list(outcome.claimed),
                    "pending": list(outcome.pending),
                    "amount": self._registry.get(phase_index).per_claim_amount,
                },
                now,
            )
            return outcome

    def _claim(self, caller: str, phase_index: int, proof: Sequence[HashLike]) -> ClaimReceipt:
        now = self._clock()
        try:
            receipt = self._engine.claim(phase_index, caller, proof, now=now)
        except TransferPending as e:
            account = parse_account(caller)
            self._emit(
                EventKind.CLAIMED,
                account,
                {
                    "phase": phase_index,
                    "account": account,
                    "amount": self._registry.get(phase_index).per_claim_amount,
                    "pending": True,
                    "tx_hash": e.tx_hash,
                },
                now,
            )
            raise
        self._emit(
            EventKind.CLAIMED,
            receipt.account,
            {"phase": receipt.phase_index, "account": receipt.account, "amount": receipt.amount},
            now,
        )
        return receipt

    # ------------------------------------------------------------------
    # Phase administration
    # ------------------------------------------------------------------

    def create_phase(
        self,
        caller: str,
        commitment: HashLike,
        per_claim_amount: int,
        expiry: int,
        activate_now: bool = False,
    ) -> int:
        """Append a phase and return its index."""
        with self._operation("create_phase"):
            self._access.require_owner(caller)
            now = self._clock()
            phase = self._registry.create_phase(
                commitment, per_claim_amount, expiry, activate_now, now=now,
            )
            self._emit_phase_created(self._access.owner, phase, now)
            if phase.active:
                self._emit(EventKind.PHASE_ACTIVATED, self._access.owner, {"phase": phase.index}, now)
            return phase.index

    def update_phase(
        self,
        caller: str,
        phase_index: int,
        commitment: Optional[HashLike] = None,
        per_claim_amount: Optional[int] = None,
        expiry: Optional[int] = None,
    ) -> Phase:
        """Update selected phase fields. None leaves a field unchanged."""
        with self._operation("update_phase"):
            self._access.require_owner(caller)
            now = self._clock()
            phase, changed = self._registry.update_phase(
                phase_index,
                now=now,
                commitment=commitment,
                per_claim_amount=per_claim_amount,
                expiry=expiry,
            )
            self._emit(
                EventKind.PHASE_UPDATED,
                self._access.owner,
                {
                    "phase": phase.index,
                    "changed": changed,
                    "commitment": hash_hex(phase.commitment),
                    "per_claim_amount": phase.per_claim_amount,
                    "expiry": phase.expiry,
                },
                now,
            )
            return dataclasses.replace(phase)

    def set_active_phase(self, caller: str, phase_index: int) -> None:
        """Activate a phase and make it the current phase."""
        with self._operation("set_active_phase"):
            self._access.require_owner(caller)
            now = self._clock()
            phase = self._registry.set_active_phase(phase_index, now=now)
            self._emit(EventKind.PHASE_ACTIVATED, self._access.owner, {"phase": phase.index}, now)

    def deactivate_phase(self, caller: str, phase_index: int) -> None:
        """Deactivate a phase. It may remain the current phase."""
        with self._operation("deactivate_phase"):
            self._access.require_owner(caller)
            now = self._clock()
            phase = self._registry.deactivate_phase(phase_index)
            self._emit(EventKind.PHASE_DEACTIVATED, self._access.owner, {"phase": phase.index}, now)

    # ------------------------------------------------------------------
    # Emergency controls
    # ------------------------------------------------------------------

    def pause(self, caller: str) -> None:
        with self._operation("pause"):
            self._access.require_owner(caller)
            self._pause.pause()
            self._emit(EventKind.PAUSED, self._access.owner, {}, self._clock())

    def unpause(self, caller: str) -> None:
        with self._operation("unpause"):
            self._access.require_owner(caller)
            self._pause.unpause()
            self._emit(EventKind.UNPAUSED, self._access.owner, {}, self._clock())

    def emergency_withdraw(
        self,
        caller: str,
        asset: AssetLedger,
        recipient: str,
        amount: int,
    ) -> None:
        """Move any amount of any held asset out. No ceiling applies."""
        with self._operation("emergency_withdraw"):
            self._access.require_owner(caller)
            target = parse_account(recipient)
            if is_null_account(target):
                raise ZeroRecipient(f"Withdrawal recipient must be non-null, got {recipient!r}")
            try:
                ok = asset.transfer(self._address, target, amount)
            except TransferPending as e:
                self._emit(
                    EventKind.EMERGENCY_WITHDRAWAL,
                    self._access.owner,
                    {
                        "asset_id": asset.asset_id,
                        "recipient": target,
                        "amount": amount,
                        "pending": True,
                        "tx_hash": e.tx_hash,
                    },
                    self._clock(),
                )
                raise
            except (ValueError, OSError) as e:
                raise TransferFailed(f"Emergency withdrawal of {amount} failed: {e}") from e
            if not ok:
                raise TransferFailed(
                    f"Emergency withdrawal of {amount} {asset.asset_id} to {target} refused"
                )
            self._emit(
                EventKind.EMERGENCY_WITHDRAWAL,
                self._access.owner,
                {"asset_id": asset.asset_id, "recipient": target, "amount": amount},
                self._clock(),
            )
            logger.warning("emergency withdrawal of %d %s to %s", amount, asset.asset_id, target)

    def transfer_ownership(self, caller: str, new_owner: str) -> None:
        with self._operation("transfer_ownership"):
            previous, current = self._access.transfer_ownership(caller, new_owner)
            self._emit(
                EventKind.OWNERSHIP_TRANSFERRED,
                previous,
                {"previous": previous, "new": current},
                self._clock(),
            )

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def snapshot(self) -> dict[str, Any]:
        """Serialisable copy of all distributor state."""
        return {
            "version": SNAPSHOT_VERSION,
            "address": self._address,
            "asset_id": self._asset.asset_id,
            "owner": self._access.owner,
            "paused": self._pause.paused,
            "max_phases": self._registry.max_phases,
            "current_phase_id": self._registry.current_phase_id,
            "phases": self._registry.to_list(),
            "claims": self._ledger.to_dict(),
            "counters": self._engine.counters(),
        }

    @classmethod
    def restore(
        cls,
        snapshot: dict[str, Any],
        asset: AssetLedger,
        clock: Clock = system_clock,
        event_log: Optional[EventLog] = None,
        checkpoint: Optional[Checkpoint] = None,
    ) -> MerkleDistributor:
        """Rebuild a distributor from snapshot(). Emits no events."""
        if snapshot.get("version") != SNAPSHOT_VERSION:
            raise ValueError(f"Unsupported snapshot version: {snapshot.get('version')}")
        if normalize_account(snapshot["asset_id"]) != normalize_account(asset.asset_id):
            raise ValueError(
                f"Snapshot is for asset {snapshot['asset_id']}, not {asset.asset_id}"
            )
        dist = cls.__new__(cls)
        dist._setup(
            asset,
            snapshot["owner"],
            snapshot["address"],
            clock,
            event_log,
            int(snapshot.get("max_phases", MAX_PHASES)),
            checkpoint,
        )
        dist._registry.load(snapshot["phases"], int(snapshot["current_phase_id"]))
        dist._ledger.load(snapshot.get("claims", {}))
        dist._engine.load_counters(snapshot.get("counters", {}))
        if snapshot.get("paused"):
            dist._pause.pause()
        violations = dist.check_invariants()
        if violations:
            raise ValueError(f"Snapshot violates invariants: {'; '.join(violations)}")
        return dist

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _operation(self, name: str) -> Iterator[None]:
        """Serialise, refuse re-entry, and publish events only on commit or a pending transfer."""
        with self._guard.guard(name):
            self._pending = []
            try:
                yield
            except TransferPending:
                self._publish()
                raise
            except BaseException:
                self._pending = []
                raise
            self._publish()

    def _publish(self) -> None:
        pending, self._pending = self._pending, []
        for kind, actor, payload, now in pending:
            self._event_log.append(EventRecord.create(
                event_id=self._next_event_id(),
                event_kind=kind,
                actor_id=actor,
                payload={**payload, "network_time": now},
                timestamp_utc=datetime.fromtimestamp(now, timezone.utc),
            ))

    def _checkpoint(self) -> None:
        if self._checkpoint_hook is not None:
            self._checkpoint_hook(self.snapshot())

    def _emit(self, kind: EventKind, actor: str, payload: dict[str, Any], now: int) -> None:
        self._pending.append((kind, actor, payload, now))

    def _emit_phase_created(self, actor: str, phase: Phase, now: int) -> None:
        self._emit(
            EventKind.PHASE_CREATED,
            actor,
            {
                "phase": phase.index,
                "commitment": hash_hex(phase.commitment),
                "per_claim_amount": phase.per_claim_amount,
                "expiry": phase.expiry,
                "active": phase.active,
            },
            now,
        )

    def _next_event_id(self) -> str:
        """Generate a monotonically increasing unique event ID."""
        self._event_counter += 1
        return f"EVT-{self._event_counter:08d}"
