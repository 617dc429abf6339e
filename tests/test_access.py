"""Tests for capability checks — proves owner, pause and re-entry refusal behave."""

import threading

import pytest

from phasedrop.access import NonReentrant, Ownable, Pausable
from phasedrop.assets.ledger import InMemoryAssetLedger
from phasedrop.distributor import MerkleDistributor
from phasedrop.errors import (
    EnforcedPause,
    ExpectedPause,
    NotOwner,
    ReentrantCall,
    ZeroAddress,
)

from conftest import ADMIN, ALICE, BOB, DROP_AMOUNT, FUNDING, ZERO, EligibilityTree


class TestOwnable:
    def test_owner_accepted(self) -> None:
        Ownable(ADMIN).require_owner(ADMIN)

    def test_owner_case_insensitive(self) -> None:
        Ownable(ADMIN).require_owner(ADMIN.lower())

    def test_other_caller_rejected(self) -> None:
        with pytest.raises(NotOwner):
            Ownable(ADMIN).require_owner(ALICE)

    def test_malformed_caller_rejected(self) -> None:
        with pytest.raises(NotOwner):
            Ownable(ADMIN).require_owner("garbage")

    def test_null_owner_rejected(self) -> None:
        with pytest.raises(ZeroAddress):
            Ownable(ZERO)

    def test_transfer(self) -> None:
        access = Ownable(ADMIN)
        assert access.transfer_ownership(ADMIN, BOB) == (ADMIN, BOB)
        assert access.owner == BOB


class TestPausable:
    def test_starts_unpaused(self) -> None:
        p = Pausable()
        assert not p.paused
        p.require_not_paused()

    def test_pause_cycle(self) -> None:
        p = Pausable()
        p.pause()
        with pytest.raises(EnforcedPause):
            p.require_not_paused()
        p.unpause()
        assert not p.paused

    def test_unpause_when_running(self) -> None:
        with pytest.raises(ExpectedPause):
            Pausable().unpause()


class TestNonReentrant:
    def test_nested_entry_refused(self) -> None:
        guard = NonReentrant()
        with guard.guard("outer"):
            assert guard.entered
            with pytest.raises(ReentrantCall):
                with guard.guard("inner"):
                    pass
        assert not guard.entered

    def test_released_after_exception(self) -> None:
        guard = NonReentrant()
        with pytest.raises(RuntimeError):
            with guard.guard("boom"):
                raise RuntimeError("boom")
        with guard.guard("again"):
            pass

    def test_other_thread_waits(self) -> None:
        guard = NonReentrant()
        order = []
        started = threading.Event()

        def other() -> None:
            started.set()
            with guard.guard("other"):
                order.append("other")

        with guard.guard("main"):
            t = threading.Thread(target=other)
            t.start()
            started.wait(timeout=5)
            order.append("main")
        t.join(timeout=5)
        assert order == ["main", "other"]


class TestReentrantTransferHook:
    def test_hook_cannot_claim_again(self, tree: EligibilityTree) -> None:
        """A recipient hook that re-enters claim is refused and nothing is paid."""
        token = InMemoryAssetLedger(owner=ADMIN)
        dist = MerkleDistributor(token, tree.root, DROP_AMOUNT, 2**40, owner=ADMIN)
        token.mint(ADMIN, dist.address, FUNDING)

        def reenter(sender: str, recipient: str, amount: int) -> None:
            dist.claim(recipient, tree.proof(recipient))

        token.on_transfer = reenter
        with pytest.raises(ReentrantCall):
            dist.claim(ALICE, tree.proof(ALICE))

        assert token.balance_of(ALICE) == 0
        assert token.balance_of(dist.address) == FUNDING
        assert not dist.is_claimed_for_phase(0, ALICE)
        assert dist.total_recipients == 0
        assert dist.check_invariants() == []

    def test_hook_cannot_withdraw(self, tree: EligibilityTree) -> None:
        token = InMemoryAssetLedger(owner=ADMIN)
        dist = MerkleDistributor(token, tree.root, DROP_AMOUNT, 2**40, owner=ADMIN)
        token.mint(ADMIN, dist.address, FUNDING)

        def reenter(sender: str, recipient: str, amount: int) -> None:
            dist.emergency_withdraw(ADMIN, token, recipient, FUNDING - amount)

        token.on_transfer = reenter
        with pytest.raises(ReentrantCall):
            dist.claim(BOB, tree.proof(BOB))
        assert token.balance_of(BOB) == 0

    def test_distributor_usable_after_refused_reentry(self, tree: EligibilityTree) -> None:
        token = InMemoryAssetLedger(owner=ADMIN)
        dist = MerkleDistributor(token, tree.root, DROP_AMOUNT, 2**40, owner=ADMIN)
        token.mint(ADMIN, dist.address, FUNDING)
        token.on_transfer = lambda s, r, a: dist.pause(ADMIN)
        with pytest.raises(ReentrantCall):
            dist.claim(ALICE, tree.proof(ALICE))
        token.on_transfer = None
        dist.claim(ALICE, tree.proof(ALICE))
        assert not dist.paused
        assert token.balance_of(ALICE) == DROP_AMOUNT
