"""Shared fixtures: accounts, a controllable clock, eligibility trees, a funded distributor."""

from __future__ import annotations

from typing import Sequence

import pytest
from eth_utils import keccak, to_checksum_address

from phasedrop.assets.ledger import InMemoryAssetLedger
from phasedrop.crypto.merkle import hash_pair, leaf_for_account
from phasedrop.distributor import MerkleDistributor

ADMIN = to_checksum_address("0x" + "a0" * 20)
ALICE = to_checksum_address("0x" + "a1" * 20)
BOB = to_checksum_address("0x" + "b2" * 20)
CAROL = to_checksum_address("0x" + "c3" * 20)
DAVE = to_checksum_address("0x" + "d4" * 20)
ERIN = to_checksum_address("0x" + "e5" * 20)
ZERO = "0x" + "00" * 20

START = 1_771_243_200  # 2026-02-16T12:00:00Z
ONE_WEEK = 7 * 24 * 60 * 60
DROP_AMOUNT = 1_000_000
FUNDING = 1_000_000_000


class FakeClock:
    """Network time that only moves when a test says so."""

    def __init__(self, now: int = START) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


class EligibilityTree:
    """Sorted-pair keccak tree over account leaves.

    Leaves keep insertion order; an unpaired node at the end of a level
    is carried up unchanged, the way common tree tools build it.
    """

    def __init__(self, accounts: Sequence[str]) -> None:
        self.accounts = list(accounts)
        self._levels: list[list[bytes]] = [[leaf_for_account(a) for a in accounts]]
        level = self._levels[0]
        while len(level) > 1:
            nxt = []
            for i in range(0, len(level), 2):
                if i + 1 < len(level):
                    nxt.append(hash_pair(level[i], level[i + 1]))
                else:
                    nxt.append(level[i])
            self._levels.append(nxt)
            level = nxt

    @property
    def root(self) -> str:
        return "0x" + self._levels[-1][0].hex()

    def proof(self, account: str) -> list[str]:
        idx = self._levels[0].index(leaf_for_account(account))
        path: list[str] = []
        for level in self._levels[:-1]:
            sibling = idx ^ 1
            if sibling < len(level):
                path.append("0x" + level[sibling].hex())
            idx //= 2
        return path


def unrelated_root() -> str:
    return "0x" + keccak(text="not an eligibility set").hex()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def tree() -> EligibilityTree:
    return EligibilityTree([ALICE, BOB, CAROL])


@pytest.fixture
def token() -> InMemoryAssetLedger:
    return InMemoryAssetLedger(owner=ADMIN)


@pytest.fixture
def dist(
    token: InMemoryAssetLedger, tree: EligibilityTree, clock: FakeClock,
) -> MerkleDistributor:
    distributor = MerkleDistributor(
        token,
        tree.root,
        DROP_AMOUNT,
        clock.now + ONE_WEEK,
        owner=ADMIN,
        clock=clock,
    )
    token.mint(ADMIN, distributor.address, FUNDING)
    return distributor
