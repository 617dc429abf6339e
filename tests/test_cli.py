"""Tests for phasedrop CLI — proves CLI dispatches correctly and state survives between runs."""

import json
import logging

import pytest

from phasedrop.cli import build_parser, main
from phasedrop.persistence.state_store import StateStore

from conftest import ADMIN, ALICE, BOB, DAVE, EligibilityTree


@pytest.fixture(autouse=True)
def _no_chain(monkeypatch: pytest.MonkeyPatch, tmp_path):
    for name in (
        "PHASEDROP_RPC_URL",
        "PHASEDROP_PRIVATE_KEY",
        "PHASEDROP_TOKEN_ADDRESS",
        "PHASEDROP_LOG_FILE",
        "PHASEDROP_DATA_DIR",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    # main() reconfigures the root logger; put it back afterwards
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers = handlers
    root.setLevel(level)


@pytest.fixture
def data_dir(tmp_path):
    return tmp_path / "data"


@pytest.fixture
def cli_tree() -> EligibilityTree:
    return EligibilityTree([ALICE, BOB])


def run(data_dir, *args: str) -> int:
    return main(["--data-dir", str(data_dir), *args])


@pytest.fixture
def initialised(data_dir, cli_tree: EligibilityTree):
    assert run(
        data_dir, "init", "--owner", ADMIN, "--root", cli_tree.root,
        "--amount", "1000", "--duration", "3600",
    ) == 0
    assert run(
        data_dir, "mint", "--caller", ADMIN, "--to", "distributor", "--amount", "10000",
    ) == 0
    return data_dir


class TestCLIParsing:
    def test_status_command(self) -> None:
        args = build_parser().parse_args(["status"])
        assert args.command == "status"

    def test_claim_command(self) -> None:
        args = build_parser().parse_args([
            "claim", "--caller", ALICE, "--proof", "0x01", "0x02",
        ])
        assert args.command == "claim"
        assert args.phase is None
        assert args.proof == ["0x01", "0x02"]

    def test_create_phase_command(self) -> None:
        args = build_parser().parse_args([
            "create-phase", "--caller", ADMIN, "--root", "0xab",
            "--amount", "5", "--duration", "60", "--activate",
        ])
        assert args.amount == 5
        assert args.duration == 60
        assert args.activate

    def test_expiry_and_duration_exclusive(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args([
                "create-phase", "--caller", ADMIN, "--root", "0xab",
                "--amount", "5", "--duration", "60", "--expiry", "100",
            ])


class TestCLIExecution:
    def test_no_command_shows_help(self) -> None:
        assert main([]) == 0

    def test_status_without_init_fails(self, data_dir) -> None:
        assert run(data_dir, "status") == 1

    def test_init_writes_state(self, initialised) -> None:
        state = StateStore(initialised / "state.json").load()
        assert state["distributor"]["phases"][0]["per_claim_amount"] == 1000
        assert state["token"]["balances"][state["distributor"]["address"]] == 10000
        assert (initialised / "events.jsonl").exists()

    def test_init_twice_refused(self, initialised, cli_tree: EligibilityTree) -> None:
        assert run(
            initialised, "init", "--owner", ADMIN, "--root", cli_tree.root,
            "--amount", "1", "--duration", "60",
        ) == 1

    def test_claim_e2e(self, initialised, cli_tree: EligibilityTree) -> None:
        assert run(initialised, "claim", "--caller", ALICE, "--proof", *cli_tree.proof(ALICE)) == 0
        state = StateStore(initialised / "state.json").load()
        assert state["token"]["balances"][ALICE] == 1000
        assert state["distributor"]["counters"]["total_recipients"] == 1

    def test_double_claim_fails(self, initialised, cli_tree: EligibilityTree, capsys) -> None:
        proof = cli_tree.proof(ALICE)
        assert run(initialised, "claim", "--caller", ALICE, "--proof", *proof) == 0
        assert run(initialised, "claim", "--caller", ALICE, "--proof", *proof) == 1
        assert "AlreadyClaimed" in capsys.readouterr().err

    def test_claim_on_disk_before_transfer(
        self, initialised, cli_tree: EligibilityTree, monkeypatch: pytest.MonkeyPatch, capsys,
    ) -> None:
        """A run that dies after paying out cannot be claimed again."""
        def crash(*args) -> None:
            raise OSError("killed before final save")

        proof = cli_tree.proof(ALICE)
        with monkeypatch.context() as m:
            m.setattr("phasedrop.cli._save", crash)
            with pytest.raises(OSError):
                run(initialised, "claim", "--caller", ALICE, "--proof", *proof)
        state = StateStore(initialised / "state.json").load()
        assert state["distributor"]["claims"] == {"0": [ALICE]}
        assert run(initialised, "claim", "--caller", ALICE, "--proof", *proof) == 1
        assert "AlreadyClaimed" in capsys.readouterr().err

    def test_batch_entries_on_disk_before_transfer(
        self, initialised, cli_tree: EligibilityTree, tmp_path, monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        def crash(*args) -> None:
            raise OSError("killed before final save")

        batch = tmp_path / "batch.json"
        batch.write_text(json.dumps([
            {"account": ALICE, "proof": cli_tree.proof(ALICE)},
            {"account": BOB, "proof": cli_tree.proof(BOB)},
        ]))
        with monkeypatch.context() as m:
            m.setattr("phasedrop.cli._save", crash)
            with pytest.raises(OSError):
                run(
                    initialised, "batch-distribute", "--caller", ADMIN,
                    "--phase", "0", "--file", str(batch),
                )
        state = StateStore(initialised / "state.json").load()
        assert sorted(state["distributor"]["claims"]["0"]) == sorted([ALICE, BOB])

    def test_non_member_claim_fails(self, initialised, cli_tree: EligibilityTree) -> None:
        assert run(
            initialised, "claim", "--caller", DAVE, "--proof", *cli_tree.proof(ALICE),
        ) == 1

    def test_batch_distribute_e2e(
        self, initialised, cli_tree: EligibilityTree, tmp_path, capsys,
    ) -> None:
        batch = tmp_path / "batch.json"
        batch.write_text(json.dumps([
            {"account": ALICE, "proof": cli_tree.proof(ALICE)},
            {"account": DAVE, "proof": cli_tree.proof(ALICE)},
        ]))
        capsys.readouterr()
        assert run(
            initialised, "batch-distribute", "--caller", ADMIN,
            "--phase", "0", "--file", str(batch),
        ) == 0
        out = json.loads(capsys.readouterr().out)
        assert out["success_count"] == 1
        assert out["skip_count"] == 1
        assert out["pending"] == []

    def test_phase_admin_e2e(self, initialised, cli_tree: EligibilityTree) -> None:
        assert run(
            initialised, "create-phase", "--caller", ADMIN, "--root", cli_tree.root,
            "--amount", "7", "--duration", "600", "--activate",
        ) == 0
        assert run(initialised, "update-phase", "--caller", ADMIN, "--phase", "1", "--amount", "8") == 0
        assert run(initialised, "deactivate-phase", "--caller", ADMIN, "--phase", "1") == 0
        assert run(initialised, "activate-phase", "--caller", ADMIN, "--phase", "1") == 0
        state = StateStore(initialised / "state.json").load()
        assert state["distributor"]["current_phase_id"] == 1
        assert state["distributor"]["phases"][1]["per_claim_amount"] == 8

    def test_non_owner_admin_fails(self, initialised, capsys) -> None:
        assert run(initialised, "pause", "--caller", ALICE) == 1
        assert "NotOwner" in capsys.readouterr().err

    def test_pause_blocks_claim(self, initialised, cli_tree: EligibilityTree) -> None:
        assert run(initialised, "pause", "--caller", ADMIN) == 0
        assert run(initialised, "claim", "--caller", ALICE, "--proof", *cli_tree.proof(ALICE)) == 1
        assert run(initialised, "unpause", "--caller", ADMIN) == 0
        assert run(initialised, "claim", "--caller", ALICE, "--proof", *cli_tree.proof(ALICE)) == 0

    def test_emergency_withdraw(self, initialised) -> None:
        assert run(
            initialised, "emergency-withdraw", "--caller", ADMIN,
            "--recipient", DAVE, "--amount", "10000",
        ) == 0
        state = StateStore(initialised / "state.json").load()
        assert state["token"]["balances"][DAVE] == 10000

    def test_phase_status(self, initialised, capsys) -> None:
        capsys.readouterr()
        assert run(initialised, "phase-status", "--phase", "0") == 0
        out = json.loads(capsys.readouterr().out)
        assert out["is_active"] is True
        assert out["per_claim_amount"] == 1000

    def test_status_and_invariants(self, initialised) -> None:
        assert run(initialised, "status") == 0
        assert run(initialised, "check-invariants") == 0

    def test_events_accumulate_across_runs(self, initialised, cli_tree: EligibilityTree) -> None:
        run(initialised, "claim", "--caller", BOB, "--proof", *cli_tree.proof(BOB))
        lines = (initialised / "events.jsonl").read_text().strip().splitlines()
        ids = [json.loads(line)["event_id"] for line in lines]
        assert len(ids) == 3
        assert len(set(ids)) == 3


class TestOfflineTools:
    def test_leaf(self, data_dir, capsys) -> None:
        assert run(data_dir, "leaf", "--account", ALICE) == 0
        assert capsys.readouterr().out.strip() == EligibilityTree([ALICE]).root

    def test_verify_proof(self, data_dir, cli_tree: EligibilityTree) -> None:
        assert run(
            data_dir, "verify-proof", "--root", cli_tree.root,
            "--account", BOB, "--proof", *cli_tree.proof(BOB),
        ) == 0
        assert run(
            data_dir, "verify-proof", "--root", cli_tree.root,
            "--account", DAVE, "--proof", *cli_tree.proof(BOB),
        ) == 1
