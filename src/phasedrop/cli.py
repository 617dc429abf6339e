"""phasedrop CLI — command-line interface for the distributor.

Usage:
    python -m phasedrop.cli init --owner 0xA.. --root 0x.. --amount 1000000 --duration 604800
    python -m phasedrop.cli mint --caller 0xA.. --to distributor --amount 1000000000
    python -m phasedrop.cli status
    python -m phasedrop.cli claim --caller 0xB.. --proof 0x.. 0x..
    python -m phasedrop.cli create-phase --caller 0xA.. --root 0x.. --amount 5 --duration 3600 --activate
    python -m phasedrop.cli batch-distribute --caller 0xA.. --phase 0 --file batch.json
    python -m phasedrop.cli verify-proof --root 0x.. --account 0xB.. --proof 0x..
    python -m phasedrop.cli check-invariants

State lives in the data directory (PHASEDROP_DATA_DIR, default ./data):
state.json holds the distributor snapshot (and the in-memory token, when
no chain is configured); events.jsonl is the audit trail. Claims are
written to state.json before their transfer is sent.
"""

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import sys
from pathlib import Path
from typing import Any, Optional

from phasedrop.assets.ledger import AssetLedger, InMemoryAssetLedger
from phasedrop.config import Settings
from phasedrop.crypto.identity import hash_hex, normalize_account
from phasedrop.crypto.merkle import leaf_for_account, verify_account
from phasedrop.distributor import MerkleDistributor, system_clock
from phasedrop.errors import DistributorError
from phasedrop.logging_config import configure_logging
from phasedrop.persistence.event_log import EventLog
from phasedrop.persistence.state_store import StateStore

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------ #
# State loading                                                       #
# ------------------------------------------------------------------ #

def _store(settings: Settings) -> StateStore:
    return StateStore(settings.data_dir / "state.json")


def _event_log(settings: Settings) -> EventLog:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    return EventLog(storage_path=settings.data_dir / "events.jsonl")


def _chain_ledger(settings: Settings) -> AssetLedger:
    from phasedrop.assets.web3_token import Web3TokenLedger

    return Web3TokenLedger(
        rpc_url=settings.rpc_url,
        token_address=settings.token_address,
        private_key=settings.private_key,
        chain_id=settings.chain_id,
    )


def _state(snapshot: dict[str, Any], token: Optional[InMemoryAssetLedger]) -> dict[str, Any]:
    return {
        "distributor": snapshot,
        "token": token.to_dict() if token is not None else None,
    }


def _load(settings: Settings) -> tuple[MerkleDistributor, Optional[InMemoryAssetLedger]]:
    """Load the distributor (and in-memory token, if any) from the data dir.

    The distributor checkpoints into the same state file, so a claim is on
    disk before its transfer is attempted.
    """
    store = _store(settings)
    state = store.load()
    if state is None:
        raise ValueError(f"No distributor in {settings.data_dir}; run 'init' first")
    token: Optional[InMemoryAssetLedger] = None
    if state.get("token") is not None:
        token = InMemoryAssetLedger.from_dict(state["token"])
        asset: AssetLedger = token
    else:
        asset = _chain_ledger(settings)
    dist = MerkleDistributor.restore(
        state["distributor"],
        asset,
        clock=system_clock,
        event_log=_event_log(settings),
        checkpoint=lambda snapshot: store.save(_state(snapshot, token)),
    )
    return dist, token


def _save(
    settings: Settings,
    dist: MerkleDistributor,
    token: Optional[InMemoryAssetLedger],
) -> None:
    _store(settings).save(_state(dist.snapshot(), token))


def _expiry(args: argparse.Namespace) -> Optional[int]:
    if getattr(args, "expiry", None) is not None:
        return args.expiry
    if getattr(args, "duration", None) is not None:
        return system_clock() + args.duration
    return None


def _print(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


# ------------------------------------------------------------------ #
# Commands                                                            #
# ------------------------------------------------------------------ #

def cmd_init(args: argparse.Namespace, settings: Settings) -> int:
    store = _store(settings)
    if store.exists() and not args.force:
        print(f"Distributor already initialised in {settings.data_dir}", file=sys.stderr)
        return 1
    expiry = _expiry(args)
    if expiry is None:
        print("One of --expiry or --duration is required", file=sys.stderr)
        return 1

    token: Optional[InMemoryAssetLedger] = None
    address: Optional[str] = None
    if settings.uses_chain:
        asset = _chain_ledger(settings)
        address = asset.holder
    else:
        token = InMemoryAssetLedger(owner=args.owner)
        asset = token

    dist = MerkleDistributor(
        asset,
        args.root,
        args.amount,
        expiry,
        owner=args.owner,
        address=address,
        event_log=_event_log(settings),
    )
    _save(settings, dist, token)
    print(f"Initialised distributor {dist.address} (asset {asset.asset_id})")
    return 0


def cmd_status(args: argparse.Namespace, settings: Settings) -> int:
    dist, _ = _load(settings)
    _print(dist.summary())
    return 0


def cmd_phase_status(args: argparse.Namespace, settings: Settings) -> int:
    dist, _ = _load(settings)
    status = dist.phase_status(args.phase)
    _print({
        "phase": args.phase,
        "is_active": status.is_active,
        "remaining_time": status.remaining_time,
        "per_claim_amount": status.per_claim_amount,
    })
    return 0


def cmd_create_phase(args: argparse.Namespace, settings: Settings) -> int:
    dist, token = _load(settings)
    expiry = _expiry(args)
    if expiry is None:
        print("One of --expiry or --duration is required", file=sys.stderr)
        return 1
    index = dist.create_phase(args.caller, args.root, args.amount, expiry, args.activate)
    _save(settings, dist, token)
    print(f"Created phase {index}")
    return 0


def cmd_update_phase(args: argparse.Namespace, settings: Settings) -> int:
    dist, token = _load(settings)
    phase = dist.update_phase(
        args.caller,
        args.phase,
        commitment=args.root,
        per_claim_amount=args.amount,
        expiry=_expiry(args),
    )
    _save(settings, dist, token)
    _print(phase.to_dict())
    return 0


def cmd_activate_phase(args: argparse.Namespace, settings: Settings) -> int:
    dist, token = _load(settings)
    dist.set_active_phase(args.caller, args.phase)
    _save(settings, dist, token)
    print(f"Phase {args.phase} active and current")
    return 0


def cmd_deactivate_phase(args: argparse.Namespace, settings: Settings) -> int:
    dist, token = _load(settings)
    dist.deactivate_phase(args.caller, args.phase)
    _save(settings, dist, token)
    print(f"Phase {args.phase} deactivated")
    return 0


def cmd_claim(args: argparse.Namespace, settings: Settings) -> int:
    dist, token = _load(settings)
    if args.phase is None:
        receipt = dist.claim(args.caller, args.proof)
    else:
        receipt = dist.claim_for_phase(args.caller, args.phase, args.proof)
    _save(settings, dist, token)
    print(f"{receipt.account} claimed {receipt.amount} in phase {receipt.phase_index}")
    return 0


def cmd_batch_distribute(args: argparse.Namespace, settings: Settings) -> int:
    """Batch file: JSON list of {"account": "0x..", "proof": ["0x..", ...]}."""
    entries = json.loads(Path(args.file).read_text(encoding="utf-8"))
    accounts = [e.get("account") for e in entries]
    proofs = [e.get("proof", []) for e in entries]
    dist, token = _load(settings)
    outcome = dist.batch_distribute(args.caller, args.phase, accounts, proofs)
    _save(settings, dist, token)
    _print({
        "phase": outcome.phase_index,
        "success_count": outcome.success_count,
        "skip_count": outcome.skip_count,
        "claimed": list(outcome.claimed),
        "pending": list(outcome.pending),
    })
    return 0


def cmd_pause(args: argparse.Namespace, settings: Settings) -> int:
    dist, token = _load(settings)
    dist.pause(args.caller)
    _save(settings, dist, token)
    print("Paused")
    return 0


def cmd_unpause(args: argparse.Namespace, settings: Settings) -> int:
    dist, token = _load(settings)
    dist.unpause(args.caller)
    _save(settings, dist, token)
    print("Unpaused")
    return 0


def cmd_emergency_withdraw(args: argparse.Namespace, settings: Settings) -> int:
    dist, token = _load(settings)
    dist.emergency_withdraw(args.caller, dist.asset, args.recipient, args.amount)
    _save(settings, dist, token)
    print(f"Withdrew {args.amount} to {args.recipient}")
    return 0


def cmd_mint(args: argparse.Namespace, settings: Settings) -> int:
    dist, token = _load(settings)
    if token is None:
        print("mint is only available for the in-memory token", file=sys.stderr)
        return 1
    recipient = dist.address if args.to == "distributor" else args.to
    token.mint(args.caller, recipient, args.amount)
    _save(settings, dist, token)
    print(f"Minted {args.amount} to {normalize_account(recipient)}")
    return 0


def cmd_leaf(args: argparse.Namespace, settings: Settings) -> int:
    print(hash_hex(leaf_for_account(args.account)))
    return 0


def cmd_verify_proof(args: argparse.Namespace, settings: Settings) -> int:
    ok = verify_account(args.proof, args.root, args.account)
    print("valid" if ok else "invalid")
    return 0 if ok else 1


def cmd_check_invariants(args: argparse.Namespace, settings: Settings) -> int:
    dist, _ = _load(settings)
    errors = dist.check_invariants()
    if errors:
        for e in errors:
            print(f"VIOLATION: {e}", file=sys.stderr)
        return 1
    print("All invariants hold")
    return 0


# ------------------------------------------------------------------ #
# Parser                                                              #
# ------------------------------------------------------------------ #

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="phasedrop",
        description="Phased Merkle distributor",
    )
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=None,
        help="Directory holding state.json and events.jsonl (default: PHASEDROP_DATA_DIR or ./data)",
    )
    parser.add_argument("--env-file", type=Path, default=None, help="Path to a .env file")
    sub = parser.add_subparsers(dest="command")

    def add_expiry(p: argparse.ArgumentParser, required: bool = False) -> None:
        group = p.add_mutually_exclusive_group(required=required)
        group.add_argument("--expiry", type=int, help="Absolute expiry (unix seconds)")
        group.add_argument("--duration", type=int, help="Expiry relative to now (seconds)")

    p_init = sub.add_parser("init", help="Create a distributor with phase 0")
    p_init.add_argument("--owner", required=True, help="Administrator address")
    p_init.add_argument("--root", required=True, help="Phase 0 commitment (0x hex)")
    p_init.add_argument("--amount", type=int, required=True, help="Per-claim amount (smallest units)")
    p_init.add_argument("--force", action="store_true", help="Overwrite existing state")
    add_expiry(p_init, required=True)

    sub.add_parser("status", help="Show distributor summary")

    p_ps = sub.add_parser("phase-status", help="Show status of one phase")
    p_ps.add_argument("--phase", type=int, required=True)

    p_create = sub.add_parser("create-phase", help="Append a new phase")
    p_create.add_argument("--caller", required=True)
    p_create.add_argument("--root", required=True)
    p_create.add_argument("--amount", type=int, required=True)
    p_create.add_argument("--activate", action="store_true", help="Activate and make current")
    add_expiry(p_create, required=True)

    p_update = sub.add_parser("update-phase", help="Update fields of a phase")
    p_update.add_argument("--caller", required=True)
    p_update.add_argument("--phase", type=int, required=True)
    p_update.add_argument("--root", default=None)
    p_update.add_argument("--amount", type=int, default=None)
    add_expiry(p_update)

    for name, help_text in (
        ("activate-phase", "Activate a phase and make it current"),
        ("deactivate-phase", "Deactivate a phase"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("--caller", required=True)
        p.add_argument("--phase", type=int, required=True)

    p_claim = sub.add_parser("claim", help="Claim with a membership proof")
    p_claim.add_argument("--caller", required=True)
    p_claim.add_argument("--phase", type=int, default=None, help="Phase (default: current)")
    p_claim.add_argument("--proof", nargs="*", default=[], help="Sibling hashes, leaf to root")

    p_batch = sub.add_parser("batch-distribute", help="Owner-driven batch redemption")
    p_batch.add_argument("--caller", required=True)
    p_batch.add_argument("--phase", type=int, required=True)
    p_batch.add_argument("--file", required=True, help="JSON list of {account, proof}")

    for name in ("pause", "unpause"):
        p = sub.add_parser(name, help=f"{name.capitalize()} redemptions")
        p.add_argument("--caller", required=True)

    p_ew = sub.add_parser("emergency-withdraw", help="Sweep distributor holdings")
    p_ew.add_argument("--caller", required=True)
    p_ew.add_argument("--recipient", required=True)
    p_ew.add_argument("--amount", type=int, required=True)

    p_mint = sub.add_parser("mint", help="Mint in-memory tokens (token owner only)")
    p_mint.add_argument("--caller", required=True)
    p_mint.add_argument("--to", required=True, help="Address, or 'distributor'")
    p_mint.add_argument("--amount", type=int, required=True)

    p_leaf = sub.add_parser("leaf", help="Print the leaf hash for an account")
    p_leaf.add_argument("--account", required=True)

    p_verify = sub.add_parser("verify-proof", help="Check a proof offline")
    p_verify.add_argument("--root", required=True)
    p_verify.add_argument("--account", required=True)
    p_verify.add_argument("--proof", nargs="*", default=[])

    sub.add_parser("check-invariants", help="Run accounting invariant checks")

    return parser


COMMANDS = {
    "init": cmd_init,
    "status": cmd_status,
    "phase-status": cmd_phase_status,
    "create-phase": cmd_create_phase,
    "update-phase": cmd_update_phase,
    "activate-phase": cmd_activate_phase,
    "deactivate-phase": cmd_deactivate_phase,
    "claim": cmd_claim,
    "batch-distribute": cmd_batch_distribute,
    "pause": cmd_pause,
    "unpause": cmd_unpause,
    "emergency-withdraw": cmd_emergency_withdraw,
    "mint": cmd_mint,
    "leaf": cmd_leaf,
    "verify-proof": cmd_verify_proof,
    "check-invariants": cmd_check_invariants,
}


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    settings = Settings.from_env(args.env_file)
    if args.data_dir is not None:
        settings = dataclasses.replace(settings, data_dir=args.data_dir)
    configure_logging(settings.log_level, settings.log_file)

    handler = COMMANDS.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 1

    try:
        return handler(args, settings)
    except DistributorError as e:
        print(f"Failed ({e.code}): {e}", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"Failed: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
