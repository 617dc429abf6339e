"""Runtime settings, read from the environment and an optional .env file.

Variables (all optional):
    PHASEDROP_RPC_URL        Ethereum RPC endpoint for the ERC-20 ledger.
    PHASEDROP_PRIVATE_KEY    Key of the account holding distributor funds.
    PHASEDROP_TOKEN_ADDRESS  ERC-20 token contract address.
    PHASEDROP_CHAIN_ID       Chain ID (default: 11155111 = Sepolia).
    PHASEDROP_DATA_DIR       Directory for state.json and events.jsonl.
    PHASEDROP_LOG_LEVEL      Logging level (default: INFO).
    PHASEDROP_LOG_FILE       Optional file to mirror log output to.

Without RPC_URL, PRIVATE_KEY and TOKEN_ADDRESS the distributor runs on
the in-memory token.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

DEFAULT_DATA_DIR = Path.cwd() / "data"
DEFAULT_CHAIN_ID = 11155111


@dataclass(frozen=True)
class Settings:
    data_dir: Path = DEFAULT_DATA_DIR
    rpc_url: Optional[str] = None
    private_key: Optional[str] = None
    token_address: Optional[str] = None
    chain_id: int = DEFAULT_CHAIN_ID
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @property
    def uses_chain(self) -> bool:
        """True when every value needed for the ERC-20 ledger is present."""
        return bool(self.rpc_url and self.private_key and self.token_address)

    @staticmethod
    def from_env(
        env_file: Optional[Path] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> Settings:
        """Build settings from the process environment.

        A .env file (env_file, or ./.env when present) is loaded first;
        variables already set in the environment take precedence.
        """
        if environ is None:
            load_dotenv(env_file or Path.cwd() / ".env")
            environ = os.environ

        chain_id_raw = environ.get("PHASEDROP_CHAIN_ID")
        try:
            chain_id = int(chain_id_raw) if chain_id_raw else DEFAULT_CHAIN_ID
        except ValueError:
            raise ValueError(f"PHASEDROP_CHAIN_ID must be an integer, got {chain_id_raw!r}")

        data_dir_raw = environ.get("PHASEDROP_DATA_DIR")
        return Settings(
            data_dir=Path(data_dir_raw) if data_dir_raw else DEFAULT_DATA_DIR,
            rpc_url=environ.get("PHASEDROP_RPC_URL") or None,
            private_key=environ.get("PHASEDROP_PRIVATE_KEY") or None,
            token_address=environ.get("PHASEDROP_TOKEN_ADDRESS") or None,
            chain_id=chain_id,
            log_level=(environ.get("PHASEDROP_LOG_LEVEL") or "INFO").upper(),
            log_file=environ.get("PHASEDROP_LOG_FILE") or None,
        )
