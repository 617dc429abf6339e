"""Tests for settings and logging setup — proves env parsing and JSON log output."""

import json
import logging
import os
from pathlib import Path

import pytest

from phasedrop.config import DEFAULT_CHAIN_ID, Settings
from phasedrop.logging_config import JsonFormatter, configure_logging


class TestSettings:
    def test_defaults(self) -> None:
        settings = Settings.from_env(environ={})
        assert settings.chain_id == DEFAULT_CHAIN_ID
        assert settings.log_level == "INFO"
        assert not settings.uses_chain

    def test_reads_variables(self, tmp_path) -> None:
        settings = Settings.from_env(environ={
            "PHASEDROP_DATA_DIR": str(tmp_path),
            "PHASEDROP_RPC_URL": "http://localhost:8545",
            "PHASEDROP_PRIVATE_KEY": "0x" + "11" * 32,
            "PHASEDROP_TOKEN_ADDRESS": "0x" + "22" * 20,
            "PHASEDROP_CHAIN_ID": "1",
            "PHASEDROP_LOG_LEVEL": "debug",
        })
        assert settings.data_dir == Path(tmp_path)
        assert settings.chain_id == 1
        assert settings.log_level == "DEBUG"
        assert settings.uses_chain

    def test_partial_chain_config_stays_local(self) -> None:
        settings = Settings.from_env(environ={"PHASEDROP_RPC_URL": "http://localhost:8545"})
        assert not settings.uses_chain

    def test_bad_chain_id(self) -> None:
        with pytest.raises(ValueError):
            Settings.from_env(environ={"PHASEDROP_CHAIN_ID": "sepolia"})

    def test_env_file_loaded(self, tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("PHASEDROP_LOG_LEVEL", raising=False)
        env_file = tmp_path / ".env"
        env_file.write_text("PHASEDROP_LOG_LEVEL=warning\n")
        try:
            settings = Settings.from_env(env_file=env_file)
        finally:
            os.environ.pop("PHASEDROP_LOG_LEVEL", None)
        assert settings.log_level == "WARNING"

    def test_environment_wins_over_env_file(
        self, tmp_path, monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setenv("PHASEDROP_CHAIN_ID", "5")
        env_file = tmp_path / ".env"
        env_file.write_text("PHASEDROP_CHAIN_ID=1\n")
        assert Settings.from_env(env_file=env_file).chain_id == 5


class TestLogging:
    def test_json_formatter_includes_extras(self) -> None:
        record = logging.LogRecord(
            "phasedrop.test", logging.INFO, __file__, 1, "claimed %d", (5,), None,
        )
        record.phase = 2
        record.account = "0xabc"
        payload = json.loads(JsonFormatter().format(record))
        assert payload["msg"] == "claimed 5"
        assert payload["level"] == "INFO"
        assert payload["phase"] == 2
        assert payload["account"] == "0xabc"
        assert "operation" not in payload

    def test_configure_logging_file(self, tmp_path) -> None:
        log_file = tmp_path / "phasedrop.log"
        root = logging.getLogger()
        saved = (root.handlers[:], root.level)
        try:
            configure_logging("debug", str(log_file))
            assert root.level == logging.DEBUG
            logging.getLogger("phasedrop.test").info("hello")
            for handler in root.handlers:
                handler.flush()
            line = log_file.read_text().strip().splitlines()[-1]
            assert json.loads(line)["msg"] == "hello"
        finally:
            for handler in root.handlers:
                if handler not in saved[0]:
                    handler.close()
            root.handlers = saved[0]
            root.setLevel(saved[1])
