"""
OCSS CLI & Config Test Suite
============================

Tests the click command-line interface with click's CliRunner and the
pydantic-settings configuration.

Run: pytest tests/ -v
"""

import json
import re

import pytest
from click.testing import CliRunner

from ocss.cli import cli
from ocss.config import ClientConfig, OCSSConfig, SchemeKind
from ocss.crypto.keys import KeyPair


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def invoke(runner, tmp_path):
    def _invoke(*args, **kwargs):
        return runner.invoke(cli, ["-d", str(tmp_path), *args], **kwargs)
    return _invoke


# ─── Config ───────────────────────────────────────────────────

class TestConfig:

    def test_defaults(self):
        config = OCSSConfig()
        assert config.sharing.scheme is SchemeKind.XOR
        assert config.client.max_attempts == 10
        assert config.client.retry_delay_sec == 0.2
        assert config.contract.download_window_ms == 300_000

    def test_environment(self, monkeypatch, tmp_path):
        monkeypatch.setenv("OCSS_DATA_DIR", str(tmp_path))
        monkeypatch.setenv("OCSS_SHARING__SCHEME", "shamir")
        monkeypatch.setenv("OCSS_CLIENT__MAX_ATTEMPTS", "3")
        config = OCSSConfig()
        assert config.data_dir == tmp_path
        assert config.sharing.scheme is SchemeKind.SHAMIR
        assert config.client.max_attempts == 3
        assert config.ledger_path == tmp_path / "ledger.db"

    def test_ensure_dirs(self, tmp_path):
        config = OCSSConfig(data_dir=tmp_path / "data")
        config.ensure_dirs()
        assert config.keys_dir.is_dir()
        assert config.engine_store_path("00ab").parent.is_dir()

    def test_invalid_client_config(self):
        with pytest.raises(ValueError):
            ClientConfig(max_attempts=0)


# ─── Commands ─────────────────────────────────────────────────

class TestCli:

    def test_version(self, invoke):
        result = invoke("--version")
        assert result.exit_code == 0
        assert "0.1.0" in result.output

    def test_keys(self, invoke):
        created = invoke("keys", "create", "alice", "--password", "pw")
        assert created.exit_code == 0, created.output
        address = re.search(r"Address: (\w+)", created.output).group(1)

        listed = invoke("keys", "list")
        assert "alice" in listed.output and address in listed.output

        shown = invoke("keys", "show", "alice")
        assert shown.output.strip() == address

    def test_keys_empty(self, invoke):
        assert "No keys." in invoke("keys", "list").output

    def test_duplicate_key(self, invoke):
        invoke("keys", "create", "alice", "--password", "")
        result = invoke("keys", "create", "alice", "--password", "")
        assert result.exit_code != 0
        assert "already exists" in result.output

    def test_deploy_and_state(self, invoke):
        invoke("keys", "create", "owner", "--password", "pw")
        invoke("keys", "create", "e0", "--password", "pw")
        other_engine = KeyPair.from_secret(21).address

        deployed = invoke(
            "deploy", "--key", "owner", "--password", "pw",
            "-e", "e0=http://127.0.0.1:8420",
            "-e", f"{other_engine}=http://127.0.0.1:8421",
            "--window-ms", "1000",
        )
        assert deployed.exit_code == 0, deployed.output
        contract = re.search(r"deployed: (\w+)", deployed.output).group(1)

        result = invoke("state", contract)
        assert result.exit_code == 0, result.output
        state = json.loads(result.output)
        assert state["download_window_ms"] == 1000
        assert state["nodes"][1] == {
            "address": other_engine, "endpoint": "http://127.0.0.1:8421",
        }

    def test_deploy_wrong_password(self, invoke):
        invoke("keys", "create", "owner", "--password", "pw")
        result = invoke("deploy", "--key", "owner", "--password", "nope",
                        "-e", "00" + "11" * 20 + "=http://x")
        assert result.exit_code != 0
        assert "Cannot unlock key" in result.output

    def test_deploy_bad_engine_option(self, invoke):
        result = invoke("deploy", "--key", "owner", "--password", "", "-e", "no-endpoint")
        assert result.exit_code != 0

    def test_state_unknown_contract(self, invoke):
        result = invoke("state", "02" + "00" * 20)
        assert result.exit_code != 0
        assert "Unknown contract" in result.output

    def test_randomness_run(self, invoke):
        result = invoke("randomness", "run", "--engines", "3", "--rounds", "2")
        assert result.exit_code == 0, result.output
        values = re.findall(r"round \d: ([0-9a-f]{64})", result.output)
        assert len(values) == 2
        assert values[0] != values[1]
