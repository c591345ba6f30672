from __future__ import annotations

from pathlib import Path

import pytest

from growstreams.config import (
    ConfigError,
    Settings,
    http_url_for,
    load_env_file,
    program_id_override,
)

_KEYS = (
    "VARA_NODE",
    "VARA_RPC_HTTP",
    "VARA_NETWORK",
    "DEPLOY_STATE",
    "MIN_BUFFER_SECONDS",
    "UPLOAD_GAS_CEILING",
    "WIRE_DELAY_SECONDS",
    "GROWSTREAMS_API",
)


@pytest.fixture()
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    for key in _KEYS:
        monkeypatch.delenv(key, raising=False)
    return monkeypatch


class TestSettings:
    def test_defaults(self, clean_env: pytest.MonkeyPatch) -> None:
        settings = Settings.from_env()
        assert settings.node_url == "wss://testnet.vara.network"
        assert settings.rpc_http_url == "https://testnet.vara.network"
        assert settings.network == "vara-testnet"
        assert settings.min_buffer_seconds == 3600
        assert settings.upload_gas_ceiling == 500_000_000_000
        assert settings.message_gas_ceiling == 50_000_000_000
        assert settings.state_path == Path("deploy-state.json")

    def test_environment_wins(self, clean_env: pytest.MonkeyPatch) -> None:
        clean_env.setenv("VARA_NODE", "ws://127.0.0.1:9944")
        clean_env.setenv("UPLOAD_GAS_CEILING", "250_000_000_000")
        clean_env.setenv("GROWSTREAMS_API", "http://api.test/")
        settings = Settings.from_env()
        assert settings.rpc_http_url == "http://127.0.0.1:9944"
        assert settings.upload_gas_ceiling == 250_000_000_000
        assert settings.api_url == "http://api.test"

    def test_explicit_node_and_rpc(self, clean_env: pytest.MonkeyPatch) -> None:
        clean_env.setenv("VARA_RPC_HTTP", "https://rpc.test")
        settings = Settings.from_env(node_url="wss://other.test")
        assert settings.node_url == "wss://other.test"
        assert settings.rpc_http_url == "https://rpc.test"

    def test_bad_integer(self, clean_env: pytest.MonkeyPatch) -> None:
        clean_env.setenv("MIN_BUFFER_SECONDS", "an hour")
        with pytest.raises(ConfigError, match="MIN_BUFFER_SECONDS"):
            Settings.from_env()

    def test_bad_float(self, clean_env: pytest.MonkeyPatch) -> None:
        clean_env.setenv("WIRE_DELAY_SECONDS", "soon")
        with pytest.raises(ConfigError, match="WIRE_DELAY_SECONDS"):
            Settings.from_env()


def test_http_url_for() -> None:
    assert http_url_for("wss://testnet.vara.network") == "https://testnet.vara.network"
    assert http_url_for("ws://localhost:9944") == "http://localhost:9944"
    assert http_url_for("https://already.http") == "https://already.http"


def test_program_id_override(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("STREAM_CORE_ID", "0xabc")
    monkeypatch.delenv("TOKEN_VAULT_ID", raising=False)
    assert program_id_override("stream-core") == "0xabc"
    assert program_id_override("token-vault") is None


def test_load_env_file_does_not_override(tmp_path: Path, clean_env: pytest.MonkeyPatch) -> None:
    env_file = tmp_path / ".env"
    env_file.write_text("VARA_NETWORK=from-file\nVARA_NODE=wss://file.test\n", encoding="utf-8")
    clean_env.setenv("VARA_NODE", "wss://process.test")
    # Registered so the value written by the .env load is removed afterwards.
    clean_env.setenv("VARA_NETWORK", "unset")
    clean_env.delenv("VARA_NETWORK")

    assert load_env_file(env_file) == env_file
    settings = Settings.from_env()
    assert settings.network == "from-file"
    assert settings.node_url == "wss://process.test"


def test_load_env_file_missing(tmp_path: Path) -> None:
    assert load_env_file(tmp_path / "absent.env") is None
