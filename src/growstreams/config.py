"""
Runtime configuration for the GrowStreams deploy toolkit.

Values come from (highest priority first): process environment, a ``.env``
file (``GROWSTREAMS_ENV`` or ``./.env``), then the testnet defaults below.
The signer seed is deliberately not part of ``Settings``; it is loaded on
demand by ``growstreams.sigil.keys`` so that read-only commands never need it.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# ---- Hardcoded defaults (Vara testnet) ----
_DEFAULTS: dict[str, str] = {
    "VARA_NODE": "wss://testnet.vara.network",
    "VARA_NETWORK": "vara-testnet",
    "DEPLOY_STATE": "deploy-state.json",
    "ARTIFACTS_DIR": "artifacts",
    "MIN_BUFFER_SECONDS": "3600",
    "UPLOAD_GAS_CEILING": "500000000000",
    "MESSAGE_GAS_CEILING": "50000000000",
    "UPLOAD_TIMEOUT": "120",
    "MESSAGE_TIMEOUT": "90",
    "WIRE_DELAY_SECONDS": "2",
    # 10,000 GROW with 12 decimals
    "GROW_MINT_AMOUNT": "10000000000000000",
    "GROWSTREAMS_API": "http://localhost:3001",
}


class ConfigError(ValueError):
    exit_code: int = 1


def load_env_file(env_path: Optional[Path] = None) -> Optional[Path]:
    """Load a .env file into the process environment without overriding it.

    Returns the path that was loaded, or None if no file was found.
    """
    if env_path is None:
        override = os.environ.get("GROWSTREAMS_ENV")
        env_path = Path(override).expanduser() if override else Path.cwd() / ".env"
    if env_path.exists():
        load_dotenv(env_path, override=False)
        return env_path
    return None


def http_url_for(node_url: str) -> str:
    """Derive the HTTP JSON-RPC endpoint served on the same port as the websocket."""
    if node_url.startswith("wss://"):
        return "https://" + node_url[len("wss://"):]
    if node_url.startswith("ws://"):
        return "http://" + node_url[len("ws://"):]
    return node_url


def _get(key: str) -> str:
    return os.environ.get(key) or _DEFAULTS[key]


def _get_int(key: str) -> int:
    raw = _get(key).replace("_", "")
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{key} must be an integer, got {raw!r}") from None


def _get_float(key: str) -> float:
    raw = _get(key)
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{key} must be a number, got {raw!r}") from None


@dataclass(frozen=True)
class Settings:
    node_url: str
    rpc_http_url: str
    network: str
    state_path: Path
    artifacts_dir: Path
    min_buffer_seconds: int
    upload_gas_ceiling: int
    message_gas_ceiling: int
    upload_timeout: float
    message_timeout: float
    wire_delay: float
    mint_amount: int
    api_url: str

    @classmethod
    def from_env(cls, node_url: Optional[str] = None) -> "Settings":
        node = node_url or _get("VARA_NODE")
        return cls(
            node_url=node,
            rpc_http_url=os.environ.get("VARA_RPC_HTTP") or http_url_for(node),
            network=_get("VARA_NETWORK"),
            state_path=Path(_get("DEPLOY_STATE")).expanduser(),
            artifacts_dir=Path(_get("ARTIFACTS_DIR")).expanduser(),
            min_buffer_seconds=_get_int("MIN_BUFFER_SECONDS"),
            upload_gas_ceiling=_get_int("UPLOAD_GAS_CEILING"),
            message_gas_ceiling=_get_int("MESSAGE_GAS_CEILING"),
            upload_timeout=_get_float("UPLOAD_TIMEOUT"),
            message_timeout=_get_float("MESSAGE_TIMEOUT"),
            wire_delay=_get_float("WIRE_DELAY_SECONDS"),
            mint_amount=_get_int("GROW_MINT_AMOUNT"),
            api_url=_get("GROWSTREAMS_API").rstrip("/"),
        )


def program_id_override(contract_name: str) -> Optional[str]:
    """Return ``<CONTRACT>_ID`` from the environment, e.g. STREAM_CORE_ID."""
    key = contract_name.upper().replace("-", "_") + "_ID"
    return os.environ.get(key) or None
