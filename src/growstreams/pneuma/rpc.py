"""
JSON-RPC client for read-only Gear node calls.

Lightweight: uses httpx against the node's HTTP endpoint (same port as the
websocket). Covers gas calculation and reply simulation; nothing here
mutates chain state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from ..utils import to_hex

logger = logging.getLogger(__name__)

DEFAULT_RPC_TIMEOUT = 30.0

# Gas limit used for reply simulation (queries cost nothing on chain).
QUERY_GAS_LIMIT = 100_000_000_000


class RpcError(RuntimeError):
    def __init__(self, message: str, code: Optional[int] = None, data: Any = None) -> None:
        super().__init__(message)
        self.code = code
        self.data = data


def _rpc_call(
    method: str,
    params: list,
    rpc_url: str,
    timeout: float = DEFAULT_RPC_TIMEOUT,
    transport: Optional[httpx.BaseTransport] = None,
) -> Any:
    """
    Make a JSON-RPC call.

    Args:
        method: RPC method name (e.g., "gear_calculateHandleGas")
        params: RPC parameters
        rpc_url: HTTP(S) endpoint
        timeout: Request timeout in seconds
        transport: Optional httpx transport (tests)

    Returns:
        Result field from the RPC response

    Raises:
        RpcError: If the node returns an error object
        httpx.HTTPError: On transport failures
    """
    payload = {
        "jsonrpc": "2.0",
        "method": method,
        "params": params,
        "id": 1,
    }

    logger.debug("rpc %s -> %s", method, rpc_url)
    with httpx.Client(timeout=timeout, transport=transport) as client:
        response = client.post(rpc_url, json=payload)
        response.raise_for_status()
        data = response.json()

    if "error" in data:
        err = data["error"] or {}
        raise RpcError(
            f"RPC error: {err.get('message', err)}",
            code=err.get("code"),
            data=err.get("data"),
        )

    return data.get("result")


def _as_int(value: Any) -> int:
    if isinstance(value, str):
        return int(value, 16) if value.startswith("0x") else int(value)
    return int(value)


@dataclass(frozen=True)
class GearRpc:
    url: str
    timeout: float = DEFAULT_RPC_TIMEOUT
    transport: Optional[httpx.BaseTransport] = None

    def call(self, method: str, params: list) -> Any:
        return _rpc_call(method, params, self.url, timeout=self.timeout, transport=self.transport)

    def calculate_init_upload_gas(
        self,
        source: bytes,
        code: bytes,
        payload: bytes,
        value: int = 0,
        allow_other_panics: bool = True,
    ) -> int:
        """Minimum gas to upload ``code`` and run its constructor with ``payload``."""
        result = self.call(
            "gear_calculateInitUploadGas",
            [to_hex(source), to_hex(code), to_hex(payload), value, allow_other_panics, None],
        )
        return _as_int(result["min_limit"])

    def calculate_handle_gas(
        self,
        source: bytes,
        destination: str,
        payload: bytes,
        value: int = 0,
        allow_other_panics: bool = True,
    ) -> int:
        """Minimum gas to handle ``payload`` at an existing program."""
        result = self.call(
            "gear_calculateHandleGas",
            [to_hex(source), destination, to_hex(payload), value, allow_other_panics, None],
        )
        return _as_int(result["min_limit"])

    def calculate_reply(
        self,
        origin: bytes,
        destination: str,
        payload: bytes,
        gas_limit: int = QUERY_GAS_LIMIT,
        value: int = 0,
    ) -> dict[str, Any]:
        """Simulate a message and return the reply info (payload, value, code)."""
        return self.call(
            "gear_calculateReplyForHandle",
            [to_hex(origin), destination, to_hex(payload), gas_limit, value, None],
        )
