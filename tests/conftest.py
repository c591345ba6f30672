"""Shared fakes: an in-memory Gear runtime, gas RPC and keypair."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional

import pytest

from growstreams.config import Settings
from growstreams.pneuma.lifecycle import (
    ModuleError,
    RuntimeEvent,
    StatusKind,
    StatusUpdate,
    UploadTicket,
)
from growstreams.pneuma.payload import Payload
from growstreams.pneuma.rpc import RpcError
from growstreams.theurgy.catalog import CONTRACTS
from growstreams.utils import blake2b_256, to_hex

BLOCK = "0x" + "ab" * 32

FAILED_EVENT = RuntimeEvent(
    section="System",
    method="ExtrinsicFailed",
    data={"dispatch_error": {"Module": {"index": 104, "error": "0x05000000"}}},
)


def finalized_script(events: tuple[RuntimeEvent, ...] = ()) -> list[StatusUpdate]:
    return [
        StatusUpdate(StatusKind.READY),
        StatusUpdate(StatusKind.IN_BLOCK, BLOCK),
        StatusUpdate(StatusKind.FINALIZED, BLOCK, events),
    ]


class FakeKeypair:
    def __init__(self, public_key: bytes = bytes(range(32))) -> None:
        self.public_key = public_key
        self.ss58_address = "kGfakeDeployerAddress"


class FakeRuntime:
    """Records calls and replays a scripted status stream for each submission."""

    def __init__(self) -> None:
        self.uploads: list[dict[str, Any]] = []
        self.messages: list[dict[str, Any]] = []
        self.submitted: list[dict[str, Any]] = []
        self.fail_if: Callable[[dict[str, Any]], bool] = lambda call: False
        self.script_for: Optional[Callable[[dict[str, Any]], list[StatusUpdate]]] = None
        self.balance = 10 ** 15
        self.chain = "Vara Network Testnet"
        self.closed = False

    def __enter__(self) -> "FakeRuntime":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.closed = True

    def free_balance(self, address: str) -> int:
        return self.balance

    def upload_program(
        self, code: bytes, payload: Payload, gas_limit: int, value: int = 0, salt: Optional[bytes] = None
    ) -> UploadTicket:
        salt = salt if salt is not None else len(self.uploads).to_bytes(32, "big")
        code_id = blake2b_256(code)
        program_id = blake2b_256(b"program_from_user" + code_id + salt)
        call = {"kind": "upload", "code": code, "payload": payload, "gas_limit": gas_limit}
        self.uploads.append(call)
        return UploadTicket(
            program_id=to_hex(program_id),
            code_id=to_hex(code_id),
            salt=salt,
            call=call,
            payload=payload,
            gas_limit=gas_limit,
            value=value,
        )

    def send_message(self, destination: str, payload: Payload, gas_limit: int, value: int = 0) -> Any:
        call = {
            "kind": "message",
            "destination": destination,
            "payload": payload,
            "gas_limit": gas_limit,
            "value": value,
        }
        self.messages.append(call)
        return call

    def submit(self, call: Any, keypair: Any, on_status: Callable[[StatusUpdate], bool]) -> None:
        self.submitted.append(call)
        if self.script_for is not None:
            script = self.script_for(call)
        elif self.fail_if(call):
            script = finalized_script((FAILED_EVENT,))
        else:
            script = finalized_script((RuntimeEvent("System", "ExtrinsicSuccess"),))
        for update in script:
            if on_status(update):
                return

    def decode_module_error(self, module_index: int, error_index: int) -> ModuleError:
        return ModuleError(section="Gear", name="InactiveProgram", docs="Program is terminated.")


@dataclass
class FakeGasRpc:
    upload_gas: int = 2_000_000_000
    handle_gas: int = 1_000_000_000
    fail: bool = False
    reply_payload: str = "0x"
    calls: list[tuple[str, Any]] = field(default_factory=list)

    def calculate_init_upload_gas(self, source, code, payload, value=0, allow_other_panics=True) -> int:
        self.calls.append(("upload", payload))
        if self.fail:
            raise RpcError("RPC error: Program terminated with a trap", code=8000)
        return self.upload_gas

    def calculate_handle_gas(self, source, destination, payload, value=0, allow_other_panics=True) -> int:
        self.calls.append(("handle", destination))
        if self.fail:
            raise RpcError("RPC error: Program terminated with a trap", code=8000)
        return self.handle_gas

    def calculate_reply(self, origin, destination, payload, gas_limit=0, value=0) -> dict[str, Any]:
        self.calls.append(("reply", destination))
        return {"payload": self.reply_payload, "value": 0, "code": {"Success": "Manual"}}


@pytest.fixture()
def keypair() -> FakeKeypair:
    return FakeKeypair()


@pytest.fixture()
def runtime() -> FakeRuntime:
    return FakeRuntime()


@pytest.fixture()
def gas_rpc() -> FakeGasRpc:
    return FakeGasRpc()


@pytest.fixture()
def artifacts_dir(tmp_path: Path) -> Path:
    """One fake WASM blob per contract."""
    root = tmp_path / "artifacts"
    root.mkdir()
    for contract in CONTRACTS.values():
        (root / contract.artifact).write_bytes(b"\x00asm\x01\x00\x00\x00" + contract.name.encode())
    return root


@pytest.fixture()
def settings(tmp_path: Path, artifacts_dir: Path) -> Settings:
    return Settings(
        node_url="wss://testnet.vara.network",
        rpc_http_url="https://testnet.vara.network",
        network="vara-testnet",
        state_path=tmp_path / "deploy-state.json",
        artifacts_dir=artifacts_dir,
        min_buffer_seconds=3600,
        upload_gas_ceiling=500_000_000_000,
        message_gas_ceiling=50_000_000_000,
        upload_timeout=5.0,
        message_timeout=5.0,
        wire_delay=2.0,
        mint_amount=10_000 * 10 ** 12,
        api_url="http://localhost:3001",
    )
