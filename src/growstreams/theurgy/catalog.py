"""
GrowStreams programs and how they are wired together.

Every program has a no-argument ``New`` constructor (the admin is the
uploader) and exposes a single Sails service.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class ContractDef:
    name: str
    artifact: str
    service: str
    constructor: str = "New"
    constructor_args: bytes = b""

    def artifact_path(self, artifacts_dir: Path) -> Path:
        return artifacts_dir / self.artifact


CONTRACTS: dict[str, ContractDef] = {
    c.name: c
    for c in (
        ContractDef("stream-core", "stream_core.opt.wasm", "StreamService"),
        ContractDef("token-vault", "token_vault.opt.wasm", "VaultService"),
        ContractDef("splits-router", "splits_router.opt.wasm", "SplitsService"),
        ContractDef("permission-manager", "permission_manager.opt.wasm", "PermissionService"),
        ContractDef("identity-registry", "identity_registry.opt.wasm", "IdentityService"),
        ContractDef("bounty-adapter", "bounty_adapter.opt.wasm", "BountyService"),
        ContractDef("grow-token", "grow_token.opt.wasm", "VftService"),
    )
}

GROW_TOKEN = "grow-token"
STREAM_CORE = "stream-core"


@dataclass(frozen=True)
class WiringCall:
    """``target.<service>.<method>(program_id_of(argument))``"""

    target: str
    method: str
    argument: str
    required: bool = True

    @property
    def service(self) -> str:
        return CONTRACTS[self.target].service

    @property
    def label(self) -> str:
        return f"{self.target}.{self.method}({self.argument})"


WIRING: tuple[WiringCall, ...] = (
    WiringCall("token-vault", "SetStreamCore", "stream-core"),
    WiringCall("stream-core", "SetTokenVault", "token-vault"),
    WiringCall("permission-manager", "SetStreamCore", "stream-core", required=False),
    WiringCall("bounty-adapter", "SetStreamCore", "stream-core", required=False),
    WiringCall("bounty-adapter", "SetIdentityRegistry", "identity-registry", required=False),
)
