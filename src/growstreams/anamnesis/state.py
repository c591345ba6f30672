"""
Deployment state store.

A single JSON file maps logical contract names to the program that was
deployed for them:

    {
      "stream-core": {
        "programId": "0x..", "codeId": "0x..",
        "deployedAt": "2026-01-01T00:00:00Z",
        "network": "vara-testnet", "node": "wss://testnet.vara.network"
      }
    }

``load`` treats a missing file as empty state; anything unreadable or
malformed is an error. ``save`` rewrites the whole file atomically. There is
no locking: concurrent runs against the same file are unsupported.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional

from ..utils import utc_now_rfc3339
from .schemas import DEPLOY_STATE_SCHEMA, SchemaValidationError, dump_json, validate_instance

logger = logging.getLogger(__name__)


class StateStoreError(RuntimeError):
    exit_code: int = 1


@dataclass(frozen=True)
class DeploymentRecord:
    name: str
    program_id: str
    code_id: str
    deployed_at: str
    network: str
    node: str

    @classmethod
    def create(cls, name: str, program_id: str, code_id: str, network: str, node: str) -> "DeploymentRecord":
        return cls(
            name=name,
            program_id=program_id,
            code_id=code_id,
            deployed_at=utc_now_rfc3339(),
            network=network,
            node=node,
        )

    @classmethod
    def from_dict(cls, name: str, payload: Mapping[str, Any]) -> "DeploymentRecord":
        return cls(
            name=name,
            program_id=payload["programId"],
            code_id=payload["codeId"],
            deployed_at=payload["deployedAt"],
            network=payload["network"],
            node=payload["node"],
        )

    def to_dict(self) -> dict[str, str]:
        return {
            "programId": self.program_id,
            "codeId": self.code_id,
            "deployedAt": self.deployed_at,
            "network": self.network,
            "node": self.node,
        }


DeploymentState = dict[str, DeploymentRecord]


@dataclass(frozen=True)
class DeploymentStore:
    path: Path

    def load(self) -> DeploymentState:
        if not self.path.exists():
            return {}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError) as exc:
            raise StateStoreError(f"Cannot read deployment state {self.path}: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise StateStoreError(f"Deployment state {self.path} is not valid JSON: {exc}") from exc

        try:
            validate_instance(raw, DEPLOY_STATE_SCHEMA, self.path.name)
        except SchemaValidationError as exc:
            details = "; ".join(exc.errors)
            raise StateStoreError(f"Deployment state {self.path} is malformed: {details}") from exc

        return {name: DeploymentRecord.from_dict(name, entry) for name, entry in raw.items()}

    def save(self, state: Mapping[str, DeploymentRecord]) -> None:
        payload = {name: record.to_dict() for name, record in state.items()}
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._atomic_write(self.path, dump_json(payload))
        logger.debug("saved %d deployment records to %s", len(payload), self.path)

    def get(self, name: str) -> Optional[DeploymentRecord]:
        return self.load().get(name)

    def put(self, record: DeploymentRecord) -> DeploymentState:
        """Insert or overwrite one record and persist. Returns the new state."""
        state = self.load()
        state[record.name] = record
        self.save(state)
        return state

    def is_deployed(self, name: str, network: str) -> bool:
        record = self.get(name)
        return record is not None and record.network == network

    def _atomic_write(self, path: Path, data: bytes) -> None:
        tmp = path.with_suffix(path.suffix + ".tmp")
        try:
            with tmp.open("wb") as handle:
                handle.write(data)
                handle.flush()
                os.fsync(handle.fileno())
            tmp.replace(path)
        except OSError as exc:
            tmp.unlink(missing_ok=True)
            raise StateStoreError(f"Cannot write deployment state {path}: {exc}") from exc
