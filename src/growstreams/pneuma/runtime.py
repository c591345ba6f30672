"""
Gear runtime connection backed by substrate-interface.

Builds ``Gear.upload_program`` / ``Gear.send_message`` calls, signs and
submits them with ``author_submitAndWatchExtrinsic`` and translates the raw
subscription messages into ``StatusUpdate`` objects for the tracker.
"""

from __future__ import annotations

import logging
import secrets
from typing import Any, Optional

from substrateinterface import ExtrinsicReceipt, Keypair, SubstrateInterface
from substrateinterface.exceptions import SubstrateRequestException

from ..utils import blake2b_256, to_hex
from .lifecycle import (
    ModuleError,
    RuntimeEvent,
    StatusCallback,
    StatusKind,
    StatusUpdate,
    SubmissionError,
    UploadTicket,
)
from .payload import Payload

logger = logging.getLogger(__name__)

VARA_SS58_FORMAT = 137
VARA_DECIMALS = 12

_PROGRAM_ID_SALT = b"program_from_user"


def code_id_for(code: bytes) -> bytes:
    return blake2b_256(code)


def program_id_for(code_id: bytes, salt: bytes) -> bytes:
    """Program id the runtime assigns to a user upload of ``code_id`` with ``salt``."""
    return blake2b_256(_PROGRAM_ID_SALT + code_id + salt)


def parse_status(status: Any) -> tuple[StatusKind, Optional[str]]:
    """
    Parse an extrinsic status from the subscription.

    Plain strings ("ready", "invalid", ...) carry no block; dict forms
    ({"inBlock": "0x.."}) carry a block hash or peer list.
    """
    if isinstance(status, str):
        return StatusKind(status), None
    if isinstance(status, dict) and len(status) == 1:
        (key, value), = status.items()
        block = value if isinstance(value, str) else None
        return StatusKind(key), block
    raise ValueError(f"Unrecognised extrinsic status: {status!r}")


class GearRuntime:
    def __init__(self, url: str, ss58_format: int = VARA_SS58_FORMAT) -> None:
        self.url = url
        try:
            self.substrate = SubstrateInterface(url=url, ss58_format=ss58_format)
        except (ConnectionError, OSError, SubstrateRequestException) as exc:
            raise SubmissionError(f"Cannot connect to {url}: {exc}") from exc

    @property
    def chain(self) -> str:
        return str(self.substrate.chain)

    def close(self) -> None:
        self.substrate.close()

    def __enter__(self) -> "GearRuntime":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    # ---- Queries ----

    def free_balance(self, address: str) -> int:
        try:
            info = self.substrate.query("System", "Account", [address])
        except SubstrateRequestException as exc:
            raise SubmissionError(f"Balance query failed for {address}: {exc}") from exc
        return int(info.value["data"]["free"])

    # ---- Calls ----

    def upload_program(
        self,
        code: bytes,
        payload: Payload,
        gas_limit: int,
        value: int = 0,
        salt: Optional[bytes] = None,
    ) -> UploadTicket:
        salt = salt if salt is not None else secrets.token_bytes(32)
        code_id = code_id_for(code)
        program_id = program_id_for(code_id, salt)
        try:
            call = self.substrate.compose_call(
                call_module="Gear",
                call_function="upload_program",
                call_params={
                    "code": to_hex(code),
                    "salt": to_hex(salt),
                    "init_payload": payload.hex(),
                    "gas_limit": gas_limit,
                    "value": value,
                    "keep_alive": False,
                },
            )
        except (ValueError, TypeError, OSError, SubstrateRequestException) as exc:
            raise SubmissionError(f"Could not build upload of {to_hex(code_id)}: {exc}") from exc
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
        return self.substrate.compose_call(
            call_module="Gear",
            call_function="send_message",
            call_params={
                "destination": destination,
                "payload": payload.hex(),
                "gas_limit": gas_limit,
                "value": value,
                "keep_alive": False,
            },
        )

    def submit(self, call: Any, keypair: Keypair, on_status: StatusCallback) -> None:
        try:
            extrinsic = self.substrate.create_signed_extrinsic(call=call, keypair=keypair)
        except (ValueError, TypeError, SubstrateRequestException) as exc:
            raise SubmissionError(f"Signing failed: {exc}") from exc

        extrinsic_hash = to_hex(extrinsic.extrinsic_hash)
        logger.info("submitting extrinsic %s", extrinsic_hash)

        def handler(message: dict, update_nr: int, subscription_id: str) -> Optional[StatusUpdate]:
            kind, block_hash = parse_status(message["params"]["result"])
            events: tuple[RuntimeEvent, ...] = ()
            events_error = None
            if kind is StatusKind.FINALIZED and block_hash:
                try:
                    events = self._events_for(extrinsic_hash, block_hash)
                except (KeyError, ValueError, OSError, SubstrateRequestException) as exc:
                    logger.error("could not read events of %s in %s: %s", extrinsic_hash, block_hash, exc)
                    events_error = str(exc)
            update = StatusUpdate(kind=kind, block_hash=block_hash, events=events, events_error=events_error)
            # A non-None return ends the subscription.
            return update if on_status(update) else None

        try:
            self.substrate.rpc_request(
                "author_submitAndWatchExtrinsic",
                [str(extrinsic.data)],
                result_handler=handler,
            )
        except SubstrateRequestException as exc:
            raise SubmissionError(f"Submission rejected: {exc}") from exc

    def _events_for(self, extrinsic_hash: str, block_hash: str) -> tuple[RuntimeEvent, ...]:
        receipt = ExtrinsicReceipt(
            substrate=self.substrate,
            extrinsic_hash=extrinsic_hash,
            block_hash=block_hash,
        )
        events = []
        for record in receipt.triggered_events:
            value = record.value
            events.append(
                RuntimeEvent(
                    section=value["module_id"],
                    method=value["event_id"],
                    data=value.get("attributes"),
                )
            )
        return tuple(events)

    # ---- Metadata ----

    def decode_module_error(self, module_index: int, error_index: int) -> ModuleError:
        metadata = self.substrate.metadata
        if metadata is None:
            self.substrate.init_runtime()
            metadata = self.substrate.metadata

        section = str(module_index)
        for pallet in metadata.pallets:
            if pallet.value["index"] == module_index:
                section = pallet.value["name"]
                break

        error = metadata.get_module_error(module_index=module_index, error_index=error_index)
        if error is None:
            return ModuleError(section=section, name=f"Error{error_index}")
        docs = error.docs
        if isinstance(docs, (list, tuple)):
            docs = " ".join(d.strip() for d in docs)
        return ModuleError(section=section, name=error.name, docs=docs or "")


def format_balance(free: int) -> str:
    return f"{free / 10 ** VARA_DECIMALS:.4f} VARA"
