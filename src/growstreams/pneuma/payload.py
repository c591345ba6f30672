"""
Sails message payloads.

Constructor:   [str ctor_name][raw ctor args]
Service call:  [str service][str method][arg bytes, in declaration order]
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from ..utils import from_hex, to_hex
from .scale import EncodingError, encode_string


class PayloadKind(str, Enum):
    CONSTRUCTOR = "constructor"
    SERVICE_CALL = "service_call"
    RAW = "raw"


@dataclass(frozen=True)
class Payload:
    kind: PayloadKind
    data: bytes
    label: str = ""

    def __bytes__(self) -> bytes:
        return self.data

    def __len__(self) -> int:
        return len(self.data)

    def hex(self) -> str:
        return to_hex(self.data)

    @classmethod
    def from_hex(cls, value: str, label: str = "") -> "Payload":
        """Wrap a payload that was encoded elsewhere (e.g. by the API server)."""
        try:
            data = from_hex(value)
        except ValueError as exc:
            raise EncodingError(str(exc), reason="NotHex") from exc
        return cls(kind=PayloadKind.RAW, data=data, label=label)


def build_constructor_payload(constructor_name: str, arg_bytes: bytes = b"") -> Payload:
    return Payload(
        kind=PayloadKind.CONSTRUCTOR,
        data=encode_string(constructor_name) + bytes(arg_bytes),
        label=constructor_name,
    )


def build_service_call_payload(
    service_name: str,
    method_name: str,
    arg_bytes_list: Iterable[bytes] | bytes = (),
) -> Payload:
    """
    Build a service call payload.

    Args:
        service_name: Sails service, e.g. "VaultService"
        method_name: Method in PascalCase, e.g. "SetStreamCore"
        arg_bytes_list: Pre-encoded arguments in declaration order. A single
            ``bytes`` value is treated as one argument.

    Returns:
        Payload of kind SERVICE_CALL
    """
    if isinstance(arg_bytes_list, (bytes, bytearray)):
        args = bytes(arg_bytes_list)
    else:
        args = b"".join(bytes(a) for a in arg_bytes_list)
    return Payload(
        kind=PayloadKind.SERVICE_CALL,
        data=encode_string(service_name) + encode_string(method_name) + args,
        label=f"{service_name}.{method_name}",
    )
