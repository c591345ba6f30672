from __future__ import annotations

import hashlib
import string
from datetime import datetime, timezone

_HEX_DIGITS = frozenset(string.hexdigits)


def blake2b_256(data: bytes) -> bytes:
    return hashlib.blake2b(data, digest_size=32).digest()


def utc_now_rfc3339() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def strip_0x(value: str) -> str:
    if value.startswith(("0x", "0X")):
        return value[2:]
    return value


def is_hex(value: str) -> bool:
    return all(c in _HEX_DIGITS for c in value)


def to_hex(data: bytes) -> str:
    return "0x" + data.hex()


def from_hex(value: str) -> bytes:
    cleaned = strip_0x(value.strip())
    if not is_hex(cleaned):
        raise ValueError(f"Not a hex string: {value!r}")
    if len(cleaned) % 2:
        raise ValueError(f"Odd-length hex string: {value!r}")
    return bytes.fromhex(cleaned)


def short_hex(value: str, keep: int = 18) -> str:
    """Shorten a long hex id for terminal output."""
    if len(value) <= keep:
        return value
    return value[:keep] + "..."
