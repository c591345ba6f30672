"""
SCALE primitives used by Sails programs on Vara.

Only the subset needed to build service calls and read simple replies:
compact lengths, strings, 32-byte actor ids and fixed-width little-endian
integers. Everything here is pure; no I/O.
"""

from __future__ import annotations

from ..utils import is_hex, strip_0x

COMPACT_SINGLE_MAX = 1 << 6
COMPACT_TWO_MAX = 1 << 14
COMPACT_FOUR_MAX = 1 << 30

ACTOR_ID_LEN = 32
U64_MAX = (1 << 64) - 1
U128_MAX = (1 << 128) - 1


class EncodingError(ValueError):
    """Value cannot be represented in the wire format."""

    exit_code: int = 1

    def __init__(self, message: str, reason: str = "Invalid") -> None:
        super().__init__(message)
        self.reason = reason


# ============ Encoding ============


def encode_compact_length(n: int) -> bytes:
    """
    Compact-encode an unsigned length prefix.

    Args:
        n: Value in ``[0, 2**30)``

    Returns:
        1, 2 or 4 bytes depending on magnitude

    Raises:
        EncodingError: If ``n`` is negative or ``>= 2**30``
    """
    if n < 0:
        raise EncodingError(f"Compact length must be non-negative, got {n}", reason="Negative")
    if n < COMPACT_SINGLE_MAX:
        return bytes([n << 2])
    if n < COMPACT_TWO_MAX:
        return ((n << 2) | 0b01).to_bytes(2, "little")
    if n < COMPACT_FOUR_MAX:
        return ((n << 2) | 0b10).to_bytes(4, "little")
    raise EncodingError(
        f"Value too large for compact encoding: {n} (max {COMPACT_FOUR_MAX - 1})",
        reason="ValueTooLarge",
    )


def encode_string(s: str) -> bytes:
    raw = s.encode("utf-8")
    return encode_compact_length(len(raw)) + raw


def encode_actor_id(hex_id: str) -> bytes:
    """
    Encode a 32-byte actor id from hex.

    Shorter inputs are left-padded with zero nibbles so the numeric value is
    preserved.

    Args:
        hex_id: Hex string, optionally ``0x``-prefixed

    Returns:
        Exactly 32 bytes

    Raises:
        EncodingError: On non-hex characters or more than 64 hex digits
    """
    clean = strip_0x(hex_id)
    if not is_hex(clean):
        raise EncodingError(f"Actor id is not hex: {hex_id!r}", reason="NotHex")
    if len(clean) > ACTOR_ID_LEN * 2:
        raise EncodingError(
            f"Actor id longer than {ACTOR_ID_LEN} bytes: {hex_id!r}", reason="TooLong"
        )
    return bytes.fromhex(clean.rjust(ACTOR_ID_LEN * 2, "0"))


def encode_u64_le(value: int) -> bytes:
    if not 0 <= value <= U64_MAX:
        raise EncodingError(f"u64 out of range: {value}", reason="OutOfRange")
    return value.to_bytes(8, "little")


def encode_u128_le(value: int) -> bytes:
    """Encode a u128 as two little-endian 64-bit halves, low half first."""
    if not 0 <= value <= U128_MAX:
        raise EncodingError(f"u128 out of range: {value}", reason="OutOfRange")
    low = value & U64_MAX
    high = value >> 64
    return low.to_bytes(8, "little") + high.to_bytes(8, "little")


def encode_bool(value: bool) -> bytes:
    return b"\x01" if value else b"\x00"


# ============ Decoding ============


def _require(data: bytes, offset: int, size: int, what: str) -> None:
    if offset < 0 or offset + size > len(data):
        raise EncodingError(
            f"Truncated input: need {size} bytes for {what} at offset {offset}, have {len(data)}",
            reason="Truncated",
        )


def decode_compact_length(data: bytes, offset: int = 0) -> tuple[int, int]:
    """
    Decode a compact length prefix.

    Returns:
        Tuple of (value, bytes_consumed)
    """
    _require(data, offset, 1, "compact prefix")
    mode = data[offset] & 0b11
    if mode == 0b00:
        return data[offset] >> 2, 1
    if mode == 0b01:
        _require(data, offset, 2, "compact u16")
        return int.from_bytes(data[offset:offset + 2], "little") >> 2, 2
    if mode == 0b10:
        _require(data, offset, 4, "compact u32")
        return int.from_bytes(data[offset:offset + 4], "little") >> 2, 4
    raise EncodingError("Big-integer compact mode is not supported", reason="Unsupported")


def decode_string(data: bytes, offset: int = 0) -> tuple[str, int]:
    """Decode a length-prefixed UTF-8 string. Returns (text, bytes_consumed)."""
    length, width = decode_compact_length(data, offset)
    start = offset + width
    _require(data, start, length, "string body")
    try:
        text = data[start:start + length].decode("utf-8")
    except UnicodeDecodeError as exc:
        raise EncodingError(f"String at offset {offset} is not UTF-8", reason="NotUtf8") from exc
    return text, width + length


def skip_strings(data: bytes | str, count: int) -> bytes:
    """Drop ``count`` leading strings, e.g. the service/method echo of a reply."""
    if isinstance(data, str):
        try:
            buf = bytes.fromhex(strip_0x(data))
        except ValueError as exc:
            raise EncodingError(f"Reply is not hex: {data!r}", reason="NotHex") from exc
    else:
        buf = bytes(data)
    offset = 0
    for _ in range(count):
        _, consumed = decode_string(buf, offset)
        offset += consumed
    return buf[offset:]


def decode_u64(data: bytes, offset: int = 0) -> int:
    _require(data, offset, 8, "u64")
    return int.from_bytes(data[offset:offset + 8], "little")


def decode_u128(data: bytes, offset: int = 0) -> int:
    _require(data, offset, 16, "u128")
    low = int.from_bytes(data[offset:offset + 8], "little")
    high = int.from_bytes(data[offset + 8:offset + 16], "little")
    return (high << 64) | low


def decode_actor_id(data: bytes, offset: int = 0) -> str:
    _require(data, offset, ACTOR_ID_LEN, "actor id")
    return "0x" + data[offset:offset + ACTOR_ID_LEN].hex()


def decode_bool(data: bytes, offset: int = 0) -> bool:
    _require(data, offset, 1, "bool")
    return data[offset] == 1
