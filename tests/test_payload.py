from __future__ import annotations

import pytest

from growstreams.pneuma.payload import (
    Payload,
    PayloadKind,
    build_constructor_payload,
    build_service_call_payload,
)
from growstreams.pneuma.scale import EncodingError, encode_actor_id, encode_string, encode_u128_le


class TestConstructorPayload:
    def test_no_args(self) -> None:
        payload = build_constructor_payload("New")
        assert bytes(payload) == b"\x0cNew"
        assert payload.kind is PayloadKind.CONSTRUCTOR

    def test_raw_args_appended(self) -> None:
        payload = build_constructor_payload("New", b"\x01\x02")
        assert bytes(payload) == b"\x0cNew\x01\x02"


class TestServiceCallPayload:
    def test_wiring_call_layout(self) -> None:
        stream_core = "0x" + "ab" * 32
        payload = build_service_call_payload("VaultService", "SetStreamCore", [encode_actor_id(stream_core)])
        data = bytes(payload)

        assert data == encode_string("VaultService") + encode_string("SetStreamCore") + b"\xab" * 32
        assert len(data) == 1 + 12 + 1 + 13 + 32
        assert payload.label == "VaultService.SetStreamCore"

    def test_args_keep_declaration_order(self) -> None:
        who = encode_actor_id("0x01")
        amount = encode_u128_le(5)
        payload = build_service_call_payload("VftService", "Mint", [who, amount])
        assert bytes(payload).endswith(who + amount)

    def test_single_bytes_value_is_one_argument(self) -> None:
        arg = b"\x01\x02\x03"
        assert bytes(build_service_call_payload("S", "M", arg)) == bytes(build_service_call_payload("S", "M", [arg]))

    def test_no_args(self) -> None:
        payload = build_service_call_payload("StreamService", "GetConfig")
        assert bytes(payload) == encode_string("StreamService") + encode_string("GetConfig")

    def test_hex(self) -> None:
        assert build_constructor_payload("New").hex() == "0x0c4e6577"


class TestRawPayload:
    def test_from_hex(self) -> None:
        payload = Payload.from_hex("0x0c4e6577", label="api")
        assert payload.kind is PayloadKind.RAW
        assert bytes(payload) == b"\x0cNew"
        assert len(payload) == 4

    def test_from_hex_rejects_garbage(self) -> None:
        with pytest.raises(EncodingError):
            Payload.from_hex("0xnot-hex")

    def test_from_hex_rejects_truncated_payload(self) -> None:
        with pytest.raises(EncodingError):
            Payload.from_hex("0x0c4e657")
