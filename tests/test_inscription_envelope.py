from __future__ import annotations

import pytest

from ordinal_ledger.ordinals.inscriptions import (
    OP_ENDIF,
    OP_FALSE,
    OP_IF,
    _push_data,
    build_envelope_script,
    parse_envelopes,
    parse_inscriptions,
)

PARENT_TXID = "ab" * 31 + "cd"


def test_push_data_empty_is_op_false() -> None:
    assert _push_data(b"") == bytes([OP_FALSE])


def test_push_data_small_literal() -> None:
    data = b"x" * 10

    assert _push_data(data) == b"\x0a" + data


def test_push_data_op_pushdata1() -> None:
    data = b"x" * 100

    encoded = _push_data(data)

    assert encoded.startswith(b"\x4c\x64")
    assert len(encoded) == 2 + len(data)


def test_push_data_op_pushdata2() -> None:
    data = b"x" * 300

    encoded = _push_data(data)

    assert encoded.startswith(b"\x4d")
    assert encoded[1:3] == len(data).to_bytes(2, "little")
    assert len(encoded) == 1 + 2 + len(data)


def test_push_data_too_large() -> None:
    with pytest.raises(ValueError):
        _push_data(b"x" * 521)


def test_parse_envelope_fields_and_body() -> None:
    script = build_envelope_script(
        b"hello ordinals",
        content_type="text/plain;charset=utf-8",
        pointer=300,
        parent=f"{PARENT_TXID}i1",
        metaprotocol="brc-20",
        content_encoding="br",
    )

    records = parse_inscriptions("reveal", [script.hex()])

    assert len(records) == 1
    record = records[0]
    assert record.id == "reveali0"
    assert record.content == b"hello ordinals"
    assert record.content_type == "text/plain;charset=utf-8"
    assert record.pointer == 300
    assert record.parent == f"{PARENT_TXID}i1"
    assert record.metaprotocol == "brc-20"
    assert record.content_encoding == "br"
    assert record.metadata is None


def test_large_body_is_reassembled_from_chunks() -> None:
    body = bytes(range(256)) * 5

    envelopes = parse_envelopes(build_envelope_script(body, content_type="application/octet-stream"))

    assert len(envelopes) == 1
    assert envelopes[0].body == body


def test_metadata_chunks_are_concatenated_as_hex() -> None:
    script = (
        bytes([OP_FALSE, OP_IF])
        + _push_data(b"ord")
        + _push_data(b"\x05")
        + _push_data(b"\xa1\x61")
        + _push_data(b"\x05")
        + _push_data(b"\x61\x01")
        + _push_data(b"")
        + bytes([OP_ENDIF])
    )

    records = parse_inscriptions("tx", [script.hex()])

    assert records[0].metadata == "a1616101"
    assert records[0].content == b""
    assert records[0].pointer == 0


def test_multiple_envelopes_are_numbered_in_order() -> None:
    first = build_envelope_script(b"one", content_type="text/plain")
    second = build_envelope_script(b"two", content_type="text/plain")

    records = parse_inscriptions("abc", ["zz-not-hex", "30440220", (first + second).hex()])

    assert [record.id for record in records] == ["abci0", "abci1"]
    assert [record.content for record in records] == [b"one", b"two"]


def test_unterminated_envelope_is_ignored() -> None:
    script = build_envelope_script(b"cut short", content_type="text/plain")[:-1]

    assert parse_envelopes(script) == []


def test_script_without_envelope_yields_nothing() -> None:
    script = _push_data(b"ord") + _push_data(b"\x01")

    assert parse_envelopes(script) == []
    assert parse_inscriptions("tx", [script.hex()]) == []
