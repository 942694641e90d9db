"""Decoding helpers for ordinal inscription envelopes.

Inscriptions are carried in tapscript envelopes of the form::

    OP_FALSE OP_IF "ord" <tag> <value> ... OP_0 <body> ... OP_ENDIF

Tag/value pairs come first; an empty push marks the start of the body, whose
pushes are concatenated. Only the fields the ledger stores are interpreted;
unknown tags are kept on the :class:`Envelope` but otherwise ignored.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from ordinal_ledger.model import InscriptionRecord

logger = logging.getLogger(__name__)

ORD_PROTOCOL_ID = b"ord"

OP_FALSE = 0x00
OP_PUSHDATA1 = 0x4C
OP_PUSHDATA2 = 0x4D
OP_PUSHDATA4 = 0x4E
OP_1NEGATE = 0x4F
OP_1 = 0x51
OP_16 = 0x60
OP_IF = 0x63
OP_ENDIF = 0x68

TAG_CONTENT_TYPE = 1
TAG_POINTER = 2
TAG_PARENT = 3
TAG_METADATA = 5
TAG_METAPROTOCOL = 7
TAG_CONTENT_ENCODING = 9

MAX_SCRIPT_ELEMENT_SIZE = 520


@dataclass
class Envelope:
    """Raw fields and body of one ``ord`` envelope."""

    fields: Dict[int, List[bytes]] = field(default_factory=dict)
    body: bytes = b""

    def first(self, tag: int) -> Optional[bytes]:
        values = self.fields.get(tag)
        return values[0] if values else None


def _iter_instructions(script: bytes) -> Iterator[Tuple[int, Optional[bytes]]]:
    """Yield ``(opcode, pushed_bytes)`` pairs; non-push opcodes carry ``None``.

    Small-integer opcodes are reported as one-byte pushes. Iteration stops at
    a truncated push.
    """

    pos = 0
    length = len(script)
    while pos < length:
        op = script[pos]
        pos += 1
        if op == OP_FALSE:
            yield op, b""
        elif op < OP_PUSHDATA1:
            end = pos + op
            if end > length:
                return
            yield op, script[pos:end]
            pos = end
        elif op in (OP_PUSHDATA1, OP_PUSHDATA2, OP_PUSHDATA4):
            width = {OP_PUSHDATA1: 1, OP_PUSHDATA2: 2, OP_PUSHDATA4: 4}[op]
            if pos + width > length:
                return
            size = int.from_bytes(script[pos : pos + width], "little")
            pos += width
            end = pos + size
            if end > length:
                return
            yield op, script[pos:end]
            pos = end
        elif op == OP_1NEGATE:
            yield op, b"\x81"
        elif OP_1 <= op <= OP_16:
            yield op, bytes([op - OP_1 + 1])
        else:
            yield op, None


def parse_envelopes(script: bytes) -> List[Envelope]:
    """Return every well-formed ``ord`` envelope found in ``script``."""

    instructions = list(_iter_instructions(script))
    envelopes: List[Envelope] = []
    index = 0
    while index + 2 < len(instructions):
        opcode, _ = instructions[index]
        next_opcode, _ = instructions[index + 1]
        _, protocol = instructions[index + 2]
        if opcode != OP_FALSE or next_opcode != OP_IF or protocol != ORD_PROTOCOL_ID:
            index += 1
            continue

        pushes: List[bytes] = []
        cursor = index + 3
        complete = False
        while cursor < len(instructions):
            opcode, data = instructions[cursor]
            cursor += 1
            if opcode == OP_ENDIF:
                complete = True
                break
            if data is None:
                break
            pushes.append(data)

        if complete:
            envelopes.append(_build_envelope(pushes))
        else:
            logger.debug("Skipping unterminated or malformed ord envelope at instruction %d", index)
        index = cursor
    return envelopes


def _build_envelope(pushes: List[bytes]) -> Envelope:
    envelope = Envelope()
    position = 0
    while position < len(pushes):
        tag = pushes[position]
        if tag == b"":
            envelope.body = b"".join(pushes[position + 1 :])
            break
        if position + 1 >= len(pushes):
            logger.debug("Dropping incomplete envelope field %s", tag.hex())
            break
        tag_number = int.from_bytes(tag, "little")
        envelope.fields.setdefault(tag_number, []).append(pushes[position + 1])
        position += 2
    return envelope


def _decode_text(value: Optional[bytes]) -> Optional[str]:
    if value is None:
        return None
    return value.decode("utf-8", errors="replace")


def _decode_pointer(value: Optional[bytes]) -> Optional[int]:
    if value is None:
        return None
    if len(value) > 8 and any(value[8:]):
        return None
    return int.from_bytes(value[:8], "little")


def _decode_parent(value: Optional[bytes]) -> Optional[str]:
    """Decode a parent id: 32-byte txid (reversed) plus an optional LE index."""

    if value is None or len(value) < 32 or len(value) > 36:
        return None
    txid = value[:32][::-1].hex()
    index = int.from_bytes(value[32:], "little") if len(value) > 32 else 0
    return f"{txid}i{index}"


def envelope_to_inscription(inscription_id: str, envelope: Envelope) -> InscriptionRecord:
    metadata_chunks = envelope.fields.get(TAG_METADATA)
    pointer = _decode_pointer(envelope.first(TAG_POINTER))
    return InscriptionRecord(
        id=inscription_id,
        content=envelope.body,
        content_type=_decode_text(envelope.first(TAG_CONTENT_TYPE)),
        pointer=pointer if pointer is not None else 0,
        parent=_decode_parent(envelope.first(TAG_PARENT)),
        metadata=b"".join(metadata_chunks).hex() if metadata_chunks else None,
        metaprotocol=_decode_text(envelope.first(TAG_METAPROTOCOL)),
        content_encoding=_decode_text(envelope.first(TAG_CONTENT_ENCODING)),
    )


def parse_inscriptions(txid: str, witness_items: Iterable[str]) -> List[InscriptionRecord]:
    """Decode the inscriptions carried in a transaction's witness data.

    ``witness_items`` are hex strings as reported by a node. Items that are
    not valid hex are skipped. Inscriptions are numbered ``{txid}i0``,
    ``{txid}i1`` ... in the order their envelopes appear.
    """

    inscriptions: List[InscriptionRecord] = []
    for item in witness_items:
        try:
            script = bytes.fromhex(item)
        except (TypeError, ValueError):
            logger.debug("Skipping non-hex witness item in %s", txid)
            continue
        if ORD_PROTOCOL_ID not in script:
            continue
        for envelope in parse_envelopes(script):
            inscriptions.append(envelope_to_inscription(f"{txid}i{len(inscriptions)}", envelope))
    return inscriptions


def _push_data(data: bytes) -> bytes:
    """Encode ``data`` as a single minimal script push."""

    length = len(data)
    if length > MAX_SCRIPT_ELEMENT_SIZE:
        raise ValueError(f"push of {length} bytes exceeds the {MAX_SCRIPT_ELEMENT_SIZE}-byte limit")
    if length == 0:
        return bytes([OP_FALSE])
    if length < OP_PUSHDATA1:
        return bytes([length]) + data
    if length <= 0xFF:
        return bytes([OP_PUSHDATA1, length]) + data
    return bytes([OP_PUSHDATA2]) + length.to_bytes(2, "little") + data


def build_envelope_script(
    body: bytes,
    *,
    content_type: str | None = None,
    pointer: int | None = None,
    parent: str | None = None,
    metaprotocol: str | None = None,
    content_encoding: str | None = None,
) -> bytes:
    """Assemble an ``ord`` envelope carrying ``body`` and the given fields."""

    parts = [bytes([OP_FALSE, OP_IF]), _push_data(ORD_PROTOCOL_ID)]

    def add_field(tag: int, value: bytes) -> None:
        parts.append(_push_data(bytes([tag])))
        parts.append(_push_data(value))

    if content_type is not None:
        add_field(TAG_CONTENT_TYPE, content_type.encode("utf-8"))
    if pointer is not None:
        add_field(TAG_POINTER, pointer.to_bytes(8, "little").rstrip(b"\x00") or b"\x00")
    if parent is not None:
        parent_txid, _, parent_index = parent.partition("i")
        raw_parent = bytes.fromhex(parent_txid)[::-1]
        index = int(parent_index or 0)
        if index:
            raw_parent += index.to_bytes(4, "little").rstrip(b"\x00")
        add_field(TAG_PARENT, raw_parent)
    if metaprotocol is not None:
        add_field(TAG_METAPROTOCOL, metaprotocol.encode("utf-8"))
    if content_encoding is not None:
        add_field(TAG_CONTENT_ENCODING, content_encoding.encode("utf-8"))

    parts.append(_push_data(b""))
    for offset in range(0, len(body), MAX_SCRIPT_ELEMENT_SIZE):
        parts.append(_push_data(body[offset : offset + MAX_SCRIPT_ELEMENT_SIZE]))
    parts.append(bytes([OP_ENDIF]))
    return b"".join(parts)


__all__ = [
    "Envelope",
    "ORD_PROTOCOL_ID",
    "build_envelope_script",
    "envelope_to_inscription",
    "parse_envelopes",
    "parse_inscriptions",
]
