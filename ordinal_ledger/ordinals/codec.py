"""Binary encoding of ordinal range sets as stored on UTXO records."""

from __future__ import annotations

import struct
from typing import Iterable

from ordinal_ledger.ordinals.ranges import OrdinalRange, OrdinalRangeSet

RANGE_CODEC_VERSION = 1
RANGE_RECORD = struct.Struct("<QQ")
RANGE_RECORD_SIZE = RANGE_RECORD.size


class RangeCodecError(ValueError):
    """Raised when range bytes cannot be encoded or decoded."""


def encode_ranges(ranges: Iterable[OrdinalRange]) -> bytes:
    """Serialize ranges as consecutive little-endian ``(start, size)`` u64 pairs."""

    chunks = []
    for block in ranges:
        try:
            chunks.append(RANGE_RECORD.pack(block.start, block.size))
        except struct.error as exc:
            raise RangeCodecError(
                f"range ({block.start}, {block.size}) does not fit in two u64 values"
            ) from exc
    return b"".join(chunks)


def decode_ranges(data: bytes) -> OrdinalRangeSet:
    """Rebuild a range set from :func:`encode_ranges` output."""

    if len(data) % RANGE_RECORD_SIZE:
        raise RangeCodecError(
            f"range data is {len(data)} bytes, not a multiple of {RANGE_RECORD_SIZE}"
        )
    return OrdinalRangeSet(
        OrdinalRange(start, size) for start, size in RANGE_RECORD.iter_unpack(data)
    )


def format_ranges(ranges: Iterable[OrdinalRange]) -> str:
    """Render ranges as ``[start, end)`` intervals for display."""

    rendered = [f"[{block.start}, {block.end})" for block in ranges]
    return " ".join(rendered) if rendered else "(none)"


__all__ = [
    "RANGE_CODEC_VERSION",
    "RANGE_RECORD_SIZE",
    "RangeCodecError",
    "decode_ranges",
    "encode_ranges",
    "format_ranges",
]
