"""Ordinal range tracking and transfer engine.

This subpackage derives, block by block, which ordinals every UTXO holds and
where inscriptions are bound. Range algebra lives in ``ranges``, its persisted
form in ``codec``, inscription binding in ``genesis`` and the per-block
transfer in ``pipeline``. ``blocks`` and ``indexer`` feed node data through
the pipeline and ``ownership`` answers queries over the result.
"""

from ordinal_ledger.ordinals.blocks import block_from_node_json, btc_to_sats, first_ordinal, subsidy
from ordinal_ledger.ordinals.codec import (
    RANGE_CODEC_VERSION,
    RangeCodecError,
    decode_ranges,
    encode_ranges,
    format_ranges,
)
from ordinal_ledger.ordinals.genesis import GenesisResolution, create_genesis_inscription, resolve_genesis
from ordinal_ledger.ordinals.index_store import (
    EntityStore,
    InMemoryEntityStore,
    SQLiteEntityStore,
    StoreError,
)
from ordinal_ledger.ordinals.indexer import OrdinalIndexer, OrdinalScanConfig
from ordinal_ledger.ordinals.inscriptions import Envelope, parse_envelopes, parse_inscriptions
from ordinal_ledger.ordinals.ownership import OrdinalLedgerView, OrdinalPosition
from ordinal_ledger.ordinals.pipeline import (
    BlockOrderError,
    BlockTransferPipeline,
    BlockTransferResult,
    DuplicateEntityError,
    LedgerIntegrityError,
    MissingUTXOError,
    SpentUTXOError,
)
from ordinal_ledger.ordinals.ranges import (
    ConservationError,
    OrdinalRange,
    OrdinalRangeSet,
    RangeExhaustedError,
)

__all__ = [
    "OrdinalRange",
    "OrdinalRangeSet",
    "ConservationError",
    "RangeExhaustedError",
    "RANGE_CODEC_VERSION",
    "RangeCodecError",
    "encode_ranges",
    "decode_ranges",
    "format_ranges",
    "GenesisResolution",
    "resolve_genesis",
    "create_genesis_inscription",
    "BlockTransferPipeline",
    "BlockTransferResult",
    "LedgerIntegrityError",
    "MissingUTXOError",
    "SpentUTXOError",
    "DuplicateEntityError",
    "BlockOrderError",
    "EntityStore",
    "InMemoryEntityStore",
    "SQLiteEntityStore",
    "StoreError",
    "Envelope",
    "parse_envelopes",
    "parse_inscriptions",
    "block_from_node_json",
    "btc_to_sats",
    "first_ordinal",
    "subsidy",
    "OrdinalIndexer",
    "OrdinalScanConfig",
    "OrdinalLedgerView",
    "OrdinalPosition",
]
