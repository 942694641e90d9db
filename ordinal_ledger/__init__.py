"""Ordinal ledger: per-UTXO ordinal range tracking and inscription binding."""

from .model import (
    Block,
    CoinbaseAssignment,
    CoinbaseTransaction,
    Inscription,
    InscriptionRecord,
    OrdinalBlockRecord,
    RegularTransaction,
    RelativeAssignment,
    Transaction,
    Utxo,
)
from .ordinals import (
    BlockTransferPipeline,
    BlockTransferResult,
    ConservationError,
    InMemoryEntityStore,
    LedgerIntegrityError,
    OrdinalLedgerView,
    OrdinalRange,
    OrdinalRangeSet,
    RangeCodecError,
    SQLiteEntityStore,
    decode_ranges,
    encode_ranges,
)

__all__ = [
    "Block",
    "CoinbaseAssignment",
    "CoinbaseTransaction",
    "Inscription",
    "InscriptionRecord",
    "OrdinalBlockRecord",
    "RegularTransaction",
    "RelativeAssignment",
    "Transaction",
    "Utxo",
    "BlockTransferPipeline",
    "BlockTransferResult",
    "ConservationError",
    "InMemoryEntityStore",
    "LedgerIntegrityError",
    "OrdinalLedgerView",
    "OrdinalRange",
    "OrdinalRangeSet",
    "RangeCodecError",
    "SQLiteEntityStore",
    "decode_ranges",
    "encode_ranges",
]
