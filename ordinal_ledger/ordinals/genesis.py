"""Bind newly declared inscriptions to absolute ordinal numbers.

An inscription's ``pointer`` is an offset into the ordinals a transaction
spends, taken in input order. Resolution happens before any of those ordinals
are handed to outputs, so the pointer always addresses the full input sequence.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from ordinal_ledger.model import Inscription, InscriptionRecord, RegularTransaction, Utxo
from ordinal_ledger.ordinals.ranges import ConservationError, OrdinalRangeSet

logger = logging.getLogger(__name__)


@dataclass
class GenesisResolution:
    """Where an inscription's pointer lands at genesis."""

    ordinal: int
    utxo: str
    offset: int


def resolve_genesis(
    input_utxos: Sequence[Utxo], input_ordinals: OrdinalRangeSet, pointer: int = 0
) -> GenesisResolution:
    """Resolve ``pointer`` to an ordinal and the input UTXO that holds it.

    ``input_ordinals`` must be the concatenation of the inputs' range sets in
    input order. A pointer past the end of the inputs is ignored and treated
    as zero.
    """

    total = input_ordinals.size
    if total == 0:
        raise ConservationError("cannot bind an inscription in a transaction that spends no ordinals")
    if pointer < 0 or pointer >= total:
        logger.warning("Inscription pointer %d is outside the %d input ordinals; using 0", pointer, total)
        pointer = 0

    ordinal = input_ordinals.get_nth(pointer)

    running_total = 0
    for utxo in input_utxos:
        if running_total + utxo.amount > pointer:
            return GenesisResolution(ordinal=ordinal, utxo=utxo.id, offset=pointer - running_total)
        running_total += utxo.amount

    raise ConservationError(
        f"input amounts total {running_total} but pointer {pointer} addresses {total} input ordinals"
    )


def create_genesis_inscription(
    tx: RegularTransaction,
    declared: InscriptionRecord,
    input_utxos: Sequence[Utxo],
    input_ordinals: OrdinalRangeSet,
) -> Inscription:
    """Build the persisted inscription for ``declared`` at its genesis point.

    The genesis address is the address of the transaction's first output,
    wherever the ordinal ends up.
    """

    resolution = resolve_genesis(input_utxos, input_ordinals, declared.pointer)
    genesis_address = tx.assignments[0].address if tx.assignments else None
    logger.debug(
        "Inscription %s bound to ordinal %d (genesis utxo %s offset %d)",
        declared.id,
        resolution.ordinal,
        resolution.utxo,
        resolution.offset,
    )
    return Inscription(
        id=declared.id,
        ordinal=resolution.ordinal,
        genesis_transaction=tx.txid,
        genesis_utxo=resolution.utxo,
        genesis_offset=resolution.offset,
        genesis_address=genesis_address,
        content=declared.content,
        content_type=declared.content_type,
        content_encoding=declared.content_encoding,
        metadata=declared.metadata,
        metaprotocol=declared.metaprotocol,
        parent=declared.parent,
        pointer=declared.pointer,
    )


__all__ = ["GenesisResolution", "create_genesis_inscription", "resolve_genesis"]
