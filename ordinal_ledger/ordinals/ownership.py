"""Ownership queries over the derived ledger state."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from ordinal_ledger.model import Inscription
from ordinal_ledger.ordinals.codec import decode_ranges
from ordinal_ledger.ordinals.index_store import EntityStore
from ordinal_ledger.ordinals.ranges import RangeExhaustedError

logger = logging.getLogger(__name__)


@dataclass
class OrdinalPosition:
    """Where an ordinal currently sits: a UTXO and its offset in that UTXO's holdings."""

    ordinal: int
    utxo: str
    offset: int
    address: Optional[str]


class OrdinalLedgerView:
    """Answer "who holds what" questions against an :class:`EntityStore`."""

    def __init__(self, store: EntityStore) -> None:
        self.store = store

    def find_ordinal(self, ordinal: int) -> Optional[OrdinalPosition]:
        """Return the unspent UTXO holding ``ordinal``, if any."""

        utxo = self.store.find_unspent_utxo(ordinal)
        if utxo is None:
            return None
        return OrdinalPosition(
            ordinal=ordinal,
            utxo=utxo.id,
            offset=decode_ranges(utxo.ordinals).offset_of(ordinal),
            address=utxo.address,
        )

    def inscriptions_at(self, utxo_id: str, offset: int) -> List[Inscription]:
        """Return the inscriptions bound to the ordinal at ``offset`` in ``utxo_id``."""

        utxo = self.store.load_utxo(utxo_id)
        if utxo is None:
            return []
        try:
            ordinal = decode_ranges(utxo.ordinals).get_nth(offset)
        except RangeExhaustedError:
            logger.debug("Offset %d is beyond the holdings of %s", offset, utxo_id)
            return []
        return self.store.inscriptions_in_range(ordinal, ordinal + 1)

    def inscriptions_for_utxo(self, utxo_id: str) -> List[Inscription]:
        """Return every inscription whose ordinal is held by ``utxo_id``, in holding order."""

        utxo = self.store.load_utxo(utxo_id)
        if utxo is None:
            return []
        found: List[Inscription] = []
        for block in decode_ranges(utxo.ordinals):
            if block.size:
                found.extend(self.store.inscriptions_in_range(block.start, block.end))
        return found

    def locate_inscription(self, inscription_id: str) -> Optional[OrdinalPosition]:
        """Follow an inscription's ordinal to the UTXO that holds it now."""

        inscription = self.store.load_inscription(inscription_id)
        if inscription is None:
            return None
        return self.find_ordinal(inscription.ordinal)


__all__ = ["OrdinalLedgerView", "OrdinalPosition"]
