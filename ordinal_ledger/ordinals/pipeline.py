"""Per-block transfer of ordinal ranges from spent inputs to new outputs.

Blocks are processed one at a time in height order. Within a block every
regular transaction is handled in order first: its inputs are spent, new
inscriptions are bound to ordinals, and the input ordinals are handed to the
outputs in declaration order. Whatever a transaction does not hand out is its
fee remainder. The remainders of all regular transactions are collected and
passed to the coinbase last, together with the block's newly minted ranges.

The fee accumulator is a local value threaded from the regular transactions to
the coinbase; the pipeline itself keeps no state between blocks beyond what it
writes to the store.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Sequence

from ordinal_ledger.model import (
    Block,
    CoinbaseAssignment,
    CoinbaseTransaction,
    Inscription,
    OrdinalBlockRecord,
    RegularTransaction,
    Transaction,
    Utxo,
)
from ordinal_ledger.ordinals.codec import decode_ranges, encode_ranges
from ordinal_ledger.ordinals.genesis import create_genesis_inscription
from ordinal_ledger.ordinals.index_store import EntityStore
from ordinal_ledger.ordinals.ranges import ConservationError, OrdinalRange, OrdinalRangeSet

logger = logging.getLogger(__name__)


class LedgerIntegrityError(RuntimeError):
    """Raised when a block references state the ledger does not hold."""


class MissingUTXOError(LedgerIntegrityError):
    """Raised when a transaction spends a UTXO that was never created."""


class SpentUTXOError(LedgerIntegrityError):
    """Raised when a transaction spends a UTXO that is already spent."""


class DuplicateEntityError(LedgerIntegrityError):
    """Raised when a block would create a block, UTXO or inscription twice."""


class BlockOrderError(LedgerIntegrityError):
    """Raised when a block does not extend the indexed chain tip."""


@dataclass
class BlockTransferResult:
    """Summary of one processed block.

    ``fee_ordinals`` is a copy of the remainder collected from regular
    transactions before the coinbase absorbed it. ``lost_ordinals`` holds
    what the coinbase outputs did not claim.
    """

    height: int
    minted: int = 0
    consumed: int = 0
    distributed: int = 0
    created_utxos: List[str] = field(default_factory=list)
    spent_utxos: List[str] = field(default_factory=list)
    inscriptions: List[str] = field(default_factory=list)
    fee_ordinals: OrdinalRangeSet = field(default_factory=OrdinalRangeSet)
    lost_ordinals: OrdinalRangeSet = field(default_factory=OrdinalRangeSet)


class BlockTransferPipeline:
    """Apply decoded blocks to an :class:`EntityStore`."""

    def __init__(self, store: EntityStore) -> None:
        self.store = store

    def process_block(self, block: OrdinalBlockRecord) -> BlockTransferResult:
        """Process ``block`` as a single unit of work.

        Any error rolls back every write made for the block before it
        propagates.
        """

        with self.store.atomic():
            return self._process_block(block)

    def _process_block(self, block: OrdinalBlockRecord) -> BlockTransferResult:
        logger.info("Processing block %d", block.height)
        self._check_extends_tip(block.height)
        coinbase = block.coinbase
        regular_transactions = block.regular_transactions

        self.store.save_block(
            Block(
                height=block.height,
                timestamp=block.timestamp,
                reward=block.miner_reward,
                subsidy=block.subsidy,
                fees=block.fees,
            )
        )

        result = BlockTransferResult(height=block.height)
        fee_ordinals = OrdinalRangeSet()
        for tx in regular_transactions:
            fee_ordinals.concat(self.process_regular_transaction(block.height, tx, result))

        result.fee_ordinals = fee_ordinals.copy()
        self.process_coinbase_transaction(block.height, coinbase, fee_ordinals, result)

        lost = result.lost_ordinals.size
        if result.distributed + lost != result.consumed + result.minted:
            raise ConservationError(
                f"block {block.height} distributed {result.distributed} ordinals and lost {lost} but "
                f"consumed {result.consumed} and minted {result.minted}"
            )
        logger.debug(
            "Block %d: %d ordinals consumed, %d minted, %d in fees",
            block.height,
            result.consumed,
            result.minted,
            result.fee_ordinals.size,
        )
        return result

    def _check_extends_tip(self, height: int) -> None:
        if self.store.load_block(height) is not None:
            raise DuplicateEntityError(f"block {height} has already been processed")
        tip = self.store.tip_height()
        if tip is not None and height != tip + 1:
            raise BlockOrderError(f"block {height} does not extend the indexed tip {tip}")

    def process_regular_transaction(
        self, height: int, tx: RegularTransaction, result: BlockTransferResult
    ) -> OrdinalRangeSet:
        """Spend ``tx``'s inputs, bind its inscriptions and fill its outputs.

        Returns the ordinals left over after every declared output was
        satisfied.
        """

        logger.debug("Processing regular transaction %s", tx.txid)
        input_utxos = self._load_inputs(tx)

        input_ordinals = OrdinalRangeSet()
        for utxo in input_utxos:
            input_ordinals.concat(decode_ranges(utxo.ordinals))
        consumed = input_ordinals.size

        declared = sum(assignment.size for assignment in tx.assignments)
        if declared > consumed:
            raise ConservationError(
                f"transaction {tx.txid} declares {declared} output ordinals but spends only {consumed}"
            )

        for utxo in input_utxos:
            utxo.unspent = False
            utxo.spent_in = tx.txid
            self.store.save_utxo(utxo)
            result.spent_utxos.append(utxo.id)
        result.consumed += consumed

        logger.debug("Binding %d inscription(s) in %s", len(tx.inscriptions), tx.txid)
        inscriptions: List[Inscription] = []
        for declared_inscription in tx.inscriptions:
            if self.store.load_inscription(declared_inscription.id) is not None:
                raise DuplicateEntityError(f"inscription {declared_inscription.id} already exists")
            inscriptions.append(
                create_genesis_inscription(tx, declared_inscription, input_utxos, input_ordinals)
            )

        logger.debug("Assigning ordinals to %d output(s) of %s", len(tx.assignments), tx.txid)
        for assignment in tx.assignments:
            utxo_ordinals = input_ordinals.take(assignment.size)
            utxo = self._create_utxo(
                assignment.utxo, assignment.address, tx.txid, height, utxo_ordinals, result
            )
            _locate_inscriptions(inscriptions, utxo, utxo_ordinals)

        for inscription in inscriptions:
            if inscription.location is None:
                logger.warning(
                    "Inscription %s is bound to ordinal %d, which went to fees",
                    inscription.id,
                    inscription.ordinal,
                )
            self.store.save_inscription(inscription)
            result.inscriptions.append(inscription.id)

        self._save_transaction(tx.txid, tx.idx, tx.amount, height)
        return input_ordinals

    def process_coinbase_transaction(
        self,
        height: int,
        tx: CoinbaseTransaction,
        fee_ordinals: OrdinalRangeSet,
        result: BlockTransferResult,
    ) -> None:
        """Distribute minted ranges and the block's fee remainder to the coinbase.

        Outputs are filled in order from the minted ranges followed by the
        fees. An output with a known ``amount`` takes exactly that many
        ordinals. Otherwise it takes its ``size``, and the last output also
        absorbs whatever is left. Ordinals no output claims are lost, as when
        a miner claims less than subsidy plus fees.

        A coinbase txid seen before (the two BIP30 duplicates on mainnet)
        replaces the earlier transaction and outputs; their ordinals are lost.
        """

        logger.debug("Processing coinbase transaction %s", tx.txid)
        coinbase_ordinals = OrdinalRangeSet(
            OrdinalRange(assignment.start, assignment.size) for assignment in tx.assignments
        )
        result.minted += coinbase_ordinals.size
        coinbase_ordinals.concat(fee_ordinals)

        available = coinbase_ordinals.size
        declared = sum(_claimed(assignment) for assignment in tx.assignments)
        if declared > available:
            raise ConservationError(
                f"coinbase {tx.txid} declares {declared} ordinals but only {available} are available"
            )
        if not tx.assignments and available:
            raise ConservationError(f"coinbase {tx.txid} has no outputs to absorb {available} ordinals")

        last = len(tx.assignments) - 1
        for position, assignment in enumerate(tx.assignments):
            if position == last and assignment.amount is None:
                size = coinbase_ordinals.size
            else:
                size = _claimed(assignment)
            utxo_ordinals = coinbase_ordinals.take(size)
            self._create_utxo(
                assignment.utxo, assignment.address, tx.txid, height, utxo_ordinals, result, replace=True
            )

        if coinbase_ordinals.size:
            logger.warning(
                "Coinbase %s leaves %d ordinal(s) unclaimed; they are lost",
                tx.txid,
                coinbase_ordinals.size,
            )
            result.lost_ordinals.concat(coinbase_ordinals)

        self._save_transaction(tx.txid, tx.idx, tx.amount, height, replace=True)

    def _load_inputs(self, tx: RegularTransaction) -> List[Utxo]:
        if len(set(tx.input_utxos)) != len(tx.input_utxos):
            raise LedgerIntegrityError(f"transaction {tx.txid} spends the same UTXO twice")

        utxos: List[Utxo] = []
        for utxo_id in tx.input_utxos:
            utxo = self.store.load_utxo(utxo_id)
            if utxo is None:
                logger.error("UTXO %s spent by %s does not exist", utxo_id, tx.txid)
                raise MissingUTXOError(f"UTXO {utxo_id} spent by {tx.txid} does not exist")
            if not utxo.unspent:
                logger.error("UTXO %s spent by %s was already spent in %s", utxo_id, tx.txid, utxo.spent_in)
                raise SpentUTXOError(f"UTXO {utxo_id} was already spent in {utxo.spent_in}")
            utxos.append(utxo)
        return utxos

    def _create_utxo(
        self,
        utxo_id: str,
        address: str | None,
        txid: str,
        height: int,
        ordinals: OrdinalRangeSet,
        result: BlockTransferResult,
        replace: bool = False,
    ) -> Utxo:
        if self.store.load_utxo(utxo_id) is not None:
            if not replace:
                raise DuplicateEntityError(f"UTXO {utxo_id} already exists")
            logger.warning("Coinbase output %s already exists; replacing it", utxo_id)
        utxo = Utxo(
            id=utxo_id,
            address=address,
            amount=ordinals.size,
            unspent=True,
            transaction=txid,
            height=height,
            ordinals=encode_ranges(ordinals),
        )
        self.store.save_utxo(utxo)
        result.created_utxos.append(utxo_id)
        result.distributed += utxo.amount
        return utxo

    def _save_transaction(self, txid: str, idx: int, amount: int, height: int, replace: bool = False) -> None:
        if self.store.load_transaction(txid) is not None:
            if not replace:
                raise DuplicateEntityError(f"transaction {txid} already exists")
            logger.warning("Coinbase transaction %s already exists; replacing it", txid)
        self.store.save_transaction(Transaction(txid=txid, idx=idx, amount=amount, block=height))


def _claimed(assignment: CoinbaseAssignment) -> int:
    return assignment.amount if assignment.amount is not None else assignment.size


def _locate_inscriptions(
    inscriptions: Sequence[Inscription], utxo: Utxo, utxo_ordinals: OrdinalRangeSet
) -> None:
    """Point unlocated inscriptions whose ordinal landed in ``utxo`` at it."""

    for inscription in inscriptions:
        if inscription.location is None and utxo_ordinals.contains(inscription.ordinal):
            inscription.location = utxo.id
            inscription.location_offset = utxo_ordinals.offset_of(inscription.ordinal)
            logger.debug(
                "Inscription %s located in %s at offset %d",
                inscription.id,
                utxo.id,
                inscription.location_offset,
            )


__all__ = [
    "BlockOrderError",
    "BlockTransferPipeline",
    "BlockTransferResult",
    "DuplicateEntityError",
    "LedgerIntegrityError",
    "MissingUTXOError",
    "SpentUTXOError",
]
