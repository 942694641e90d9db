"""Turn node ``getblock`` results into :class:`OrdinalBlockRecord` values.

Ordinals are numbered in the order they are mined: the subsidy of block
``h`` covers ``[first_ordinal(h), first_ordinal(h) + subsidy(h))``. This module
only reshapes node data for the transfer pipeline; it does not validate the
block against consensus rules.
"""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from ordinal_ledger.model import (
    CoinbaseAssignment,
    CoinbaseTransaction,
    OrdinalBlockRecord,
    RegularTransaction,
    RelativeAssignment,
)
from ordinal_ledger.ordinals.inscriptions import parse_inscriptions

logger = logging.getLogger(__name__)

COIN = 100_000_000
INITIAL_SUBSIDY = 50 * COIN
HALVING_INTERVAL = 210_000


def subsidy(height: int) -> int:
    """Return the block subsidy in sats at ``height``."""

    halvings = height // HALVING_INTERVAL
    if halvings >= 64:
        return 0
    return INITIAL_SUBSIDY >> halvings


def first_ordinal(height: int) -> int:
    """Return the first ordinal minted at ``height``: the supply of all earlier blocks."""

    total = 0
    epoch = 0
    while epoch * HALVING_INTERVAL < height:
        epoch_start = epoch * HALVING_INTERVAL
        blocks_in_epoch = min(height, epoch_start + HALVING_INTERVAL) - epoch_start
        total += blocks_in_epoch * subsidy(epoch_start)
        epoch += 1
    return total


def btc_to_sats(value: Any) -> int:
    """Convert a BTC amount reported by a node into an exact integer of sats."""

    try:
        amount = Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"invalid BTC amount: {value!r}") from exc
    sats = amount * COIN
    if sats != sats.to_integral_value():
        raise ValueError(f"BTC amount {value!r} has more than 8 decimal places")
    return int(sats)


def _address_from_output(vout: Dict[str, Any]) -> Optional[str]:
    script_pub_key = vout.get("scriptPubKey") or {}
    address = script_pub_key.get("address")
    if address:
        return address
    addresses = script_pub_key.get("addresses") or []
    return addresses[0] if addresses else None


def _txid(tx: Dict[str, Any]) -> str:
    txid = tx.get("txid") or tx.get("hash")
    if not txid:
        raise ValueError("transaction without a txid")
    return txid


def _coinbase_from_node_json(tx: Dict[str, Any], height: int) -> CoinbaseTransaction:
    """One assignment per output, each claiming exactly its value.

    The block's minted range is split across the outputs in order by value,
    so each assignment's ``start``/``size`` is the part of the subsidy that
    lands in it. Value beyond the subsidy is paid from fee ordinals.
    """

    txid = _txid(tx)
    minted_start = first_ordinal(height)
    minted_size = subsidy(height)

    assignments: List[CoinbaseAssignment] = []
    offset = 0
    for position, vout in enumerate(tx.get("vout", [])):
        value = btc_to_sats(vout.get("value", 0))
        minted_here = max(0, min(value, minted_size - offset))
        assignments.append(
            CoinbaseAssignment(
                utxo=f"{txid}:{vout.get('n', position)}",
                start=minted_start + offset,
                size=minted_here,
                address=_address_from_output(vout),
                amount=value,
            )
        )
        offset += minted_here

    if offset < minted_size:
        # Underclaimed subsidy still counts as minted; it is lost at the coinbase.
        if assignments:
            assignments[-1].size += minted_size - offset
        else:
            logger.warning("Coinbase %s has no outputs; %d minted ordinals are lost", txid, minted_size)

    return CoinbaseTransaction(
        txid=txid,
        idx=0,
        amount=sum(assignment.amount for assignment in assignments),
        assignments=assignments,
    )


def _regular_from_node_json(tx: Dict[str, Any], idx: int) -> RegularTransaction:
    txid = _txid(tx)
    input_utxos: List[str] = []
    witness_items: List[str] = []
    for vin in tx.get("vin", []):
        input_utxos.append(f"{vin['txid']}:{vin['vout']}")
        witness_items.extend(vin.get("txinwitness") or [])

    assignments = [
        RelativeAssignment(
            utxo=f"{txid}:{vout.get('n', position)}",
            address=_address_from_output(vout),
            size=btc_to_sats(vout.get("value", 0)),
        )
        for position, vout in enumerate(tx.get("vout", []))
    ]
    return RegularTransaction(
        txid=txid,
        idx=idx,
        amount=sum(assignment.size for assignment in assignments),
        input_utxos=input_utxos,
        assignments=assignments,
        inscriptions=parse_inscriptions(txid, witness_items),
    )


def block_from_node_json(block_json: Dict[str, Any]) -> OrdinalBlockRecord:
    """Build a block record from a verbosity-2 ``getblock`` response.

    The miner reward is the coinbase output total, and fees are whatever the
    reward claims beyond the subsidy.
    """

    height = int(block_json["height"])
    raw_txs = block_json.get("tx") or []
    if not raw_txs:
        raise ValueError(f"block {height} carries no transactions")
    if not isinstance(raw_txs[0], dict):
        raise ValueError(f"block {height} must be fetched with verbosity 2")

    coinbase = _coinbase_from_node_json(raw_txs[0], height)
    regular = [_regular_from_node_json(tx, idx) for idx, tx in enumerate(raw_txs[1:], start=1)]
    block_subsidy = subsidy(height)
    logger.debug("Decoded block %d with %d transaction(s)", height, len(raw_txs))
    return OrdinalBlockRecord(
        height=height,
        timestamp=int(block_json.get("time", 0)),
        miner_reward=coinbase.amount,
        subsidy=block_subsidy,
        fees=coinbase.amount - block_subsidy,
        txs=[coinbase, *regular],
    )


__all__ = [
    "COIN",
    "HALVING_INTERVAL",
    "block_from_node_json",
    "btc_to_sats",
    "first_ordinal",
    "subsidy",
]
