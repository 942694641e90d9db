"""Domain models for the ordinal ledger.

Two families of records live here. Inbound records (``OrdinalBlockRecord`` and
the transaction/assignment types it carries) describe a decoded block exactly
as the transfer pipeline consumes it. Persisted entities (``Block``,
``Transaction``, ``Utxo`` and ``Inscription``) are what the pipeline writes to
an entity store and what queries read back.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Union


@dataclass
class CoinbaseAssignment:
    """Newly minted ordinals ``[start, start + size)`` credited to a coinbase output.

    ``amount`` is the output's value when it is known. The output then
    receives exactly that many ordinals from the block's pool of minted and
    fee ordinals. Without it the output receives ``size`` ordinals, and the
    last output absorbs whatever is left.
    """

    utxo: str
    start: int
    size: int
    address: Optional[str] = None
    amount: Optional[int] = None


@dataclass
class RelativeAssignment:
    """A regular transaction output receiving the next ``size`` input ordinals."""

    utxo: str
    address: Optional[str]
    size: int


@dataclass
class InscriptionRecord:
    """An inscription as declared by the transaction that creates it."""

    id: str
    content: bytes = b""
    content_type: Optional[str] = None
    pointer: int = 0
    parent: Optional[str] = None
    metadata: Optional[str] = None
    metaprotocol: Optional[str] = None
    content_encoding: Optional[str] = None


@dataclass
class CoinbaseTransaction:
    txid: str
    idx: int
    amount: int
    assignments: List[CoinbaseAssignment] = field(default_factory=list)


@dataclass
class RegularTransaction:
    txid: str
    idx: int
    amount: int
    input_utxos: List[str] = field(default_factory=list)
    assignments: List[RelativeAssignment] = field(default_factory=list)
    inscriptions: List[InscriptionRecord] = field(default_factory=list)


TransactionRecord = Union[CoinbaseTransaction, RegularTransaction]


@dataclass
class OrdinalBlockRecord:
    """A decoded block. ``txs[0]`` is the coinbase, the rest are regular transactions."""

    height: int
    timestamp: int
    miner_reward: int
    subsidy: int
    fees: int
    txs: List[TransactionRecord] = field(default_factory=list)

    @property
    def coinbase(self) -> CoinbaseTransaction:
        if not self.txs or not isinstance(self.txs[0], CoinbaseTransaction):
            raise ValueError(f"block {self.height} does not start with a coinbase transaction")
        return self.txs[0]

    @property
    def regular_transactions(self) -> List[RegularTransaction]:
        regular = self.txs[1:]
        for tx in regular:
            if not isinstance(tx, RegularTransaction):
                raise ValueError(f"block {self.height} has a coinbase transaction at index {tx.idx}")
        return list(regular)


@dataclass
class Block:
    height: int
    timestamp: int
    reward: int
    subsidy: int
    fees: int


@dataclass
class Transaction:
    """Persisted transaction. ``fee`` is reserved and currently always zero."""

    txid: str
    idx: int
    amount: int
    block: int
    fee: int = 0


@dataclass
class Utxo:
    """A transaction output and the encoded ordinal ranges it was created with.

    ``ordinals`` is written once at creation. Spending only flips ``unspent``
    and records ``spent_in``.
    """

    id: str
    address: Optional[str]
    amount: int
    unspent: bool
    transaction: str
    height: int
    ordinals: bytes = b""
    spent_in: Optional[str] = None


@dataclass
class Inscription:
    """An inscription bound to the absolute ordinal number ``ordinal``.

    ``location`` and ``location_offset`` name the output that first received
    the ordinal in the genesis transaction. They stay ``None`` when the
    ordinal went to the fee remainder instead.
    """

    id: str
    ordinal: int
    genesis_transaction: str
    genesis_utxo: str
    genesis_offset: int
    genesis_address: Optional[str] = None
    content: bytes = b""
    content_type: Optional[str] = None
    content_encoding: Optional[str] = None
    metadata: Optional[str] = None
    metaprotocol: Optional[str] = None
    parent: Optional[str] = None
    pointer: int = 0
    location: Optional[str] = None
    location_offset: Optional[int] = None


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
    "TransactionRecord",
    "Utxo",
]
