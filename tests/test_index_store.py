from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from ordinal_ledger.model import (
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
from ordinal_ledger.ordinals.codec import decode_ranges, encode_ranges
from ordinal_ledger.ordinals.index_store import InMemoryEntityStore, SQLiteEntityStore, StoreError
from ordinal_ledger.ordinals.pipeline import BlockTransferPipeline, MissingUTXOError
from ordinal_ledger.ordinals.ranges import OrdinalRangeSet


def _inscription(inscription_id: str, ordinal: int, **kwargs) -> Inscription:
    return Inscription(
        id=inscription_id,
        ordinal=ordinal,
        genesis_transaction="reveal",
        genesis_utxo="commit:0",
        genesis_offset=0,
        **kwargs,
    )


def test_sqlite_round_trips_entities(tmp_path: Path) -> None:
    store = SQLiteEntityStore(tmp_path / "ledger.sqlite")
    ordinals = encode_ranges(OrdinalRangeSet.from_pairs([(0, 20), (40, 10)]))

    store.save_block(Block(height=3, timestamp=1234, reward=55, subsidy=50, fees=5))
    store.save_transaction(Transaction(txid="t1", idx=1, amount=30, block=3))
    store.save_utxo(Utxo(id="t1:0", address="bc1q", amount=30, unspent=True, transaction="t1", height=3, ordinals=ordinals))
    store.save_inscription(
        _inscription("t1i0", 5, content=b"\x00\x01", content_type="image/png", metadata="a1", location="t1:0", location_offset=5)
    )
    store.close()

    reopened = SQLiteEntityStore(tmp_path / "ledger.sqlite")
    assert reopened.load_block(3) == Block(height=3, timestamp=1234, reward=55, subsidy=50, fees=5)
    assert reopened.tip_height() == 3
    assert reopened.load_transaction("t1") == Transaction(txid="t1", idx=1, amount=30, block=3, fee=0)
    utxo = reopened.load_utxo("t1:0")
    assert utxo.unspent is True
    assert utxo.transaction == "t1"
    assert decode_ranges(utxo.ordinals).to_pairs() == [(0, 20), (40, 10)]
    inscription = reopened.load_inscription("t1i0")
    assert inscription.content == b"\x00\x01"
    assert inscription.content_type == "image/png"
    assert inscription.location == "t1:0"
    assert inscription.location_offset == 5
    assert reopened.load_utxo("missing:0") is None
    reopened.close()


def test_sqlite_empty_store_has_no_tip() -> None:
    store = SQLiteEntityStore(":memory:")

    assert store.tip_height() is None
    assert list(store.iter_unspent_utxos()) == []


def test_sqlite_lists_only_unspent_utxos() -> None:
    store = SQLiteEntityStore(":memory:")
    store.save_utxo(Utxo(id="a:0", address=None, amount=1, unspent=True, transaction="a", height=1))
    store.save_utxo(Utxo(id="b:0", address=None, amount=1, unspent=False, transaction="b", height=1, spent_in="c"))

    assert [utxo.id for utxo in store.iter_unspent_utxos()] == ["a:0"]
    assert store.load_utxo("b:0").spent_in == "c"


@pytest.mark.parametrize("store_factory", [InMemoryEntityStore, lambda: SQLiteEntityStore(":memory:")])
def test_inscriptions_in_range_is_half_open(store_factory) -> None:
    store = store_factory()
    for inscription_id, ordinal in (("low", 9), ("start", 10), ("inside", 14), ("end", 15)):
        store.save_inscription(_inscription(inscription_id, ordinal))

    found = store.inscriptions_in_range(10, 15)

    assert [inscription.id for inscription in found] == ["start", "inside"]


@pytest.mark.parametrize("store_factory", [InMemoryEntityStore, lambda: SQLiteEntityStore(":memory:")])
def test_atomic_rolls_back_on_error(store_factory) -> None:
    store = store_factory()
    store.save_block(Block(height=0, timestamp=0, reward=50, subsidy=50, fees=0))

    with pytest.raises(RuntimeError):
        with store.atomic():
            store.save_block(Block(height=1, timestamp=1, reward=50, subsidy=50, fees=0))
            assert store.tip_height() == 1
            raise RuntimeError("boom")

    assert store.tip_height() == 0
    assert store.load_block(1) is None


@pytest.mark.parametrize("store_factory", [InMemoryEntityStore, lambda: SQLiteEntityStore(":memory:")])
def test_find_unspent_utxo_by_ordinal(store_factory) -> None:
    store = store_factory()
    holder = Utxo(
        id="a:0",
        address="bc1a",
        amount=15,
        unspent=True,
        transaction="a",
        height=1,
        ordinals=encode_ranges(OrdinalRangeSet.from_pairs([(0, 10), (40, 5)])),
    )
    store.save_utxo(holder)
    store.save_utxo(
        Utxo(
            id="b:0",
            address="bc1b",
            amount=30,
            unspent=True,
            transaction="b",
            height=1,
            ordinals=encode_ranges(OrdinalRangeSet.from_pairs([(10, 30)])),
        )
    )

    assert store.find_unspent_utxo(42).id == "a:0"
    assert store.find_unspent_utxo(15).id == "b:0"
    assert store.find_unspent_utxo(45) is None

    holder.unspent = False
    holder.spent_in = "c"
    store.save_utxo(holder)

    assert store.find_unspent_utxo(42) is None
    assert store.find_unspent_utxo(39).id == "b:0"


def test_in_memory_store_copies_records() -> None:
    store = InMemoryEntityStore()
    utxo = Utxo(id="a:0", address=None, amount=1, unspent=True, transaction="a", height=1)
    store.save_utxo(utxo)

    utxo.unspent = False
    loaded = store.load_utxo("a:0")
    loaded.spent_in = "elsewhere"

    assert store.load_utxo("a:0").unspent is True
    assert store.load_utxo("a:0").spent_in is None


def test_codec_version_mismatch_is_rejected(tmp_path: Path) -> None:
    db_path = tmp_path / "ledger.sqlite"
    SQLiteEntityStore(db_path).close()
    conn = sqlite3.connect(db_path)
    conn.execute("UPDATE meta SET value = '99' WHERE key = 'range_codec_version'")
    conn.commit()
    conn.close()

    with pytest.raises(StoreError):
        SQLiteEntityStore(db_path)


def _block(height: int, *regular: RegularTransaction) -> OrdinalBlockRecord:
    coinbase = CoinbaseTransaction(
        txid=f"cb{height}",
        idx=0,
        amount=50,
        assignments=[CoinbaseAssignment(utxo=f"cb{height}:0", start=height * 50, size=50, address="miner")],
    )
    return OrdinalBlockRecord(
        height=height, timestamp=height, miner_reward=50, subsidy=50, fees=0, txs=[coinbase, *regular]
    )


def test_pipeline_on_sqlite_store_persists_and_rolls_back(tmp_path: Path) -> None:
    store = SQLiteEntityStore(tmp_path / "ledger.sqlite")
    pipeline = BlockTransferPipeline(store)
    pipeline.process_block(_block(0))
    spend = RegularTransaction(
        txid="t1",
        idx=1,
        amount=40,
        input_utxos=["cb0:0"],
        assignments=[RelativeAssignment("t1:0", "alice", 20), RelativeAssignment("t1:1", "bob", 20)],
        inscriptions=[InscriptionRecord(id="t1i0", content=b"gm", pointer=21)],
    )
    broken = RegularTransaction(txid="t2", idx=2, amount=1, input_utxos=["ghost:0"], assignments=[])

    with pytest.raises(MissingUTXOError):
        pipeline.process_block(_block(1, spend, broken))
    assert store.tip_height() == 0
    assert store.load_utxo("cb0:0").unspent is True
    assert store.load_inscription("t1i0") is None

    pipeline.process_block(_block(1, spend))
    store.close()

    reopened = SQLiteEntityStore(tmp_path / "ledger.sqlite")
    assert decode_ranges(reopened.load_utxo("t1:1").ordinals).to_pairs() == [(20, 20)]
    assert decode_ranges(reopened.load_utxo("cb1:0").ordinals).to_pairs() == [(50, 50), (40, 10)]
    assert reopened.load_inscription("t1i0").location == "t1:1"
    assert reopened.load_inscription("t1i0").location_offset == 1
    reopened.close()
