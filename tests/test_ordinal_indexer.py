from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from ordinal_ledger.ordinals.blocks import COIN
from ordinal_ledger.ordinals.index_store import InMemoryEntityStore
from ordinal_ledger.ordinals.indexer import OrdinalIndexer, OrdinalScanConfig
from ordinal_ledger.ordinals.inscriptions import build_envelope_script
from ordinal_ledger.ordinals.ownership import OrdinalLedgerView


@dataclass
class MockRPC:
    blocks: dict
    requested: list = field(default_factory=list)

    def get_best_height(self) -> int:
        return max(self.blocks)

    def getblock_by_height(self, height: int) -> dict:
        self.requested.append(height)
        return self.blocks[height]


def _coinbase(height: int, btc: str) -> dict:
    return {
        "txid": f"cb{height}",
        "vin": [{"coinbase": "00"}],
        "vout": [{"n": 0, "value": Decimal(btc), "scriptPubKey": {"address": "miner"}}],
    }


def _build_chain() -> MockRPC:
    reveal = build_envelope_script(b"hello", content_type="text/plain", pointer=25 * COIN)
    spend = {
        "txid": "t1",
        "vin": [{"txid": "cb0", "vout": 0, "txinwitness": ["00", reveal.hex()]}],
        "vout": [
            {"n": 0, "value": Decimal("20"), "scriptPubKey": {"address": "alice"}},
            {"n": 1, "value": Decimal("20"), "scriptPubKey": {"address": "bob"}},
        ],
    }
    blocks = {
        0: {"height": 0, "time": 1, "tx": [_coinbase(0, "50")]},
        1: {"height": 1, "time": 2, "tx": [_coinbase(1, "60"), spend]},
        2: {"height": 2, "time": 3, "tx": [_coinbase(2, "50")]},
    }
    return MockRPC(blocks=blocks)


def test_index_range_processes_blocks_in_order() -> None:
    rpc = _build_chain()
    store = InMemoryEntityStore()
    indexer = OrdinalIndexer(rpc, store)

    results = indexer.index_range(OrdinalScanConfig())

    assert rpc.requested == [0, 1, 2]
    assert [result.height for result in results] == [0, 1, 2]
    assert store.tip_height() == 2
    assert results[1].fee_ordinals.to_pairs() == [(40 * COIN, 10 * COIN)]


def test_index_range_resumes_after_tip_and_honours_limit() -> None:
    rpc = _build_chain()
    store = InMemoryEntityStore()
    indexer = OrdinalIndexer(rpc, store)

    first = indexer.index_range(OrdinalScanConfig(limit=1))
    rest = indexer.index_range(OrdinalScanConfig())
    nothing = indexer.index_range(OrdinalScanConfig())

    assert [result.height for result in first] == [0]
    assert [result.height for result in rest] == [1, 2]
    assert nothing == []
    assert rpc.requested == [0, 1, 2]


def test_ledger_view_follows_ordinals_and_inscriptions() -> None:
    store = InMemoryEntityStore()
    OrdinalIndexer(_build_chain(), store).index_range(OrdinalScanConfig())
    view = OrdinalLedgerView(store)

    position = view.find_ordinal(25 * COIN)
    assert position.utxo == "t1:1"
    assert position.offset == 5 * COIN
    assert position.address == "bob"

    fee_position = view.find_ordinal(45 * COIN)
    assert fee_position.utxo == "cb1:0"
    assert fee_position.offset == 55 * COIN

    assert view.find_ordinal(0).utxo == "t1:0"
    assert view.find_ordinal(200 * COIN) is None

    inscription = store.load_inscription("t1i0")
    assert inscription.content == b"hello"
    assert inscription.location == "t1:1"

    assert [i.id for i in view.inscriptions_at("t1:1", 5 * COIN)] == ["t1i0"]
    assert view.inscriptions_at("t1:1", 5 * COIN + 1) == []
    assert view.inscriptions_at("t1:1", 20 * COIN) == []
    assert view.inscriptions_at("missing:0", 0) == []
    assert [i.id for i in view.inscriptions_for_utxo("t1:1")] == ["t1i0"]
    assert view.inscriptions_for_utxo("t1:0") == []
    assert view.locate_inscription("t1i0").utxo == "t1:1"
    assert view.locate_inscription("unknown") is None


def test_spent_ordinal_is_not_reported_at_old_location() -> None:
    store = InMemoryEntityStore()
    OrdinalIndexer(_build_chain(), store).index_range(OrdinalScanConfig())

    assert store.load_utxo("cb0:0").unspent is False
    assert OrdinalLedgerView(store).find_ordinal(10 * COIN).utxo == "t1:0"
