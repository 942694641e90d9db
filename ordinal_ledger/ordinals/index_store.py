"""Persistence for blocks, transactions, UTXOs and inscriptions."""

from __future__ import annotations

import copy
import dataclasses
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import ContextManager, Dict, Iterator, List, Optional

from ordinal_ledger.model import Block, Inscription, Transaction, Utxo
from ordinal_ledger.ordinals.codec import RANGE_CODEC_VERSION, decode_ranges


class StoreError(RuntimeError):
    """Raised when a store cannot be opened or used safely."""


class EntityStore:
    """Interface for loading and saving ledger entities.

    Reads must observe every write made earlier, including writes made inside
    an open :meth:`atomic` block.
    """

    def load_block(self, height: int) -> Optional[Block]:
        raise NotImplementedError

    def save_block(self, block: Block) -> None:
        raise NotImplementedError

    def tip_height(self) -> Optional[int]:
        raise NotImplementedError

    def load_transaction(self, txid: str) -> Optional[Transaction]:
        raise NotImplementedError

    def save_transaction(self, transaction: Transaction) -> None:
        raise NotImplementedError

    def load_utxo(self, utxo_id: str) -> Optional[Utxo]:
        raise NotImplementedError

    def save_utxo(self, utxo: Utxo) -> None:
        raise NotImplementedError

    def iter_unspent_utxos(self) -> Iterator[Utxo]:
        raise NotImplementedError

    def find_unspent_utxo(self, ordinal: int) -> Optional[Utxo]:
        """Return the unspent UTXO whose ranges hold ``ordinal``, if any."""

        raise NotImplementedError

    def load_inscription(self, inscription_id: str) -> Optional[Inscription]:
        raise NotImplementedError

    def save_inscription(self, inscription: Inscription) -> None:
        raise NotImplementedError

    def inscriptions_in_range(self, start: int, end: int) -> List[Inscription]:
        """Return inscriptions whose ordinal lies in ``[start, end)``."""

        raise NotImplementedError

    def atomic(self) -> ContextManager[None]:
        """Group writes so that they all persist or none do."""

        raise NotImplementedError


class InMemoryEntityStore(EntityStore):
    """Dictionary-backed store, mainly for tests and dry runs.

    Records are copied on the way in and out, so callers never share state
    with the store. ``atomic`` snapshots everything and restores it if the
    block raises.
    """

    def __init__(self) -> None:
        self.blocks: Dict[int, Block] = {}
        self.transactions: Dict[str, Transaction] = {}
        self.utxos: Dict[str, Utxo] = {}
        self.inscriptions: Dict[str, Inscription] = {}
        self._atomic_depth = 0

    def load_block(self, height: int) -> Optional[Block]:
        return _copy(self.blocks.get(height))

    def save_block(self, block: Block) -> None:
        self.blocks[block.height] = _copy(block)

    def tip_height(self) -> Optional[int]:
        return max(self.blocks) if self.blocks else None

    def load_transaction(self, txid: str) -> Optional[Transaction]:
        return _copy(self.transactions.get(txid))

    def save_transaction(self, transaction: Transaction) -> None:
        self.transactions[transaction.txid] = _copy(transaction)

    def load_utxo(self, utxo_id: str) -> Optional[Utxo]:
        return _copy(self.utxos.get(utxo_id))

    def save_utxo(self, utxo: Utxo) -> None:
        self.utxos[utxo.id] = _copy(utxo)

    def iter_unspent_utxos(self) -> Iterator[Utxo]:
        for utxo in list(self.utxos.values()):
            if utxo.unspent:
                yield _copy(utxo)

    def find_unspent_utxo(self, ordinal: int) -> Optional[Utxo]:
        for utxo in self.utxos.values():
            if utxo.unspent and decode_ranges(utxo.ordinals).contains(ordinal):
                return _copy(utxo)
        return None

    def load_inscription(self, inscription_id: str) -> Optional[Inscription]:
        return _copy(self.inscriptions.get(inscription_id))

    def save_inscription(self, inscription: Inscription) -> None:
        self.inscriptions[inscription.id] = _copy(inscription)

    def inscriptions_in_range(self, start: int, end: int) -> List[Inscription]:
        matches = [i for i in self.inscriptions.values() if start <= i.ordinal < end]
        return [_copy(i) for i in sorted(matches, key=lambda i: (i.ordinal, i.id))]

    @contextmanager
    def atomic(self) -> Iterator[None]:
        if self._atomic_depth:
            yield
            return
        snapshot = copy.deepcopy((self.blocks, self.transactions, self.utxos, self.inscriptions))
        self._atomic_depth += 1
        try:
            yield
        except BaseException:
            self.blocks, self.transactions, self.utxos, self.inscriptions = snapshot
            raise
        finally:
            self._atomic_depth -= 1


def _copy(record):
    return dataclasses.replace(record) if record is not None else None


class SQLiteEntityStore(EntityStore):
    """Persist the ledger to a local SQLite database."""

    DEFAULT_DB_PATH = Path.home() / ".ordinal-ledger" / "ledger.sqlite"

    def __init__(self, db_path: str | Path | None = None) -> None:
        if db_path == ":memory:":
            self.db_path = db_path
        else:
            self.db_path = Path(db_path) if db_path else self.DEFAULT_DB_PATH
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(self.db_path)
        self.conn.row_factory = sqlite3.Row
        self._atomic_depth = 0
        self._init_schema()

    def _init_schema(self) -> None:
        cursor = self.conn.cursor()
        cursor.execute("CREATE TABLE IF NOT EXISTS meta (key TEXT PRIMARY KEY, value TEXT NOT NULL)")
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS blocks (
                height INTEGER PRIMARY KEY,
                timestamp INTEGER NOT NULL,
                reward INTEGER NOT NULL,
                subsidy INTEGER NOT NULL,
                fees INTEGER NOT NULL
            )
            """
        )
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS transactions (
                txid TEXT PRIMARY KEY,
                idx INTEGER NOT NULL,
                amount INTEGER NOT NULL,
                fee INTEGER NOT NULL DEFAULT 0,
                block INTEGER NOT NULL
            )
            """
        )
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS utxos (
                id TEXT PRIMARY KEY,
                address TEXT,
                amount INTEGER NOT NULL,
                unspent INTEGER NOT NULL,
                tx TEXT NOT NULL,
                height INTEGER NOT NULL,
                ordinals BLOB NOT NULL,
                spent_in TEXT
            )
            """
        )
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS inscriptions (
                id TEXT PRIMARY KEY,
                ordinal INTEGER NOT NULL,
                genesis_transaction TEXT NOT NULL,
                genesis_utxo TEXT NOT NULL,
                genesis_offset INTEGER NOT NULL,
                genesis_address TEXT,
                content BLOB,
                content_type TEXT,
                content_encoding TEXT,
                metadata TEXT,
                metaprotocol TEXT,
                parent TEXT,
                pointer INTEGER NOT NULL DEFAULT 0,
                location TEXT,
                location_offset INTEGER
            )
            """
        )
        # Ranges of unspent UTXOs only; these never overlap.
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS utxo_ranges (
                utxo TEXT NOT NULL,
                start INTEGER NOT NULL,
                "end" INTEGER NOT NULL
            )
            """
        )
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_utxo_ranges_start ON utxo_ranges(start)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_utxo_ranges_utxo ON utxo_ranges(utxo)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_utxos_unspent ON utxos(unspent)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_inscriptions_ordinal ON inscriptions(ordinal)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_inscriptions_location ON inscriptions(location)")

        row = cursor.execute("SELECT value FROM meta WHERE key = 'range_codec_version'").fetchone()
        if row is None:
            cursor.execute(
                "INSERT INTO meta (key, value) VALUES ('range_codec_version', ?)",
                (str(RANGE_CODEC_VERSION),),
            )
        elif int(row["value"]) != RANGE_CODEC_VERSION:
            self.conn.close()
            raise StoreError(
                f"{self.db_path} stores ranges with codec version {row['value']}, "
                f"this build reads version {RANGE_CODEC_VERSION}"
            )
        self.conn.commit()

    def close(self) -> None:
        self.conn.close()

    def __enter__(self) -> "SQLiteEntityStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @contextmanager
    def atomic(self) -> Iterator[None]:
        if self._atomic_depth:
            yield
            return
        self._atomic_depth += 1
        try:
            yield
        except BaseException:
            self.conn.rollback()
            raise
        else:
            self.conn.commit()
        finally:
            self._atomic_depth -= 1

    def _write(self, sql: str, params: dict) -> None:
        self.conn.execute(sql, params)
        if not self._atomic_depth:
            self.conn.commit()

    def load_block(self, height: int) -> Optional[Block]:
        row = self.conn.execute(
            "SELECT height, timestamp, reward, subsidy, fees FROM blocks WHERE height = ?", (height,)
        ).fetchone()
        return Block(**dict(row)) if row else None

    def save_block(self, block: Block) -> None:
        self._write(
            """
            INSERT OR REPLACE INTO blocks (height, timestamp, reward, subsidy, fees)
            VALUES (:height, :timestamp, :reward, :subsidy, :fees)
            """,
            dataclasses.asdict(block),
        )

    def tip_height(self) -> Optional[int]:
        row = self.conn.execute("SELECT MAX(height) AS tip FROM blocks").fetchone()
        return row["tip"] if row else None

    def load_transaction(self, txid: str) -> Optional[Transaction]:
        row = self.conn.execute(
            "SELECT txid, idx, amount, block, fee FROM transactions WHERE txid = ?", (txid,)
        ).fetchone()
        return Transaction(**dict(row)) if row else None

    def save_transaction(self, transaction: Transaction) -> None:
        self._write(
            """
            INSERT OR REPLACE INTO transactions (txid, idx, amount, fee, block)
            VALUES (:txid, :idx, :amount, :fee, :block)
            """,
            dataclasses.asdict(transaction),
        )

    def load_utxo(self, utxo_id: str) -> Optional[Utxo]:
        row = self.conn.execute(
            "SELECT id, address, amount, unspent, tx, height, ordinals, spent_in FROM utxos WHERE id = ?",
            (utxo_id,),
        ).fetchone()
        return self._row_to_utxo(row) if row else None

    def save_utxo(self, utxo: Utxo) -> None:
        self._write(
            """
            INSERT OR REPLACE INTO utxos (id, address, amount, unspent, tx, height, ordinals, spent_in)
            VALUES (:id, :address, :amount, :unspent, :tx, :height, :ordinals, :spent_in)
            """,
            {
                "id": utxo.id,
                "address": utxo.address,
                "amount": utxo.amount,
                "unspent": int(utxo.unspent),
                "tx": utxo.transaction,
                "height": utxo.height,
                "ordinals": sqlite3.Binary(utxo.ordinals),
                "spent_in": utxo.spent_in,
            },
        )
        self._write("DELETE FROM utxo_ranges WHERE utxo = :utxo", {"utxo": utxo.id})
        if utxo.unspent:
            for block in decode_ranges(utxo.ordinals):
                if block.size:
                    self._write(
                        'INSERT INTO utxo_ranges (utxo, start, "end") VALUES (:utxo, :start, :end)',
                        {"utxo": utxo.id, "start": block.start, "end": block.end},
                    )

    def find_unspent_utxo(self, ordinal: int) -> Optional[Utxo]:
        row = self.conn.execute(
            'SELECT utxo, "end" FROM utxo_ranges WHERE start <= ? ORDER BY start DESC LIMIT 1',
            (ordinal,),
        ).fetchone()
        if row is None or ordinal >= row["end"]:
            return None
        return self.load_utxo(row["utxo"])

    def iter_unspent_utxos(self) -> Iterator[Utxo]:
        cursor = self.conn.execute(
            "SELECT id, address, amount, unspent, tx, height, ordinals, spent_in FROM utxos "
            "WHERE unspent = 1 ORDER BY height, id"
        )
        for row in cursor.fetchall():
            yield self._row_to_utxo(row)

    def load_inscription(self, inscription_id: str) -> Optional[Inscription]:
        row = self.conn.execute("SELECT * FROM inscriptions WHERE id = ?", (inscription_id,)).fetchone()
        return self._row_to_inscription(row) if row else None

    def save_inscription(self, inscription: Inscription) -> None:
        params = dataclasses.asdict(inscription)
        params["content"] = sqlite3.Binary(inscription.content)
        self._write(
            """
            INSERT OR REPLACE INTO inscriptions (
                id, ordinal, genesis_transaction, genesis_utxo, genesis_offset, genesis_address,
                content, content_type, content_encoding, metadata, metaprotocol, parent, pointer,
                location, location_offset
            )
            VALUES (
                :id, :ordinal, :genesis_transaction, :genesis_utxo, :genesis_offset, :genesis_address,
                :content, :content_type, :content_encoding, :metadata, :metaprotocol, :parent, :pointer,
                :location, :location_offset
            )
            """,
            params,
        )

    def inscriptions_in_range(self, start: int, end: int) -> List[Inscription]:
        rows = self.conn.execute(
            "SELECT * FROM inscriptions WHERE ordinal >= ? AND ordinal < ? ORDER BY ordinal, id",
            (start, end),
        ).fetchall()
        return [self._row_to_inscription(row) for row in rows]

    def _row_to_utxo(self, row: sqlite3.Row) -> Utxo:
        return Utxo(
            id=row["id"],
            address=row["address"],
            amount=row["amount"],
            unspent=bool(row["unspent"]),
            transaction=row["tx"],
            height=row["height"],
            ordinals=bytes(row["ordinals"]),
            spent_in=row["spent_in"],
        )

    def _row_to_inscription(self, row: sqlite3.Row) -> Inscription:
        values = dict(row)
        values["content"] = bytes(values["content"] or b"")
        return Inscription(**values)


__all__ = ["EntityStore", "InMemoryEntityStore", "SQLiteEntityStore", "StoreError"]
