"""Drive node blocks through the transfer pipeline.

The indexer fetches blocks by height, reshapes them with
:func:`~ordinal_ledger.ordinals.blocks.block_from_node_json` and hands them
to a :class:`~ordinal_ledger.ordinals.pipeline.BlockTransferPipeline`. Blocks
are processed strictly in height order; indexing resumes at the stored tip.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from ordinal_ledger.ordinals.blocks import block_from_node_json
from ordinal_ledger.ordinals.index_store import EntityStore
from ordinal_ledger.ordinals.pipeline import BlockTransferPipeline, BlockTransferResult

logger = logging.getLogger(__name__)


@dataclass
class OrdinalScanConfig:
    """Height range for an indexing run.

    ``start_height`` defaults to the block after the stored tip (or 0 for an
    empty ledger) and ``end_height`` to the node's best height. ``limit`` caps
    the number of blocks processed.
    """

    start_height: Optional[int] = None
    end_height: Optional[int] = None
    limit: Optional[int] = None


class OrdinalIndexer:
    """Index a height range from a node into an entity store."""

    def __init__(self, rpc_client, store: EntityStore, pipeline: BlockTransferPipeline | None = None) -> None:
        """Initialize the indexer.

        Args:
            rpc_client: A :class:`~ordinal_ledger.rpc_client.BitcoinRPCClient`
                or any object offering ``get_best_height`` and
                ``getblock_by_height``.
            store: Where derived state is written.
            pipeline: Optional pipeline; one bound to ``store`` is built by default.
        """

        self.rpc_client = rpc_client
        self.store = store
        self.pipeline = pipeline or BlockTransferPipeline(store)

    def _height_bounds(self, config: OrdinalScanConfig) -> Tuple[int, int]:
        if config.start_height is not None:
            start_height = config.start_height
        else:
            tip = self.store.tip_height()
            start_height = tip + 1 if tip is not None else 0
        end_height = config.end_height if config.end_height is not None else self.rpc_client.get_best_height()
        return start_height, end_height

    def _iter_block_range(self, start_height: int, end_height: int, limit: Optional[int]) -> Iterable[dict]:
        yielded = 0
        for height in range(start_height, end_height + 1):
            if limit is not None and yielded >= limit:
                break
            yield self.rpc_client.getblock_by_height(height)
            yielded += 1

    def index_block(self, block_json: dict) -> BlockTransferResult:
        """Process one verbosity-2 block payload."""

        record = block_from_node_json(block_json)
        result = self.pipeline.process_block(record)
        logger.info(
            "Indexed block %d: %d output(s) created, %d input(s) spent, %d inscription(s)",
            record.height,
            len(result.created_utxos),
            len(result.spent_utxos),
            len(result.inscriptions),
        )
        return result

    def index_range(self, config: OrdinalScanConfig) -> List[BlockTransferResult]:
        """Index every block in the configured range, stopping at the first failure."""

        start_height, end_height = self._height_bounds(config)
        if start_height > end_height:
            logger.info("Ledger is up to date at height %d", start_height - 1)
            return []

        results: List[BlockTransferResult] = []
        for block_json in self._iter_block_range(start_height, end_height, config.limit):
            results.append(self.index_block(block_json))
        return results


__all__ = ["OrdinalIndexer", "OrdinalScanConfig"]
