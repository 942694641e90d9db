"""Command-line interface for the ordinal ledger.

``index`` pulls blocks from a node into a local SQLite ledger; the remaining
commands query that ledger without touching the node.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any, Sequence

from .config import ConfigurationError, load_index_config, load_rpc_config
from .model import Inscription
from .ordinals import (
    ConservationError,
    LedgerIntegrityError,
    OrdinalIndexer,
    OrdinalLedgerView,
    OrdinalPosition,
    OrdinalScanConfig,
    RangeCodecError,
    SQLiteEntityStore,
    StoreError,
    decode_ranges,
    format_ranges,
)
from .rpc_client import BitcoinRPCClient, RPCError, RPCTransportError, format_rpc_hint

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class CLIError(RuntimeError):
    """Raised when CLI arguments are invalid."""


def _add_json_flag(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--json", dest="as_json", action="store_true", help="Emit JSON output")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Ordinal ledger CLI")
    parser.add_argument("--config", help="Path to a YAML config file (default: ~/.ordinal-ledger.yaml)")
    parser.add_argument("--db", help="SQLite ledger path (overrides config)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    index_parser = subparsers.add_parser("index", help="Index blocks from a node into the ledger")
    index_parser.add_argument("--start-height", type=int, help="First height (default: stored tip + 1)")
    index_parser.add_argument("--end-height", type=int, help="Last height (default: node best height)")
    index_parser.add_argument("--limit", type=int, help="Maximum number of blocks to process")
    index_parser.add_argument("--rpc-url", help="Node RPC endpoint, e.g. http://127.0.0.1:8332")
    index_parser.add_argument("--rpc-user", help="Node RPC username")
    index_parser.add_argument("--rpc-password", help="Node RPC password")
    _add_json_flag(index_parser)

    utxo_parser = subparsers.add_parser("utxo", help="Show a UTXO's ordinal ranges")
    utxo_parser.add_argument("utxo_id", help="UTXO id as txid:vout")
    _add_json_flag(utxo_parser)

    find_parser = subparsers.add_parser("find-ordinal", help="Find the unspent UTXO holding an ordinal")
    find_parser.add_argument("ordinal", type=int)
    _add_json_flag(find_parser)

    inscription_parser = subparsers.add_parser("inscription", help="Show an inscription and where it is now")
    inscription_parser.add_argument("inscription_id")
    _add_json_flag(inscription_parser)

    at_parser = subparsers.add_parser("inscription-at", help="List inscriptions at a UTXO offset")
    at_parser.add_argument("utxo_id")
    at_parser.add_argument("offset", type=int)
    _add_json_flag(at_parser)

    decode_parser = subparsers.add_parser("decode-ranges", help="Decode a hex-encoded range blob")
    decode_parser.add_argument("hex_data")
    _add_json_flag(decode_parser)

    return parser


def _open_store(args: argparse.Namespace) -> SQLiteEntityStore:
    index_config = load_index_config(
        config_path=args.config,
        overrides={"db_path": args.db} if args.db else None,
    )
    return SQLiteEntityStore(index_config.db_path)


def _position_to_dict(position: OrdinalPosition | None) -> dict[str, Any] | None:
    if position is None:
        return None
    return {
        "ordinal": position.ordinal,
        "utxo": position.utxo,
        "offset": position.offset,
        "address": position.address,
    }


def _inscription_to_dict(inscription: Inscription) -> dict[str, Any]:
    return {
        "id": inscription.id,
        "ordinal": inscription.ordinal,
        "content_type": inscription.content_type,
        "content_length": len(inscription.content),
        "genesis_transaction": inscription.genesis_transaction,
        "genesis_utxo": inscription.genesis_utxo,
        "genesis_offset": inscription.genesis_offset,
        "genesis_address": inscription.genesis_address,
        "location": inscription.location,
        "location_offset": inscription.location_offset,
    }


def cmd_index(args: argparse.Namespace) -> None:
    rpc_config = load_rpc_config(
        config_path=args.config,
        overrides={
            "endpoint": args.rpc_url,
            "user": args.rpc_user,
            "password": args.rpc_password,
        },
    )
    index_config = load_index_config(
        config_path=args.config,
        overrides={
            "db_path": args.db,
            "start_height": args.start_height,
            "end_height": args.end_height,
            "limit": args.limit,
        },
    )
    scan = OrdinalScanConfig(
        start_height=index_config.start_height,
        end_height=index_config.end_height,
        limit=index_config.limit,
    )
    with SQLiteEntityStore(index_config.db_path) as store:
        indexer = OrdinalIndexer(BitcoinRPCClient(rpc_config), store)
        results = indexer.index_range(scan)

    if args.as_json:
        print(
            json.dumps(
                [
                    {
                        "height": result.height,
                        "created_utxos": len(result.created_utxos),
                        "spent_utxos": len(result.spent_utxos),
                        "inscriptions": result.inscriptions,
                        "fee_ordinals": result.fee_ordinals.size,
                    }
                    for result in results
                ],
                indent=2,
            )
        )
        return
    if not results:
        print("No new blocks to index.")
        return
    print(f"Indexed {len(results)} block(s): heights {results[0].height} to {results[-1].height}")


def cmd_utxo(args: argparse.Namespace) -> None:
    with _open_store(args) as store:
        utxo = store.load_utxo(args.utxo_id)
    if utxo is None:
        raise CLIError(f"unknown UTXO {args.utxo_id}")
    ranges = decode_ranges(utxo.ordinals)
    if args.as_json:
        print(
            json.dumps(
                {
                    "id": utxo.id,
                    "address": utxo.address,
                    "amount": utxo.amount,
                    "unspent": utxo.unspent,
                    "spent_in": utxo.spent_in,
                    "ranges": ranges.to_pairs(),
                },
                indent=2,
            )
        )
        return
    status = "unspent" if utxo.unspent else f"spent in {utxo.spent_in}"
    print(f"{utxo.id} ({utxo.address or '-'}) amount {utxo.amount}, {status}")
    print(f"  ranges: {format_ranges(ranges)}")


def cmd_find_ordinal(args: argparse.Namespace) -> None:
    with _open_store(args) as store:
        position = OrdinalLedgerView(store).find_ordinal(args.ordinal)
    if args.as_json:
        print(json.dumps(_position_to_dict(position), indent=2))
        return
    if position is None:
        print(f"Ordinal {args.ordinal} is not held by any unspent UTXO.")
        return
    print(f"Ordinal {position.ordinal} is in {position.utxo} at offset {position.offset}")


def cmd_inscription(args: argparse.Namespace) -> None:
    with _open_store(args) as store:
        inscription = store.load_inscription(args.inscription_id)
        if inscription is None:
            raise CLIError(f"unknown inscription {args.inscription_id}")
        position = OrdinalLedgerView(store).locate_inscription(args.inscription_id)
    if args.as_json:
        payload = _inscription_to_dict(inscription)
        payload["current"] = _position_to_dict(position)
        print(json.dumps(payload, indent=2))
        return
    print(f"{inscription.id}: ordinal {inscription.ordinal} ({inscription.content_type or 'unknown type'})")
    print(f"  genesis: {inscription.genesis_utxo} offset {inscription.genesis_offset}")
    if position is None:
        print("  current: not held by an unspent UTXO")
    else:
        print(f"  current: {position.utxo} offset {position.offset}")


def cmd_inscription_at(args: argparse.Namespace) -> None:
    with _open_store(args) as store:
        inscriptions = OrdinalLedgerView(store).inscriptions_at(args.utxo_id, args.offset)
    if args.as_json:
        print(json.dumps([_inscription_to_dict(i) for i in inscriptions], indent=2))
        return
    if not inscriptions:
        print(f"No inscriptions at {args.utxo_id} offset {args.offset}.")
        return
    for inscription in inscriptions:
        print(f"{inscription.id} (ordinal {inscription.ordinal})")


def cmd_decode_ranges(args: argparse.Namespace) -> None:
    try:
        raw = bytes.fromhex(args.hex_data)
    except ValueError as exc:
        raise CLIError(f"invalid hex data: {args.hex_data}") from exc
    ranges = decode_ranges(raw)
    if args.as_json:
        print(json.dumps(ranges.to_pairs()))
        return
    print(format_ranges(ranges))


def main(argv: Sequence[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    try:
        if args.command == "index":
            cmd_index(args)
        elif args.command == "utxo":
            cmd_utxo(args)
        elif args.command == "find-ordinal":
            cmd_find_ordinal(args)
        elif args.command == "inscription":
            cmd_inscription(args)
        elif args.command == "inscription-at":
            cmd_inscription_at(args)
        elif args.command == "decode-ranges":
            cmd_decode_ranges(args)
        else:  # pragma: no cover - argparse enforces choices
            raise CLIError(f"Unknown command: {args.command}")
    except KeyboardInterrupt:  # pragma: no cover - interactive use
        logger.info("Interrupted by user")
    except RPCError as exc:
        hint = format_rpc_hint(exc)
        parser.exit(1, f"error: {exc}\n" + (f"hint: {hint}\n" if hint else ""))
    except (
        CLIError,
        ConfigurationError,
        RPCTransportError,
        StoreError,
        LedgerIntegrityError,
        ConservationError,
        RangeCodecError,
    ) as exc:
        parser.exit(1, f"error: {exc}\n")


if __name__ == "__main__":
    main(sys.argv[1:])
