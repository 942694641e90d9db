"""JSON-RPC client for Bitcoin Core style nodes.

The indexer only reads from the node: chain height, block hashes and
verbosity-2 blocks. Amounts are parsed as :class:`~decimal.Decimal` so that
conversion to sats is exact. Connection settings come from
:func:`~ordinal_ledger.config.load_rpc_config`.
"""

from __future__ import annotations

import json
import logging
import uuid
from decimal import Decimal
from typing import Any, Dict, Optional

import requests
from requests import RequestException, Response

from .config import ConfigurationError, RPCConfig, load_rpc_config

logger = logging.getLogger(__name__)


class RPCError(RuntimeError):
    """Raised when the node responds with an RPC error."""

    def __init__(self, code: int, message: str) -> None:
        super().__init__(f"RPC error {code}: {message}")
        self.code = code
        self.message = message


def format_rpc_hint(error_obj: dict[str, Any] | RPCError | None) -> str | None:
    """Return a short remediation hint for common node errors while indexing."""

    if error_obj is None:
        return None

    code = None
    message = ""
    if isinstance(error_obj, RPCError):
        code = error_obj.code
        message = error_obj.message
    elif isinstance(error_obj, dict):
        code = error_obj.get("code")
        message = str(error_obj.get("message", ""))

    if code == -28:
        return "The node is still warming up (loading blocks or verifying the chain). Retry in a moment."
    if code == -8 and "out of range" in message.lower():
        return "The requested height is above the node's chain tip. Lower --end-height or wait for sync."
    if code == -5 and "block not found" in message.lower():
        return "The node does not have that block. Pruned nodes cannot serve old blocks to the indexer."
    if code == -1 and "prune" in message.lower():
        return "Block data was pruned. Index against an unpruned node (prune=0)."
    return None


class RPCTransportError(RuntimeError):
    """Raised when the RPC endpoint is unreachable or returns malformed data."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class BitcoinRPCClient:
    """Thin JSON-RPC client exposing the read calls the indexer needs."""

    def __init__(self, config: RPCConfig, timeout: float = 30) -> None:
        self.config = config
        self.timeout = timeout
        self._session = requests.Session()
        self._url = config.base_url

    @classmethod
    def from_env(cls) -> "BitcoinRPCClient":
        """Instantiate a client using environment variables or config file."""

        return cls(load_rpc_config())

    def call(self, method: str, params: Optional[list[Any]] = None) -> Any:
        """Perform a JSON-RPC request."""

        payload = {
            "jsonrpc": "1.0",
            "id": str(uuid.uuid4()),
            "method": method,
            "params": params or [],
        }
        logger.debug("RPC call %s params=%s", method, params)
        try:
            response = self._session.post(
                self._url,
                data=json.dumps(payload),
                headers={"content-type": "application/json"},
                auth=(self.config.user, self.config.password),
                timeout=self.timeout,
            )
        except RequestException as exc:
            logger.error(
                "RPC connection failed: %s",
                exc,
                exc_info=logger.isEnabledFor(logging.DEBUG),
            )
            raise RPCTransportError(
                "RPC connection failed. Ensure the node is reachable and BTC_RPC_* variables "
                "(or ~/.ordinal-ledger.yaml) point to the right host, port and credentials."
            ) from exc

        if response.status_code == 401:
            raise RPCTransportError(
                "Unauthorized (401). Check BTC_RPC_USER/BTC_RPC_PASSWORD or the rpc section of your config.",
                status_code=401,
            )
        try:
            result = response.json(parse_float=Decimal)
        except ValueError as exc:
            self._raise_for_status(response)
            logger.debug("RPC JSON parse error: %s", response.text, exc_info=True)
            raise RPCTransportError("RPC server returned malformed JSON") from exc

        # Bitcoin Core reports RPC errors with HTTP 500 and a JSON body.
        if result.get("error"):
            error = result["error"]
            raise RPCError(error.get("code", -1), error.get("message", "unknown"))
        self._raise_for_status(response)
        return result.get("result")

    def _raise_for_status(self, response: Response) -> None:
        try:
            response.raise_for_status()
        except requests.HTTPError as exc:
            logger.error("RPC HTTP error %s from %s", response.status_code, response.url)
            raise RPCTransportError(
                "RPC server returned an HTTP error; check the URL and BTC_RPC_* settings.",
                status_code=response.status_code,
            ) from exc

    def getblockcount(self) -> int:
        return int(self.call("getblockcount"))

    def getblockhash(self, height: int) -> str:
        return self.call("getblockhash", [height])

    def getblock(self, block_hash: str, verbosity: int = 1) -> Dict[str, Any]:
        return self.call("getblock", [block_hash, verbosity])

    def getblock_by_height(self, height: int) -> Dict[str, Any]:
        """Retrieve a block JSON payload by height using verbosity=2."""

        block_hash = self.getblockhash(height)
        return self.getblock(block_hash, verbosity=2)

    def get_best_height(self) -> int:
        """Return the current best chain height."""

        return self.getblockcount()


__all__ = [
    "BitcoinRPCClient",
    "ConfigurationError",
    "RPCError",
    "RPCTransportError",
    "format_rpc_hint",
]
