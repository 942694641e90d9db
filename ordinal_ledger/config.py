"""Shared configuration loader for the ordinal ledger."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping
from urllib.parse import urlparse

import yaml


class ConfigurationError(RuntimeError):
    """Raised when configuration is invalid."""


DEFAULT_CONFIG_PATH = Path.home() / ".ordinal-ledger.yaml"
DEFAULT_DB_PATH = Path.home() / ".ordinal-ledger" / "ledger.sqlite"
DEFAULT_RPC_PORT = 8332


@dataclass
class RPCConfig:
    """Connection details for a Bitcoin Core compatible node."""

    user: str
    password: str
    host: str = "127.0.0.1"
    port: int = DEFAULT_RPC_PORT
    use_https: bool = False

    @property
    def base_url(self) -> str:
        scheme = "https" if self.use_https else "http"
        return f"{scheme}://{self.host}:{self.port}"


@dataclass
class IndexConfig:
    """Where the ledger lives and which heights to index by default."""

    db_path: Path = DEFAULT_DB_PATH
    start_height: int | None = None
    end_height: int | None = None
    limit: int | None = None


def _load_config_file(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.exists():
        if required:
            raise ConfigurationError(f"Config file not found: {path}")
        return {}

    try:
        loaded = yaml.safe_load(path.read_text()) or {}
    except yaml.YAMLError as exc:  # pragma: no cover - delegated to PyYAML
        raise ConfigurationError(f"Invalid YAML in config file {path}: {exc}") from exc

    if not isinstance(loaded, dict):
        raise ConfigurationError(f"Expected {path} to contain a YAML mapping")
    return loaded


def _section(file_config: dict[str, Any], name: str, path: Path) -> dict[str, Any]:
    section = file_config.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigurationError(f"Expected '{name}' to be a mapping in {path}")
    return section


def _resolve_path(config_path: str | Path | None) -> tuple[Path, bool]:
    if config_path is not None:
        return Path(config_path).expanduser(), True
    return DEFAULT_CONFIG_PATH, False


def _coerce_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"1", "true", "yes", "y", "on"}:
            return True
        if normalized in {"0", "false", "no", "n", "off"}:
            return False
    return None


def _coerce_int(raw: Any, *, source: str) -> int | None:
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid integer in {source}: {raw}") from exc


def _first_value(*values: Any, default: Any = None) -> Any:
    for value in values:
        if value is not None:
            return value
    return default


def _env(env_map: Mapping[str, str], suffix: str) -> str | None:
    return env_map.get(f"BTC_RPC_{suffix}") or env_map.get(f"ORDINAL_LEDGER_RPC_{suffix}")


def _parse_endpoint(raw: str | None) -> tuple[str | None, int | None, bool | None]:
    if not raw:
        return None, None, None
    parsed = urlparse(raw)
    if not parsed.scheme and not parsed.hostname:
        raise ConfigurationError(f"Invalid RPC endpoint URL: {raw}")
    host = parsed.hostname or None
    port = parsed.port
    use_https = parsed.scheme.lower() == "https" if parsed.scheme else None
    return host, port, use_https


def load_rpc_config(
    *,
    config_path: str | Path | None = None,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> RPCConfig:
    """Load node RPC settings; overrides beat environment, which beats YAML."""

    env_map = os.environ if env is None else env
    path, required = _resolve_path(config_path)
    rpc_section = _section(_load_config_file(path, required=required), "rpc", path)
    override_map = dict(overrides or {})

    endpoint_host, endpoint_port, endpoint_use_https = _parse_endpoint(
        _first_value(override_map.get("endpoint"), _env(env_map, "ENDPOINT"), rpc_section.get("endpoint"))
    )

    resolved_user = _first_value(override_map.get("user"), _env(env_map, "USER"), rpc_section.get("user"))
    resolved_password = _first_value(
        override_map.get("password"), _env(env_map, "PASSWORD"), rpc_section.get("password")
    )
    if not resolved_user or not resolved_password:
        raise ConfigurationError(
            "RPC credentials must be provided via BTC_RPC_* environment variables or a config file"
        )

    resolved_host = _first_value(
        override_map.get("host"), endpoint_host, _env(env_map, "HOST"), rpc_section.get("host"), "127.0.0.1"
    )
    resolved_port = _first_value(
        _coerce_int(override_map.get("port"), source="overrides"),
        endpoint_port,
        _coerce_int(_env(env_map, "PORT"), source="environment"),
        _coerce_int(rpc_section.get("port"), source=f"{path} rpc.port"),
        DEFAULT_RPC_PORT,
    )
    resolved_use_https = _first_value(
        _coerce_bool(override_map.get("use_https")),
        endpoint_use_https,
        _coerce_bool(_env(env_map, "USE_HTTPS")),
        _coerce_bool(rpc_section.get("use_https")),
        False,
    )

    return RPCConfig(
        user=str(resolved_user),
        password=str(resolved_password),
        host=resolved_host,
        port=resolved_port,
        use_https=bool(resolved_use_https),
    )


def load_index_config(
    *,
    config_path: str | Path | None = None,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> IndexConfig:
    """Load ledger storage and height-range settings from the ``index`` section."""

    env_map = os.environ if env is None else env
    path, required = _resolve_path(config_path)
    index_section = _section(_load_config_file(path, required=required), "index", path)
    override_map = dict(overrides or {})

    db_path = _first_value(
        override_map.get("db_path"),
        env_map.get("ORDINAL_LEDGER_DB"),
        index_section.get("db_path"),
        DEFAULT_DB_PATH,
    )

    def resolve_int(key: str, env_key: str) -> int | None:
        return _first_value(
            _coerce_int(override_map.get(key), source="overrides"),
            _coerce_int(env_map.get(env_key), source="environment"),
            _coerce_int(index_section.get(key), source=f"{path} index.{key}"),
        )

    return IndexConfig(
        db_path=Path(db_path).expanduser(),
        start_height=resolve_int("start_height", "ORDINAL_LEDGER_START_HEIGHT"),
        end_height=resolve_int("end_height", "ORDINAL_LEDGER_END_HEIGHT"),
        limit=resolve_int("limit", "ORDINAL_LEDGER_LIMIT"),
    )


__all__ = [
    "ConfigurationError",
    "DEFAULT_CONFIG_PATH",
    "IndexConfig",
    "RPCConfig",
    "load_index_config",
    "load_rpc_config",
]
