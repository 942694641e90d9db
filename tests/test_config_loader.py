from pathlib import Path

import pytest

from ordinal_ledger.config import (
    ConfigurationError,
    IndexConfig,
    RPCConfig,
    load_index_config,
    load_rpc_config,
)


def test_load_rpc_config_prefers_environment_over_yaml(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        """
        rpc:
          user: file_user
          password: file_pass
          host: filehost
          port: 1111
          use_https: true
          endpoint: http://filehost:2222
        """
    )

    env_map = {
        "BTC_RPC_USER": "env_user",
        "BTC_RPC_PASSWORD": "env_pass",
        "BTC_RPC_ENDPOINT": "https://envhost:3333",
        "BTC_RPC_USE_HTTPS": "1",
    }

    config = load_rpc_config(config_path=config_path, env=env_map)

    assert isinstance(config, RPCConfig)
    assert config.user == "env_user"
    assert config.password == "env_pass"
    assert config.host == "envhost"
    assert config.port == 3333
    assert config.use_https is True
    assert config.base_url == "https://envhost:3333"


def test_load_rpc_config_reads_yaml_when_env_missing(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_path = tmp_path / ".ordinal-ledger.yaml"
    monkeypatch.setattr("ordinal_ledger.config.DEFAULT_CONFIG_PATH", config_path)

    config_path.write_text(
        """
        rpc:
          user: yaml_user
          password: yaml_pass
          host: yamlhost
          port: 4545
          use_https: false
        """
    )

    config = load_rpc_config(env={})

    assert config.user == "yaml_user"
    assert config.password == "yaml_pass"
    assert config.host == "yamlhost"
    assert config.port == 4545
    assert config.use_https is False


def test_load_rpc_config_accepts_alias_environment_and_overrides(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text("rpc: {}\n")
    env_map = {"ORDINAL_LEDGER_RPC_USER": "alias_user", "ORDINAL_LEDGER_RPC_PASSWORD": "alias_pass"}

    config = load_rpc_config(
        config_path=config_path,
        env=env_map,
        overrides={"endpoint": "http://override:18443", "user": None},
    )

    assert config.user == "alias_user"
    assert config.host == "override"
    assert config.port == 18443


def test_load_rpc_config_requires_credentials(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text("rpc: {}\n")

    with pytest.raises(ConfigurationError):
        load_rpc_config(config_path=config_path, env={})


def test_explicit_config_path_must_exist(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError):
        load_rpc_config(config_path=tmp_path / "missing.yaml", env={})


def test_load_index_config_layers_sources(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        f"""
        index:
          db_path: {tmp_path / "from-file.sqlite"}
          start_height: 100
          end_height: 200
        """
    )

    config = load_index_config(
        config_path=config_path,
        env={"ORDINAL_LEDGER_END_HEIGHT": "150", "ORDINAL_LEDGER_LIMIT": "5"},
        overrides={"start_height": 120, "limit": None},
    )

    assert isinstance(config, IndexConfig)
    assert config.db_path == tmp_path / "from-file.sqlite"
    assert config.start_height == 120
    assert config.end_height == 150
    assert config.limit == 5


def test_load_index_config_defaults(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("ordinal_ledger.config.DEFAULT_CONFIG_PATH", tmp_path / "absent.yaml")

    config = load_index_config(env={"ORDINAL_LEDGER_DB": str(tmp_path / "env.sqlite")})

    assert config.db_path == tmp_path / "env.sqlite"
    assert config.start_height is None
    assert config.end_height is None
    assert config.limit is None


def test_load_index_config_rejects_non_integer_heights(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text("index:\n  start_height: tip\n")

    with pytest.raises(ConfigurationError):
        load_index_config(config_path=config_path, env={})
