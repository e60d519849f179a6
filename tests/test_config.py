import pytest

from config.config import (
    LedgerConfig,
    StorageConfig,
    SystemConfig,
    ZKConfig,
    config_to_dict,
    load_config,
    save_config,
)
from utils.errors import ValidationError


@pytest.fixture(autouse=True)
def in_tmp(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    for name in ('VOTING_RPC_URL', 'VOTING_CONTRACT', 'GROUP_MANAGER_CONTRACT', 'MEMBERSHIP_CONTRACT'):
        monkeypatch.delenv(name, raising=False)
    return tmp_path


def test_defaults():
    config = load_config()
    assert config.zk_config.tree_depth == 20
    assert config.zk_config.proving_backend == "development"
    assert config.ledger_config.poll_interval_ms == 3000
    assert config.ledger_config.max_confirmation_attempts == 40
    assert config.ledger_config.membership_search_window == 10000
    assert config.ledger_config.rpc_url == ""


def test_environment_supplies_ledger_endpoints(monkeypatch):
    monkeypatch.setenv('VOTING_RPC_URL', "http://node:8545")
    monkeypatch.setenv('VOTING_CONTRACT', "0xvoting")
    ledger = LedgerConfig()
    assert ledger.rpc_url == "http://node:8545"
    assert ledger.voting_contract == "0xvoting"


def test_save_and_load(in_tmp):
    config = SystemConfig(
        zk_config=ZKConfig(tree_depth=16),
        ledger_config=LedgerConfig(poll_interval_ms=500, max_confirmation_attempts=10),
        storage_config=StorageConfig(state_dir=in_tmp / "custom_state"),
    )
    path = in_tmp / "voting.yaml"
    save_config(config, path)

    loaded = load_config(path)
    assert loaded.zk_config.tree_depth == 16
    assert loaded.ledger_config.poll_interval_ms == 500
    assert loaded.ledger_config.max_confirmation_attempts == 10
    assert loaded.storage_config.state_dir == in_tmp / "custom_state"
    assert config_to_dict(loaded) == config_to_dict(config)


def test_unreadable_yaml_falls_back_to_defaults(in_tmp):
    path = in_tmp / "config.yaml"
    path.write_text("zk_proofs: [unclosed\n")
    assert load_config(path).zk_config.tree_depth == 20


def test_invalid_values_rejected(in_tmp):
    path = in_tmp / "config.yaml"
    path.write_text("zk_proofs:\n  tree_depth: 64\n")
    with pytest.raises(ValidationError):
        load_config(path)


@pytest.mark.parametrize("kwargs", [
    {'poll_interval_ms': -1},
    {'max_confirmation_attempts': 0},
    {'membership_search_window': 0},
])
def test_ledger_config_validation(kwargs):
    with pytest.raises(ValidationError):
        LedgerConfig(**kwargs)


def test_unknown_backend_rejected():
    with pytest.raises(ValidationError):
        ZKConfig(proving_backend="plonk")


def test_storage_paths(in_tmp):
    storage = StorageConfig(state_dir=in_tmp / "s")
    assert storage.seed_store_path.parent == in_tmp / "s"
    assert storage.seed_store_path != storage.saga_path
    assert (in_tmp / "s").is_dir()
