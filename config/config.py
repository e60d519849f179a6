from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Dict, Any
import logging
import os

import yaml

from utils.errors import ValidationError

logger = logging.getLogger(__name__)

PROVING_BACKENDS = ("development", "snarkjs")


@dataclass
class ZKConfig:
    # Must equal the depth the verifier circuit was compiled for
    tree_depth: int = 20
    proving_backend: str = "development"
    wasm_path: Path = field(default_factory=lambda: Path(
        "circuits/build/semaphore.wasm"))
    zkey_path: Path = field(default_factory=lambda: Path(
        "circuits/build/semaphore.zkey"))
    vkey_path: Path = field(default_factory=lambda: Path(
        "circuits/build/verification_key.json"))
    proof_timeout: int = 120

    def __post_init__(self):
        self.wasm_path = Path(self.wasm_path)
        self.zkey_path = Path(self.zkey_path)
        self.vkey_path = Path(self.vkey_path)

        if not 1 <= self.tree_depth <= 32:
            raise ValidationError(
                f"tree_depth must be between 1 and 32, got {self.tree_depth}")
        if self.proving_backend not in PROVING_BACKENDS:
            raise ValidationError(
                f"Unknown proving backend: {self.proving_backend}")

    @property
    def capacity(self) -> int:
        return 1 << self.tree_depth


@dataclass
class LedgerConfig:
    rpc_url: str = field(
        default_factory=lambda: os.environ.get('VOTING_RPC_URL', ''))
    voting_contract: str = field(
        default_factory=lambda: os.environ.get('VOTING_CONTRACT', ''))
    group_manager_contract: str = field(
        default_factory=lambda: os.environ.get('GROUP_MANAGER_CONTRACT', ''))
    membership_contract: str = field(
        default_factory=lambda: os.environ.get('MEMBERSHIP_CONTRACT', ''))

    # 40 polls * 3s = 2 minutes per transaction
    poll_interval_ms: int = 3000
    max_confirmation_attempts: int = 40
    membership_search_window: int = 10000
    request_timeout: float = 30.0

    def __post_init__(self):
        if self.poll_interval_ms < 0:
            raise ValidationError("poll_interval_ms must not be negative")
        if self.max_confirmation_attempts < 1:
            raise ValidationError("max_confirmation_attempts must be >= 1")
        if self.membership_search_window < 1:
            raise ValidationError("membership_search_window must be >= 1")


@dataclass
class StorageConfig:
    state_dir: Path = field(default_factory=lambda: Path("state"))
    seed_store_file: str = "voter_seeds.json"
    vote_marker_file: str = "vote_markers.json"
    saga_file: str = "organizer_sagas.json"

    def __post_init__(self):
        self.state_dir = Path(self.state_dir)
        self.state_dir.mkdir(parents=True, exist_ok=True, mode=0o700)

    @property
    def seed_store_path(self) -> Path:
        return self.state_dir / self.seed_store_file

    @property
    def vote_marker_path(self) -> Path:
        return self.state_dir / self.vote_marker_file

    @property
    def saga_path(self) -> Path:
        return self.state_dir / self.saga_file


@dataclass
class SystemConfig:
    zk_config: ZKConfig = field(default_factory=ZKConfig)
    ledger_config: LedgerConfig = field(default_factory=LedgerConfig)
    storage_config: StorageConfig = field(default_factory=StorageConfig)

    log_dir: Path = field(default_factory=lambda: Path("logs"))
    results_dir: Path = field(default_factory=lambda: Path("results"))
    log_level: str = "INFO"
    enable_debug_mode: bool = False

    def __post_init__(self):
        self.log_dir = Path(self.log_dir)
        self.results_dir = Path(self.results_dir)

        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.results_dir.mkdir(parents=True, exist_ok=True)

        if self.enable_debug_mode:
            self.log_level = "DEBUG"


def _zk_from_dict(data: Dict[str, Any]) -> ZKConfig:
    defaults = ZKConfig()
    return ZKConfig(
        tree_depth=data.get('tree_depth', defaults.tree_depth),
        proving_backend=data.get('proving_backend', defaults.proving_backend),
        wasm_path=Path(data.get('wasm_path', defaults.wasm_path)),
        zkey_path=Path(data.get('zkey_path', defaults.zkey_path)),
        vkey_path=Path(data.get('vkey_path', defaults.vkey_path)),
        proof_timeout=data.get('proof_timeout', defaults.proof_timeout)
    )


def _ledger_from_dict(data: Dict[str, Any]) -> LedgerConfig:
    defaults = LedgerConfig()
    return LedgerConfig(
        rpc_url=data.get('rpc_url', defaults.rpc_url),
        voting_contract=data.get('voting_contract', defaults.voting_contract),
        group_manager_contract=data.get(
            'group_manager_contract', defaults.group_manager_contract),
        membership_contract=data.get(
            'membership_contract', defaults.membership_contract),
        poll_interval_ms=data.get(
            'poll_interval_ms', defaults.poll_interval_ms),
        max_confirmation_attempts=data.get(
            'max_confirmation_attempts', defaults.max_confirmation_attempts),
        membership_search_window=data.get(
            'membership_search_window', defaults.membership_search_window),
        request_timeout=data.get('request_timeout', defaults.request_timeout)
    )


def load_config(config_path: Optional[Path] = None) -> SystemConfig:
    """Load configuration from file or return default"""
    if config_path is None:
        config_path = Path("config.yaml")
    config_path = Path(config_path)

    if config_path.exists():
        try:
            with open(config_path, 'r') as f:
                config_data = yaml.safe_load(f) or {}

            storage_data = config_data.get('storage', {})

            return SystemConfig(
                zk_config=_zk_from_dict(config_data.get('zk_proofs', {})),
                ledger_config=_ledger_from_dict(
                    config_data.get('ledger', {})),
                storage_config=StorageConfig(
                    state_dir=Path(storage_data.get('state_dir', 'state'))),
                log_dir=Path(config_data.get('log_dir', 'logs')),
                results_dir=Path(config_data.get('results_dir', 'results')),
                log_level=config_data.get('log_level', 'INFO'),
                enable_debug_mode=config_data.get('enable_debug_mode', False)
            )
        except (OSError, yaml.YAMLError, AttributeError) as e:
            logger.warning(
                f"Could not load config file {config_path}: {e}. Using default configuration")

    return SystemConfig()


def config_to_dict(config: SystemConfig) -> Dict[str, Any]:
    return {
        'zk_proofs': {
            'tree_depth': config.zk_config.tree_depth,
            'proving_backend': config.zk_config.proving_backend,
            'wasm_path': str(config.zk_config.wasm_path),
            'zkey_path': str(config.zk_config.zkey_path),
            'vkey_path': str(config.zk_config.vkey_path),
            'proof_timeout': config.zk_config.proof_timeout
        },
        'ledger': {
            'rpc_url': config.ledger_config.rpc_url,
            'voting_contract': config.ledger_config.voting_contract,
            'group_manager_contract': config.ledger_config.group_manager_contract,
            'membership_contract': config.ledger_config.membership_contract,
            'poll_interval_ms': config.ledger_config.poll_interval_ms,
            'max_confirmation_attempts': config.ledger_config.max_confirmation_attempts,
            'membership_search_window': config.ledger_config.membership_search_window,
            'request_timeout': config.ledger_config.request_timeout
        },
        'storage': {
            'state_dir': str(config.storage_config.state_dir)
        },
        'log_dir': str(config.log_dir),
        'results_dir': str(config.results_dir),
        'log_level': config.log_level,
        'enable_debug_mode': config.enable_debug_mode
    }


def save_config(config: SystemConfig, config_path: Optional[Path] = None):
    """Save configuration to YAML file"""
    if config_path is None:
        config_path = Path("config.yaml")

    with open(config_path, 'w') as f:
        yaml.safe_dump(config_to_dict(config), f, default_flow_style=False)

    logger.info(f"Configuration written to {config_path}")
