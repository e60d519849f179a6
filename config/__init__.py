"""Configuration management for the voting core."""

from .config import (
    SystemConfig,
    ZKConfig,
    LedgerConfig,
    StorageConfig,
    load_config,
    save_config,
    config_to_dict,
)

__all__ = ['SystemConfig', 'ZKConfig', 'LedgerConfig', 'StorageConfig',
           'load_config', 'save_config', 'config_to_dict']
