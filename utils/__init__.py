"""Utilities for the voting core."""

from .utils import (
    setup_logging,
    save_results,
    to_serializable,
    compute_hash,
    short,
    PerformanceMonitor,
    create_performance_report,
    get_system_info,
    format_duration,
)
from .errors import (
    VotingSystemError,
    ValidationError,
    NotFoundError,
    UnauthorizedError,
    LedgerRejectedError,
    ConfirmationTimeoutError,
    ConsistencyError,
    StorageError,
)

__all__ = [
    'setup_logging',
    'save_results',
    'to_serializable',
    'compute_hash',
    'short',
    'PerformanceMonitor',
    'create_performance_report',
    'get_system_info',
    'format_duration',

    'VotingSystemError',
    'ValidationError',
    'NotFoundError',
    'UnauthorizedError',
    'LedgerRejectedError',
    'ConfirmationTimeoutError',
    'ConsistencyError',
    'StorageError',
]
