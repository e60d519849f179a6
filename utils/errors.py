"""
Error taxonomy shared by every layer of the voting core.

Each package defines its own exception family (ZKError, LedgerError, ...)
on top of these categories so callers can handle a whole category at once.
"""

from typing import Optional


class VotingSystemError(Exception):
    """Base exception for the voting core"""
    pass


class ValidationError(VotingSystemError, ValueError):
    """Malformed input, rejected before anything reaches the ledger"""
    pass


class NotFoundError(VotingSystemError):
    """Unknown election, candidate or participation record"""
    pass


class UnauthorizedError(VotingSystemError):
    """Access to a private election was denied"""
    pass


class LedgerRejectedError(VotingSystemError):
    """The ledger reverted a transaction"""

    def __init__(self, message: str, reason: Optional[str] = None,
                 tx_handle: Optional[str] = None):
        super().__init__(message)
        self.reason = reason
        self.tx_handle = tx_handle


class ConfirmationTimeoutError(VotingSystemError):
    """No receipt arrived within the polling budget"""

    def __init__(self, message: str, tx_handle: str):
        super().__init__(message)
        self.tx_handle = tx_handle


class ConsistencyError(VotingSystemError):
    """Local state disagrees with what was reconstructed from the ledger"""
    pass


class StorageError(VotingSystemError):
    """Local key/value storage is unavailable"""
    pass
