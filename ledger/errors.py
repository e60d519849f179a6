from typing import Optional

from utils.errors import (
    ConfirmationTimeoutError,
    ConsistencyError,
    LedgerRejectedError,
    NotFoundError,
    VotingSystemError,
)


class LedgerError(VotingSystemError):
    """Base exception for ledger interaction"""
    pass


class LedgerUnavailableError(LedgerError):
    """Transport failure talking to the ledger node"""
    pass


class TransactionRejectedError(LedgerError, LedgerRejectedError):
    """The ledger reverted the transaction; `reason` carries the raw revert data"""

    def __init__(self, message: str, reason: Optional[str] = None,
                 tx_handle: Optional[str] = None):
        LedgerRejectedError.__init__(self, message, reason=reason, tx_handle=tx_handle)


class TransactionTimeoutError(LedgerError, ConfirmationTimeoutError):
    """No receipt within the polling budget; the transaction may still land"""

    def __init__(self, message: str, tx_handle: str, attempts: int):
        ConfirmationTimeoutError.__init__(self, message, tx_handle)
        self.attempts = attempts


class EmptyCohortError(LedgerError, NotFoundError):
    """No membership events exist for the group in the search window"""
    pass


class CohortIntegrityError(LedgerError, ConsistencyError):
    """Membership indices do not form a contiguous 0..n-1 sequence"""
    pass


class CommitmentNotRegisteredError(LedgerError, ConsistencyError):
    """The voter's commitment was never added to the cohort"""
    pass


class RegistrationPendingError(LedgerError, ConsistencyError):
    """The voter's registration transaction has not been confirmed yet"""

    def __init__(self, message: str, tx_handle: Optional[str] = None):
        super().__init__(message)
        self.tx_handle = tx_handle
