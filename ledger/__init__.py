"""
Ledger Access Module for Anonymous Voting
Transaction submission, bounded confirmation polling, contract calls and cohort reconstruction
"""

from .errors import (
    LedgerError,
    LedgerUnavailableError,
    TransactionRejectedError,
    TransactionTimeoutError,
    EmptyCohortError,
    CohortIntegrityError,
    CommitmentNotRegisteredError,
    RegistrationPendingError,
)
from .gateway import (
    LedgerClient,
    JsonRpcLedgerClient,
    LedgerTransaction,
    TransactionReceipt,
    ReceiptStatus,
    TransactionGateway,
)
from .contracts import (
    VotingContracts,
    LedgerCandidate,
    LedgerElection,
    MembershipEvent,
)
from .membership import MembershipSynchronizer, order_cohort
from .simulated import InMemoryLedger, NULLIFIER_ALREADY_USED

__all__ = [
    # Clients and gateway
    'LedgerClient',
    'JsonRpcLedgerClient',
    'InMemoryLedger',
    'LedgerTransaction',
    'TransactionReceipt',
    'ReceiptStatus',
    'TransactionGateway',

    # Contracts and cohort
    'VotingContracts',
    'LedgerCandidate',
    'LedgerElection',
    'MembershipEvent',
    'MembershipSynchronizer',
    'order_cohort',
    'NULLIFIER_ALREADY_USED',

    # Exceptions
    'LedgerError',
    'LedgerUnavailableError',
    'TransactionRejectedError',
    'TransactionTimeoutError',
    'EmptyCohortError',
    'CohortIntegrityError',
    'CommitmentNotRegisteredError',
    'RegistrationPendingError',
]
