"""
Election Module for Anonymous Voting
Metadata model, lifecycle, organizer saga, voter workflow and results
"""

from .models import (
    Election,
    Candidate,
    Participation,
    AnonymousVote,
    VoteReceipt,
    ElectionStatus,
    LifecycleState,
    ParticipationState,
    Visibility,
    ElectionLifecycleEvaluator,
    classify_lifecycle,
    initial_status,
    normalize_handle,
)
from .errors import (
    ElectionError,
    ElectionNotFoundError,
    CandidateNotFoundError,
    ParticipationNotFoundError,
    AccessDeniedError,
    DenialReason,
    AlreadyVotedError,
    ElectionNotActiveError,
    WorkflowStepError,
)
from .double_vote import DoubleVoteGuard, VoteMarkerCache, VoteRejection
from .results import (
    ResultsAggregator,
    TallyResult,
    CandidateResult,
    AccessGate,
    AccessDecision,
    ResultsService,
    ElectionNotDeployedError,
)
from .repository import ElectionRepository, InMemoryElectionRepository
from .ids import LedgerIdGenerator
from .workflows import (
    OrganizerWorkflow,
    VoterWorkflow,
    ElectionDraft,
    CandidateDraft,
    SagaRecord,
    SagaStep,
)

__all__ = [
    # Model
    'Election',
    'Candidate',
    'Participation',
    'AnonymousVote',
    'VoteReceipt',
    'ElectionStatus',
    'LifecycleState',
    'ParticipationState',
    'Visibility',
    'ElectionLifecycleEvaluator',
    'classify_lifecycle',
    'initial_status',
    'normalize_handle',

    # Results
    'ResultsAggregator',
    'TallyResult',
    'CandidateResult',
    'AccessGate',
    'AccessDecision',
    'ResultsService',

    # Double voting
    'DoubleVoteGuard',
    'VoteMarkerCache',
    'VoteRejection',

    # Workflows
    'ElectionRepository',
    'InMemoryElectionRepository',
    'LedgerIdGenerator',
    'OrganizerWorkflow',
    'VoterWorkflow',
    'ElectionDraft',
    'CandidateDraft',
    'SagaRecord',
    'SagaStep',

    # Exceptions
    'ElectionError',
    'ElectionNotFoundError',
    'CandidateNotFoundError',
    'ParticipationNotFoundError',
    'AccessDeniedError',
    'DenialReason',
    'AlreadyVotedError',
    'ElectionNotActiveError',
    'ElectionNotDeployedError',
    'WorkflowStepError',
]
