from enum import Enum
from typing import Any, Dict, Optional

from utils.errors import (
    LedgerRejectedError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
    VotingSystemError,
)


class ElectionError(VotingSystemError):
    """Base exception for election workflows"""
    pass


class ElectionNotFoundError(ElectionError, NotFoundError):
    pass


class CandidateNotFoundError(ElectionError, NotFoundError):
    pass


class ParticipationNotFoundError(ElectionError, NotFoundError):
    pass


class DenialReason(Enum):
    AUTH_REQUIRED = "auth_required"
    NOT_PARTICIPANT = "not_participant"


class AccessDeniedError(ElectionError, UnauthorizedError):
    """Private election access refused; carries the 403-style payload"""

    MESSAGES = {
        DenialReason.AUTH_REQUIRED:
            "This is a private election. Please log in to view results.",
        DenialReason.NOT_PARTICIPANT:
            "You are not authorized to view the results of this private election. "
            "Only participants and the organizer can view results.",
    }

    def __init__(self, reason: DenialReason, message: Optional[str] = None):
        super().__init__(message or self.MESSAGES[reason])
        self.reason = reason

    def to_response(self) -> Dict[str, Any]:
        body = {'error': str(self), 'isPrivate': True}
        if self.reason is DenialReason.AUTH_REQUIRED:
            body['requiresAuth'] = True
        else:
            body['notParticipant'] = True
        return body


class AlreadyVotedError(ElectionError, LedgerRejectedError):
    """The ledger rejected the vote because the nullifier was already used"""
    pass


class ElectionNotActiveError(ElectionError, ValidationError):

    def __init__(self, message: str, state: Any = None):
        super().__init__(message)
        self.state = state


class WorkflowStepError(ElectionError):
    """A multi-step workflow halted; `step` names the step that failed"""

    def __init__(self, step: str, cause: Exception, saga_id: Optional[str] = None):
        super().__init__(f"Step {step} failed: {cause}")
        self.step = step
        self.cause = cause
        self.saga_id = saga_id
        self.tx_handle = getattr(cause, 'tx_handle', None)
