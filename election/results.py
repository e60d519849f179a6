"""
Tallying, winner/tie resolution and results access control.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from ledger.contracts import LedgerCandidate, VotingContracts
from utils.errors import NotFoundError, ValidationError
from .errors import AccessDeniedError, DenialReason
from .models import (
    Election,
    ElectionLifecycleEvaluator,
    ParticipationState,
    normalize_handle,
)
from .repository import ElectionRepository

logger = logging.getLogger(__name__)


# ============================================================================
# AGGREGATION
# ============================================================================


@dataclass
class CandidateResult:
    id: Any
    count: int
    percentage: float
    name: Optional[str] = None
    image: Optional[str] = None


@dataclass
class TallyResult:
    per_candidate: List[CandidateResult]
    total: int
    winners: List[Any] = field(default_factory=list)
    is_tie: bool = False
    has_winner: bool = False


class ResultsAggregator:
    """Percentages, winners and tie detection over live vote counts"""

    @staticmethod
    def aggregate(counts: Sequence[Tuple[Any, int]]) -> TallyResult:
        """`counts` is a sequence of (candidate id, vote count) pairs"""
        ids = [candidate_id for candidate_id, _ in counts]
        values = np.array([int(count) for _, count in counts], dtype=np.int64)

        if values.size and (values < 0).any():
            raise ValidationError("Vote counts must not be negative")

        total = int(values.sum()) if values.size else 0
        if total > 0:
            percentages = values / total * 100.0
        else:
            percentages = np.zeros(values.shape, dtype=np.float64)

        max_count = int(values.max()) if values.size else 0
        if max_count > 0:
            winners = [ids[i] for i in np.flatnonzero(values == max_count)]
        else:
            winners = []

        per_candidate = [
            CandidateResult(id=cid, count=int(count), percentage=float(pct))
            for cid, count, pct in zip(ids, values, percentages)
        ]
        return TallyResult(
            per_candidate=per_candidate,
            total=total,
            winners=winners,
            is_tie=len(winners) > 1,
            has_winner=len(winners) == 1,
        )


# ============================================================================
# ACCESS CONTROL
# ============================================================================


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    reason: Optional[DenialReason] = None


class AccessGate:
    """Who may read results of an election"""

    def __init__(self, repository: ElectionRepository):
        self.repository = repository

    def check(self, election: Election, requester_id: Optional[str]) -> AccessDecision:
        if election.is_public:
            return AccessDecision(True)
        requester_id = normalize_handle(requester_id)
        if not requester_id:
            return AccessDecision(False, DenialReason.AUTH_REQUIRED)
        if requester_id == normalize_handle(election.organizer_id):
            return AccessDecision(True)

        participation = self.repository.find_participation(election.id, requester_id)
        if participation is not None and participation.state is ParticipationState.ACCEPTED:
            return AccessDecision(True)
        return AccessDecision(False, DenialReason.NOT_PARTICIPANT)

    def require(self, election: Election, requester_id: Optional[str]):
        decision = self.check(election, requester_id)
        if not decision.allowed:
            logger.info(f"Results access denied for election {election.id}: {decision.reason.value}")
            raise AccessDeniedError(decision.reason)


# ============================================================================
# RESULTS QUERY
# ============================================================================


class ElectionNotDeployedError(ValidationError):
    pass


class ResultsService:
    """Results boundary: access check first, then live counts from the ledger"""

    def __init__(self, repository: ElectionRepository, contracts: VotingContracts,
                 gate: Optional[AccessGate] = None,
                 evaluator: Optional[ElectionLifecycleEvaluator] = None):
        self.repository = repository
        self.contracts = contracts
        self.gate = gate or AccessGate(repository)
        self.evaluator = evaluator or ElectionLifecycleEvaluator()

    def get_results(self, election_id: str, requester_id: Optional[str] = None) -> Dict[str, Any]:
        election = self.repository.get_election(election_id)
        self.gate.require(election, requester_id)

        if election.ledger_election_id is None:
            raise ElectionNotDeployedError("Election not deployed on the ledger")

        ledger_candidates: List[LedgerCandidate] = self.contracts.get_candidates_with_counts(
            election.ledger_election_id)
        tally = ResultsAggregator.aggregate([(c.id, c.vote_count) for c in ledger_candidates])

        by_id = {c.id: c for c in ledger_candidates}
        per_candidate = []
        for result in tally.per_candidate:
            candidate = by_id[result.id]
            per_candidate.append({
                'id': result.id,
                'name': candidate.name,
                'image': candidate.image,
                'voteCount': result.count,
                'percentage': result.percentage,
            })

        return {
            'election': {
                'id': election.id,
                'name': election.name,
                'status': self.evaluator.evaluate(election).value,
                'explicitStatus': election.explicit_status.value,
                'isPublic': election.is_public,
                'startTime': election.start_time.isoformat() if election.start_time else None,
                'endTime': election.end_time.isoformat() if election.end_time else None,
            },
            'perCandidate': per_candidate,
            'total': tally.total,
            'winners': [p for p in per_candidate if p['id'] in tally.winners],
            'hasWinner': tally.has_winner,
            'isTie': tally.is_tie,
        }

    def handle_request(self, election_id: str,
                       requester_id: Optional[str] = None) -> Tuple[int, Dict[str, Any]]:
        """HTTP-style (status, body) rendering of `get_results`"""
        try:
            return 200, self.get_results(election_id, requester_id)
        except AccessDeniedError as e:
            return 403, e.to_response()
        except NotFoundError as e:
            return 404, {'error': str(e)}
        except ValidationError as e:
            return 400, {'error': str(e)}
