"""
Election metadata model and lifecycle classification.

The lifecycle is never stored: it is recomputed from the explicit status
and the time window every time somebody asks.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


class ElectionStatus(Enum):
    """Status set explicitly by the organizer"""
    DRAFT = "draft"
    ACTIVE = "active"
    ENDED = "ended"


class LifecycleState(Enum):
    """Effective state derived from status and time window"""
    PENDING = "pending"
    ACTIVE = "active"
    ENDED = "ended"


class ParticipationState(Enum):
    INVITED = "invited"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class Visibility(Enum):
    PUBLIC = "public"
    PRIVATE = "private"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def normalize_handle(handle: Optional[str]) -> str:
    """Voter and organizer handles compare case-insensitively; empty means anonymous"""
    return (handle or "").strip().lower()


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Naive datetimes are taken to be UTC"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_unix(value: Optional[datetime]) -> int:
    """Unix seconds, 0 for unset (the ledger's encoding)"""
    value = as_utc(value)
    return int(value.timestamp()) if value is not None else 0


def classify_lifecycle(explicit_status: ElectionStatus,
                       start_time: Optional[datetime],
                       end_time: Optional[datetime],
                       now: Optional[datetime] = None) -> LifecycleState:
    """Pure classification of an election at instant `now`.

    ENDED when the organizer ended it or the end time has passed (the end
    instant itself counts as ended). PENDING when the start time is still
    in the future. ACTIVE otherwise. An explicit DRAFT status does not hold
    back an election whose window has opened.
    """
    now = as_utc(now) or utc_now()
    start_time = as_utc(start_time)
    end_time = as_utc(end_time)

    if explicit_status is ElectionStatus.ENDED:
        return LifecycleState.ENDED
    if end_time is not None and now >= end_time:
        return LifecycleState.ENDED
    if start_time is not None and now < start_time:
        return LifecycleState.PENDING
    return LifecycleState.ACTIVE


class ElectionLifecycleEvaluator:
    """Evaluates elections against an injectable clock"""

    def __init__(self, clock=utc_now):
        self.clock = clock

    def evaluate(self, election: 'Election', now: Optional[datetime] = None) -> LifecycleState:
        return classify_lifecycle(
            election.explicit_status, election.start_time, election.end_time,
            now if now is not None else self.clock())

    def is_active(self, election: 'Election', now: Optional[datetime] = None) -> bool:
        return self.evaluate(election, now) is LifecycleState.ACTIVE


def initial_status(start_time: Optional[datetime], now: Optional[datetime] = None) -> ElectionStatus:
    """ACTIVE when voting may open immediately, DRAFT when it starts later"""
    start_time = as_utc(start_time)
    now = as_utc(now) or utc_now()
    if start_time is None or start_time <= now:
        return ElectionStatus.ACTIVE
    return ElectionStatus.DRAFT


@dataclass
class Election:
    id: str
    name: str
    organizer_id: str
    explicit_status: ElectionStatus = ElectionStatus.DRAFT
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    visibility: Visibility = Visibility.PRIVATE
    scope: Optional[int] = None
    ledger_election_id: Optional[int] = None
    ledger_cohort_id: Optional[int] = None
    description: str = ""
    created_at: datetime = field(default_factory=utc_now)

    @property
    def is_public(self) -> bool:
        return self.visibility is Visibility.PUBLIC

    @property
    def is_deployed(self) -> bool:
        return self.ledger_election_id is not None and self.ledger_cohort_id is not None

    def lifecycle(self, now: Optional[datetime] = None) -> LifecycleState:
        return classify_lifecycle(self.explicit_status, self.start_time, self.end_time, now)


@dataclass
class Candidate:
    id: str
    election_id: str
    name: str
    position: int  # 1-based, equals the ledger candidate id
    image: Optional[str] = None


@dataclass
class Participation:
    election_id: str
    voter_handle: str
    state: ParticipationState = ParticipationState.INVITED
    updated_at: datetime = field(default_factory=utc_now)


@dataclass(frozen=True)
class AnonymousVote:
    """Vote log entry; deliberately holds no voter identity or tx handle"""
    election_id: str
    nullifier: int
    message: int
    recorded_at: datetime = field(default_factory=utc_now)


@dataclass(frozen=True)
class VoteReceipt:
    election_id: str
    candidate_id: str
    nullifier: int
    tx_handle: str
    block_number: Optional[int] = None


def new_id() -> str:
    return str(uuid.uuid4())
