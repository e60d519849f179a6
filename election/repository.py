"""
Metadata persistence boundary.

Relational storage lives outside the voting core; workflows only see
`ElectionRepository`. The in-memory implementation backs the demo and
the tests.
"""

import threading
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence, Tuple

from .errors import ElectionNotFoundError
from .models import AnonymousVote, Candidate, Election, Participation


class ElectionRepository(ABC):

    @abstractmethod
    def save_election(self, election: Election) -> None:
        ...

    @abstractmethod
    def find_election(self, election_id: str) -> Optional[Election]:
        ...

    @abstractmethod
    def list_elections(self) -> List[Election]:
        ...

    @abstractmethod
    def save_candidates(self, election_id: str, candidates: Sequence[Candidate]) -> None:
        """Replace the candidate list of an election"""

    @abstractmethod
    def get_candidates(self, election_id: str) -> List[Candidate]:
        """Candidates ordered by position"""

    @abstractmethod
    def save_participation(self, participation: Participation) -> None:
        ...

    @abstractmethod
    def find_participation(self, election_id: str, voter_handle: str) -> Optional[Participation]:
        ...

    @abstractmethod
    def list_participations(self, election_id: str) -> List[Participation]:
        ...

    @abstractmethod
    def record_anonymous_vote(self, vote: AnonymousVote) -> None:
        ...

    @abstractmethod
    def list_anonymous_votes(self, election_id: str) -> List[AnonymousVote]:
        ...

    def get_election(self, election_id: str) -> Election:
        election = self.find_election(election_id)
        if election is None:
            raise ElectionNotFoundError(f"Election {election_id} not found")
        return election

    def add_candidate(self, candidate: Candidate) -> None:
        candidates = self.get_candidates(candidate.election_id)
        self.save_candidates(candidate.election_id, candidates + [candidate])


class InMemoryElectionRepository(ElectionRepository):

    def __init__(self):
        self._lock = threading.Lock()
        self._elections: Dict[str, Election] = {}
        self._candidates: Dict[str, List[Candidate]] = {}
        self._participations: Dict[Tuple[str, str], Participation] = {}
        self._votes: List[AnonymousVote] = []

    def save_election(self, election: Election) -> None:
        with self._lock:
            self._elections[election.id] = election

    def find_election(self, election_id: str) -> Optional[Election]:
        return self._elections.get(election_id)

    def list_elections(self) -> List[Election]:
        return list(self._elections.values())

    def save_candidates(self, election_id: str, candidates: Sequence[Candidate]) -> None:
        with self._lock:
            self._candidates[election_id] = sorted(candidates, key=lambda c: c.position)

    def get_candidates(self, election_id: str) -> List[Candidate]:
        return list(self._candidates.get(election_id, []))

    def save_participation(self, participation: Participation) -> None:
        with self._lock:
            key = (participation.election_id, participation.voter_handle)
            self._participations[key] = participation

    def find_participation(self, election_id: str, voter_handle: str) -> Optional[Participation]:
        return self._participations.get((election_id, voter_handle))

    def list_participations(self, election_id: str) -> List[Participation]:
        return [p for (eid, _), p in self._participations.items() if eid == election_id]

    def record_anonymous_vote(self, vote: AnonymousVote) -> None:
        with self._lock:
            self._votes.append(vote)

    def list_anonymous_votes(self, election_id: str) -> List[AnonymousVote]:
        return [v for v in self._votes if v.election_id == election_id]
