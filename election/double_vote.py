import logging
from enum import Enum
from typing import Iterator, Optional

from utils.storage import KeyValueStore

logger = logging.getLogger(__name__)


class VoteRejection(Enum):
    ALREADY_VOTED = "already_voted"
    OTHER_FAILURE = "other_failure"


class DoubleVoteGuard:
    """Interprets ledger rejections; the ledger's nullifier set is the only authority"""

    PATTERNS = ("nullifieralreadyused", "already used")

    @staticmethod
    def _texts(error: BaseException) -> Iterator[str]:
        seen = set()
        current: Optional[BaseException] = error
        while current is not None and id(current) not in seen:
            seen.add(id(current))
            yield str(current)
            for attr in ('reason', 'data'):
                value = getattr(current, attr, None)
                if value is not None:
                    yield str(value)
            current = current.__cause__

    @classmethod
    def classify(cls, error: BaseException) -> VoteRejection:
        for text in cls._texts(error):
            lowered = text.lower()
            if any(pattern in lowered for pattern in cls.PATTERNS):
                return VoteRejection.ALREADY_VOTED
        return VoteRejection.OTHER_FAILURE


class VoteMarkerCache:
    """Local "already voted" flag.

    A read-through cache of what the ledger told us; a missing or stale
    marker never decides whether a vote is allowed.
    """

    def __init__(self, store: KeyValueStore):
        self.store = store

    @staticmethod
    def _key(election_id: str, voter_handle: str) -> str:
        return f"voted_{election_id}:{voter_handle}"

    def mark(self, election_id: str, voter_handle: str):
        self.store.put(self._key(election_id, voter_handle), True)

    def has_marker(self, election_id: str, voter_handle: str) -> bool:
        return bool(self.store.get(self._key(election_id, voter_handle)))

    def clear(self, election_id: str, voter_handle: str):
        self.store.delete(self._key(election_id, voter_handle))
