"""
Typed builders and reads for the three ledger contracts the voting core
talks to: the voting contract, the group manager and the membership
(Semaphore) contract.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from config.config import LedgerConfig
from utils.errors import ValidationError
from .gateway import LedgerClient, LedgerTransaction

logger = logging.getLogger(__name__)

MEMBER_ADDED_EVENT = "MemberAdded"


@dataclass(frozen=True)
class LedgerCandidate:
    """Candidate as stored on the ledger; ids are 1-based insertion order"""
    id: int
    name: str
    image: str
    vote_count: int


@dataclass(frozen=True)
class LedgerElection:
    id: int
    group_id: int
    scope: int
    starts_at: int
    ends_at: int
    is_public: bool
    exists: bool


@dataclass(frozen=True)
class MembershipEvent:
    group_id: int
    index: int
    commitment: int
    merkle_root: int
    block_number: int = 0


class VotingContracts:
    """Builds transactions and decodes reads for the configured contracts"""

    def __init__(self, client: LedgerClient, config: LedgerConfig):
        self.client = client
        self.config = config

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def register_cohort(self, election_seed: int) -> LedgerTransaction:
        return LedgerTransaction(
            self.config.group_manager_contract, "registerElectionGroup", (int(election_seed),))

    def create_election(self, election_id: int, group_id: int, scope: int,
                        starts_at: int, ends_at: int, is_public: bool) -> LedgerTransaction:
        """Times are unix seconds, 0 meaning unset"""
        if ends_at and starts_at and ends_at <= starts_at:
            raise ValidationError("Election end must be after its start")
        return LedgerTransaction(
            self.config.voting_contract, "createElection",
            (int(election_id), int(group_id), int(scope), int(starts_at), int(ends_at), bool(is_public)))

    def add_candidates(self, election_id: int, names: Sequence[str],
                       images: Sequence[str]) -> LedgerTransaction:
        if not names:
            raise ValidationError("At least one candidate is required")
        if len(names) != len(images):
            raise ValidationError("Candidate names and images must have equal length")
        return LedgerTransaction(
            self.config.voting_contract, "addCandidates",
            (int(election_id), tuple(names), tuple(images)))

    def add_candidate(self, election_id: int, name: str, image: str = "") -> LedgerTransaction:
        if not name or not name.strip():
            raise ValidationError("Candidate name is required")
        return LedgerTransaction(
            self.config.voting_contract, "addCandidate", (int(election_id), name, image or ""))

    def add_commitment(self, election_id: int, commitment: int) -> LedgerTransaction:
        # The group manager resolves the election's group itself
        return LedgerTransaction(
            self.config.group_manager_contract, "addCommitment",
            (int(election_id), int(commitment)))

    def cast_vote(self, election_id: int, candidate_index: int,
                  proof_args: Dict[str, Any]) -> LedgerTransaction:
        return LedgerTransaction(
            self.config.voting_contract, "castVote",
            (int(election_id), int(candidate_index), dict(proof_args)))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_group_id(self, election_seed: int) -> int:
        return int(self.client.call(
            self.config.group_manager_contract, "getGroupId", int(election_seed)))

    def get_election(self, election_id: int) -> Optional[LedgerElection]:
        raw = self.client.call(self.config.voting_contract, "elections", int(election_id))
        if not raw or not raw.get('exists'):
            return None
        return LedgerElection(
            id=int(raw['id']),
            group_id=int(raw['groupId']),
            scope=int(raw['externalNullifier']),
            starts_at=int(raw.get('startsAt', 0)),
            ends_at=int(raw.get('endsAt', 0)),
            is_public=bool(raw.get('isPublic', False)),
            exists=True,
        )

    def get_candidates_with_counts(self, election_id: int) -> List[LedgerCandidate]:
        raw = self.client.call(self.config.voting_contract, "getCandidates", int(election_id)) or []
        return [
            LedgerCandidate(
                id=int(c['id']),
                name=c['name'],
                image=c.get('image', ''),
                vote_count=int(c['voteCount']),
            )
            for c in raw
        ]

    def get_membership_log(self, group_id: int, search_window: int) -> List[MembershipEvent]:
        """MemberAdded events for the group within the last `search_window` blocks"""
        current_block = self.client.block_number()
        from_block = max(0, current_block - search_window)
        logs = self.client.get_logs(
            self.config.membership_contract, MEMBER_ADDED_EVENT, from_block,
            filters={'groupId': int(group_id)})
        logger.debug(f"Found {len(logs)} {MEMBER_ADDED_EVENT} events for group {group_id} "
                     f"from block {from_block}")
        return [
            MembershipEvent(
                group_id=int(log['groupId']),
                index=int(log['index']),
                commitment=int(log['identityCommitment']),
                merkle_root=int(log['merkleTreeRoot']),
                block_number=int(log.get('blockNumber', 0)),
            )
            for log in logs
        ]
