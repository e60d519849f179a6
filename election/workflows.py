"""
Organizer and voter workflows.

Election creation is a persisted saga over three ledger transactions
(REGISTER_COHORT -> CREATE_ELECTION -> ADD_CANDIDATES) followed by saving
the metadata. After every submission the pending transaction handle is
written to the saga store before it is awaited, so a process that dies
or times out can resume by awaiting the same handle instead of
submitting a duplicate. Steps run strictly one after another and the
saga halts at the first failing step, naming it.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from ledger.contracts import VotingContracts
from ledger.errors import (
    LedgerError,
    TransactionRejectedError,
    TransactionTimeoutError,
)
from ledger.gateway import LedgerTransaction, TransactionGateway
from ledger.membership import MembershipSynchronizer
from utils.errors import NotFoundError, ValidationError
from utils.storage import KeyValueStore
from utils.utils import PerformanceMonitor, short
from zk.identity import IdentitySeedStore
from zk.zk_proofs import ProofBuilder
from .double_vote import DoubleVoteGuard, VoteMarkerCache, VoteRejection
from .errors import (
    AccessDeniedError,
    AlreadyVotedError,
    CandidateNotFoundError,
    DenialReason,
    ElectionNotActiveError,
    ParticipationNotFoundError,
    WorkflowStepError,
)
from .ids import LedgerIdGenerator
from .models import (
    AnonymousVote,
    Candidate,
    Election,
    ElectionLifecycleEvaluator,
    ElectionStatus,
    LifecycleState,
    Participation,
    ParticipationState,
    Visibility,
    VoteReceipt,
    as_utc,
    initial_status,
    new_id,
    normalize_handle,
    to_unix,
    utc_now,
)
from .repository import ElectionRepository

logger = logging.getLogger(__name__)

SAGA_KEY_PREFIX = "saga_"
REGISTRATION_KEY_PREFIX = "registration_tx_"
MEMBER_ALREADY_EXISTS = "memberalreadyexists"


# ============================================================================
# ORGANIZER SAGA
# ============================================================================


class SagaStep(Enum):
    REGISTER_COHORT = "REGISTER_COHORT"
    CREATE_ELECTION = "CREATE_ELECTION"
    ADD_CANDIDATES = "ADD_CANDIDATES"
    PERSIST_METADATA = "PERSIST_METADATA"


SAGA_STEPS = list(SagaStep)


@dataclass
class CandidateDraft:
    name: str
    image: str = ""


@dataclass
class ElectionDraft:
    name: str
    organizer_id: str
    candidates: List[CandidateDraft]
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    visibility: Visibility = Visibility.PRIVATE
    description: str = ""

    def validate(self):
        if not self.name or not self.name.strip():
            raise ValidationError("Election name is required")
        if not self.organizer_id:
            raise ValidationError("Organizer is required")
        if not self.candidates:
            raise ValidationError("At least one candidate is required")
        for candidate in self.candidates:
            if not candidate.name or not candidate.name.strip():
                raise ValidationError("Candidate names must not be empty")
        start, end = as_utc(self.start_time), as_utc(self.end_time)
        if start is not None and end is not None and end <= start:
            raise ValidationError("Election end must be after its start")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'organizer_id': self.organizer_id,
            'candidates': [{'name': c.name, 'image': c.image} for c in self.candidates],
            'start_time': self.start_time.isoformat() if self.start_time else None,
            'end_time': self.end_time.isoformat() if self.end_time else None,
            'visibility': self.visibility.value,
            'description': self.description,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ElectionDraft':
        return cls(
            name=data['name'],
            organizer_id=data['organizer_id'],
            candidates=[CandidateDraft(c['name'], c.get('image', '')) for c in data['candidates']],
            start_time=datetime.fromisoformat(data['start_time']) if data.get('start_time') else None,
            end_time=datetime.fromisoformat(data['end_time']) if data.get('end_time') else None,
            visibility=Visibility(data.get('visibility', Visibility.PRIVATE.value)),
            description=data.get('description', ''),
        )


@dataclass
class SagaRecord:
    saga_id: str
    draft: ElectionDraft
    ledger_election_id: int
    scope: int
    group_id: Optional[int] = None
    last_confirmed_step: Optional[SagaStep] = None
    pending_step: Optional[SagaStep] = None
    pending_tx: Optional[str] = None
    election_id: Optional[str] = None
    history: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def completed(self) -> bool:
        return self.last_confirmed_step is SagaStep.PERSIST_METADATA

    def next_steps(self) -> List[SagaStep]:
        if self.last_confirmed_step is None:
            return list(SAGA_STEPS)
        return SAGA_STEPS[SAGA_STEPS.index(self.last_confirmed_step) + 1:]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'saga_id': self.saga_id,
            'draft': self.draft.to_dict(),
            'ledger_election_id': str(self.ledger_election_id),
            'scope': str(self.scope),
            'group_id': str(self.group_id) if self.group_id is not None else None,
            'last_confirmed_step': self.last_confirmed_step.value if self.last_confirmed_step else None,
            'pending_step': self.pending_step.value if self.pending_step else None,
            'pending_tx': self.pending_tx,
            'election_id': self.election_id,
            'history': self.history,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SagaRecord':
        return cls(
            saga_id=data['saga_id'],
            draft=ElectionDraft.from_dict(data['draft']),
            ledger_election_id=int(data['ledger_election_id']),
            scope=int(data['scope']),
            group_id=int(data['group_id']) if data.get('group_id') is not None else None,
            last_confirmed_step=SagaStep(data['last_confirmed_step']) if data.get('last_confirmed_step') else None,
            pending_step=SagaStep(data['pending_step']) if data.get('pending_step') else None,
            pending_tx=data.get('pending_tx'),
            election_id=data.get('election_id'),
            history=list(data.get('history', [])),
        )


class OrganizerWorkflow:
    """Creates elections through the persisted saga and manages them afterwards"""

    def __init__(self, gateway: TransactionGateway, contracts: VotingContracts,
                 repository: ElectionRepository, saga_store: KeyValueStore,
                 id_generator: Optional[LedgerIdGenerator] = None,
                 evaluator: Optional[ElectionLifecycleEvaluator] = None):
        self.gateway = gateway
        self.contracts = contracts
        self.repository = repository
        self.saga_store = saga_store
        self.ids = id_generator or LedgerIdGenerator()
        self.evaluator = evaluator or ElectionLifecycleEvaluator()

    # ------------------------------------------------------------------
    # Saga persistence
    # ------------------------------------------------------------------

    def _save(self, record: SagaRecord):
        self.saga_store.put(f"{SAGA_KEY_PREFIX}{record.saga_id}", record.to_dict())

    def load_saga(self, saga_id: str) -> SagaRecord:
        data = self.saga_store.get(f"{SAGA_KEY_PREFIX}{saga_id}")
        if data is None:
            raise NotFoundError(f"No saga {saga_id}")
        return SagaRecord.from_dict(data)

    def pending_sagas(self) -> List[str]:
        pending = []
        for key in self.saga_store.keys():
            if not key.startswith(SAGA_KEY_PREFIX):
                continue
            record = SagaRecord.from_dict(self.saga_store.get(key))
            if not record.completed:
                pending.append(record.saga_id)
        return pending

    # ------------------------------------------------------------------
    # Election creation
    # ------------------------------------------------------------------

    async def create_election(self, draft: ElectionDraft) -> Election:
        draft.validate()

        record = SagaRecord(
            saga_id=uuid.uuid4().hex,
            draft=draft,
            ledger_election_id=self.ids.election_id(),
            scope=self.ids.scope(),
        )
        self._save(record)
        logger.info(
            f"Creating election '{draft.name}' (saga {record.saga_id}, "
            f"ledger id {record.ledger_election_id})")
        return await self._run(record)

    async def resume(self, saga_id: str) -> Election:
        """Continue a saga from its last confirmed step"""
        record = self.load_saga(saga_id)
        if record.completed:
            return self.repository.get_election(record.election_id)
        logger.info(
            f"Resuming saga {saga_id} after "
            f"{record.last_confirmed_step.value if record.last_confirmed_step else 'no step'}")
        return await self._run(record)

    async def _run(self, record: SagaRecord) -> Election:
        for step in record.next_steps():
            if step is SagaStep.PERSIST_METADATA:
                self._persist_metadata(record)
            else:
                await self._execute_step(record, step)

            record.last_confirmed_step = step
            record.history.append({'step': step.value, 'confirmed_at': utc_now().isoformat()})
            self._save(record)

        logger.info(f"Election {record.election_id} created (saga {record.saga_id})")
        return self.repository.get_election(record.election_id)

    def _build_transaction(self, record: SagaRecord, step: SagaStep) -> LedgerTransaction:
        draft = record.draft
        if step is SagaStep.REGISTER_COHORT:
            return self.contracts.register_cohort(record.ledger_election_id)
        if step is SagaStep.CREATE_ELECTION:
            if record.group_id is None:
                record.group_id = self.contracts.get_group_id(record.ledger_election_id)
                self._save(record)
            return self.contracts.create_election(
                record.ledger_election_id, record.group_id, record.scope,
                to_unix(draft.start_time), to_unix(draft.end_time),
                draft.visibility is Visibility.PUBLIC)
        if step is SagaStep.ADD_CANDIDATES:
            return self.contracts.add_candidates(
                record.ledger_election_id,
                [c.name for c in draft.candidates],
                [c.image or "" for c in draft.candidates])
        raise ValidationError(f"Step {step.value} has no ledger transaction")

    async def _execute_step(self, record: SagaRecord, step: SagaStep):
        if record.pending_step is step and record.pending_tx:
            tx_handle = record.pending_tx
            logger.info(f"{step.value}: awaiting previously submitted {short(tx_handle, 20)}")
        else:
            try:
                tx = self._build_transaction(record, step)
                tx_handle = await self.gateway.submit_async(tx)
            except (LedgerError, ValidationError) as e:
                raise WorkflowStepError(step.value, e, record.saga_id) from e
            record.pending_step = step
            record.pending_tx = tx_handle
            self._save(record)

        try:
            await self.gateway.await_confirmation(tx_handle, description=step.value)
        except TransactionTimeoutError as e:
            # Handle stays recorded; resume() awaits it instead of resubmitting
            logger.error(f"{step.value} not confirmed; saga {record.saga_id} can be resumed")
            raise WorkflowStepError(step.value, e, record.saga_id) from e
        except TransactionRejectedError as e:
            # Definitive failure, the step may be submitted again on resume
            record.pending_step = None
            record.pending_tx = None
            self._save(record)
            logger.error(f"{step.value} failed on ledger for saga {record.saga_id}")
            raise WorkflowStepError(step.value, e, record.saga_id) from e

        record.pending_step = None
        record.pending_tx = None

    def _persist_metadata(self, record: SagaRecord):
        draft = record.draft
        if record.election_id is None:
            record.election_id = new_id()
            self._save(record)
        if record.group_id is None:
            record.group_id = self.contracts.get_group_id(record.ledger_election_id)

        election = Election(
            id=record.election_id,
            name=draft.name,
            organizer_id=draft.organizer_id,
            explicit_status=initial_status(draft.start_time),
            start_time=as_utc(draft.start_time),
            end_time=as_utc(draft.end_time),
            visibility=draft.visibility,
            scope=record.scope,
            ledger_election_id=record.ledger_election_id,
            ledger_cohort_id=record.group_id,
            description=draft.description,
        )
        candidates = [
            Candidate(id=new_id(), election_id=election.id, name=c.name,
                      position=position, image=c.image or None)
            for position, c in enumerate(draft.candidates, start=1)
        ]
        self.repository.save_election(election)
        self.repository.save_candidates(election.id, candidates)

    # ------------------------------------------------------------------
    # Management
    # ------------------------------------------------------------------

    def _owned_election(self, organizer_id: str, election_id: str) -> Election:
        election = self.repository.get_election(election_id)
        if normalize_handle(election.organizer_id) != normalize_handle(organizer_id):
            raise AccessDeniedError(
                DenialReason.NOT_PARTICIPANT, "Only the organizer can manage this election")
        return election

    async def add_candidate(self, organizer_id: str, election_id: str,
                            name: str, image: str = "") -> Candidate:
        election = self._owned_election(organizer_id, election_id)
        if self.evaluator.evaluate(election) is LifecycleState.ENDED:
            raise ElectionNotActiveError("Cannot add candidates to an ended election",
                                         LifecycleState.ENDED)

        tx = self.contracts.add_candidate(election.ledger_election_id, name, image)
        await self.gateway.submit_and_confirm(tx, description="addCandidate")

        position = len(self.repository.get_candidates(election_id)) + 1
        candidate = Candidate(id=new_id(), election_id=election_id, name=name,
                              position=position, image=image or None)
        self.repository.add_candidate(candidate)
        logger.info(f"Candidate '{name}' added to election {election_id} at position {position}")
        return candidate

    def invite(self, organizer_id: str, election_id: str,
               voter_handles: Iterable[str]) -> List[Participation]:
        self._owned_election(organizer_id, election_id)

        invited = []
        for handle in dict.fromkeys(filter(None, map(normalize_handle, voter_handles))):
            if self.repository.find_participation(election_id, handle) is not None:
                continue
            participation = Participation(election_id=election_id, voter_handle=handle)
            self.repository.save_participation(participation)
            invited.append(participation)

        logger.info(f"Invited {len(invited)} voter(s) to election {election_id}")
        return invited

    def end_election(self, organizer_id: str, election_id: str) -> Election:
        election = self._owned_election(organizer_id, election_id)
        election.explicit_status = ElectionStatus.ENDED
        self.repository.save_election(election)
        logger.info(f"Election {election_id} ended by organizer")
        return election


# ============================================================================
# VOTER WORKFLOW
# ============================================================================


class VoterWorkflow:
    """Invitation handling and anonymous vote casting for one device"""

    def __init__(self, gateway: TransactionGateway, contracts: VotingContracts,
                 synchronizer: MembershipSynchronizer, repository: ElectionRepository,
                 seed_store: IdentitySeedStore, proof_builder: ProofBuilder,
                 vote_markers: VoteMarkerCache, local_store: KeyValueStore,
                 evaluator: Optional[ElectionLifecycleEvaluator] = None,
                 monitor: Optional[PerformanceMonitor] = None):
        self.gateway = gateway
        self.contracts = contracts
        self.synchronizer = synchronizer
        self.repository = repository
        self.seed_store = seed_store
        self.proof_builder = proof_builder
        self.vote_markers = vote_markers
        self.local_store = local_store
        self.evaluator = evaluator or ElectionLifecycleEvaluator()
        self.monitor = monitor or PerformanceMonitor()

    @staticmethod
    def _normalize(voter_handle: str) -> str:
        handle = normalize_handle(voter_handle)
        if not handle:
            raise AccessDeniedError(DenialReason.AUTH_REQUIRED, "Please sign in first")
        return handle

    def _participation(self, election_id: str, voter_handle: str) -> Participation:
        participation = self.repository.find_participation(election_id, voter_handle)
        if participation is None:
            raise ParticipationNotFoundError(
                f"No invitation for {voter_handle} in election {election_id}")
        return participation

    def _registration_key(self, election_id: str, voter_handle: str) -> str:
        return f"{REGISTRATION_KEY_PREFIX}{election_id}:{voter_handle}"

    async def accept_invitation(self, voter_handle: str, election_id: str) -> Participation:
        """Register the voter's commitment on the ledger, then mark the invitation accepted"""
        voter_handle = self._normalize(voter_handle)
        participation = self._participation(election_id, voter_handle)

        if participation.state is ParticipationState.ACCEPTED:
            return participation
        if participation.state is ParticipationState.REJECTED:
            raise ValidationError("Invitation already processed")

        election = self.repository.get_election(election_id)
        if not election.is_deployed:
            raise ValidationError("Election data incomplete; it is not deployed on the ledger")
        if self.evaluator.evaluate(election) is LifecycleState.ENDED:
            raise ElectionNotActiveError("This election has ended", LifecycleState.ENDED)

        identity = self.seed_store.load_identity(voter_handle)
        tx = self.contracts.add_commitment(election.ledger_election_id, identity.commitment)

        try:
            tx_handle = await self.gateway.submit_async(tx)
            self.local_store.put(self._registration_key(election_id, voter_handle), tx_handle)
            await self.gateway.await_confirmation(tx_handle, description="addCommitment")
        except TransactionRejectedError as e:
            if MEMBER_ALREADY_EXISTS not in str(e.reason or e).lower():
                raise
            logger.info(f"Commitment already registered for election {election_id}")

        participation.state = ParticipationState.ACCEPTED
        participation.updated_at = utc_now()
        self.repository.save_participation(participation)
        logger.info(f"Invitation accepted for election {election_id}")
        return participation

    def decline_invitation(self, voter_handle: str, election_id: str) -> Participation:
        voter_handle = self._normalize(voter_handle)
        participation = self._participation(election_id, voter_handle)

        if participation.state is ParticipationState.REJECTED:
            return participation
        if participation.state is ParticipationState.ACCEPTED:
            raise ValidationError("Invitation already accepted")

        participation.state = ParticipationState.REJECTED
        participation.updated_at = utc_now()
        self.repository.save_participation(participation)
        return participation

    def has_voted_locally(self, voter_handle: str, election_id: str) -> bool:
        return self.vote_markers.has_marker(election_id, self._normalize(voter_handle))

    async def cast_vote(self, voter_handle: str, election_id: str, candidate_id: str) -> VoteReceipt:
        voter_handle = self._normalize(voter_handle)
        election = self.repository.get_election(election_id)

        participation = self._participation(election_id, voter_handle)
        if participation.state is not ParticipationState.ACCEPTED:
            raise AccessDeniedError(DenialReason.NOT_PARTICIPANT, "Please accept the invitation first")

        state = self.evaluator.evaluate(election)
        if state is not LifecycleState.ACTIVE:
            raise ElectionNotActiveError(f"Election is {state.value}", state)

        candidates = self.repository.get_candidates(election_id)
        candidate = next((c for c in candidates if c.id == candidate_id), None)
        if candidate is None:
            raise CandidateNotFoundError(f"Candidate {candidate_id} not in election {election_id}")
        # Ledger candidate ids are 1-based positions in the candidate list
        message = candidates.index(candidate) + 1

        if self.vote_markers.has_marker(election_id, voter_handle):
            logger.info("Local marker says this identity already voted; the ledger will decide")

        identity = self.seed_store.load_identity(voter_handle)
        cohort = self.synchronizer.fetch_cohort(election.ledger_cohort_id)
        self.synchronizer.ensure_member(
            identity.commitment, cohort,
            self.local_store.get(self._registration_key(election_id, voter_handle)))

        with self.monitor.start_operation("build_proof"):
            proof = self.proof_builder.build_proof(identity.secret, cohort, election.scope, message)

        tx = self.contracts.cast_vote(election.ledger_election_id, message, proof.to_ledger_args())
        try:
            tx_handle = await self.gateway.submit_async(tx)
            with self.monitor.start_operation("await_vote_confirmation"):
                receipt = await self.gateway.await_confirmation(tx_handle, description="castVote")
        except TransactionRejectedError as e:
            if DoubleVoteGuard.classify(e) is VoteRejection.ALREADY_VOTED:
                self.vote_markers.mark(election_id, voter_handle)
                raise AlreadyVotedError(
                    "You have already voted in this election",
                    reason=e.reason, tx_handle=e.tx_handle) from e
            raise

        self.vote_markers.mark(election_id, voter_handle)
        self.repository.record_anonymous_vote(
            AnonymousVote(election_id=election_id, nullifier=proof.nullifier, message=message))
        logger.info(f"Vote cast in election {election_id}: nullifier {short(proof.nullifier, 20)}")

        return VoteReceipt(
            election_id=election_id,
            candidate_id=candidate_id,
            nullifier=proof.nullifier,
            tx_handle=tx_handle,
            block_number=receipt.block_number,
        )
