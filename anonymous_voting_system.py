#!/usr/bin/env python3
"""
Anonymous Ledger Voting System
==============================
Wires identity, cohort reconstruction, proof construction, transaction
confirmation, lifecycle, double-vote interpretation and tallying into a
single facade used by the CLI and the tests.
"""

import logging
import time
from typing import Any, Dict, Iterable, List, Optional

from config.config import SystemConfig
from election.double_vote import VoteMarkerCache
from election.models import (
    Candidate,
    Election,
    ElectionLifecycleEvaluator,
    LifecycleState,
    Participation,
    VoteReceipt,
)
from election.repository import ElectionRepository, InMemoryElectionRepository
from election.results import AccessGate, ResultsService
from election.workflows import ElectionDraft, OrganizerWorkflow, VoterWorkflow
from election.errors import WorkflowStepError
from ledger.contracts import VotingContracts
from ledger.errors import CohortIntegrityError, EmptyCohortError, LedgerError
from ledger.gateway import JsonRpcLedgerClient, LedgerClient, TransactionGateway
from ledger.membership import MembershipSynchronizer
from ledger.simulated import InMemoryLedger
from utils.storage import JsonFileKeyValueStore, KeyValueStore, MemoryKeyValueStore
from utils.utils import PerformanceMonitor
from zk.identity import IdentitySeedStore
from zk.zk_proofs import ProofBuilder, ProofVerifier, create_proving_backend

logger = logging.getLogger(__name__)

# ============================================================================
# ANONYMOUS VOTING SYSTEM
# ============================================================================


class AnonymousVotingSystem:
    """
    Facade over the voting core:
    1. Organizer saga: cohort registration, election and candidates on the ledger
    2. Voter workflow: commitment registration, membership proof, vote submission
    3. Results: access gate, live counts, winners and ties
    """

    def __init__(self, config: Optional[SystemConfig] = None,
                 ledger_client: Optional[LedgerClient] = None,
                 repository: Optional[ElectionRepository] = None,
                 persistent_state: bool = True):
        self.config = config or SystemConfig()
        zk_config = self.config.zk_config
        ledger_config = self.config.ledger_config

        logger.info("Initializing Anonymous Voting System...")

        backend = create_proving_backend(zk_config)
        self.proof_builder = ProofBuilder(zk_config, backend)
        self.proof_verifier = ProofVerifier(zk_config, backend)

        if ledger_client is None:
            if ledger_config.rpc_url:
                ledger_client = JsonRpcLedgerClient(ledger_config)
            else:
                logger.info("No RPC URL configured, using the in-process ledger")
                ledger_client = InMemoryLedger(
                    tree_depth=zk_config.tree_depth, verifier=self.proof_verifier)
        self.ledger_client = ledger_client

        self.seed_kv = self._store(persistent_state, self.config.storage_config.seed_store_path)
        self.local_kv = self._store(persistent_state, self.config.storage_config.vote_marker_path)
        self.saga_kv = self._store(persistent_state, self.config.storage_config.saga_path)

        self.repository = repository or InMemoryElectionRepository()
        self.gateway = TransactionGateway(ledger_client, ledger_config)
        self.contracts = VotingContracts(ledger_client, ledger_config)
        self.synchronizer = MembershipSynchronizer(self.contracts, self.gateway)
        self.evaluator = ElectionLifecycleEvaluator()
        self.monitor = PerformanceMonitor()
        self.seed_store = IdentitySeedStore(self.seed_kv)
        self.vote_markers = VoteMarkerCache(self.local_kv)

        self.organizer = OrganizerWorkflow(
            self.gateway, self.contracts, self.repository, self.saga_kv,
            evaluator=self.evaluator)
        self.voter = VoterWorkflow(
            self.gateway, self.contracts, self.synchronizer, self.repository,
            self.seed_store, self.proof_builder, self.vote_markers, self.local_kv,
            evaluator=self.evaluator, monitor=self.monitor)
        self.results = ResultsService(
            self.repository, self.contracts, AccessGate(self.repository), self.evaluator)

        logger.info(
            f"Anonymous Voting System initialized (tree depth {zk_config.tree_depth}, "
            f"backend {zk_config.proving_backend})")

    @staticmethod
    def _store(persistent: bool, path) -> KeyValueStore:
        if persistent:
            return JsonFileKeyValueStore(path)
        return MemoryKeyValueStore()

    # ------------------------------------------------------------------
    # Organizer
    # ------------------------------------------------------------------

    async def create_election(self, draft: ElectionDraft) -> Election:
        with self.monitor.start_operation("create_election"):
            return await self.organizer.create_election(draft)

    async def resume_pending(self) -> List[Election]:
        """Resume every unfinished creation saga; failures are logged and skipped"""
        resumed = []
        for saga_id in self.organizer.pending_sagas():
            try:
                resumed.append(await self.organizer.resume(saga_id))
            except WorkflowStepError as e:
                logger.error(f"Saga {saga_id} halted again at {e.step}: {e.cause}")
        return resumed

    async def add_candidate(self, organizer_id: str, election_id: str,
                            name: str, image: str = "") -> Candidate:
        return await self.organizer.add_candidate(organizer_id, election_id, name, image)

    def invite(self, organizer_id: str, election_id: str,
               voter_handles: Iterable[str]) -> List[Participation]:
        return self.organizer.invite(organizer_id, election_id, voter_handles)

    def end_election(self, organizer_id: str, election_id: str) -> Election:
        return self.organizer.end_election(organizer_id, election_id)

    # ------------------------------------------------------------------
    # Voter
    # ------------------------------------------------------------------

    async def accept_invitation(self, voter_handle: str, election_id: str) -> Participation:
        return await self.voter.accept_invitation(voter_handle, election_id)

    def decline_invitation(self, voter_handle: str, election_id: str) -> Participation:
        return self.voter.decline_invitation(voter_handle, election_id)

    async def cast_vote(self, voter_handle: str, election_id: str, candidate_id: str) -> VoteReceipt:
        with self.monitor.start_operation("cast_vote"):
            return await self.voter.cast_vote(voter_handle, election_id, candidate_id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def lifecycle(self, election_id: str) -> LifecycleState:
        return self.evaluator.evaluate(self.repository.get_election(election_id))

    def get_results(self, election_id: str, requester_id: Optional[str] = None) -> Dict[str, Any]:
        return self.results.get_results(election_id, requester_id)

    def diagnose(self, election_id: str) -> Dict[str, Any]:
        """Compare stored metadata with what the ledger reports"""
        election = self.repository.get_election(election_id)
        report: Dict[str, Any] = {
            'election_id': election.id,
            'ledger_election_id': election.ledger_election_id,
            'ledger_cohort_id': election.ledger_cohort_id,
            'lifecycle': self.evaluator.evaluate(election).value,
            'exists_on_ledger': False,
            'candidates': [],
            'cohort_size': 0,
            'issues': [],
        }

        if not election.is_deployed:
            report['issues'].append("Election is not deployed on the ledger")
            return report

        try:
            ledger_election = self.contracts.get_election(election.ledger_election_id)
        except LedgerError as e:
            report['issues'].append(f"Could not read election from ledger: {e}")
            return report

        if ledger_election is None:
            report['issues'].append("Election not found on the ledger")
            return report
        report['exists_on_ledger'] = True
        if ledger_election.scope != election.scope:
            report['issues'].append("Ledger scope differs from stored scope")

        ledger_candidates = self.contracts.get_candidates_with_counts(election.ledger_election_id)
        report['candidates'] = [
            {'id': c.id, 'name': c.name, 'voteCount': c.vote_count} for c in ledger_candidates]
        stored = self.repository.get_candidates(election.id)
        if len(stored) != len(ledger_candidates):
            report['issues'].append(
                f"{len(stored)} candidates stored but {len(ledger_candidates)} on the ledger")

        try:
            report['cohort_size'] = len(self.synchronizer.fetch_cohort(election.ledger_cohort_id))
        except EmptyCohortError:
            report['issues'].append("No cohort members registered yet")
        except CohortIntegrityError as e:
            report['issues'].append(str(e))

        return report

    def get_system_metrics(self) -> Dict[str, Any]:
        elections = self.repository.list_elections()
        return {
            'elections': len(elections),
            'active_elections': sum(
                1 for e in elections if self.evaluator.evaluate(e) is LifecycleState.ACTIVE),
            'pending_sagas': len(self.organizer.pending_sagas()),
            'tree_depth': self.config.zk_config.tree_depth,
            'proving_backend': self.config.zk_config.proving_backend,
            'performance': self.monitor.get_summary(),
            'timestamp': time.time(),
        }
