"""Cohort reconstruction from the membership log"""

import asyncio

import pytest

from anonymous_voting_system import AnonymousVotingSystem
from ledger.contracts import MembershipEvent
from ledger.errors import (
    CohortIntegrityError,
    CommitmentNotRegisteredError,
    EmptyCohortError,
    RegistrationPendingError,
    TransactionRejectedError,
    TransactionTimeoutError,
)
from ledger.membership import order_cohort
from ledger.simulated import InMemoryLedger
from zk.identity import derive_commitment


def event(index, commitment):
    return MembershipEvent(group_id=1, index=index, commitment=commitment, merkle_root=0)


class TestOrderCohort:

    def test_sorts_by_insertion_index(self):
        events = [event(2, 30), event(0, 10), event(1, 20)]
        assert order_cohort(events) == [10, 20, 30]

    def test_identical_duplicates_collapse(self):
        events = [event(0, 10), event(1, 20), event(1, 20)]
        assert order_cohort(events) == [10, 20]

    def test_conflicting_duplicates_rejected(self):
        with pytest.raises(CohortIntegrityError):
            order_cohort([event(0, 10), event(0, 11)])

    def test_gap_rejected(self):
        with pytest.raises(CohortIntegrityError):
            order_cohort([event(0, 10), event(2, 30)])


class TestMembershipSynchronizer:

    def test_shuffled_arrival_yields_insertion_order(self, system_config, deploy):
        ledger = InMemoryLedger(tree_depth=20, shuffle_logs=True, seed=3)
        system = AnonymousVotingSystem(system_config, ledger_client=ledger)
        voters = [f"v{i}@example.org" for i in range(5)]
        election = deploy(voters, target=system)
        for voter in voters:
            asyncio.run(system.accept_invitation(voter, election.id))

        expected = [system.seed_store.load_identity(v).commitment for v in voters]
        for _ in range(3):
            assert system.synchronizer.fetch_cohort(election.ledger_cohort_id) == expected

    def test_empty_cohort(self, system, deploy):
        election = deploy()
        with pytest.raises(EmptyCohortError):
            system.synchronizer.fetch_cohort(election.ledger_cohort_id)

    def test_events_outside_window_are_reported(self, system, ledger, deploy):
        voters = ["a@example.org", "b@example.org"]
        election = deploy(voters)
        asyncio.run(system.accept_invitation(voters[0], election.id))
        ledger.advance_blocks(50)
        asyncio.run(system.accept_invitation(voters[1], election.id))

        with pytest.raises(CohortIntegrityError):
            system.synchronizer.fetch_cohort(election.ledger_cohort_id, search_window=10)
        assert len(system.synchronizer.fetch_cohort(election.ledger_cohort_id)) == 2

    def test_absent_commitment_not_registered(self, system, deploy):
        voters = ["a@example.org"]
        election = deploy(voters)
        asyncio.run(system.accept_invitation(voters[0], election.id))
        cohort = system.synchronizer.fetch_cohort(election.ledger_cohort_id)

        with pytest.raises(CommitmentNotRegisteredError):
            system.synchronizer.ensure_member(derive_commitment("stranger"), cohort)

    def test_absent_commitment_with_pending_registration(self, system, ledger, deploy):
        voters = ["a@example.org", "b@example.org"]
        election = deploy(voters)
        asyncio.run(system.accept_invitation(voters[0], election.id))

        ledger.drop_next("addCommitment")
        with pytest.raises(TransactionTimeoutError) as exc_info:
            asyncio.run(system.accept_invitation(voters[1], election.id))
        handle = exc_info.value.tx_handle

        cohort = system.synchronizer.fetch_cohort(election.ledger_cohort_id)
        commitment = system.seed_store.load_identity(voters[1]).commitment
        with pytest.raises(RegistrationPendingError) as pending:
            system.synchronizer.ensure_member(commitment, cohort, registration_tx=handle)
        assert pending.value.tx_handle == handle

    def test_absent_commitment_with_failed_registration(self, system, ledger, deploy):
        voters = ["a@example.org", "b@example.org"]
        election = deploy(voters)
        asyncio.run(system.accept_invitation(voters[0], election.id))

        ledger.fail_next("addCommitment")
        with pytest.raises(TransactionRejectedError) as exc_info:
            asyncio.run(system.accept_invitation(voters[1], election.id))

        cohort = system.synchronizer.fetch_cohort(election.ledger_cohort_id)
        commitment = system.seed_store.load_identity(voters[1]).commitment
        with pytest.raises(CommitmentNotRegisteredError):
            system.synchronizer.ensure_member(
                commitment, cohort, registration_tx=exc_info.value.tx_handle)
