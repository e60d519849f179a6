"""Tallying, access gate and double-vote interpretation"""

import asyncio

import pytest

from election.double_vote import DoubleVoteGuard, VoteMarkerCache, VoteRejection
from election.errors import AccessDeniedError, DenialReason
from election.models import Visibility
from election.results import ResultsAggregator
from ledger.errors import TransactionRejectedError
from utils.errors import ValidationError
from utils.storage import MemoryKeyValueStore


class TestResultsAggregator:

    def test_single_winner(self):
        tally = ResultsAggregator.aggregate([("A", 5), ("B", 3), ("C", 2)])
        assert tally.total == 10
        assert [r.percentage for r in tally.per_candidate] == pytest.approx([50.0, 30.0, 20.0])
        assert tally.winners == ["A"]
        assert tally.has_winner
        assert not tally.is_tie

    def test_tie(self):
        tally = ResultsAggregator.aggregate([("A", 4), ("B", 4), ("C", 2)])
        assert tally.winners == ["A", "B"]
        assert tally.is_tie
        assert not tally.has_winner

    def test_no_votes(self):
        tally = ResultsAggregator.aggregate([("A", 0), ("B", 0), ("C", 0)])
        assert tally.total == 0
        assert all(r.percentage == 0 for r in tally.per_candidate)
        assert tally.winners == []
        assert not tally.is_tie
        assert not tally.has_winner

    def test_no_candidates(self):
        tally = ResultsAggregator.aggregate([])
        assert tally.total == 0
        assert tally.per_candidate == []
        assert not tally.has_winner

    def test_negative_count_rejected(self):
        with pytest.raises(ValidationError):
            ResultsAggregator.aggregate([("A", 1), ("B", -1)])


class TestDoubleVoteGuard:

    @pytest.mark.parametrize("error", [
        TransactionRejectedError("reverted", reason="NullifierAlreadyUsed"),
        TransactionRejectedError("execution reverted: nullifier already used"),
        TransactionRejectedError("castVote would revert: NULLIFIERALREADYUSED"),
    ])
    def test_already_voted(self, error):
        assert DoubleVoteGuard.classify(error) is VoteRejection.ALREADY_VOTED

    def test_data_attribute_inspected(self):
        error = RuntimeError("reverted")
        error.data = "0x...NullifierAlreadyUsed"
        assert DoubleVoteGuard.classify(error) is VoteRejection.ALREADY_VOTED

    def test_cause_chain_inspected(self):
        try:
            try:
                raise TransactionRejectedError("inner", reason="NullifierAlreadyUsed")
            except TransactionRejectedError as inner:
                raise RuntimeError("submission failed") from inner
        except RuntimeError as outer:
            assert DoubleVoteGuard.classify(outer) is VoteRejection.ALREADY_VOTED

    @pytest.mark.parametrize("error", [
        TransactionRejectedError("reverted", reason="ElectionEnded"),
        TransactionRejectedError("reverted", reason="InvalidProof"),
        RuntimeError("connection reset"),
    ])
    def test_other_failures(self, error):
        assert DoubleVoteGuard.classify(error) is VoteRejection.OTHER_FAILURE


def test_vote_marker_cache():
    markers = VoteMarkerCache(MemoryKeyValueStore())
    assert not markers.has_marker("e1", "a@example.org")
    markers.mark("e1", "a@example.org")
    assert markers.has_marker("e1", "a@example.org")
    assert not markers.has_marker("e2", "a@example.org")
    markers.clear("e1", "a@example.org")
    assert not markers.has_marker("e1", "a@example.org")


class TestAccessGate:

    @pytest.fixture
    def private_election(self, system, deploy):
        election = deploy(["member@example.org", "invited@example.org"])
        asyncio.run(system.accept_invitation("member@example.org", election.id))
        return election

    def test_public_results_open_to_anyone(self, system, deploy):
        election = deploy(visibility=Visibility.PUBLIC)
        assert system.results.gate.check(election, None).allowed
        assert system.get_results(election.id)['election']['isPublic']

    def test_private_requires_login(self, system, private_election):
        with pytest.raises(AccessDeniedError) as exc_info:
            system.get_results(private_election.id)
        assert exc_info.value.reason is DenialReason.AUTH_REQUIRED

    def test_private_rejects_non_participants(self, system, private_election):
        for requester in ("stranger@example.org", "invited@example.org"):
            with pytest.raises(AccessDeniedError) as exc_info:
                system.get_results(private_election.id, requester)
            assert exc_info.value.reason is DenialReason.NOT_PARTICIPANT

    def test_private_allows_organizer_and_members(self, system, organizer, private_election):
        assert system.get_results(private_election.id, organizer)['total'] == 0
        assert system.get_results(private_election.id, "member@example.org")['total'] == 0

    def test_handle_request_status_codes(self, system, private_election):
        status, body = system.results.handle_request(private_election.id)
        assert status == 403
        assert body['isPrivate'] and body['requiresAuth']

        status, body = system.results.handle_request(private_election.id, "stranger@example.org")
        assert status == 403
        assert body['notParticipant']
        assert 'requiresAuth' not in body

        status, body = system.results.handle_request("missing-election", "member@example.org")
        assert status == 404

        status, body = system.results.handle_request(private_election.id, "member@example.org")
        assert status == 200
        assert [c['name'] for c in body['perCandidate']] == ["Alice", "Bob", "Carol"]

    def test_handles_compare_case_insensitively(self, system, organizer, deploy):
        election = deploy(["Member@Example.org"])
        asyncio.run(system.accept_invitation("Member@Example.org", election.id))

        for requester in ("Member@Example.org", "  member@example.org ", organizer.upper()):
            assert system.get_results(election.id, requester)['total'] == 0

    def test_blank_requester_needs_login(self, system, private_election):
        with pytest.raises(AccessDeniedError) as exc_info:
            system.get_results(private_election.id, "   ")
        assert exc_info.value.reason is DenialReason.AUTH_REQUIRED
