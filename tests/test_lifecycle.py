"""Lifecycle classification truth table"""

from datetime import datetime, timedelta, timezone

import pytest

from election.ids import LedgerIdGenerator
from election.models import (
    Election,
    ElectionLifecycleEvaluator,
    ElectionStatus,
    LifecycleState,
    classify_lifecycle,
    initial_status,
)

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)
PAST = NOW - timedelta(hours=1)
FUTURE = NOW + timedelta(hours=1)

DRAFT, ACTIVE_S, ENDED_S = ElectionStatus.DRAFT, ElectionStatus.ACTIVE, ElectionStatus.ENDED
PENDING, ACTIVE, ENDED = LifecycleState.PENDING, LifecycleState.ACTIVE, LifecycleState.ENDED


@pytest.mark.parametrize("status, start, end, expected", [
    # Explicit end wins over any window
    (ENDED_S, None, None, ENDED),
    (ENDED_S, FUTURE, None, ENDED),
    (ENDED_S, PAST, FUTURE, ENDED),
    # Open-ended windows
    (ACTIVE_S, None, None, ACTIVE),
    (ACTIVE_S, PAST, None, ACTIVE),
    (ACTIVE_S, None, FUTURE, ACTIVE),
    (ACTIVE_S, None, PAST, ENDED),
    # Start in the future
    (ACTIVE_S, FUTURE, None, PENDING),
    (ACTIVE_S, FUTURE, FUTURE + timedelta(hours=1), PENDING),
    # Inside and after a closed window
    (ACTIVE_S, PAST, FUTURE, ACTIVE),
    (ACTIVE_S, PAST - timedelta(hours=1), PAST, ENDED),
    # Boundaries: start is inclusive, end is exclusive
    (ACTIVE_S, NOW, None, ACTIVE),
    (ACTIVE_S, PAST, NOW, ENDED),
    (ACTIVE_S, NOW, NOW, ENDED),
    # Draft does not hold back an open window
    (DRAFT, None, None, ACTIVE),
    (DRAFT, PAST, FUTURE, ACTIVE),
    (DRAFT, FUTURE, None, PENDING),
    (DRAFT, PAST, NOW, ENDED),
])
def test_classification(status, start, end, expected):
    assert classify_lifecycle(status, start, end, NOW) is expected


def test_naive_datetimes_are_utc():
    naive_start = datetime(2025, 6, 1, 13, 0)
    assert classify_lifecycle(ACTIVE_S, naive_start, None, NOW) is PENDING


def test_recomputed_on_every_query():
    clock = [PAST]
    evaluator = ElectionLifecycleEvaluator(clock=lambda: clock[0])
    election = Election(id="e1", name="E", organizer_id="o",
                        explicit_status=ACTIVE_S, start_time=NOW, end_time=FUTURE)

    assert evaluator.evaluate(election) is PENDING
    clock[0] = NOW
    assert evaluator.evaluate(election) is ACTIVE
    clock[0] = FUTURE
    assert evaluator.evaluate(election) is ENDED


def test_initial_status():
    assert initial_status(None, NOW) is ElectionStatus.ACTIVE
    assert initial_status(PAST, NOW) is ElectionStatus.ACTIVE
    assert initial_status(NOW, NOW) is ElectionStatus.ACTIVE
    assert initial_status(FUTURE, NOW) is ElectionStatus.DRAFT


def test_ledger_ids_are_fixed_width():
    generator = LedgerIdGenerator(clock=lambda: 1700000000.5)
    election_id, scope = generator.election_id(), generator.scope()
    assert str(election_id).startswith("1700000000")
    assert len(str(election_id)) == 14
    assert len(str(scope)) == 16
