import asyncio
from datetime import timedelta

import pytest

from anonymous_voting_system import AnonymousVotingSystem
from config.config import LedgerConfig, StorageConfig, SystemConfig, ZKConfig
from election.models import Visibility, utc_now
from election.workflows import CandidateDraft, ElectionDraft
from ledger.simulated import InMemoryLedger
from zk.zk_proofs import ProofVerifier

ORGANIZER = "organizer@example.org"


def _make_draft(candidates=("Alice", "Bob", "Carol"), start_in=None, end_in=timedelta(hours=1),
                visibility=Visibility.PRIVATE, name="Board Election"):
    now = utc_now()
    return ElectionDraft(
        name=name,
        organizer_id=ORGANIZER,
        candidates=[CandidateDraft(c) for c in candidates],
        start_time=now + start_in if start_in is not None else None,
        end_time=now + end_in if end_in is not None else None,
        visibility=visibility,
    )


@pytest.fixture
def organizer():
    return ORGANIZER


@pytest.fixture
def make_draft():
    return _make_draft


@pytest.fixture
def system_config(tmp_path):
    return SystemConfig(
        zk_config=ZKConfig(tree_depth=20),
        ledger_config=LedgerConfig(
            rpc_url="", poll_interval_ms=0, max_confirmation_attempts=3),
        storage_config=StorageConfig(state_dir=tmp_path / "state"),
        log_dir=tmp_path / "logs",
        results_dir=tmp_path / "results",
    )


@pytest.fixture
def ledger(system_config):
    zk_config = system_config.zk_config
    return InMemoryLedger(tree_depth=zk_config.tree_depth, verifier=ProofVerifier(zk_config), seed=7)


@pytest.fixture
def system(system_config, ledger):
    return AnonymousVotingSystem(system_config, ledger_client=ledger)


@pytest.fixture
def deploy(system, organizer, make_draft):
    """Create an election through the saga and invite the given voters"""

    def _deploy(voters=(), target=None, **draft_kwargs):
        target = target or system
        election = asyncio.run(target.create_election(make_draft(**draft_kwargs)))
        target.invite(organizer, election.id, voters)
        return election

    return _deploy
