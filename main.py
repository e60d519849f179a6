import asyncio
import logging
import sys
import argparse
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional

from anonymous_voting_system import AnonymousVotingSystem
from config.config import SystemConfig, load_config, save_config
from election.errors import AlreadyVotedError
from election.models import ElectionStatus, Visibility, classify_lifecycle, utc_now
from election.workflows import CandidateDraft, ElectionDraft
from utils.errors import VotingSystemError
from utils.utils import (
    compute_hash,
    create_performance_report,
    get_system_info,
    save_results,
    setup_logging,
)

logger = logging.getLogger(__name__)

DEMO_CANDIDATES = ["Alice", "Bob", "Carol", "Dave", "Erin"]


async def run_demo(config: SystemConfig, num_voters: int = 5, num_candidates: int = 3) -> bool:
    print("=" * 80)
    print("ANONYMOUS LEDGER VOTING - DEMONSTRATION")
    print("   Poseidon commitments + fixed-depth Merkle cohort + nullifiers")
    print("=" * 80)

    # The demo always runs on the in-process ledger with throwaway state
    config.ledger_config.rpc_url = ""
    config.ledger_config.poll_interval_ms = 10
    system = AnonymousVotingSystem(config, persistent_state=False)

    organizer = "organizer@example.org"
    voters = [f"voter{i:02d}@example.org" for i in range(num_voters)]

    print(f"\nCreating private election with {num_candidates} candidates...")
    draft = ElectionDraft(
        name="Demo Election",
        organizer_id=organizer,
        candidates=[CandidateDraft(name) for name in DEMO_CANDIDATES[:num_candidates]],
        end_time=utc_now() + timedelta(hours=1),
        visibility=Visibility.PRIVATE,
    )

    try:
        election = await system.create_election(draft)
        print(f"  Ledger election id: {election.ledger_election_id}")
        print(f"  Cohort (group) id:  {election.ledger_cohort_id}")
        print(f"  Lifecycle:          {system.lifecycle(election.id).value}")

        system.invite(organizer, election.id, voters)
        print(f"\nRegistering {num_voters} voter commitments...")
        for voter in voters:
            await system.accept_invitation(voter, election.id)
            print(f"  {voter}: accepted")

        candidates = system.repository.get_candidates(election.id)
        print("\nCasting anonymous votes...")
        for i, voter in enumerate(voters):
            choice = candidates[i % len(candidates)]
            receipt = await system.cast_vote(voter, election.id, choice.id)
            print(f"  vote for {choice.name}: nullifier {str(receipt.nullifier)[:16]}...")

        print("\nAttempting a second vote from the first voter...")
        try:
            await system.cast_vote(voters[0], election.id, candidates[0].id)
            print("  Unexpectedly accepted")
        except AlreadyVotedError as e:
            print(f"  Rejected by the ledger: {e}")

        results = system.get_results(election.id, organizer)

        print("\n" + "=" * 40)
        print("ELECTION RESULTS")
        print("=" * 40)
        for row in results['perCandidate']:
            print(f"  {row['name']:<10} {row['voteCount']:>3} votes ({row['percentage']:.1f}%)")
        print(f"\nTotal votes: {results['total']}")
        if results['hasWinner']:
            print(f"Winner: {results['winners'][0]['name']}")
        elif results['isTie']:
            print(f"Tie between: {', '.join(w['name'] for w in results['winners'])}")

        diagnosis = system.diagnose(election.id)
        print(f"\nDiagnostics: cohort size {diagnosis['cohort_size']}, "
              f"issues: {diagnosis['issues'] or 'none'}")

        report_path = config.results_dir / "demo_results.json"
        save_results({
            'results': results,
            'diagnosis': diagnosis,
            'results_digest': compute_hash(results),
            'metrics': system.get_system_metrics(),
            'system_info': get_system_info(),
        }, report_path)

        perf_path = config.results_dir / "performance_report.txt"
        with open(perf_path, "w") as f:
            f.write(create_performance_report(system.monitor))

        print(f"\nFull results saved to: {report_path}")
        print(f"Performance report: {perf_path}")
        return True

    except VotingSystemError as e:
        logger.error(f"Demo failed: {e}")
        print(f"\nDemo failed: {e}")
        return False


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def show_lifecycle(status: str, start: Optional[str], end: Optional[str], now: Optional[str]) -> str:
    state = classify_lifecycle(
        ElectionStatus(status), _parse_time(start), _parse_time(end), _parse_time(now))
    print(state.value)
    return state.value


def main():
    parser = argparse.ArgumentParser(
        description='Anonymous Ledger Voting System')
    parser.add_argument('--config', type=str,
                        default='config.yaml', help='Config file path')
    parser.add_argument(
        '--mode', choices=['demo', 'lifecycle', 'init-config'], default='demo')
    parser.add_argument('--voters', type=int, default=5,
                        help='Number of voters (demo)')
    parser.add_argument('--candidates', type=int, default=3,
                        choices=range(1, len(DEMO_CANDIDATES) + 1),
                        help='Number of candidates (demo)')
    parser.add_argument('--status', choices=[s.value for s in ElectionStatus],
                        default='active', help='Explicit status (lifecycle)')
    parser.add_argument('--start', help='ISO start time (lifecycle)')
    parser.add_argument('--end', help='ISO end time (lifecycle)')
    parser.add_argument('--now', help='ISO evaluation instant, default now (lifecycle)')

    args = parser.parse_args()

    if args.mode == 'init-config':
        save_config(SystemConfig(), Path(args.config))
        print(f"Default configuration written to {args.config}")
        sys.exit(0)

    if args.mode == 'lifecycle':
        show_lifecycle(args.status, args.start, args.end, args.now)
        sys.exit(0)

    config = load_config(Path(args.config))
    setup_logging(config.log_level, config.log_dir / "voting_core.log")

    success = asyncio.run(run_demo(config, args.voters, args.candidates))
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
