"""
In-process ledger used by the demo and the test suite.

Implements the same contract surface as the deployed system (group
manager, membership log, voting contract with a nullifier set) as a
deterministic state machine behind the `LedgerClient` interface.
Transactions execute when they are mined, and receipts can be delayed,
dropped or forced to fail to exercise the confirmation paths.
"""

import copy
import hashlib
import itertools
import logging
import random
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set

from utils.utils import short
from zk.merkle import FixedDepthMerkleTree
from zk.zk_proofs import Proof, ProofVerifier
from .errors import TransactionRejectedError
from .gateway import LedgerClient, LedgerTransaction, ReceiptStatus, TransactionReceipt

logger = logging.getLogger(__name__)

NULLIFIER_ALREADY_USED = "NullifierAlreadyUsed"


class _Revert(Exception):

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


@dataclass
class _LedgerState:
    groups: Dict[int, FixedDepthMerkleTree] = field(default_factory=dict)
    group_by_seed: Dict[int, int] = field(default_factory=dict)
    root_history: Dict[int, Set[int]] = field(default_factory=dict)
    member_log: List[Dict[str, Any]] = field(default_factory=list)
    elections: Dict[int, Dict[str, Any]] = field(default_factory=dict)
    candidates: Dict[int, List[Dict[str, Any]]] = field(default_factory=dict)
    nullifiers: Set[int] = field(default_factory=set)
    next_group_id: int = 1
    block: int = 0


@dataclass
class _PendingTx:
    handle: str
    tx: LedgerTransaction
    polls_remaining: int
    dropped: bool = False
    force_failure: Optional[str] = None
    receipt: Optional[TransactionReceipt] = None


class InMemoryLedger(LedgerClient):
    """Simulated ledger node.

    Args:
        tree_depth: depth of every cohort tree (must match the verifier).
        verifier: when given, castVote checks the proof with it.
        receipt_delay: receipt polls answered with "not yet" before mining.
        shuffle_logs: return membership events in random order.
        reject_on_submit: dry-run each transaction at submission and raise
            TransactionRejectedError for anything that would revert, the way
            a wallet's gas estimation does.
        clock: unix-seconds source for election time windows.
    """

    def __init__(self, tree_depth: int = 20, verifier: Optional[ProofVerifier] = None,
                 receipt_delay: int = 0, shuffle_logs: bool = False,
                 reject_on_submit: bool = True, clock: Callable[[], float] = time.time,
                 seed: Optional[int] = None):
        self.tree_depth = tree_depth
        self.verifier = verifier
        self.receipt_delay = receipt_delay
        self.shuffle_logs = shuffle_logs
        self.reject_on_submit = reject_on_submit
        self.clock = clock
        self._rng = random.Random(seed)
        self._state = _LedgerState()
        self._pending: Dict[str, _PendingTx] = {}
        self._counter = itertools.count(1)
        self._fail_next: Dict[str, str] = {}
        self._drop_next: Set[str] = set()
        # Client calls arrive from executor threads
        self._lock = threading.RLock()

        # Observability for tests
        self.sent: List[LedgerTransaction] = []
        self.receipt_polls = 0

        self._handlers = {
            'registerElectionGroup': self._register_election_group,
            'createElection': self._create_election,
            'addCandidates': self._add_candidates,
            'addCandidate': self._add_candidate,
            'addCommitment': self._add_commitment,
            'castVote': self._cast_vote,
        }

    # ------------------------------------------------------------------
    # Fault injection
    # ------------------------------------------------------------------

    def fail_next(self, method: str, reason: str = "ExecutionReverted"):
        """Mine the next `method` transaction with a failed receipt"""
        self._fail_next[method] = reason

    def drop_next(self, method: str):
        """Never produce a receipt for the next `method` transaction"""
        self._drop_next.add(method)

    def advance_blocks(self, count: int):
        self._state.block += count

    def mine_pending(self):
        for pending in list(self._pending.values()):
            if pending.receipt is None and not pending.dropped:
                self._mine(pending)

    def release_dropped(self):
        """Let dropped transactions be mined on their next poll"""
        for pending in self._pending.values():
            if pending.dropped:
                pending.dropped = False
                pending.polls_remaining = 0

    # ------------------------------------------------------------------
    # LedgerClient
    # ------------------------------------------------------------------

    def send_transaction(self, tx: LedgerTransaction) -> str:
        with self._lock:
            handler = self._handlers.get(tx.method)
            if handler is None:
                raise TransactionRejectedError(
                    f"Unknown method {tx.method}", reason="UnknownMethod")

            if self.reject_on_submit and tx.method not in self._fail_next:
                try:
                    handler(copy.deepcopy(self._state), *tx.args)
                except _Revert as e:
                    raise TransactionRejectedError(
                        f"{tx.method} would revert: {e.reason}", reason=e.reason) from e

            handle = "0x" + hashlib.sha256(f"tx-{next(self._counter)}".encode()).hexdigest()
            pending = _PendingTx(handle=handle, tx=tx, polls_remaining=self.receipt_delay)
            if tx.method in self._fail_next:
                pending.force_failure = self._fail_next.pop(tx.method)
            if tx.method in self._drop_next:
                self._drop_next.discard(tx.method)
                pending.dropped = True

            self._pending[handle] = pending
            self.sent.append(tx)
            logger.debug(f"Ledger accepted {tx.method}: {short(handle, 20)}")
            return handle

    def get_receipt(self, tx_handle: str) -> Optional[TransactionReceipt]:
        with self._lock:
            self.receipt_polls += 1
            pending = self._pending.get(tx_handle)
            if pending is None or pending.dropped:
                return None
            if pending.receipt is None:
                if pending.polls_remaining > 0:
                    pending.polls_remaining -= 1
                    return None
                self._mine(pending)
            return pending.receipt

    def call(self, contract: str, method: str, *args: Any) -> Any:
        state = self._state
        if method == 'getGroupId':
            seed = int(args[0])
            if seed not in state.group_by_seed:
                raise TransactionRejectedError("getGroupId reverted", reason="GroupNotFound")
            return state.group_by_seed[seed]
        if method == 'elections':
            election = state.elections.get(int(args[0]))
            if election is None:
                return {'exists': False}
            return dict(election)
        if method == 'getCandidates':
            return [dict(c) for c in state.candidates.get(int(args[0]), [])]
        raise TransactionRejectedError(f"Unknown view {method}", reason="UnknownMethod")

    def get_logs(self, contract: str, event: str, from_block: int,
                 filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        filters = filters or {}
        logs = [
            dict(entry) for entry in self._state.member_log
            if entry['blockNumber'] >= from_block
            and all(entry.get(k) == v for k, v in filters.items())
        ]
        if self.shuffle_logs:
            self._rng.shuffle(logs)
        return logs

    def block_number(self) -> int:
        return self._state.block

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def _mine(self, pending: _PendingTx):
        self._state.block += 1
        block = self._state.block

        if pending.force_failure:
            pending.receipt = TransactionReceipt(
                pending.handle, ReceiptStatus.FAILED, block, pending.force_failure)
            return

        handler = self._handlers[pending.tx.method]
        try:
            handler(self._state, *pending.tx.args)
        except _Revert as e:
            logger.debug(f"{pending.tx.method} reverted in block {block}: {e.reason}")
            pending.receipt = TransactionReceipt(
                pending.handle, ReceiptStatus.FAILED, block, e.reason)
            return
        pending.receipt = TransactionReceipt(pending.handle, ReceiptStatus.SUCCESS, block)

    def _election(self, state: _LedgerState, election_id: int) -> Dict[str, Any]:
        election = state.elections.get(int(election_id))
        if election is None:
            raise _Revert("ElectionNotFound")
        return election

    def _register_election_group(self, state: _LedgerState, seed: int):
        if seed in state.group_by_seed:
            raise _Revert("GroupAlreadyExists")
        group_id = state.next_group_id
        state.next_group_id += 1
        state.group_by_seed[seed] = group_id
        tree = FixedDepthMerkleTree(self.tree_depth)
        state.groups[group_id] = tree
        state.root_history[group_id] = set()

    def _create_election(self, state: _LedgerState, election_id: int, group_id: int,
                         scope: int, starts_at: int, ends_at: int, is_public: bool):
        if election_id in state.elections:
            raise _Revert("ElectionAlreadyExists")
        if group_id not in state.groups:
            raise _Revert("GroupNotFound")
        state.elections[election_id] = {
            'id': election_id,
            'groupId': group_id,
            'externalNullifier': scope,
            'startsAt': starts_at,
            'endsAt': ends_at,
            'isPublic': is_public,
            'ended': False,
            'exists': True,
        }
        state.candidates[election_id] = []

    def _append_candidate(self, state: _LedgerState, election_id: int, name: str, image: str):
        election = self._election(state, election_id)
        if election['ended']:
            raise _Revert("ElectionEnded")
        candidates = state.candidates[election_id]
        candidates.append({
            'id': len(candidates) + 1,
            'name': name,
            'image': image,
            'voteCount': 0,
        })

    def _add_candidates(self, state: _LedgerState, election_id: int, names, images):
        if len(names) != len(images):
            raise _Revert("LengthMismatch")
        for name, image in zip(names, images):
            self._append_candidate(state, election_id, name, image)

    def _add_candidate(self, state: _LedgerState, election_id: int, name: str, image: str):
        self._append_candidate(state, election_id, name, image)

    def _add_commitment(self, state: _LedgerState, election_id: int, commitment: int):
        election = self._election(state, election_id)
        group_id = election['groupId']
        tree = state.groups[group_id]
        if tree.index_of(commitment) is not None:
            raise _Revert("MemberAlreadyExists")
        if tree.size >= tree.capacity:
            raise _Revert("GroupFull")
        index = tree.insert(commitment)
        state.root_history[group_id].add(tree.root)
        state.member_log.append({
            'groupId': group_id,
            'index': index,
            'identityCommitment': commitment,
            'merkleTreeRoot': tree.root,
            # Logged in the block this transaction is mined into
            'blockNumber': state.block,
        })

    def _cast_vote(self, state: _LedgerState, election_id: int, candidate_id: int,
                   proof_args: Dict[str, Any]):
        election = self._election(state, election_id)
        now = int(self.clock())
        if election['ended'] or (election['endsAt'] and now >= election['endsAt']):
            raise _Revert("ElectionEnded")
        if election['startsAt'] and now < election['startsAt']:
            raise _Revert("ElectionNotStarted")

        candidates = state.candidates[election_id]
        if not 1 <= candidate_id <= len(candidates):
            raise _Revert("InvalidCandidate")

        proof = Proof.from_ledger_args(proof_args)
        if proof.scope != election['externalNullifier']:
            raise _Revert("ScopeMismatch")
        if proof.message != candidate_id:
            raise _Revert("MessageMismatch")
        if proof.merkle_depth != self.tree_depth:
            raise _Revert("MerkleTreeDepthIsNotSupported")
        if proof.merkle_root not in state.root_history[election['groupId']]:
            raise _Revert("MerkleTreeRootIsNotPartOfTheGroup")
        if proof.nullifier in state.nullifiers:
            raise _Revert(NULLIFIER_ALREADY_USED)
        if self.verifier is not None and not self.verifier.verify(proof):
            raise _Revert("InvalidProof")

        state.nullifiers.add(proof.nullifier)
        candidates[candidate_id - 1]['voteCount'] += 1
