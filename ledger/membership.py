import logging
from typing import List, Optional, Sequence

from utils.utils import short
from .contracts import MembershipEvent, VotingContracts
from .errors import (
    CohortIntegrityError,
    CommitmentNotRegisteredError,
    EmptyCohortError,
    RegistrationPendingError,
)
from .gateway import TransactionGateway

logger = logging.getLogger(__name__)


def order_cohort(events: Sequence[MembershipEvent]) -> List[int]:
    """Commitments in strict on-ledger insertion order.

    Identical duplicate events (same index and commitment, e.g. from
    overlapping log pages) collapse to one. Two different commitments at
    the same index, or any gap in 0..n-1, mean the reconstructed root would
    not match the ledger's, so they raise CohortIntegrityError.
    """
    by_index = {}
    for event in events:
        seen = by_index.get(event.index)
        if seen is not None and seen != event.commitment:
            raise CohortIntegrityError(
                f"Conflicting commitments at membership index {event.index}")
        by_index[event.index] = event.commitment

    indices = sorted(by_index)
    if indices != list(range(len(indices))):
        missing = sorted(set(range(indices[-1] + 1)) - set(indices)) if indices else []
        raise CohortIntegrityError(
            f"Membership log is incomplete: missing indices {missing[:10]}; "
            f"widen the search window")
    return [by_index[i] for i in indices]


class MembershipSynchronizer:
    """Reconstructs the cohort from the ledger's membership-registration log"""

    def __init__(self, contracts: VotingContracts, gateway: Optional[TransactionGateway] = None):
        self.contracts = contracts
        self.gateway = gateway

    def fetch_cohort(self, group_id: int, search_window: Optional[int] = None) -> List[int]:
        if search_window is None:
            search_window = self.contracts.config.membership_search_window

        events = self.contracts.get_membership_log(group_id, search_window)
        if not events:
            raise EmptyCohortError(
                f"No members found on the ledger for group {group_id}; "
                f"accept the invitation first")

        cohort = order_cohort(events)
        logger.info(f"Cohort for group {group_id}: {len(cohort)} members")
        return cohort

    def ensure_member(self, commitment: int, cohort: Sequence[int],
                      registration_tx: Optional[str] = None) -> None:
        """Distinguish "never registered" from "registration still pending".

        With a known registration handle the ledger is asked for its
        receipt: none yet means pending, a failed receipt means the
        registration did not happen.
        """
        if commitment in cohort:
            return

        if registration_tx and self.gateway is not None:
            receipt = self.gateway.get_receipt(registration_tx)
            if receipt is None:
                raise RegistrationPendingError(
                    f"Registration transaction {short(registration_tx, 20)} is still pending",
                    tx_handle=registration_tx)
            if not receipt.succeeded:
                raise CommitmentNotRegisteredError(
                    f"Registration transaction {short(registration_tx, 20)} failed; "
                    f"accept the invitation again")
            # Confirmed but outside the log we read
            raise RegistrationPendingError(
                "Registration confirmed but not yet visible in the membership log",
                tx_handle=registration_tx)

        raise CommitmentNotRegisteredError(
            f"Commitment {short(commitment, 20)} is not registered for this election; "
            f"the registration may have failed or still be pending")
