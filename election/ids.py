import secrets
import time
from typing import Callable


class LedgerIdGenerator:
    """Ledger-side identifiers: unix seconds followed by random digits.

    Election ids take a 4-digit suffix and scopes (external nullifiers) a
    6-digit one. Suffixes are zero-padded so every id of a kind has the
    same width for a given second.
    """

    ELECTION_SUFFIX_DIGITS = 4
    SCOPE_SUFFIX_DIGITS = 6

    def __init__(self, clock: Callable[[], float] = time.time):
        self.clock = clock

    def _generate(self, digits: int) -> int:
        suffix = secrets.randbelow(10 ** digits)
        return int(f"{int(self.clock())}{suffix:0{digits}d}")

    def election_id(self) -> int:
        return self._generate(self.ELECTION_SUFFIX_DIGITS)

    def scope(self) -> int:
        return self._generate(self.SCOPE_SUFFIX_DIGITS)
