"""
Voter identity: one durable secret per identity handle, and the public
commitment / nullifier derived from it.

The secret never leaves this module except as the HKDF-derived scalar
handed to the proof builder.
"""

import logging
import secrets
from dataclasses import dataclass, field
from typing import Optional

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from utils.errors import StorageError, ValidationError
from utils.storage import KeyValueStore
from utils.utils import short
from .poseidon import FIELD_PRIME, poseidon_hash, to_field

logger = logging.getLogger(__name__)

# Domain separation tags ("COMMITMENT", "NULLIFIER")
COMMITMENT_DOMAIN = 0x434f4d4d49544d454e54
NULLIFIER_DOMAIN = 0x4e554c4c4946494552

SEED_KEY_PREFIX = "voter_seed_"
LEGACY_SEED_KEY = "voter_seed"
SEED_BYTES = 32


def derive_identity_scalar(secret: str) -> int:
    """Expand a stored secret into a non-zero BN254 scalar"""
    if not isinstance(secret, str) or not secret:
        raise ValidationError("Voter secret must be a non-empty string")

    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=48,
        salt=None,
        info=b"anonymous-voting/identity-scalar/v1",
    )
    # 48 bytes keeps the modular bias negligible
    scalar = int.from_bytes(hkdf.derive(secret.encode()), 'big') % FIELD_PRIME
    return scalar or 1


def derive_commitment(secret: str) -> int:
    """Public commitment registered as a cohort member"""
    return poseidon_hash([COMMITMENT_DOMAIN, derive_identity_scalar(secret)])


def compute_nullifier(secret: str, scope: int) -> int:
    """Deterministic per (secret, scope); the ledger's double-vote key"""
    scope = to_field(scope, "scope")
    inner = poseidon_hash([NULLIFIER_DOMAIN, scope])
    return poseidon_hash([inner, derive_identity_scalar(secret)])


@dataclass(frozen=True)
class VoterIdentity:
    handle: str
    secret: str = field(repr=False)
    commitment: int

    @classmethod
    def from_secret(cls, handle: str, secret: str) -> 'VoterIdentity':
        return cls(handle=handle, secret=secret, commitment=derive_commitment(secret))

    def nullifier(self, scope: int) -> int:
        return compute_nullifier(self.secret, scope)


class IdentitySeedStore:
    """Persists exactly one secret per identity handle.

    A value left under the legacy global key by older clients is adopted
    by the first identity that finds no secret of its own, then deleted so
    that no other identity can ever read it.
    """

    def __init__(self, store: KeyValueStore):
        self.store = store

    @staticmethod
    def _key(handle: str) -> str:
        return f"{SEED_KEY_PREFIX}{handle}"

    def get_or_create_secret(self, handle: str) -> str:
        if not isinstance(handle, str) or not handle.strip():
            raise ValidationError("Identity handle is required")

        key = self._key(handle)
        try:
            with self.store.transaction() as tx:
                existing = tx.get(key)
                if existing:
                    logger.debug(f"Using existing voter seed for {short(handle, 15)}")
                    return existing

                migrated = self._migrate_legacy_seed(tx, key, handle)
                if migrated:
                    return migrated

                secret = secrets.token_hex(SEED_BYTES)
                tx.put(key, secret)
                logger.info(f"Generated new voter seed for {short(handle, 15)}")
                return secret
        except StorageError:
            raise
        except OSError as e:
            raise StorageError(f"Seed store unavailable: {e}") from e

    def _migrate_legacy_seed(self, tx: KeyValueStore, key: str, handle: str) -> Optional[str]:
        legacy = tx.get(LEGACY_SEED_KEY)
        if not legacy:
            return None
        tx.put(key, legacy)
        tx.delete(LEGACY_SEED_KEY)
        logger.info(
            f"Migrated legacy global voter seed to {short(handle, 15)} and removed the global value")
        return legacy

    def load_identity(self, handle: str) -> VoterIdentity:
        identity = VoterIdentity.from_secret(handle, self.get_or_create_secret(handle))
        logger.info(
            f"Identity loaded for {short(handle, 15)}: commitment {short(identity.commitment, 20)}")
        return identity
