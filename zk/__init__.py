"""
Zero-Knowledge Membership Module for Anonymous Ledger Voting
Identity commitments, fixed-depth Poseidon Merkle cohorts and Groth16-shaped proofs
"""

from .errors import (
    ZKError,
    ProofGenerationError,
    ProofVerificationError,
    CommitmentNotInCohortError,
    CohortCapacityExceededError,
)
from .poseidon import Poseidon, FIELD_PRIME, poseidon_hash, poseidon_chain, to_field
from .merkle import FixedDepthMerkleTree, MerklePath, empty_subtree_hashes
from .identity import (
    IdentitySeedStore,
    VoterIdentity,
    derive_commitment,
    derive_identity_scalar,
    compute_nullifier,
    LEGACY_SEED_KEY,
    SEED_KEY_PREFIX,
)
from .zk_proofs import (
    # Core classes
    Proof,
    ProofBuilder,
    ProofVerifier,
    MembershipWitness,
    ProvingBackend,
    DevelopmentProvingBackend,
    SnarkjsProvingBackend,
    create_proving_backend,
    PROOF_POINTS,
)

__version__ = "1.0.0"

__all__ = [
    # Hashing and trees
    'Poseidon',
    'FIELD_PRIME',
    'poseidon_hash',
    'poseidon_chain',
    'to_field',
    'FixedDepthMerkleTree',
    'MerklePath',
    'empty_subtree_hashes',

    # Identity
    'IdentitySeedStore',
    'VoterIdentity',
    'derive_commitment',
    'derive_identity_scalar',
    'compute_nullifier',
    'LEGACY_SEED_KEY',
    'SEED_KEY_PREFIX',

    # Proofs
    'Proof',
    'ProofBuilder',
    'ProofVerifier',
    'MembershipWitness',
    'ProvingBackend',
    'DevelopmentProvingBackend',
    'SnarkjsProvingBackend',
    'create_proving_backend',
    'PROOF_POINTS',

    # Exceptions
    'ZKError',
    'ProofGenerationError',
    'ProofVerificationError',
    'CommitmentNotInCohortError',
    'CohortCapacityExceededError',
]
