from utils.errors import ConsistencyError, ValidationError, VotingSystemError


class ZKError(VotingSystemError):
    """Base exception for ZK operations"""
    pass


class ProofGenerationError(ZKError):
    """Proof generation failed"""
    pass


class ProofVerificationError(ZKError):
    """Verifier could not be run"""
    pass


class CommitmentNotInCohortError(ZKError, ConsistencyError):
    """The prover's commitment is not a member of the supplied cohort"""
    pass


class CohortCapacityExceededError(ZKError, ValidationError):
    """More members than a tree of the configured depth can hold"""

    def __init__(self, size: int, depth: int):
        super().__init__(
            f"Cohort of {size} members exceeds capacity {1 << depth} of depth-{depth} tree")
        self.size = size
        self.depth = depth
