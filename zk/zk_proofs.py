"""
Anonymous membership proofs for cohort voting.

ProofBuilder turns (secret, cohort, scope, message) into a Proof whose
public part is {merkle root, depth, nullifier, message, scope, proving
data}. The proving system itself is pluggable: `SnarkjsProvingBackend`
shells out to snarkjs for Groth16, `DevelopmentProvingBackend` binds the
public signals deterministically for simulation and tests.
"""

import json
import logging
import os
import shutil
import stat
import subprocess
import tempfile
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from config.config import ZKConfig
from utils.errors import ValidationError
from utils.utils import short
from .errors import (
    CohortCapacityExceededError,
    CommitmentNotInCohortError,
    ProofGenerationError,
    ProofVerificationError,
    ZKError,
)
from .identity import compute_nullifier, derive_commitment, derive_identity_scalar
from .merkle import FixedDepthMerkleTree, MerklePath
from .poseidon import poseidon_chain, to_field

logger = logging.getLogger(__name__)

PROOF_POINTS = 8
# Domain tag for the development backend transcript ("DEVPROOF")
DEV_PROOF_DOMAIN = 0x44455650524f4f46


@dataclass(frozen=True)
class Proof:
    """Public proof artifact; carries no information about the leaf index"""
    merkle_root: int
    merkle_depth: int
    nullifier: int
    message: int
    scope: int
    proving_data: Tuple[int, ...]

    def public_signals(self) -> List[int]:
        return [self.merkle_root, self.nullifier, self.message, self.scope]

    def to_ledger_args(self) -> Dict[str, Any]:
        return {
            'merkleTreeDepth': self.merkle_depth,
            'merkleTreeRoot': self.merkle_root,
            'nullifier': self.nullifier,
            'message': self.message,
            'scope': self.scope,
            'points': list(self.proving_data),
        }

    @classmethod
    def from_ledger_args(cls, data: Dict[str, Any]) -> 'Proof':
        return cls(
            merkle_root=int(data['merkleTreeRoot']),
            merkle_depth=int(data['merkleTreeDepth']),
            nullifier=int(data['nullifier']),
            message=int(data['message']),
            scope=int(data['scope']),
            proving_data=tuple(int(p) for p in data['points']),
        )


@dataclass(frozen=True)
class MembershipWitness:
    """Private inputs for the membership circuit"""
    secret_scalar: int
    leaf: int
    leaf_index: int
    path: MerklePath
    merkle_root: int
    nullifier: int
    message: int
    scope: int

    def to_circuit_input(self) -> Dict[str, Any]:
        return {
            'secret': str(self.secret_scalar),
            'merkleProofLength': self.path.depth,
            'merkleProofIndex': self.leaf_index,
            'merkleProofSiblings': [str(s) for s in self.path.siblings],
            'message': str(self.message),
            'scope': str(self.scope),
        }


class ProvingBackend(ABC):

    @abstractmethod
    def prove(self, witness: MembershipWitness) -> Tuple[int, ...]:
        """Return the 8 packed proof points"""

    @abstractmethod
    def verify(self, proof: Proof) -> bool:
        ...


class DevelopmentProvingBackend(ProvingBackend):
    """Deterministic transcript over the public signals.

    Checks the witness path against the root before emitting anything, so a
    non-member cannot obtain a proof, but offers no zero-knowledge soundness
    towards a third-party verifier.
    """

    def _transcript(self, root: int, depth: int, nullifier: int,
                    message: int, scope: int) -> Tuple[int, ...]:
        points = []
        acc = poseidon_chain(DEV_PROOF_DOMAIN, [root, depth, nullifier, message, scope])
        for i in range(PROOF_POINTS):
            acc = poseidon_chain(acc, [i])
            points.append(acc)
        return tuple(points)

    def prove(self, witness: MembershipWitness) -> Tuple[int, ...]:
        if not FixedDepthMerkleTree.verify_path(witness.leaf, witness.path, witness.merkle_root):
            raise ProofGenerationError("Witness path does not lead to the cohort root")
        return self._transcript(witness.merkle_root, witness.path.depth,
                                witness.nullifier, witness.message, witness.scope)

    def verify(self, proof: Proof) -> bool:
        expected = self._transcript(proof.merkle_root, proof.merkle_depth,
                                    proof.nullifier, proof.message, proof.scope)
        return tuple(proof.proving_data) == expected


class SnarkjsProvingBackend(ProvingBackend):
    """Groth16 via the snarkjs CLI against a compiled membership circuit"""

    def __init__(self, config: ZKConfig):
        self.config = config

    def _require_artifacts(self, *paths: Path):
        if shutil.which('snarkjs') is None:
            raise ProofGenerationError("snarkjs executable not found on PATH")
        missing = [str(p) for p in paths if not Path(p).exists()]
        if missing:
            raise ProofGenerationError(f"Missing circuit artifacts: {', '.join(missing)}")

    @staticmethod
    def _secure_temp_file(directory: Path, name: str, data: Dict[str, Any]) -> Path:
        path = directory / name
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL,
                     stat.S_IRUSR | stat.S_IWUSR)
        with os.fdopen(fd, 'w') as f:
            json.dump(data, f)
        return path

    @staticmethod
    def pack_points(proof: Dict[str, Any]) -> Tuple[int, ...]:
        """Groth16 JSON -> [a0, a1, b01, b00, b11, b10, c0, c1]"""
        a, b, c = proof['pi_a'], proof['pi_b'], proof['pi_c']
        return tuple(int(v) for v in (
            a[0], a[1], b[0][1], b[0][0], b[1][1], b[1][0], c[0], c[1]))

    @staticmethod
    def unpack_points(points: Sequence[int]) -> Dict[str, Any]:
        if len(points) != PROOF_POINTS:
            raise ValidationError(f"Expected {PROOF_POINTS} proof points, got {len(points)}")
        p = [str(v) for v in points]
        return {
            'pi_a': [p[0], p[1], "1"],
            'pi_b': [[p[3], p[2]], [p[5], p[4]], ["1", "0"]],
            'pi_c': [p[6], p[7], "1"],
            'protocol': 'groth16',
            'curve': 'bn128',
        }

    def prove(self, witness: MembershipWitness) -> Tuple[int, ...]:
        self._require_artifacts(self.config.wasm_path, self.config.zkey_path)

        with tempfile.TemporaryDirectory() as temp_dir:
            temp_path = Path(temp_dir)
            input_file = self._secure_temp_file(
                temp_path, "input.json", witness.to_circuit_input())
            proof_file = temp_path / "proof.json"
            public_file = temp_path / "public.json"

            cmd = [
                'snarkjs', 'groth16', 'fullprove',
                str(input_file),
                str(self.config.wasm_path),
                str(self.config.zkey_path),
                str(proof_file),
                str(public_file)
            ]
            try:
                result = subprocess.run(
                    cmd, capture_output=True, text=True, timeout=self.config.proof_timeout)
            except subprocess.TimeoutExpired as e:
                raise ProofGenerationError(
                    f"snarkjs timed out after {self.config.proof_timeout}s") from e

            if result.returncode != 0:
                raise ProofGenerationError(f"snarkjs fullprove failed: {result.stderr.strip()}")

            with open(proof_file) as f:
                proof_json = json.load(f)
            with open(public_file) as f:
                public_signals = [int(s) for s in json.load(f)]

        if public_signals and public_signals[0] != witness.merkle_root:
            raise ProofGenerationError("Circuit output root differs from the cohort root")

        return self.pack_points(proof_json)

    def verify(self, proof: Proof) -> bool:
        self._require_artifacts(self.config.vkey_path)

        with tempfile.TemporaryDirectory() as temp_dir:
            temp_path = Path(temp_dir)
            proof_file = self._secure_temp_file(
                temp_path, "proof.json", self.unpack_points(proof.proving_data))
            public_file = self._secure_temp_file(
                temp_path, "public.json", [str(s) for s in proof.public_signals()])

            cmd = [
                'snarkjs', 'groth16', 'verify',
                str(self.config.vkey_path),
                str(public_file),
                str(proof_file)
            ]
            try:
                result = subprocess.run(
                    cmd, capture_output=True, text=True, timeout=self.config.proof_timeout)
            except subprocess.TimeoutExpired as e:
                raise ProofVerificationError("snarkjs verify timed out") from e

        return result.returncode == 0 and "OK!" in result.stdout


def create_proving_backend(config: ZKConfig) -> ProvingBackend:
    if config.proving_backend == "snarkjs":
        return SnarkjsProvingBackend(config)
    return DevelopmentProvingBackend()


class ProofBuilder:
    """Builds cohort membership proofs at the verifier's fixed depth"""

    def __init__(self, config: ZKConfig, backend: Optional[ProvingBackend] = None):
        self.config = config
        self.backend = backend or create_proving_backend(config)

    def build_tree(self, cohort: Sequence[int]) -> FixedDepthMerkleTree:
        if not cohort:
            raise ValidationError("Cannot build a proof against an empty cohort")
        if len(cohort) > self.config.capacity:
            raise CohortCapacityExceededError(len(cohort), self.config.tree_depth)
        return FixedDepthMerkleTree.from_leaves(cohort, self.config.tree_depth)

    def build_proof(self, secret: str, cohort: Sequence[int], scope: int, message: int) -> Proof:
        scope = to_field(scope, "scope")
        message = to_field(message, "message")

        tree = self.build_tree(cohort)
        commitment = derive_commitment(secret)
        index = tree.index_of(commitment)
        if index is None:
            raise CommitmentNotInCohortError(
                f"Commitment {short(commitment, 20)} is not a member of the cohort")

        nullifier = compute_nullifier(secret, scope)
        witness = MembershipWitness(
            secret_scalar=derive_identity_scalar(secret),
            leaf=commitment,
            leaf_index=index,
            path=tree.get_path(index),
            merkle_root=tree.root,
            nullifier=nullifier,
            message=message,
            scope=scope,
        )

        logger.info(
            f"Building proof with cohort of {len(cohort)} members, depth: {self.config.tree_depth}")
        start_time = time.time()
        try:
            points = self.backend.prove(witness)
        except ZKError:
            raise
        except (OSError, ValueError, KeyError) as e:
            raise ProofGenerationError(f"Proof generation failed: {e}") from e

        logger.info(
            f"Proof generated in {time.time() - start_time:.3f}s: root {short(tree.root, 20)}, "
            f"nullifier {short(nullifier, 20)}")

        return Proof(
            merkle_root=tree.root,
            merkle_depth=self.config.tree_depth,
            nullifier=nullifier,
            message=message,
            scope=scope,
            proving_data=tuple(points),
        )


class ProofVerifier:
    """Checks a proof against the fixed depth and, optionally, a known root"""

    def __init__(self, config: ZKConfig, backend: Optional[ProvingBackend] = None):
        self.config = config
        self.backend = backend or create_proving_backend(config)

    def verify(self, proof: Proof, expected_root: Optional[int] = None) -> bool:
        if proof.merkle_depth != self.config.tree_depth:
            logger.warning(
                f"Proof depth {proof.merkle_depth} does not match verifier depth {self.config.tree_depth}")
            return False
        if expected_root is not None and proof.merkle_root != expected_root:
            logger.warning("Proof root does not match the cohort root")
            return False
        if len(proof.proving_data) != PROOF_POINTS:
            return False
        return self.backend.verify(proof)
