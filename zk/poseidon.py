"""
Poseidon permutation over the BN254 scalar field (t=3, two inputs).

Round constants are expanded from SHA-256 in counter mode and the MDS
matrix is the Cauchy matrix 1/(x_i + y_j), the standard Poseidon
construction for these parameters.
"""

import hashlib
from typing import List, Sequence

from utils.errors import ValidationError

# BN254 scalar field prime
FIELD_PRIME = 21888242871839275222246405745257275088548364400416034343698204186575808495617

FULL_ROUNDS = 8
PARTIAL_ROUNDS = 57
WIDTH = 3  # t=3 for 2 inputs

CONSTANT_SEED = b"poseidon-bn254-t3"


def _generate_round_constants() -> List[int]:
    total = (FULL_ROUNDS + PARTIAL_ROUNDS) * WIDTH
    constants = []
    for i in range(total):
        digest = hashlib.sha256(CONSTANT_SEED + i.to_bytes(4, 'big')).digest()
        constants.append(int.from_bytes(digest, 'big') % FIELD_PRIME)
    return constants


def _generate_mds_matrix() -> List[List[int]]:
    xs = range(WIDTH)
    ys = range(WIDTH, 2 * WIDTH)
    return [[pow(x + y, -1, FIELD_PRIME) for y in ys] for x in xs]


class Poseidon:
    """Poseidon hash with 8 full rounds and 57 partial rounds"""

    PRIME = FIELD_PRIME
    ROUND_CONSTANTS = _generate_round_constants()
    MDS_MATRIX = _generate_mds_matrix()

    @staticmethod
    def ark(state: List[int], constant_idx: int) -> List[int]:
        """Add round constants"""
        rc = Poseidon.ROUND_CONSTANTS
        return [(state[i] + rc[constant_idx + i]) % FIELD_PRIME for i in range(WIDTH)]

    @staticmethod
    def sbox(state: List[int], full_round: bool) -> List[int]:
        """Apply S-box (x^5 mod p)"""
        if full_round:
            return [pow(x, 5, FIELD_PRIME) for x in state]
        return [pow(state[0], 5, FIELD_PRIME), state[1], state[2]]

    @staticmethod
    def mix(state: List[int]) -> List[int]:
        """Apply MDS matrix multiplication"""
        return [sum(m * s for m, s in zip(row, state)) % FIELD_PRIME
                for row in Poseidon.MDS_MATRIX]

    @staticmethod
    def hash(inputs: Sequence[int]) -> int:
        if len(inputs) != 2:
            raise ValidationError("Poseidon expects 2 inputs for t=3")
        for value in inputs:
            if not 0 <= value < FIELD_PRIME:
                raise ValidationError(f"Value {value} outside field bounds")

        state = [0, inputs[0], inputs[1]]
        constant_idx = 0
        half_full = FULL_ROUNDS // 2

        for round_no in range(FULL_ROUNDS + PARTIAL_ROUNDS):
            full = round_no < half_full or round_no >= half_full + PARTIAL_ROUNDS
            state = Poseidon.ark(state, constant_idx)
            constant_idx += WIDTH
            state = Poseidon.sbox(state, full)
            state = Poseidon.mix(state)

        return state[0]


poseidon_hash = Poseidon.hash


def poseidon_chain(domain: int, values: Sequence[int]) -> int:
    """Fold a sequence into one field element starting from a domain tag"""
    acc = domain % FIELD_PRIME
    for value in values:
        acc = poseidon_hash([acc, value % FIELD_PRIME])
    return acc


def to_field(value: int, name: str = "value") -> int:
    """Check that an integer is a canonical field element"""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(
            f"{name} must be an integer, got {type(value).__name__}")
    if not 0 <= value < FIELD_PRIME:
        raise ValidationError(f"{name} is outside the BN254 scalar field")
    return value
