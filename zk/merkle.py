"""
Fixed-depth incremental Merkle tree over Poseidon.

The tree always has `depth` levels regardless of how many leaves are
present; unused positions hold the empty-subtree hash of their level.
"""

from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, Iterable, List, Optional, Tuple

from utils.errors import ValidationError
from .errors import CohortCapacityExceededError
from .poseidon import FIELD_PRIME, poseidon_hash


@lru_cache(maxsize=None)
def empty_subtree_hashes(depth: int) -> Tuple[int, ...]:
    """zeros[level] is the root of an empty subtree of height `level`"""
    zeros = [0]
    for _ in range(depth):
        zeros.append(poseidon_hash([zeros[-1], zeros[-1]]))
    return tuple(zeros)


@dataclass(frozen=True)
class MerklePath:
    """Authentication path from a leaf to the root, leaf level first"""
    siblings: Tuple[int, ...]
    path_indices: Tuple[int, ...]  # 1 where the running node is the right child

    @property
    def depth(self) -> int:
        return len(self.siblings)

    @property
    def leaf_index(self) -> int:
        return sum(bit << level for level, bit in enumerate(self.path_indices))


class FixedDepthMerkleTree:
    """Append-only Merkle tree whose depth never changes"""

    def __init__(self, depth: int):
        if depth < 1:
            raise ValidationError(f"Tree depth must be >= 1, got {depth}")
        self.depth = depth
        self.zeros = empty_subtree_hashes(depth)
        # levels[0] holds leaves, levels[depth] holds the root
        self.levels: List[Dict[int, int]] = [dict() for _ in range(depth + 1)]
        self._positions: Dict[int, int] = {}
        self.size = 0

    @classmethod
    def from_leaves(cls, leaves: Iterable[int], depth: int) -> 'FixedDepthMerkleTree':
        leaves = list(leaves)
        if len(leaves) > (1 << depth):
            raise CohortCapacityExceededError(len(leaves), depth)
        tree = cls(depth)
        for leaf in leaves:
            tree.insert(leaf)
        return tree

    @property
    def capacity(self) -> int:
        return 1 << self.depth

    @property
    def root(self) -> int:
        return self.levels[self.depth].get(0, self.zeros[self.depth])

    def _node(self, level: int, index: int) -> int:
        return self.levels[level].get(index, self.zeros[level])

    def insert(self, leaf: int) -> int:
        """Append a leaf and return its index"""
        if self.size >= self.capacity:
            raise CohortCapacityExceededError(self.size + 1, self.depth)
        if not 0 < leaf < FIELD_PRIME:
            raise ValidationError("Leaf must be a non-zero field element")

        index = self.size
        self.levels[0][index] = leaf
        self._positions.setdefault(leaf, index)
        self.size += 1

        node_index = index
        current = leaf
        for level in range(self.depth):
            if node_index % 2 == 0:
                current = poseidon_hash(
                    [current, self._node(level, node_index + 1)])
            else:
                current = poseidon_hash(
                    [self._node(level, node_index - 1), current])
            node_index //= 2
            self.levels[level + 1][node_index] = current

        return index

    def index_of(self, leaf: int) -> Optional[int]:
        return self._positions.get(leaf)

    def get_path(self, index: int) -> MerklePath:
        if not 0 <= index < self.size:
            raise ValidationError(f"Index {index} out of bounds")

        siblings = []
        path_indices = []
        node_index = index
        for level in range(self.depth):
            siblings.append(self._node(level, node_index ^ 1))
            path_indices.append(node_index & 1)
            node_index //= 2
        return MerklePath(tuple(siblings), tuple(path_indices))

    @staticmethod
    def compute_root(leaf: int, path: MerklePath) -> int:
        current = leaf
        for sibling, is_right in zip(path.siblings, path.path_indices):
            if is_right:
                current = poseidon_hash([sibling, current])
            else:
                current = poseidon_hash([current, sibling])
        return current

    @staticmethod
    def verify_path(leaf: int, path: MerklePath, root: int) -> bool:
        if not 0 < leaf < FIELD_PRIME:
            return False
        return FixedDepthMerkleTree.compute_root(leaf, path) == root
