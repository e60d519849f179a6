"""Poseidon hashing and the fixed-depth cohort tree"""

import pytest

from utils.errors import ValidationError
from zk.errors import CohortCapacityExceededError, ZKError
from zk.merkle import FixedDepthMerkleTree, empty_subtree_hashes
from zk.poseidon import FIELD_PRIME, Poseidon, poseidon_chain, poseidon_hash, to_field


class TestPoseidon:

    def test_deterministic_and_in_field(self):
        h1 = poseidon_hash([1, 2])
        h2 = poseidon_hash([1, 2])
        assert h1 == h2
        assert 0 <= h1 < FIELD_PRIME

    def test_input_order_matters(self):
        assert poseidon_hash([1, 2]) != poseidon_hash([2, 1])

    def test_parameters(self):
        assert len(Poseidon.ROUND_CONSTANTS) == (8 + 57) * 3
        assert len(Poseidon.MDS_MATRIX) == 3

    def test_rejects_wrong_arity(self):
        with pytest.raises(ValidationError):
            poseidon_hash([1, 2, 3])

    def test_rejects_out_of_field_input(self):
        with pytest.raises(ValidationError):
            poseidon_hash([FIELD_PRIME, 1])

    def test_chain_depends_on_domain(self):
        assert poseidon_chain(1, [5, 6]) != poseidon_chain(2, [5, 6])

    def test_to_field(self):
        assert to_field(5) == 5
        with pytest.raises(ValidationError):
            to_field(-1)
        with pytest.raises(ValidationError):
            to_field("5")
        with pytest.raises(ValidationError):
            to_field(True)


class TestFixedDepthMerkleTree:

    def test_empty_root_is_zero_subtree(self):
        tree = FixedDepthMerkleTree(20)
        assert tree.root == empty_subtree_hashes(20)[20]

    def test_single_member_keeps_full_depth(self):
        tree = FixedDepthMerkleTree.from_leaves([12345], 20)
        path = tree.get_path(0)
        assert path.depth == 20
        assert tree.root != 12345
        assert FixedDepthMerkleTree.verify_path(12345, path, tree.root)

    def test_paths_for_every_leaf(self):
        leaves = [11, 22, 33, 44, 55]
        tree = FixedDepthMerkleTree.from_leaves(leaves, 4)
        for index, leaf in enumerate(leaves):
            path = tree.get_path(index)
            assert path.leaf_index == index
            assert FixedDepthMerkleTree.verify_path(leaf, path, tree.root)

    def test_wrong_leaf_fails_verification(self):
        tree = FixedDepthMerkleTree.from_leaves([11, 22], 4)
        assert not FixedDepthMerkleTree.verify_path(33, tree.get_path(0), tree.root)

    def test_root_depends_on_order(self):
        a = FixedDepthMerkleTree.from_leaves([1, 2, 3], 5)
        b = FixedDepthMerkleTree.from_leaves([2, 1, 3], 5)
        assert a.root != b.root

    def test_capacity_exceeded(self):
        with pytest.raises(CohortCapacityExceededError) as exc_info:
            FixedDepthMerkleTree.from_leaves([1, 2, 3, 4, 5], 2)
        assert exc_info.value.size == 5
        assert exc_info.value.depth == 2
        assert isinstance(exc_info.value, ZKError)

    def test_insert_past_capacity(self):
        tree = FixedDepthMerkleTree.from_leaves([1, 2], 1)
        with pytest.raises(CohortCapacityExceededError):
            tree.insert(3)

    def test_zero_leaf_rejected(self):
        with pytest.raises(ValidationError):
            FixedDepthMerkleTree(3).insert(0)

    def test_index_of(self):
        tree = FixedDepthMerkleTree.from_leaves([7, 8, 9], 3)
        assert tree.index_of(9) == 2
        assert tree.index_of(10) is None
