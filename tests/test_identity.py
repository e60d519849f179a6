"""Seed store, legacy migration, commitments and nullifiers"""

import os
import stat

import pytest

from utils.errors import StorageError, ValidationError
from utils.storage import JsonFileKeyValueStore, MemoryKeyValueStore
from zk.identity import (
    LEGACY_SEED_KEY,
    IdentitySeedStore,
    compute_nullifier,
    derive_commitment,
)


class TestIdentitySeedStore:

    def test_get_or_create_is_idempotent(self):
        store = IdentitySeedStore(MemoryKeyValueStore())
        first = store.get_or_create_secret("alice")
        assert store.get_or_create_secret("alice") == first
        assert len(first) == 64

    def test_identities_are_isolated(self):
        store = IdentitySeedStore(MemoryKeyValueStore())
        assert store.get_or_create_secret("alice") != store.get_or_create_secret("bob")

    def test_rejects_empty_handle(self):
        with pytest.raises(ValidationError):
            IdentitySeedStore(MemoryKeyValueStore()).get_or_create_secret("  ")

    def test_legacy_seed_migrates_once_and_is_removed(self):
        kv = MemoryKeyValueStore({LEGACY_SEED_KEY: "legacy-secret"})
        store = IdentitySeedStore(kv)

        assert store.get_or_create_secret("alice") == "legacy-secret"
        assert kv.get(LEGACY_SEED_KEY) is None
        assert kv.get("voter_seed_alice") == "legacy-secret"

        # A second identity on the same device must not inherit it
        assert store.get_or_create_secret("bob") != "legacy-secret"

    def test_existing_seed_wins_over_legacy(self):
        kv = MemoryKeyValueStore({LEGACY_SEED_KEY: "legacy", "voter_seed_alice": "own"})
        assert IdentitySeedStore(kv).get_or_create_secret("alice") == "own"
        assert kv.get(LEGACY_SEED_KEY) == "legacy"

    def test_file_store_persists_with_private_permissions(self, tmp_path):
        path = tmp_path / "seeds.json"
        secret = IdentitySeedStore(JsonFileKeyValueStore(path)).get_or_create_secret("alice")

        reopened = IdentitySeedStore(JsonFileKeyValueStore(path))
        assert reopened.get_or_create_secret("alice") == secret
        assert stat.S_IMODE(os.stat(path).st_mode) == 0o600

    def test_corrupt_store_raises_storage_error(self, tmp_path):
        path = tmp_path / "seeds.json"
        path.write_text("{not json")
        with pytest.raises(StorageError):
            IdentitySeedStore(JsonFileKeyValueStore(path)).get_or_create_secret("alice")

    def test_load_identity_matches_commitment(self):
        store = IdentitySeedStore(MemoryKeyValueStore())
        identity = store.load_identity("alice")
        assert identity.commitment == derive_commitment(identity.secret)
        assert identity.secret not in repr(identity)


class TestCommitmentsAndNullifiers:

    def test_commitment_is_deterministic(self):
        assert derive_commitment("s1") == derive_commitment("s1")

    def test_no_collisions_over_ten_thousand_secrets(self):
        commitments = {derive_commitment(f"secret-{i}") for i in range(10_000)}
        assert len(commitments) == 10_000

    def test_commitment_rejects_empty_secret(self):
        with pytest.raises(ValidationError):
            derive_commitment("")

    def test_nullifier_stable_per_scope(self):
        assert compute_nullifier("s1", 42) == compute_nullifier("s1", 42)

    def test_nullifier_differs_across_scopes(self):
        assert compute_nullifier("s1", 42) != compute_nullifier("s1", 43)

    def test_nullifier_differs_across_secrets(self):
        assert compute_nullifier("s1", 42) != compute_nullifier("s2", 42)

    def test_nullifier_is_not_the_commitment(self):
        assert compute_nullifier("s1", 0) != derive_commitment("s1")
