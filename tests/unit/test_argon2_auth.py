"""
Tests for Argon2id password hashing.
"""

import pytest
from argon2.profiles import CHEAPEST

from authkeeper.core.auth.argon2_auth import Argon2Hasher


class TestArgon2Hasher:
    """Tests for Argon2Hasher."""

    def test_hash_is_argon2id(self, hasher):
        encoded = hasher.hash("Passw0rd!")

        assert encoded.startswith("$argon2id$")
        assert "Passw0rd!" not in encoded

    def test_verify(self, hasher):
        encoded = hasher.hash("Passw0rd!")

        assert hasher.verify("Passw0rd!", encoded) is True
        assert hasher.verify("wrong", encoded) is False

    def test_salted(self, hasher):
        """Hashing the same password twice should give different hashes."""
        assert hasher.hash("Passw0rd!") != hasher.hash("Passw0rd!")

    def test_corrupt_hash_does_not_raise(self, hasher):
        assert hasher.verify("Passw0rd!", "not-a-hash") is False
        assert hasher.needs_rehash("not-a-hash") is True

    def test_needs_rehash_after_parameter_change(self, hasher):
        """Hashes from other parameters should be flagged for upgrade."""
        encoded = hasher.hash("Passw0rd!")
        stronger = Argon2Hasher(memory_cost=16, time_cost=2, parallelism=1, enforce_minimums=False)

        assert hasher.needs_rehash(encoded) is False
        assert stronger.needs_rehash(encoded) is True
        assert stronger.verify("Passw0rd!", encoded) is True

    def test_dummy_verification_never_succeeds(self, hasher):
        assert hasher.verify_dummy("anything") is False

    def test_empty_password_rejected(self, hasher):
        with pytest.raises(ValueError):
            hasher.hash("")

    def test_minimums_enforced_by_default(self):
        with pytest.raises(ValueError):
            Argon2Hasher.from_parameters(CHEAPEST)
