"""
Tests for the credential store.

These tests cover:
- Creation and uniqueness rules
- Lookups by id, email and username
- Role read-modify-write
- Cascading deletes
"""

import pytest

from authkeeper.core.auth.credential_store import CredentialStore
from authkeeper.core.auth.roles import NO_ROLES, Role, Status
from authkeeper.core.errors import (
    AmbiguousUsernameError,
    DuplicateUsernameError,
    UnknownIdError,
    UnknownUsernameError,
    UserAlreadyExistsError,
)


@pytest.fixture
def store(db, config, clock) -> CredentialStore:
    return CredentialStore(db, config, clock)


# =============================================================================
# Creation
# =============================================================================

class TestCreate:
    """Tests for CredentialStore.create."""

    def test_defaults(self, store, clock):
        user_id = store.create("a@x.com", "hash", "alice")
        user = store.find_by_id(user_id)

        assert user.email == "a@x.com"
        assert user.username == "alice"
        assert user.status is Status.NORMAL
        assert user.verified is False
        assert user.resettable is True
        assert user.roles == NO_ROLES
        assert user.registered == clock.now
        assert user.last_login is None
        assert user.force_logout == 0

    def test_duplicate_email(self, store):
        store.create("a@x.com", "hash")

        with pytest.raises(UserAlreadyExistsError):
            store.create("a@x.com", "other")

    def test_duplicate_username_allowed_by_default(self, store):
        """Usernames are only unique when the caller asks for it."""
        store.create("a@x.com", "hash", "alice")
        store.create("b@x.com", "hash", "alice")

        assert len(store.find_all_by_username("alice")) == 2

    def test_unique_username_enforced_on_request(self, store, db):
        store.create("a@x.com", "hash", "alice")

        with pytest.raises(DuplicateUsernameError):
            store.create("b@x.com", "hash", "alice", unique_username=True)

        assert store.find_by_email("b@x.com") is None
        assert not db.in_transaction

    def test_repr_hides_password_hash(self, store):
        user = store.find_by_id(store.create("a@x.com", "secret-hash"))
        assert "secret-hash" not in repr(user)


# =============================================================================
# Lookups
# =============================================================================

class TestLookups:
    """Tests for the find_* methods."""

    def test_find_missing(self, store):
        assert store.find_by_id(99) is None
        assert store.find_by_email("nobody@x.com") is None

    def test_find_by_username_unique(self, store):
        user_id = store.create("a@x.com", "hash", "alice")
        assert store.find_by_username("alice").id == user_id

    def test_find_by_username_unknown(self, store):
        with pytest.raises(UnknownUsernameError):
            store.find_by_username("nobody")

    def test_find_by_username_ambiguous(self, store):
        store.create("a@x.com", "hash", "alice")
        store.create("b@x.com", "hash", "alice")

        with pytest.raises(AmbiguousUsernameError):
            store.find_by_username("alice")

    def test_require_unknown(self, store):
        with pytest.raises(UnknownIdError):
            store.require(42)


# =============================================================================
# Updates
# =============================================================================

class TestUpdates:
    """Tests for the mutating methods."""

    def test_update_email_conflict(self, store):
        first = store.create("a@x.com", "hash")
        store.create("b@x.com", "hash")

        with pytest.raises(UserAlreadyExistsError):
            store.update_email(first, "b@x.com")

    def test_update_unknown_id(self, store):
        with pytest.raises(UnknownIdError):
            store.update_password_hash(42, "hash")
        with pytest.raises(UnknownIdError):
            store.set_status(42, Status.BANNED)

    def test_flags_and_status(self, store):
        user_id = store.create("a@x.com", "hash")

        store.set_verified(user_id)
        store.set_resettable(user_id, False)
        store.set_status(user_id, Status.LOCKED)
        user = store.find_by_id(user_id)

        assert user.verified is True
        assert user.resettable is False
        assert user.is_blocked

    def test_bump_force_logout(self, store):
        user_id = store.create("a@x.com", "hash")

        assert store.bump_force_logout(user_id) == 1
        assert store.bump_force_logout(user_id) == 2

    def test_modify_roles_reads_latest(self, store):
        """Each modification should start from the stored bitmask."""
        user_id = store.create("a@x.com", "hash")

        store.modify_roles("id", user_id, lambda roles: roles | Role.EDITOR)
        store.modify_roles("id", user_id, lambda roles: roles | Role.AUTHOR)
        roles = store.modify_roles("id", user_id, lambda roles: Role.from_mask(roles & ~Role.EDITOR))

        assert roles == Role.AUTHOR
        assert store.get_roles(user_id) == Role.AUTHOR

    def test_modify_roles_unknown_user(self, store):
        assert store.modify_roles("id", 42, lambda roles: roles | Role.ADMIN) is None

    def test_modify_roles_rejects_arbitrary_columns(self, store):
        with pytest.raises(ValueError):
            store.modify_roles("password", "x", lambda roles: roles)


# =============================================================================
# Deletion
# =============================================================================

class TestDelete:
    """Tests for deletes."""

    def test_delete_cascades(self, store, db):
        user_id = store.create("a@x.com", "hash")
        db.insert("users_confirmations", {
            "user_id": user_id, "email": "a@x.com", "selector": "s1", "token": "t", "expires": 0,
        })
        db.insert("users_resets", {"user_id": user_id, "selector": "s2", "token": "t", "expires": 0})

        assert store.delete(user_id) is True
        assert db.select_value("SELECT COUNT(*) AS n FROM users_confirmations") == 0
        assert db.select_value("SELECT COUNT(*) AS n FROM users_resets") == 0

    def test_delete_missing(self, store):
        assert store.delete(42) is False

    def test_delete_where(self, store):
        store.create("a@x.com", "hash", "alice")
        store.create("b@x.com", "hash", "alice")
        store.create("c@x.com", "hash", "carol")

        assert store.delete_where("username", "alice") == 2
        assert store.find_by_email("c@x.com") is not None
