"""
Global test fixtures for authkeeper.

This module provides shared fixtures for all tests including:
- In-memory SQLite database with the schema created
- Cheap Argon2 profile (production costs make the suite crawl)
- Controllable clock
- Deterministic token factory
- Ready-made Auth facades and registered users
"""

from typing import Generator

import pytest
from argon2.profiles import CHEAPEST

from authkeeper.core.auth import Argon2Hasher, Auth
from authkeeper.core.config import AuthConfig
from authkeeper.db import SqliteDatabase, create_schema


PASSWORD = "Passw0rd!"
CLIENT_IP = "203.0.113.7"


# =============================================================================
# Time and Randomness
# =============================================================================

class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self, now: int = 1_700_000_000) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


class SequentialTokens:
    """
    Token factory producing distinct, predictable URL-safe strings.

    Output length matches ``secrets.token_urlsafe`` for byte counts
    divisible by three.
    """

    def __init__(self) -> None:
        self.counter = 0

    def __call__(self, nbytes: int) -> str:
        self.counter += 1
        length = 4 * nbytes // 3
        return f"t{self.counter}".rjust(length, "a")


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def tokens() -> SequentialTokens:
    return SequentialTokens()


# =============================================================================
# Storage
# =============================================================================

@pytest.fixture
def config() -> AuthConfig:
    return AuthConfig()


@pytest.fixture
def db(config: AuthConfig) -> Generator[SqliteDatabase, None, None]:
    """Fresh in-memory database with all tables."""
    database = SqliteDatabase(":memory:")
    create_schema(database, config)
    yield database
    database.close()


@pytest.fixture(scope="session")
def hasher() -> Argon2Hasher:
    return Argon2Hasher.from_parameters(CHEAPEST, enforce_minimums=False)


# =============================================================================
# Facades
# =============================================================================

@pytest.fixture
def make_auth(db, config, hasher, clock, tokens):
    """Factory for Auth facades sharing one database, e.g. one per client IP."""

    def _make(client_ip: str = CLIENT_IP) -> Auth:
        return Auth(
            db,
            config,
            client_ip,
            hasher=hasher,
            clock=clock,
            token_factory=tokens,
        )

    return _make


@pytest.fixture
def auth(make_auth) -> Auth:
    return make_auth()


@pytest.fixture
def verified_user(auth: Auth) -> int:
    """Id of a verified account a@x.com with the default password."""
    return auth.admin().create_user("a@x.com", PASSWORD, "alice")
