"""
Tests for configuration loading.
"""

import dataclasses

import pytest

from authkeeper.core.config import AuthConfig, DatabaseConfig, ThrottleConfig


class TestTableNames:
    """Tests for AuthConfig.table."""

    def test_default_names(self):
        config = AuthConfig()

        assert config.table("users") == "users"
        assert config.table("remembered") == "users_remembered"

    def test_prefix_and_schema(self):
        """Prefix applies to the table, schema qualifies it."""
        config = AuthConfig(database=DatabaseConfig(table_prefix="app_", schema="auth"))

        assert config.table("resets") == "auth.app_users_resets"
        assert config.table("resets", qualified=False) == "app_users_resets"

    def test_unknown_table(self):
        with pytest.raises(ValueError):
            AuthConfig().table("sessions")

    @pytest.mark.parametrize("prefix", ["app-", "1app", "x; DROP TABLE users"])
    def test_prefix_must_be_identifier(self, prefix):
        """Anything that is not a plain identifier should be rejected."""
        with pytest.raises(ValueError):
            DatabaseConfig(table_prefix=prefix)


class TestValidation:
    """Tests for section validation."""

    def test_cooldown_cap_below_base_delay(self):
        with pytest.raises(ValueError):
            ThrottleConfig(base_delay_seconds=60, max_cooldown_seconds=30)

    def test_immutable(self):
        config = AuthConfig()
        with pytest.raises(dataclasses.FrozenInstanceError):
            config.throttle = ThrottleConfig()  # type: ignore[misc]


class TestEnvironmentOverrides:
    """Tests for AuthConfig.load."""

    def test_overrides_are_applied(self, monkeypatch):
        monkeypatch.setenv("AUTHKEEPER_DATABASE__TABLE_PREFIX", "app_")
        monkeypatch.setenv("AUTHKEEPER_THROTTLE__MAX_ATTEMPTS", "10")
        monkeypatch.setenv("AUTHKEEPER_TOKENS__RESET_SECONDS", "600")
        monkeypatch.setenv("AUTHKEEPER_LOGGING__ENABLE_JSON", "true")

        config = AuthConfig.load()

        assert config.database.table_prefix == "app_"
        assert config.throttle.max_attempts == 10
        assert config.tokens.reset_seconds == 600
        assert config.logging.enable_json is True

    def test_sensitive_keys_are_skipped(self, monkeypatch):
        """Keys that look like secrets should never be read from the environment."""
        monkeypatch.setenv("AUTHKEEPER_DATABASE__PASSWORD", "hunter2")

        AuthConfig.load()

    def test_repr_is_safe(self):
        text = repr(AuthConfig())
        assert text.startswith("AuthConfig(hash=")
