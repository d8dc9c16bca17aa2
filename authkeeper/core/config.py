"""
Configuration Module
====================

Provides immutable, environment-aware configuration with security-first defaults.

Security Features:
- Immutable configuration after initialization
- Environment variable override support
- No secrets in default values
- Table names restricted to plain SQL identifiers
"""

from __future__ import annotations

import hashlib
import os
import re
from dataclasses import dataclass, field
from typing import Final, Any, Optional, Pattern

from authkeeper.security import constants


# Security Constants
_SENSITIVE_KEYS: Final[frozenset[str]] = frozenset({
    "password", "secret", "key", "token", "private", "credential", "salt"
})

_IDENTIFIER: Final[Pattern[str]] = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

_TABLES: Final[dict[str, str]] = {
    "users": "users",
    "confirmations": "users_confirmations",
    "remembered": "users_remembered",
    "resets": "users_resets",
    "throttling": "users_throttling",
}


def _is_sensitive_key(key: str) -> bool:
    """Check if a configuration key might contain sensitive data."""
    key_lower = key.lower()
    return any(sensitive in key_lower for sensitive in _SENSITIVE_KEYS)


@dataclass(frozen=True, slots=True)
class DatabaseConfig:
    """Where the library's tables live."""

    table_prefix: str = ""
    schema: Optional[str] = None

    def __post_init__(self) -> None:
        # Names are interpolated into SQL, so only identifiers are accepted
        if self.table_prefix and not _IDENTIFIER.match(self.table_prefix):
            raise ValueError(f"Invalid table prefix: {self.table_prefix!r}")
        if self.schema is not None and not _IDENTIFIER.match(self.schema):
            raise ValueError(f"Invalid schema name: {self.schema!r}")


@dataclass(frozen=True, slots=True)
class ThrottleConfig:
    """Backoff parameters shared by all throttle buckets."""

    max_attempts: int = constants.THROTTLE_MAX_ATTEMPTS
    base_delay_seconds: int = constants.THROTTLE_BASE_DELAY_SECONDS
    max_cooldown_seconds: int = constants.THROTTLE_MAX_COOLDOWN_SECONDS
    window_seconds: int = constants.THROTTLE_WINDOW_SECONDS

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay_seconds < 1:
            raise ValueError("base_delay_seconds must be at least 1")
        if self.max_cooldown_seconds < self.base_delay_seconds:
            raise ValueError("max_cooldown_seconds must be >= base_delay_seconds")
        if self.window_seconds < 1:
            raise ValueError("window_seconds must be at least 1")


@dataclass(frozen=True, slots=True)
class TokenConfig:
    """Token lifetimes, in seconds."""

    confirmation_seconds: int = constants.CONFIRMATION_TOKEN_SECONDS
    reset_seconds: int = constants.RESET_TOKEN_SECONDS
    remember_seconds: int = constants.REMEMBER_TOKEN_SECONDS
    session_resync_seconds: int = constants.SESSION_RESYNC_SECONDS
    remember_cookie_name: str = constants.REMEMBER_COOKIE_NAME

    def __post_init__(self) -> None:
        for field_name in ("confirmation_seconds", "reset_seconds", "remember_seconds"):
            if getattr(self, field_name) < 1:
                raise ValueError(f"{field_name} must be positive")
        if self.session_resync_seconds < 0:
            raise ValueError("session_resync_seconds cannot be negative")


@dataclass(frozen=True, slots=True)
class PasswordPolicy:
    """Minimal password policy: length bounds only."""

    min_length: int = constants.MIN_PASSWORD_LENGTH
    max_length: int = constants.MAX_PASSWORD_LENGTH

    def __post_init__(self) -> None:
        if self.min_length < 1:
            raise ValueError("min_length must be at least 1")
        if self.max_length < self.min_length:
            raise ValueError("max_length must be >= min_length")


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Immutable logging configuration."""

    level: str = "INFO"
    enable_console: bool = True
    enable_json: bool = False
    format: str = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
    date_format: str = "%Y-%m-%d %H:%M:%S"

    def __post_init__(self) -> None:
        """Validate logging settings."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if self.level.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {self.level}")


@dataclass(frozen=True, slots=True)
class AuthConfig:
    """
    Construction-time configuration for every authkeeper component.

    Usage:
        config = AuthConfig.load()
        users_table = config.table("users")
        cooldown = config.throttle.max_cooldown_seconds
    """

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    throttle: ThrottleConfig = field(default_factory=ThrottleConfig)
    tokens: TokenConfig = field(default_factory=TokenConfig)
    passwords: PasswordPolicy = field(default_factory=PasswordPolicy)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def table(self, name: str, qualified: bool = True) -> str:
        """
        Resolve a logical table name to its qualified SQL name.

        Args:
            name: One of users, confirmations, remembered, resets, throttling

        Returns:
            e.g. ``auth.app_users_resets`` for schema ``auth`` and prefix ``app_``
        """
        try:
            table = _TABLES[name]
        except KeyError:
            raise ValueError(f"Unknown table: {name!r}") from None

        table = f"{self.database.table_prefix}{table}"
        if qualified and self.database.schema:
            table = f"{self.database.schema}.{table}"
        return table

    @property
    def config_hash(self) -> str:
        """Short hash of the configuration for change detection."""
        config_str = f"{self.database}|{self.throttle}|{self.tokens}|{self.passwords}"
        return hashlib.sha256(config_str.encode()).hexdigest()[:16]

    @classmethod
    def load(cls, env_prefix: str = "AUTHKEEPER") -> AuthConfig:
        """
        Load configuration with environment variable overrides.

        Environment variables are prefixed with AUTHKEEPER_ and use double
        underscores between section and key.

        Examples:
            AUTHKEEPER_DATABASE__TABLE_PREFIX=app_
            AUTHKEEPER_THROTTLE__MAX_ATTEMPTS=10
            AUTHKEEPER_LOGGING__LEVEL=DEBUG

        Args:
            env_prefix: Prefix for environment variables (default: AUTHKEEPER)

        Returns:
            Configured AuthConfig instance
        """
        env_overrides = cls._parse_env_overrides(env_prefix)

        sections: dict[str, dict[str, Any]] = {
            "database": {}, "throttle": {}, "tokens": {}, "passwords": {}, "logging": {},
        }
        for config_key, value in env_overrides.items():
            section, _, key = config_key.partition(".")
            if section in sections and key:
                sections[section][key] = value

        return cls(
            database=DatabaseConfig(**sections["database"]),
            throttle=ThrottleConfig(**_as_ints(sections["throttle"])),
            tokens=TokenConfig(**_as_ints(sections["tokens"], keep={"remember_cookie_name"})),
            passwords=PasswordPolicy(**_as_ints(sections["passwords"])),
            logging=LoggingConfig(**_as_logging(sections["logging"])),
        )

    @staticmethod
    def _parse_env_overrides(prefix: str) -> dict[str, str]:
        """Parse environment variables with the given prefix."""
        overrides: dict[str, str] = {}
        prefix_upper = f"{prefix.upper()}_"

        for key, value in os.environ.items():
            if key.startswith(prefix_upper):
                # Convert AUTHKEEPER_SECTION__KEY to section.key
                config_key = key[len(prefix_upper):].lower().replace("__", ".")

                # SECURITY: Skip sensitive keys from environment
                if _is_sensitive_key(config_key.rpartition(".")[2]):
                    continue

                overrides[config_key] = value

        return overrides

    def __repr__(self) -> str:
        """Safe string representation."""
        return f"AuthConfig(hash={self.config_hash}, prefix={self.database.table_prefix!r})"


def _as_ints(values: dict[str, str], keep: frozenset[str] | set[str] = frozenset()) -> dict[str, Any]:
    return {k: (v if k in keep else int(v)) for k, v in values.items()}


def _as_logging(values: dict[str, str]) -> dict[str, Any]:
    converted: dict[str, Any] = {}
    for key, value in values.items():
        if key in ("enable_console", "enable_json"):
            converted[key] = value.lower() == "true"
        else:
            converted[key] = value
    return converted
