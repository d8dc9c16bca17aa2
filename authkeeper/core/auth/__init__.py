"""
authkeeper Authentication Module
================================

Provides:
- Argon2id password hashing
- Bitmask roles and account statuses
- Throttling with exponential cooldown
- Sessions and rotating remember-me tokens
- Email confirmation and password reset tokens

Security Properties:
- Memory-hard password hashing
- Constant-time verification
- Token hashes only at rest
- Enumeration-resistant login and reset flows
"""

from authkeeper.core.auth.administration import Administration
from authkeeper.core.auth.argon2_auth import Argon2Hasher
from authkeeper.core.auth.auth import Auth
from authkeeper.core.auth.credential_store import CredentialStore, User
from authkeeper.core.auth.roles import NO_ROLES, Role, Status
from authkeeper.core.auth.session_control import RememberCookie, SessionAssertion, SessionTokenIssuer
from authkeeper.core.auth.throttling import Outcome, ThrottleKey, ThrottleLedger, backoff_seconds
from authkeeper.core.auth.tokens import ConfirmationTokenManager, TokenPair, TokenPurpose, TokenRecord
from authkeeper.core.auth.user_manager import Registration, SessionContext, UserManager

__all__ = [
    "Administration",
    "Argon2Hasher",
    "Auth",
    "ConfirmationTokenManager",
    "CredentialStore",
    "NO_ROLES",
    "Outcome",
    "Registration",
    "RememberCookie",
    "Role",
    "SessionAssertion",
    "SessionContext",
    "SessionTokenIssuer",
    "Status",
    "ThrottleKey",
    "ThrottleLedger",
    "TokenPair",
    "TokenPurpose",
    "TokenRecord",
    "User",
    "UserManager",
    "backoff_seconds",
]
