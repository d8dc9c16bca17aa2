"""
authkeeper - User Authentication and Authorization
==================================================

Registration, login, "remember me", email confirmation, password reset,
throttling and bitmask roles on top of a relational database.

Security Notice:
- Passwords hashed with Argon2id
- Only hashes of tokens are stored
- Throttling is fail-closed
- No secrets are logged
"""

from authkeeper.core.auth import Administration, Auth, Role, Status
from authkeeper.core.config import AuthConfig
from authkeeper.core.logging import configure_logging, get_secure_logger

__version__ = "0.1.0"

__all__ = [
    "Administration",
    "Auth",
    "AuthConfig",
    "Role",
    "Status",
    "configure_logging",
    "get_secure_logger",
    "__version__",
]
