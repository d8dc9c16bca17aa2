"""
Core module - Contains configuration, logging, errors and the auth components.
"""

from authkeeper.core.config import AuthConfig
from authkeeper.core.errors import AuthFailure, ErrorCategory, ErrorKind, InternalError
from authkeeper.core.logging import SecureLogFilter, configure_logging, get_secure_logger

__all__ = [
    "AuthConfig",
    "AuthFailure",
    "ErrorCategory",
    "ErrorKind",
    "InternalError",
    "SecureLogFilter",
    "configure_logging",
    "get_secure_logger",
]
