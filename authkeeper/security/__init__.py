"""
Security module - Security defaults shared across authkeeper.
"""

from authkeeper.security import constants

__all__ = ["constants"]
