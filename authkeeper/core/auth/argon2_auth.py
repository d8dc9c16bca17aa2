"""
Argon2id Password Hashing
=========================

Password hashing capability consumed by the rest of the library:
``hash``, ``verify`` and ``needs_rehash``.

Security Properties:
- Memory-hard (resistant to GPU/ASIC attacks)
- Salt automatically managed
- Constant-time verification
- Parameters encoded in the hash, so raising them upgrades old hashes
  transparently on the next successful login

Parameters (OWASP recommendations):
- memory_cost: 65536 KiB (64 MB)
- time_cost: 3 iterations
- parallelism: 4 lanes

References:
- RFC 9106: Argon2 Memory-Hard Function
- OWASP Password Storage Cheat Sheet
"""

from __future__ import annotations

from typing import Final, Optional

from argon2 import Parameters, PasswordHasher, Type
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError


ARGON2_MEMORY_COST: Final[int] = 65536  # 64 MB in KiB
ARGON2_TIME_COST: Final[int] = 3  # iterations
ARGON2_PARALLELISM: Final[int] = 4  # lanes
ARGON2_HASH_LENGTH: Final[int] = 32  # 256 bits
ARGON2_SALT_LENGTH: Final[int] = 16  # 128 bits


class Argon2Hasher:
    """
    Argon2id password hasher with secure defaults.

    Usage:
        hasher = Argon2Hasher()

        encoded = hasher.hash("user_password")
        store(encoded)

        if hasher.verify("user_password", encoded):
            if hasher.needs_rehash(encoded):
                store(hasher.hash("user_password"))

    Security Notes:
        - Argon2id is the recommended variant (hybrid)
        - verify() never raises for a wrong password or a corrupt hash
    """

    __slots__ = ("_hasher", "_dummy_hash")

    def __init__(
        self,
        memory_cost: int = ARGON2_MEMORY_COST,
        time_cost: int = ARGON2_TIME_COST,
        parallelism: int = ARGON2_PARALLELISM,
        hash_length: int = ARGON2_HASH_LENGTH,
        salt_length: int = ARGON2_SALT_LENGTH,
        enforce_minimums: bool = True,
    ) -> None:
        """
        Initialize the Argon2id hasher.

        Args:
            memory_cost: Memory usage in KiB (default: 65536 = 64MB)
            time_cost: Number of iterations (default: 3)
            parallelism: Degree of parallelism (default: 4)
            hash_length: Output hash length in bytes (default: 32)
            salt_length: Salt length in bytes (default: 16)
            enforce_minimums: Reject parameters below production minimums.
                Only test suites should turn this off.
        """
        if enforce_minimums:
            if memory_cost < 19456:  # OWASP floor: 19 MiB
                raise ValueError("memory_cost must be at least 19456 KiB")
            if time_cost < 2:
                raise ValueError("time_cost must be at least 2")
            if hash_length < 16:
                raise ValueError("hash_length must be at least 16 bytes")
            if salt_length < 16:
                raise ValueError("salt_length must be at least 16 bytes")
        if parallelism < 1:
            raise ValueError("parallelism must be at least 1")

        self._hasher = PasswordHasher(
            time_cost=time_cost,
            memory_cost=memory_cost,
            parallelism=parallelism,
            hash_len=hash_length,
            salt_len=salt_length,
            type=Type.ID,
        )
        self._dummy_hash: Optional[str] = None

    @classmethod
    def from_parameters(cls, parameters: Parameters, enforce_minimums: bool = True) -> Argon2Hasher:
        """Build a hasher from an ``argon2.Parameters`` profile."""
        return cls(
            memory_cost=parameters.memory_cost,
            time_cost=parameters.time_cost,
            parallelism=parameters.parallelism,
            hash_length=parameters.hash_len,
            salt_length=parameters.salt_len,
            enforce_minimums=enforce_minimums,
        )

    @property
    def parameters(self) -> dict[str, int]:
        """Get current hashing parameters."""
        return {
            "memory_cost": self._hasher.memory_cost,
            "time_cost": self._hasher.time_cost,
            "parallelism": self._hasher.parallelism,
            "hash_length": self._hasher.hash_len,
            "salt_length": self._hasher.salt_len,
        }

    def hash(self, password: str) -> str:
        """
        Hash a password using Argon2id.

        Returns:
            Encoded hash string for storage ($argon2id$v=19$m=...,t=...,p=...$salt$hash)
        """
        if not password:
            raise ValueError("Password cannot be empty")
        return self._hasher.hash(password)

    def verify(self, password: str, encoded: str) -> bool:
        """
        Verify a password against an encoded hash.

        Returns:
            True if password matches, False otherwise (including corrupt hashes)
        """
        if not password or not encoded:
            return False
        try:
            return self._hasher.verify(encoded, password)
        except (VerifyMismatchError, VerificationError, InvalidHashError):
            return False

    def needs_rehash(self, encoded: str) -> bool:
        """
        Check if a hash was produced with other parameters than the current ones.

        Corrupt hashes report True so that they get replaced.
        """
        try:
            return self._hasher.check_needs_rehash(encoded)
        except (InvalidHashError, ValueError):
            return True

    def verify_dummy(self, password: str) -> bool:
        """
        Run a full verification against a throwaway hash.

        Used when no account matches so that the response takes as long as a
        wrong-password response. Always returns False.
        """
        if self._dummy_hash is None:
            self._dummy_hash = self._hasher.hash("authkeeper-dummy-password")
        self.verify(password or "-", self._dummy_hash)
        return False

    def __repr__(self) -> str:
        params = self.parameters
        return f"Argon2Hasher(m={params['memory_cost']}, t={params['time_cost']}, p={params['parallelism']})"
