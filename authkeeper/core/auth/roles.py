"""
Roles and Account Status
========================

Roles are independent permission flags stored together as one integer
bitmask per user. ``Role`` is an ``IntFlag`` so that union (``|``),
difference (``& ~``) and membership (``in``) work directly on the typed
value, while ``int(roles)`` is what gets persisted.
"""

from __future__ import annotations

from enum import IntEnum, IntFlag
from typing import Final


class Role(IntFlag):
    """Grantable roles. Each member occupies one bit of ``roles_mask``."""
    ADMIN = 1
    AUTHOR = 2
    COLLABORATOR = 4
    CONSULTANT = 8
    CONSUMER = 16
    CONTRIBUTOR = 32
    COORDINATOR = 64
    CREATOR = 128
    DEVELOPER = 256
    DIRECTOR = 512
    EDITOR = 1024
    EMPLOYEE = 2048
    MAINTAINER = 4096
    MANAGER = 8192
    MODERATOR = 16384
    PUBLISHER = 32768
    REVIEWER = 65536
    SUBSCRIBER = 131072
    SUPER_ADMIN = 262144
    SUPER_EDITOR = 524288
    SUPER_MODERATOR = 1048576
    TRANSLATOR = 2097152

    @classmethod
    def from_mask(cls, mask: int | None) -> "Role":
        """Build a role set from a stored bitmask, ignoring unknown bits."""
        return cls((mask or 0) & _ALL_ROLES_MASK)

    def members(self) -> list["Role"]:
        """Single roles contained in this set, lowest bit first."""
        return [role for role in ROLE_NAMES if role & self]

    def to_map(self) -> dict[int, str]:
        """Map numeric value to name for every role in this set."""
        return {int(role): ROLE_NAMES[role] for role in self.members()}


NO_ROLES: Final[Role] = Role(0)

ROLE_NAMES: Final[dict[Role, str]] = {
    Role.ADMIN: "ADMIN",
    Role.AUTHOR: "AUTHOR",
    Role.COLLABORATOR: "COLLABORATOR",
    Role.CONSULTANT: "CONSULTANT",
    Role.CONSUMER: "CONSUMER",
    Role.CONTRIBUTOR: "CONTRIBUTOR",
    Role.COORDINATOR: "COORDINATOR",
    Role.CREATOR: "CREATOR",
    Role.DEVELOPER: "DEVELOPER",
    Role.DIRECTOR: "DIRECTOR",
    Role.EDITOR: "EDITOR",
    Role.EMPLOYEE: "EMPLOYEE",
    Role.MAINTAINER: "MAINTAINER",
    Role.MANAGER: "MANAGER",
    Role.MODERATOR: "MODERATOR",
    Role.PUBLISHER: "PUBLISHER",
    Role.REVIEWER: "REVIEWER",
    Role.SUBSCRIBER: "SUBSCRIBER",
    Role.SUPER_ADMIN: "SUPER_ADMIN",
    Role.SUPER_EDITOR: "SUPER_EDITOR",
    Role.SUPER_MODERATOR: "SUPER_MODERATOR",
    Role.TRANSLATOR: "TRANSLATOR",
}

_ALL_ROLES_MASK: Final[int] = sum(int(role) for role in ROLE_NAMES)


class Status(IntEnum):
    """Account status stored in ``users.status``."""
    NORMAL = 0
    ARCHIVED = 1
    BANNED = 2
    LOCKED = 3
    PENDING_REVIEW = 4
    SUSPENDED = 5

    @property
    def is_blocked(self) -> bool:
        """Whether this status forbids signing in."""
        return self in BLOCKED_STATUSES


BLOCKED_STATUSES: Final[frozenset[Status]] = frozenset({
    Status.BANNED,
    Status.LOCKED,
    Status.SUSPENDED,
})
