"""Client session state."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class UserRole(str, Enum):
    """Roles an identity may hold in the program office."""

    ADMIN = "admin"
    MODERATOR = "moderator"
    MANAGER = "manager"
    USER = "user"


@dataclass(slots=True, frozen=True)
class Session:
    """Authenticated identity held by the running client.

    Anonymous clients have no ``Session`` at all; the value is never written
    to the offline cache.
    """

    user_email: str
    user_name: str
    access_token: str = field(repr=False)
    roles: frozenset[str] = frozenset()
    user_id: str | None = None

    @property
    def is_logged_in(self) -> bool:
        return bool(self.access_token and self.user_email)

    def has_role(self, role: UserRole | str) -> bool:
        value = role.value if isinstance(role, UserRole) else role
        return value in self.roles


__all__ = ["Session", "UserRole"]
