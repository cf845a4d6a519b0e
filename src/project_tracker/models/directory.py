"""Managers derived from projects and the admin user directory."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

from .common import CAMEL_CASE_CONFIG
from .session import UserRole


class Manager(BaseModel):
    """A project manager as shown in the managers view."""

    model_config = CAMEL_CASE_CONFIG

    id: str
    name: str
    email: str
    position: str = "Project manager"
    department: str = "Development office"
    project_count: int = Field(default=0, ge=0)
    assigned_by: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class UserStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class AdminUser(BaseModel):
    """Entry of the user directory administrators manage."""

    model_config = CAMEL_CASE_CONFIG

    id: str
    name: str = ""
    email: str
    roles: list[UserRole] = Field(default_factory=lambda: [UserRole.USER])
    status: UserStatus = UserStatus.ACTIVE
    last_login: str | None = None
    created_at: str
    projects_count: int = Field(default=0, ge=0)

    @field_validator("roles")
    @classmethod
    def _at_least_user(cls, value: list[UserRole]) -> list[UserRole]:
        unique = list(dict.fromkeys(value))
        return unique or [UserRole.USER]

    def has_role(self, role: UserRole | str) -> bool:
        return UserRole(role) in self.roles

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


__all__ = ["AdminUser", "Manager", "UserStatus"]
