"""Team and user profile models."""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from .common import CAMEL_CASE_CONFIG


class TeamRole(str, Enum):
    """Membership roles within a team."""

    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"


class Team(BaseModel):
    """A group of users sharing a workspace."""

    model_config = CAMEL_CASE_CONFIG

    id: str
    name: str
    description: str | None = None
    owner_id: str
    owner_email: str | None = None
    created_at: str
    member_count: int = Field(default=1, ge=0)
    is_owner: bool = False
    is_member: bool = False

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class TeamMembership(BaseModel):
    """Link between a user and a team."""

    model_config = CAMEL_CASE_CONFIG

    team_id: str
    role: TeamRole = TeamRole.MEMBER
    joined_at: str


class TeamCreate(BaseModel):
    """Payload for creating a team."""

    model_config = CAMEL_CASE_CONFIG

    name: str = Field(min_length=1, max_length=255)
    description: str | None = None

    @field_validator("name", mode="before")
    @classmethod
    def _strip_name(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip()
        return value


class TeamJoin(BaseModel):
    """Payload for joining an existing team."""

    model_config = CAMEL_CASE_CONFIG

    team_id: str = Field(min_length=1)
    invite_code: str | None = None


class NotificationPreferences(BaseModel):
    email: bool = True
    push: bool = True
    desktop: bool = False


class UserProfile(BaseModel):
    """Per-user preferences stored by the API."""

    model_config = CAMEL_CASE_CONFIG

    id: str
    email: str
    name: str = ""
    avatar: str | None = None
    title: str | None = ""
    department: str | None = ""
    notifications: NotificationPreferences = Field(default_factory=NotificationPreferences)
    theme: Literal["light", "dark", "system"] = "light"
    language: Literal["ru", "en"] = "ru"
    timezone: str = "Europe/Moscow"
    updated_at: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


__all__ = [
    "NotificationPreferences",
    "Team",
    "TeamCreate",
    "TeamJoin",
    "TeamMembership",
    "TeamRole",
    "UserProfile",
]
