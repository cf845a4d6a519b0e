"""Project domain models."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .common import CAMEL_CASE_CONFIG, parse_iso_datetime


class ProjectStatus(str, Enum):
    """Enumeration of possible project states."""

    PLANNED = "planned"
    IN_PROGRESS = "in-progress"
    SUBMITTED = "submitted"
    WAITING_REVIEW = "waiting-review"
    COMPLETED = "completed"


class ProjectPriority(str, Enum):
    """Relative urgency of a project."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ProjectBase(BaseModel):
    """Shared attributes for project payloads."""

    model_config = CAMEL_CASE_CONFIG

    title: str = Field(min_length=1)
    description: str = ""
    status: ProjectStatus = ProjectStatus.PLANNED
    priority: ProjectPriority = ProjectPriority.MEDIUM
    progress: int = Field(default=0, ge=0, le=100)
    assignee: str = ""
    manager: str = ""
    deadline: str = ""

    @field_validator("title", mode="before")
    @classmethod
    def _strip_title(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("description", mode="before")
    @classmethod
    def _none_description_is_empty(cls, value: object) -> object:
        if value is None:
            return ""
        return value

    def to_payload(self) -> dict[str, Any]:
        """Serialise using wire (camelCase) keys."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ProjectDraft(ProjectBase):
    """User submission for a new project; the fields a creator must fill in."""

    assignee: str = Field(min_length=1)
    manager: str = Field(min_length=1)
    deadline: str = Field(min_length=1)

    @field_validator("assignee", "manager", "deadline", mode="before")
    @classmethod
    def _strip_required(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("deadline")
    @classmethod
    def _deadline_is_iso(cls, value: str) -> str:
        if parse_iso_datetime(value) is None:
            raise ValueError("deadline must be an ISO-8601 date or date-time")
        return value


class Project(ProjectBase):
    """A tracked work item as stored remotely and in the offline cache.

    ``id`` and ``created_at`` never change after creation; edits produce a new
    instance through :meth:`with_changes`.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    created_at: str = Field(min_length=1)
    user_id: str | None = None
    updated_at: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: object) -> object:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    def with_changes(self, **changes: Any) -> "Project":
        """Return a copy carrying ``changes`` while keeping identity fields."""

        changes.pop("id", None)
        changes.pop("created_at", None)
        data = self.model_dump()
        data.update(changes)
        return Project.model_validate(data)


class ProjectUpdate(BaseModel):
    """Payload for updating an existing project through the API."""

    model_config = CAMEL_CASE_CONFIG

    title: str | None = Field(default=None, min_length=1)
    description: str | None = None
    status: ProjectStatus | None = None
    priority: ProjectPriority | None = None
    progress: int | None = Field(default=None, ge=0, le=100)
    assignee: str | None = None
    manager: str | None = None
    deadline: str | None = None
    created_at: str | None = None


__all__ = [
    "Project",
    "ProjectBase",
    "ProjectDraft",
    "ProjectPriority",
    "ProjectStatus",
    "ProjectUpdate",
]
