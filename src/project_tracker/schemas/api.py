"""Request and response envelopes exchanged with the project API."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, EmailStr, Field

from ..models import Project, Team, UserProfile


class ErrorResponse(BaseModel):
    """Error envelope; ``error`` is the human-readable message clients display."""

    error: str = Field(description="Human-readable error message")
    code: str = Field(default="error", description="Machine-readable error identifier")
    details: Any | None = Field(
        default=None,
        description="Optional structured metadata describing the error context.",
    )


class HealthCheckResponse(BaseModel):
    status: str = Field(default="ok", description="Service health indicator")
    timestamp: str


class SignupRequest(BaseModel):
    """Incoming payload for registering a new user."""

    email: EmailStr
    password: str = Field(min_length=6)
    name: str = ""


class SignupResponse(BaseModel):
    user: dict[str, Any]


class ProjectListResponse(BaseModel):
    projects: list[Project]


class ProjectResponse(BaseModel):
    project: Project


class SuccessResponse(BaseModel):
    success: bool = True


class TeamListResponse(BaseModel):
    teams: list[Team]


class TeamResponse(BaseModel):
    team: Team


class ProfileResponse(BaseModel):
    profile: UserProfile


__all__ = [
    "ErrorResponse",
    "HealthCheckResponse",
    "ProfileResponse",
    "ProjectListResponse",
    "ProjectResponse",
    "SignupRequest",
    "SignupResponse",
    "SuccessResponse",
    "TeamListResponse",
    "TeamResponse",
]
