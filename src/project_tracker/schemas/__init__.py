"""Wire schemas."""

from __future__ import annotations

from .api import (
    ErrorResponse,
    HealthCheckResponse,
    ProfileResponse,
    ProjectListResponse,
    ProjectResponse,
    SignupRequest,
    SignupResponse,
    SuccessResponse,
    TeamListResponse,
    TeamResponse,
)

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
