"""Domain models."""

from __future__ import annotations

from .common import isoformat_utc, parse_iso_datetime, utcnow
from .directory import AdminUser, Manager, UserStatus
from .project import Project, ProjectBase, ProjectDraft, ProjectPriority, ProjectStatus, ProjectUpdate
from .session import Session, UserRole
from .team import (
    NotificationPreferences,
    Team,
    TeamCreate,
    TeamJoin,
    TeamMembership,
    TeamRole,
    UserProfile,
)

__all__ = [
    "AdminUser",
    "Manager",
    "NotificationPreferences",
    "Project",
    "ProjectBase",
    "ProjectDraft",
    "ProjectPriority",
    "ProjectStatus",
    "ProjectUpdate",
    "Session",
    "Team",
    "TeamCreate",
    "TeamJoin",
    "TeamMembership",
    "TeamRole",
    "UserProfile",
    "UserRole",
    "UserStatus",
    "isoformat_utc",
    "parse_iso_datetime",
    "utcnow",
]
