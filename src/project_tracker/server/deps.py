"""Reusable FastAPI dependencies."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from ..core.config import Settings
from ..core.kv import KeyValueStore
from ..errors import UnauthorizedError
from .admin import AuthAdminClient
from .repository import ProfileRepository, ProjectRepository, TeamRepository
from .security import AuthenticatedUser, decode_access_token, extract_bearer_token


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_kv(request: Request) -> KeyValueStore:
    return request.app.state.kv


def get_auth_admin(request: Request) -> AuthAdminClient:
    return request.app.state.auth_admin


SettingsDependency = Annotated[Settings, Depends(get_app_settings)]
KeyValueDependency = Annotated[KeyValueStore, Depends(get_kv)]
AuthAdminDependency = Annotated[AuthAdminClient, Depends(get_auth_admin)]


async def get_current_user(request: Request, settings: SettingsDependency) -> AuthenticatedUser:
    """Resolve the bearer token into a user or fail with 401."""

    token = extract_bearer_token(request.headers)
    if token is None:
        raise UnauthorizedError("No access token provided", code="missing_token")
    user = decode_access_token(token, settings)
    request.state.user_id = user.id
    return user


def get_project_repository(store: KeyValueDependency) -> ProjectRepository:
    return ProjectRepository(store)


def get_team_repository(store: KeyValueDependency) -> TeamRepository:
    return TeamRepository(store)


def get_profile_repository(store: KeyValueDependency) -> ProfileRepository:
    return ProfileRepository(store)


CurrentUserDependency = Annotated[AuthenticatedUser, Depends(get_current_user)]
ProjectRepositoryDependency = Annotated[ProjectRepository, Depends(get_project_repository)]
TeamRepositoryDependency = Annotated[TeamRepository, Depends(get_team_repository)]
ProfileRepositoryDependency = Annotated[ProfileRepository, Depends(get_profile_repository)]


__all__ = [
    "AuthAdminDependency",
    "CurrentUserDependency",
    "KeyValueDependency",
    "ProfileRepositoryDependency",
    "ProjectRepositoryDependency",
    "SettingsDependency",
    "TeamRepositoryDependency",
    "get_current_user",
]
