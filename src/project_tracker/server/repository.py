"""Key-value persistence for projects, teams and profiles.

Key scheme::

    user:{uid}:projects:{pid}   project record
    team:{tid}                  team record
    user:{uid}:teams:{tid}      membership of uid in tid
    user:{uid}:profile          profile record
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Callable, Mapping

from fastapi import status
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from ..core.kv import KeyValueStore
from ..errors import ApplicationError, NotFoundError, ValidationError
from ..models import (
    Project,
    ProjectBase,
    ProjectUpdate,
    Team,
    TeamCreate,
    TeamMembership,
    TeamRole,
    UserProfile,
    isoformat_utc,
)
from .security import AuthenticatedUser

logger = logging.getLogger(__name__)

_VIEWER_FLAGS = {"is_owner", "is_member"}


def project_key(user_id: str, project_id: str) -> str:
    return f"user:{user_id}:projects:{project_id}"


def team_key(team_id: str) -> str:
    return f"team:{team_id}"


def membership_key(user_id: str, team_id: str) -> str:
    return f"user:{user_id}:teams:{team_id}"


def profile_key(user_id: str) -> str:
    return f"user:{user_id}:profile"


def _invalid(message: str, exc: PydanticValidationError) -> ValidationError:
    return ValidationError(message, details=exc.errors(include_url=False, include_context=False))


class _KeyValueRepository:
    def __init__(self, store: KeyValueStore, *, clock: Callable[[], float] = time.time) -> None:
        self._store = store
        self._clock = clock

    async def _allocate_id(self, key_for: Callable[[str], str]) -> str:
        """Return a millisecond timestamp id whose key is still free."""

        candidate = int(self._clock() * 1000)
        while await self._store.exists(key_for(str(candidate))):
            candidate += 1
        return str(candidate)

    async def _read_model(self, key: str, model: type[BaseModel]) -> Any | None:
        try:
            raw = await self._store.get_json(key)
        except ValueError:
            logger.warning("Skipping unparsable record %s", key)
            return None
        if raw is None:
            return None
        try:
            return model.model_validate(raw)
        except PydanticValidationError:
            logger.warning("Skipping invalid record %s", key)
            return None


class ProjectRepository(_KeyValueRepository):
    """Per-user project records."""

    async def list_for_user(self, user_id: str) -> list[Project]:
        projects: list[Project] = []
        for key, raw in await self._store.get_by_prefix_with_keys(f"user:{user_id}:projects:"):
            try:
                projects.append(Project.model_validate(json.loads(raw)))
            except (ValueError, PydanticValidationError):
                logger.warning("Skipping invalid project record %s", key)
        return projects

    async def get(self, user_id: str, project_id: str) -> Project | None:
        return await self._read_model(project_key(user_id, project_id), Project)

    async def create(self, user_id: str, data: ProjectBase) -> Project:
        project_id = await self._allocate_id(lambda candidate: project_key(user_id, candidate))
        project = Project.model_validate(
            {
                **data.model_dump(),
                "id": project_id,
                "user_id": user_id,
                "created_at": isoformat_utc(),
            }
        )
        await self._store.set_json(project_key(user_id, project_id), project.to_payload())
        logger.info("Created project %s for user %s", project_id, user_id)
        return project

    async def update(self, user_id: str, project_id: str, changes: ProjectUpdate) -> Project:
        """Merge ``changes`` into the stored record, creating it if absent.

        ``createdAt`` of an existing record is kept whatever the payload says.
        """

        existing = await self.get(user_id, project_id)
        merged: dict[str, Any] = existing.model_dump() if existing is not None else {}
        merged.update(changes.model_dump(exclude_unset=True, exclude_none=True))
        merged.update(
            {
                "id": project_id,
                "user_id": user_id,
                "created_at": existing.created_at if existing is not None else (changes.created_at or isoformat_utc()),
                "updated_at": isoformat_utc(),
            }
        )
        try:
            project = Project.model_validate(merged)
        except PydanticValidationError as exc:
            raise _invalid("Project is invalid.", exc) from exc
        await self._store.set_json(project_key(user_id, project_id), project.to_payload())
        return project

    async def delete(self, user_id: str, project_id: str) -> bool:
        return await self._store.delete(project_key(user_id, project_id)) > 0


class TeamRepository(_KeyValueRepository):
    """Team records and memberships."""

    @staticmethod
    def _for_viewer(team: Team, user_id: str) -> Team:
        return team.model_copy(update={"is_owner": team.owner_id == user_id, "is_member": True})

    async def _save(self, team: Team) -> None:
        await self._store.set_json(
            team_key(team.id),
            team.model_dump(mode="json", by_alias=True, exclude=_VIEWER_FLAGS),
        )

    async def get(self, team_id: str) -> Team | None:
        return await self._read_model(team_key(team_id), Team)

    async def list_for_user(self, user_id: str) -> list[Team]:
        prefix = f"user:{user_id}:teams:"
        teams: list[Team] = []
        for key, _ in await self._store.get_by_prefix_with_keys(prefix):
            team = await self.get(key[len(prefix):])
            if team is not None:
                teams.append(self._for_viewer(team, user_id))
        return teams

    async def create(self, user: AuthenticatedUser, data: TeamCreate) -> Team:
        team_id = await self._allocate_id(team_key)
        now = isoformat_utc()
        team = Team(
            id=team_id,
            name=data.name,
            description=data.description,
            owner_id=user.id,
            owner_email=user.email,
            created_at=now,
            member_count=1,
        )
        await self._save(team)
        membership = TeamMembership(team_id=team_id, role=TeamRole.OWNER, joined_at=now)
        await self._store.set_json(
            membership_key(user.id, team_id),
            membership.model_dump(mode="json", by_alias=True),
        )
        logger.info("User %s created team %s", user.id, team_id)
        return self._for_viewer(team, user.id)

    async def join(self, user: AuthenticatedUser, team_id: str) -> Team:
        team = await self.get(team_id)
        if team is None:
            raise NotFoundError("Team not found", code="team_not_found")
        if await self._store.exists(membership_key(user.id, team_id)):
            raise ApplicationError(
                "You are already a member of this team",
                code="already_member",
                status_code=status.HTTP_400_BAD_REQUEST,
            )

        membership = TeamMembership(team_id=team_id, role=TeamRole.MEMBER, joined_at=isoformat_utc())
        await self._store.set_json(
            membership_key(user.id, team_id),
            membership.model_dump(mode="json", by_alias=True),
        )
        team = team.model_copy(update={"member_count": team.member_count + 1})
        await self._save(team)
        logger.info("User %s joined team %s", user.id, team_id)
        return self._for_viewer(team, user.id)


class ProfileRepository(_KeyValueRepository):
    """One profile per user, created with defaults on first read."""

    @staticmethod
    def default_profile(user: AuthenticatedUser) -> UserProfile:
        return UserProfile(id=user.id, email=user.email or "", name=user.name)

    async def get_or_create(self, user: AuthenticatedUser) -> UserProfile:
        profile = await self._read_model(profile_key(user.id), UserProfile)
        if profile is None:
            profile = self.default_profile(user)
            await self._store.set_json(profile_key(user.id), profile.to_payload())
        return profile

    async def update(self, user: AuthenticatedUser, changes: Mapping[str, Any]) -> UserProfile:
        """Apply ``changes``; ``id`` and ``email`` always come from the token."""

        current = await self._read_model(profile_key(user.id), UserProfile) or self.default_profile(user)
        merged = {**current.to_payload(), **dict(changes)}
        merged.update({"id": user.id, "email": user.email or current.email, "updatedAt": isoformat_utc()})
        merged.pop("updated_at", None)
        try:
            profile = UserProfile.model_validate(merged)
        except PydanticValidationError as exc:
            raise _invalid("Profile is invalid.", exc) from exc
        await self._store.set_json(profile_key(user.id), profile.to_payload())
        return profile


__all__ = [
    "ProfileRepository",
    "ProjectRepository",
    "TeamRepository",
    "membership_key",
    "profile_key",
    "project_key",
    "team_key",
]
