"""Team list of the signed-in user with an offline copy under ``teams_<email>``."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Mapping

from pydantic import ValidationError as PydanticValidationError

from ..errors import AuthenticationRequiredError, ValidationError
from ..models import Session, Team, TeamCreate, TeamJoin, isoformat_utc
from .api import ApiClient
from .local_cache import TEAMS_PREFIX, LocalCacheStore
from .session import SessionManager

logger = logging.getLogger(__name__)


def search_teams(teams: Iterable[Team], search: str | None = None) -> list[Team]:
    """Case-insensitive match on name or description."""

    needle = (search or "").strip().casefold()
    if not needle:
        return list(teams)
    return [
        team
        for team in teams
        if needle in team.name.casefold() or needle in (team.description or "").casefold()
    ]


class TeamSync:
    """Teams are read from the API and fall back to the cached list.

    A create the API rejects still adds a local team owned by the caller, the
    same way an offline project create does. Joining needs the API: a failed
    join changes nothing.
    """

    def __init__(
        self,
        api: ApiClient,
        sessions: SessionManager,
        cache: LocalCacheStore,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._api = api
        self._sessions = sessions
        self._cache = cache
        self._clock = clock
        self._teams: tuple[Team, ...] = ()

    @property
    def teams(self) -> tuple[Team, ...]:
        return self._teams

    async def load(self) -> tuple[Team, ...]:
        session = self._sessions.current
        if session is None or not session.is_logged_in:
            self._teams = ()
            return self._teams

        result = await self._api.list_teams(session.access_token)
        if result.ok and result.data is not None:
            self._teams = tuple(result.data)
            await self._mirror(session)
        else:
            logger.warning("Team list unavailable (%s); using the offline copy.", result.error)
            self._teams = tuple(await self._cache.read_list(self._key(session), Team) or ())
        return self._teams

    async def create(self, team: TeamCreate | Mapping[str, Any]) -> Team:
        session = self._require_session("create_team")
        if not isinstance(team, TeamCreate):
            try:
                team = TeamCreate.model_validate(dict(team))
            except PydanticValidationError as exc:
                raise ValidationError(
                    "Team name is required.",
                    details=exc.errors(include_url=False, include_context=False),
                ) from exc

        result = await self._api.create_team(team, session.access_token)
        if result.ok and result.data is not None:
            created = result.data
        else:
            logger.warning("Remote team create failed (%s); keeping the team locally.", result.error)
            created = self._local_team(team, session)

        self._teams = (*self._teams, created)
        await self._mirror(session)
        return created

    async def join(self, team_id: str) -> Team | None:
        """Join ``team_id`` and reload; returns ``None`` when the API refused."""

        session = self._require_session("join_team")
        if not team_id.strip():
            raise ValidationError("Team id is required.")

        result = await self._api.join_team(TeamJoin(team_id=team_id.strip()), session.access_token)
        if not result.ok or result.data is None:
            logger.warning("Joining team %s failed: %s", team_id, result.error)
            return None
        await self.load()
        return result.data

    def _require_session(self, operation: str) -> Session:
        session = self._sessions.current
        if session is None or not session.is_logged_in:
            raise AuthenticationRequiredError(operation=operation)
        return session

    def _key(self, session: Session) -> str:
        return self._cache.namespace_key(session.user_email, TEAMS_PREFIX)

    async def _mirror(self, session: Session) -> None:
        await self._cache.write_list(self._key(session), self._teams)

    def _local_team(self, team: TeamCreate, session: Session) -> Team:
        taken = {existing.id for existing in self._teams}
        candidate = int(self._clock() * 1000)
        while str(candidate) in taken:
            candidate += 1
        return Team(
            id=str(candidate),
            name=team.name,
            description=team.description,
            owner_id=session.user_id or session.user_email,
            owner_email=session.user_email,
            created_at=isoformat_utc(datetime.fromtimestamp(self._clock(), tz=timezone.utc)),
            member_count=1,
            is_owner=True,
            is_member=True,
        )


__all__ = ["TeamSync", "search_teams"]
