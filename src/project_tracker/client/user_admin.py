"""User directory for administrators, kept in the shared ``admin_users`` cache key."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Callable, Iterable

from ..errors import AuthenticationRequiredError, ForbiddenError, NotFoundError
from ..models import AdminUser, Session, UserRole, UserStatus, isoformat_utc
from .local_cache import ADMIN_USERS_KEY, LocalCacheStore
from .session import SessionManager

logger = logging.getLogger(__name__)

_KNOWN_ROLES = frozenset(role.value for role in UserRole)


def filter_users(
    users: Iterable[AdminUser],
    search: str | None = None,
    role: UserRole | str | None = None,
) -> list[AdminUser]:
    needle = (search or "").strip().casefold()
    wanted = UserRole(role) if role else None
    return [
        user
        for user in users
        if (not needle or needle in user.name.casefold() or needle in user.email.casefold())
        and (wanted is None or wanted in user.roles)
    ]


class UserDirectory:
    """Role and status management over the cached user list.

    Any signed-in user can read the directory; changing it needs the
    ``admin`` role of the current session. The signed-in user is added with
    the roles of their session the first time they open the directory.
    """

    def __init__(
        self,
        cache: LocalCacheStore,
        sessions: SessionManager,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._cache = cache
        self._sessions = sessions
        self._clock = clock
        self._users: tuple[AdminUser, ...] = ()

    @property
    def users(self) -> tuple[AdminUser, ...]:
        return self._users

    async def load(self) -> tuple[AdminUser, ...]:
        session = self._sessions.current
        if session is None or not session.is_logged_in:
            self._users = ()
            return self._users

        users = await self._cache.read_list(ADMIN_USERS_KEY, AdminUser) or []
        if not any(user.email == session.user_email for user in users):
            users.append(self._entry_for(session))
            self._users = tuple(users)
            await self._persist()
        else:
            self._users = tuple(users)
        return self._users

    async def set_roles(self, user_id: str, roles: Iterable[UserRole | str]) -> AdminUser:
        """Replace the roles of ``user_id``; an empty set leaves just ``user``."""

        return await self._change(user_id, roles=[UserRole(role) for role in roles] or [UserRole.USER])

    async def toggle_role(self, user_id: str, role: UserRole | str) -> AdminUser:
        role = UserRole(role)
        user = await self._find(user_id)
        roles = [item for item in user.roles if item is not role] if role in user.roles else [*user.roles, role]
        return await self._change(user_id, roles=roles or [UserRole.USER])

    async def toggle_status(self, user_id: str) -> AdminUser:
        user = await self._find(user_id)
        status = UserStatus.INACTIVE if user.status is UserStatus.ACTIVE else UserStatus.ACTIVE
        return await self._change(user_id, status=status)

    async def delete(self, user_id: str) -> None:
        await self._find(user_id)
        self._users = tuple(user for user in self._users if user.id != user_id)
        await self._persist()
        logger.info("User %s removed from the directory", user_id)

    async def _change(self, user_id: str, **changes: object) -> AdminUser:
        current = await self._find(user_id)
        updated = AdminUser.model_validate({**current.model_dump(), **changes})
        self._users = tuple(updated if user.id == user_id else user for user in self._users)
        await self._persist()
        logger.info("User %s updated: %s", user_id, ", ".join(sorted(changes)))
        return updated

    async def _find(self, user_id: str) -> AdminUser:
        self._require_admin()
        if not self._users:
            await self.load()
        for user in self._users:
            if user.id == user_id:
                return user
        raise NotFoundError(f"User {user_id} not found.")

    def _require_admin(self) -> Session:
        session = self._sessions.current
        if session is None or not session.is_logged_in:
            raise AuthenticationRequiredError(operation="manage_users")
        if not session.has_role(UserRole.ADMIN):
            raise ForbiddenError("Managing users requires the admin role.")
        return session

    async def _persist(self) -> None:
        await self._cache.write_list(ADMIN_USERS_KEY, self._users)

    def _entry_for(self, session: Session) -> AdminUser:
        now = isoformat_utc(datetime.fromtimestamp(self._clock(), tz=timezone.utc))
        roles = [UserRole(role) for role in sorted(session.roles) if role in _KNOWN_ROLES]
        return AdminUser(
            id=session.user_id or session.user_email,
            name=session.user_name,
            email=session.user_email,
            roles=roles,
            last_login=now,
            created_at=now,
        )


__all__ = ["UserDirectory", "filter_users"]
