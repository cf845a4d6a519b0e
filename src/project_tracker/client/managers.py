"""Managers view: managers derived from the project list.

There is no manager resource in the API. The list is rebuilt from the
projects every time; per user, the cache remembers which managers were
removed from the view (``deleted_managers_<email>``) and any edited details
(``managers_<email>``).
"""

from __future__ import annotations

import logging
import re
from typing import Iterable, Sequence

from ..errors import AuthenticationRequiredError
from ..models import Manager, Project, Session
from .local_cache import DELETED_MANAGERS_PREFIX, MANAGERS_PREFIX, LocalCacheStore
from .session import SessionManager

logger = logging.getLogger(__name__)

UNASSIGNED_MANAGER = "Unassigned"
SYSTEM_ASSIGNER = "System"
MANAGER_EMAIL_DOMAIN = "university.ru"

_WHITESPACE = re.compile(r"\s+")


def manager_email(name: str) -> str:
    return f"{_WHITESPACE.sub('.', name.lower())}@{MANAGER_EMAIL_DOMAIN}"


def derive_managers(
    projects: Iterable[Project],
    *,
    hidden: Iterable[str] = (),
    assigned_by: str | None = None,
) -> list[Manager]:
    """One manager per distinct ``project.manager``, in first-seen order."""

    skipped = set(hidden)
    managers: dict[str, Manager] = {}
    for project in projects:
        name = project.manager or UNASSIGNED_MANAGER
        if name in skipped:
            continue
        manager = managers.get(name)
        if manager is None:
            manager = managers[name] = Manager(
                id=name,
                name=name,
                email=manager_email(name),
                assigned_by=assigned_by or SYSTEM_ASSIGNER,
            )
        manager.project_count += 1
    return list(managers.values())


def manager_projects(projects: Iterable[Project], manager_id: str) -> list[Project]:
    return [project for project in projects if (project.manager or UNASSIGNED_MANAGER) == manager_id]


class ManagerDirectory:
    def __init__(self, cache: LocalCacheStore, sessions: SessionManager) -> None:
        self._cache = cache
        self._sessions = sessions

    async def managers(self, projects: Sequence[Project]) -> list[Manager]:
        """Managers of ``projects`` for the signed-in user; empty when signed out."""

        session = self._sessions.current
        if session is None or not session.is_logged_in:
            return []

        hidden = await self._cache.read_names(self._key(session, DELETED_MANAGERS_PREFIX)) or []
        derived = derive_managers(projects, hidden=hidden, assigned_by=session.user_email)
        edits = {
            manager.id: manager
            for manager in await self._cache.read_list(self._key(session, MANAGERS_PREFIX), Manager) or []
        }
        return [
            edits[manager.id].model_copy(update={"project_count": manager.project_count})
            if manager.id in edits
            else manager
            for manager in derived
        ]

    async def save(self, manager: Manager) -> Manager:
        """Remember edited details of ``manager``; its id and project count are derived."""

        session = self._require_session("save_manager")
        key = self._key(session, MANAGERS_PREFIX)
        edits = [item for item in await self._cache.read_list(key, Manager) or [] if item.id != manager.id]
        edits.append(manager)
        await self._cache.write_list(key, edits)
        return manager

    async def remove(self, manager_id: str) -> None:
        """Hide ``manager_id`` from this user's view; projects are left untouched."""

        session = self._require_session("remove_manager")
        key = self._key(session, DELETED_MANAGERS_PREFIX)
        hidden = await self._cache.read_names(key) or []
        if manager_id not in hidden:
            await self._cache.write_names(key, [*hidden, manager_id])
            logger.info("Manager %s hidden for %s", manager_id, session.user_email)

    async def restore(self, manager_id: str) -> None:
        session = self._require_session("restore_manager")
        key = self._key(session, DELETED_MANAGERS_PREFIX)
        hidden = await self._cache.read_names(key) or []
        if manager_id in hidden:
            await self._cache.write_names(key, [name for name in hidden if name != manager_id])

    def _require_session(self, operation: str) -> Session:
        session = self._sessions.current
        if session is None or not session.is_logged_in:
            raise AuthenticationRequiredError(operation=operation)
        return session

    def _key(self, session: Session, prefix: str) -> str:
        return self._cache.namespace_key(session.user_email, prefix)


__all__ = [
    "ManagerDirectory",
    "UNASSIGNED_MANAGER",
    "derive_managers",
    "manager_email",
    "manager_projects",
]
