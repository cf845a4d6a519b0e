"""Project synchronizer: one in-memory project list reconciled with the cache and the API.

Every transition is looked up in :data:`POLICY_TABLE` from the operation and
the outcome of its remote call. Mutations are applied locally first and
mirrored to the offline cache whatever the remote call does; a remote failure
only moves the synchronizer into a degraded state.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Iterable, Mapping

from pydantic import ValidationError as PydanticValidationError

from ..core.config import Settings, get_settings
from ..core.context import bind_log_fields, operation_scope
from ..errors import AuthenticationRequiredError, ValidationError
from ..models import Project, ProjectDraft, Session, isoformat_utc
from .api import ApiClient
from .local_cache import LocalCacheStore
from .session import SessionManager
from .view_mode import RemoteOutcome, ViewMode, select_view_mode

logger = logging.getLogger(__name__)

ProjectListener = Callable[[tuple[Project, ...]], None]

# Namespace suffixes left behind by clients that cached before knowing the user.
_PLACEHOLDER_NAMESPACES = frozenset({"", "undefined", "null", "None"})


class SyncState(str, Enum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    CONNECTED = "connected"
    OFFLINE_PUBLIC = "offline_public"
    OFFLINE_DEGRADED = "offline_degraded"


class SyncOperation(str, Enum):
    LOAD = "load"
    ADD = "add"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(slots=True, frozen=True)
class PolicyDecision:
    """Where an operation leaves the synchronizer.

    ``use_remote`` tells whether the remote payload becomes the authoritative
    value; otherwise the locally known value stands.
    """

    next_state: SyncState
    use_remote: bool


POLICY_TABLE: Mapping[tuple[SyncOperation, RemoteOutcome], PolicyDecision] = {
    (SyncOperation.LOAD, RemoteOutcome.SUCCEEDED): PolicyDecision(SyncState.CONNECTED, True),
    (SyncOperation.LOAD, RemoteOutcome.FAILED): PolicyDecision(SyncState.OFFLINE_DEGRADED, False),
    (SyncOperation.LOAD, RemoteOutcome.NO_SESSION): PolicyDecision(SyncState.OFFLINE_PUBLIC, False),
    (SyncOperation.ADD, RemoteOutcome.SUCCEEDED): PolicyDecision(SyncState.CONNECTED, True),
    (SyncOperation.ADD, RemoteOutcome.FAILED): PolicyDecision(SyncState.OFFLINE_DEGRADED, False),
    (SyncOperation.UPDATE, RemoteOutcome.SUCCEEDED): PolicyDecision(SyncState.CONNECTED, False),
    (SyncOperation.UPDATE, RemoteOutcome.FAILED): PolicyDecision(SyncState.OFFLINE_DEGRADED, False),
    (SyncOperation.DELETE, RemoteOutcome.SUCCEEDED): PolicyDecision(SyncState.CONNECTED, False),
    (SyncOperation.DELETE, RemoteOutcome.FAILED): PolicyDecision(SyncState.OFFLINE_DEGRADED, False),
}


def resolve_policy(operation: SyncOperation, outcome: RemoteOutcome) -> PolicyDecision:
    try:
        return POLICY_TABLE[(operation, outcome)]
    except KeyError:
        raise ValueError(f"No transition for {operation.value} after {outcome.value}") from None


class _Ticket:
    """Place in the queue of one key; see :class:`KeyedSerializer`."""

    __slots__ = ("_owner", "_key", "_previous", "_done")

    def __init__(
        self,
        owner: "KeyedSerializer",
        key: str,
        previous: asyncio.Future[None] | None,
        done: asyncio.Future[None],
    ) -> None:
        self._owner = owner
        self._key = key
        self._previous = previous
        self._done = done

    async def wait(self) -> None:
        """Return once every earlier ticket for the same key was released."""

        if self._previous is not None:
            await asyncio.shield(self._previous)

    def release(self) -> None:
        self._owner._release(self._key, self._done)


class KeyedSerializer:
    """FIFO single-flight per key.

    A ticket is taken synchronously, so queue order equals the order in which
    callers reached :meth:`ticket`, not the order in which they resumed.
    """

    def __init__(self) -> None:
        self._tails: dict[str, asyncio.Future[None]] = {}

    def ticket(self, key: str) -> _Ticket:
        done: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        previous = self._tails.get(key)
        self._tails[key] = done
        return _Ticket(self, key, previous, done)

    def _release(self, key: str, done: asyncio.Future[None]) -> None:
        if not done.done():
            done.set_result(None)
        if self._tails.get(key) is done:
            del self._tails[key]

    def pending(self, key: str) -> bool:
        return key in self._tails


class ProjectSynchronizer:
    """Owns the project list shown to the user."""

    def __init__(
        self,
        api: ApiClient,
        sessions: SessionManager,
        cache: LocalCacheStore,
        *,
        settings: Settings | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._api = api
        self._sessions = sessions
        self._cache = cache
        self._settings = settings or get_settings()
        self._clock = clock

        self._projects: tuple[Project, ...] = ()
        self._state = SyncState.UNINITIALIZED
        self._last_outcome: RemoteOutcome | None = None
        self._revision = 0
        self._load_generation = 0
        self._mirror_lock = asyncio.Lock()
        self._flights = KeyedSerializer()
        self._listeners: list[ProjectListener] = []

    @property
    def projects(self) -> tuple[Project, ...]:
        return self._projects

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def session(self) -> Session | None:
        return self._sessions.current

    @property
    def last_outcome(self) -> RemoteOutcome | None:
        return self._last_outcome

    @property
    def view_mode(self) -> ViewMode:
        return select_view_mode(self._sessions.current, self._last_outcome)

    def get(self, project_id: str) -> Project | None:
        for project in self._projects:
            if project.id == project_id:
                return project
        return None

    def subscribe(self, listener: ProjectListener) -> Callable[[], None]:
        """Call ``listener`` with the new list after every change."""

        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    # -- lifecycle -----------------------------------------------------------------

    async def start(self) -> None:
        with self._scope("start"):
            self._state = SyncState.LOADING
            await self._sessions.restore_session()
            await self._load()

    async def login(self, email: str, password: str) -> Session:
        """Sign in and reload; :class:`AuthenticationError` leaves everything unchanged."""

        with self._scope("login"):
            session = await self._sessions.login(email, password)
            await self._load()
            return session

    async def register(self, email: str, password: str, name: str = "") -> Session:
        with self._scope("register"):
            session = await self._sessions.register(email, password, name)
            await self._load()
            return session

    async def logout(self) -> None:
        """Sign out and show public data instead of an empty view."""

        with self._scope("logout"):
            await self._sessions.logout()
            await self._load()

    # -- operations ----------------------------------------------------------------

    async def load(self) -> None:
        with self._scope(SyncOperation.LOAD.value):
            await self._load()

    async def _load(self) -> None:
        self._load_generation += 1
        generation = self._load_generation
        session = self._sessions.current
        self._state = SyncState.LOADING

        if session is None or not session.is_logged_in:
            bind_log_fields(sync_state=self._state.value, cache_namespace=None)
            await self._load_public(generation)
            return

        cache_key = self._cache.namespace_key(session.user_email)
        bind_log_fields(sync_state=self._state.value, cache_namespace=cache_key)
        revision = self._revision
        cached = await self._cache.read_projects(cache_key)
        if generation != self._load_generation:
            return
        if revision == self._revision:
            self._replace(cached or [], mutation=False)
            logger.debug("Painted %d cached projects", len(self._projects))
        else:
            logger.info("Local changes were made while reading the cache; skipping the cached paint.")

        result = await self._api.list_projects(session.access_token)
        if generation != self._load_generation:
            logger.info("Discarding superseded project list response.")
            return

        outcome = RemoteOutcome.SUCCEEDED if result.ok else RemoteOutcome.FAILED
        decision = self._transition(SyncOperation.LOAD, outcome)
        if not decision.use_remote:
            logger.warning("Project list unavailable (%s); keeping cached data.", result.error)
            return
        if self._sessions.current is not session:
            logger.info("Session changed while loading; discarding remote list.")
            return
        if revision != self._revision:
            # Covers changes made during the cache read as well as the request.
            logger.warning(
                "Local changes were made while loading; keeping the local list.",
                extra={"remote_count": len(result.data or [])},
            )
            return

        self._replace(result.data or [], mutation=False)
        await self._mirror(session)
        logger.info("Loaded %d projects from the API", len(self._projects))

    async def _load_public(self, generation: int) -> None:
        projects = await self._find_public_projects()
        if generation != self._load_generation:
            return
        self._transition(SyncOperation.LOAD, RemoteOutcome.NO_SESSION)
        self._replace(projects, mutation=False)
        logger.info("Showing %d public projects", len(projects))

    async def _find_public_projects(self) -> list[Project]:
        if self._settings.public_namespace is not None:
            return await self._cache.read_projects(self._settings.public_namespace) or []
        if not self._settings.public_scan_enabled:
            return []

        prefix = self._cache.key_prefix
        for key in await self._cache.scan_namespaces(prefix):
            if key[len(prefix):] in _PLACEHOLDER_NAMESPACES:
                continue
            projects = await self._cache.read_projects(key)
            if projects:
                logger.info("Using cached projects from %s for the public view", key)
                return projects
        return []

    async def add(self, draft: ProjectDraft | Mapping[str, Any]) -> Project:
        """Create a project remotely, or locally when the API is unavailable.

        Raises :class:`AuthenticationRequiredError` without a session and
        :class:`ValidationError` for an incomplete draft; neither changes any
        state.
        """

        with self._scope(SyncOperation.ADD.value):
            session = self._require_session(SyncOperation.ADD)
            draft = self._validate_draft(draft)

            result = await self._api.create_project(draft, session.access_token)
            outcome = RemoteOutcome.SUCCEEDED if result.ok else RemoteOutcome.FAILED
            decision = self._transition(SyncOperation.ADD, outcome)
            if decision.use_remote and result.data is not None:
                project = result.data
            else:
                logger.warning("Remote create failed (%s); keeping the project locally.", result.error)
                project = self._local_project(draft, session)

            if self._sessions.current is not session:
                logger.info("Session changed during create; project %s not added to the list.", project.id)
                return project

            self._replace([*(p for p in self._projects if p.id != project.id), project])
            await self._mirror(session)
            return project

    async def update(self, project: Project | Mapping[str, Any]) -> Project:
        """Replace the project with the same id, then push it to the API.

        The local list and cache change before the remote call starts; remote
        calls for one id are issued in the order ``update``/``delete`` were
        called.
        """

        with self._scope(SyncOperation.UPDATE.value):
            session = self._require_session(SyncOperation.UPDATE)
            candidate = self._validate_project(project)
            existing = self.get(candidate.id)
            if existing is None:
                raise ValidationError(
                    f"Project {candidate.id} does not exist.",
                    details={"id": candidate.id},
                )
            if candidate.created_at != existing.created_at:
                candidate = candidate.model_copy(update={"created_at": existing.created_at})

            self._replace([candidate if p.id == candidate.id else p for p in self._projects])
            ticket = self._flights.ticket(candidate.id)
            try:
                await self._mirror(session)
                await ticket.wait()
                result = await self._api.update_project(candidate.id, candidate, session.access_token)
            finally:
                ticket.release()

            outcome = RemoteOutcome.SUCCEEDED if result.ok else RemoteOutcome.FAILED
            self._transition(SyncOperation.UPDATE, outcome)
            if not result.ok:
                logger.warning("Remote update of %s failed: %s", candidate.id, result.error)
            return candidate

    async def delete(self, project_id: str) -> bool:
        """Delete remotely, then locally whatever the remote outcome.

        Returns whether the id was present in the local list.
        """

        with self._scope(SyncOperation.DELETE.value):
            session = self._require_session(SyncOperation.DELETE)
            ticket = self._flights.ticket(project_id)
            try:
                await ticket.wait()
                result = await self._api.delete_project(project_id, session.access_token)
            finally:
                ticket.release()

            outcome = RemoteOutcome.SUCCEEDED if result.ok else RemoteOutcome.FAILED
            self._transition(SyncOperation.DELETE, outcome)
            if not result.ok:
                logger.warning("Remote delete of %s failed (%s); removing locally.", project_id, result.error)

            if self._sessions.current is not session:
                logger.info("Session changed during delete of %s; list left untouched.", project_id)
                return False

            removed = self.get(project_id) is not None
            if removed:
                self._replace([p for p in self._projects if p.id != project_id])
            await self._mirror(session)
            return removed

    # -- helpers -------------------------------------------------------------------

    def _require_session(self, operation: SyncOperation) -> Session:
        session = self._sessions.current
        if session is None or not session.is_logged_in:
            logger.info("%s requires authentication", operation.value)
            raise AuthenticationRequiredError(operation=operation.value)
        return session

    @staticmethod
    def _validate_draft(draft: ProjectDraft | Mapping[str, Any]) -> ProjectDraft:
        if isinstance(draft, ProjectDraft):
            return draft
        try:
            return ProjectDraft.model_validate(dict(draft))
        except PydanticValidationError as exc:
            raise ValidationError(
                "Project is missing required fields.",
                details=exc.errors(include_url=False, include_context=False),
            ) from exc

    @staticmethod
    def _validate_project(project: Project | Mapping[str, Any]) -> Project:
        if isinstance(project, Project):
            return project
        try:
            return Project.model_validate(dict(project))
        except PydanticValidationError as exc:
            raise ValidationError(
                "Project is invalid.",
                details=exc.errors(include_url=False, include_context=False),
            ) from exc

    def _next_local_id(self) -> str:
        taken = {project.id for project in self._projects}
        candidate = int(self._clock() * 1000)
        while str(candidate) in taken:
            candidate += 1
        return str(candidate)

    def _local_project(self, draft: ProjectDraft, session: Session) -> Project:
        now = datetime.fromtimestamp(self._clock(), tz=timezone.utc)
        return Project.model_validate(
            {
                **draft.model_dump(),
                "id": self._next_local_id(),
                "created_at": isoformat_utc(now),
                "user_id": session.user_id,
            }
        )

    def _scope(self, operation: str):
        session = self._sessions.current
        namespace = self._cache.namespace_key(session.user_email) if session is not None else None
        return operation_scope(sync_operation=operation, sync_state=self._state.value, cache_namespace=namespace)

    def _transition(self, operation: SyncOperation, outcome: RemoteOutcome) -> PolicyDecision:
        decision = resolve_policy(operation, outcome)
        if decision.next_state is not self._state:
            logger.info(
                "State %s -> %s after %s (%s)",
                self._state.value,
                decision.next_state.value,
                operation.value,
                outcome.value,
            )
        self._state = decision.next_state
        bind_log_fields(sync_state=self._state.value)
        self._last_outcome = outcome
        return decision

    def _replace(self, projects: Iterable[Project], *, mutation: bool = True) -> None:
        self._projects = tuple(projects)
        if mutation:
            self._revision += 1
        snapshot = self._projects
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.warning("Project listener failed.", exc_info=True)

    async def _mirror(self, session: Session) -> None:
        """Write the current list to the session's cache namespace."""

        async with self._mirror_lock:
            if self._sessions.current is not session:
                logger.info("Session changed; skipping cache mirror.")
                return
            await self._cache.write_projects(
                self._cache.namespace_key(session.user_email),
                self._projects,
            )


__all__ = [
    "KeyedSerializer",
    "POLICY_TABLE",
    "PolicyDecision",
    "ProjectListener",
    "ProjectSynchronizer",
    "SyncOperation",
    "SyncState",
    "resolve_policy",
]
