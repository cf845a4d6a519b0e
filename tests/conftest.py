from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Callable
from typing import Any, Mapping

import httpx
import pytest
from fakeredis.aioredis import FakeRedis
from fastapi import FastAPI

from project_tracker.client import (
    ApiClient,
    AuthProviderError,
    AuthResponse,
    AuthSession,
    AuthUser,
    LocalCacheStore,
    ProjectSynchronizer,
    SessionManager,
)
from project_tracker.core.config import Settings, get_settings
from project_tracker.core.kv import KeyValueStore
from project_tracker.models import Project
from project_tracker.server import create_app
from project_tracker.server.admin import AuthAdminClient
from project_tracker.server.security import create_access_token

REMOTE_CREATED_AT = "2024-03-01T09:00:00.000Z"


class FakeClock:
    """Manually advanced replacement for ``time.time``."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeAuthProvider:
    """In-memory auth backend recording every call."""

    def __init__(self) -> None:
        self.users: dict[str, tuple[str, AuthUser]] = {}
        self.session: AuthSession | None = None
        self.sign_in_error: AuthProviderError | None = None
        self.sign_out_error: AuthProviderError | None = None
        self.sign_up_error: AuthProviderError | None = None
        self.get_session_raises = False
        self.calls: list[str] = []

    def add_user(
        self,
        email: str,
        password: str,
        *,
        name: str = "",
        roles: tuple[str, ...] = (),
    ) -> AuthUser:
        user = AuthUser(
            id=f"user-{len(self.users) + 1}",
            email=email,
            app_metadata={"roles": list(roles)} if roles else {},
            user_metadata={"name": name} if name else {},
        )
        self.users[email] = (password, user)
        return user

    def issue_session(self, user: AuthUser) -> AuthSession:
        return AuthSession(access_token=f"token-{user.id}", refresh_token=f"refresh-{user.id}", user=user)

    async def get_session(self) -> AuthSession | None:
        self.calls.append("get_session")
        if self.get_session_raises:
            raise RuntimeError("auth storage unavailable")
        return self.session

    async def sign_in_with_password(self, email: str, password: str) -> AuthResponse:
        self.calls.append("sign_in_with_password")
        if self.sign_in_error is not None:
            return AuthResponse(error=self.sign_in_error)
        record = self.users.get(email)
        if record is None or record[0] != password:
            return AuthResponse(error=AuthProviderError("Invalid login credentials", 400))
        self.session = self.issue_session(record[1])
        return AuthResponse(session=self.session, user=record[1])

    async def sign_out(self) -> AuthProviderError | None:
        self.calls.append("sign_out")
        self.session = None
        return self.sign_out_error

    async def sign_up(
        self, email: str, password: str, metadata: Mapping[str, Any] | None = None
    ) -> AuthResponse:
        self.calls.append("sign_up")
        if self.sign_up_error is not None:
            return AuthResponse(error=self.sign_up_error)
        if email in self.users:
            return AuthResponse(error=AuthProviderError("User already registered", 422))
        user = self.add_user(email, password, name=str((metadata or {}).get("name", "")))
        return AuthResponse(user=user)


class FakeRemote:
    """Scriptable stand-in for the project API behind ``httpx.MockTransport``."""

    def __init__(self) -> None:
        self.projects: dict[str, dict[str, Any]] = {}
        self.teams: dict[str, dict[str, Any]] = {}
        self.profile: dict[str, Any] = {"id": "user-1", "email": "alice@x.com", "title": "", "language": "ru"}
        self.requests: list[tuple[str, str]] = []
        self.failures: dict[str, int] = {}
        self.offline: set[str] = set()
        self.gates: dict[tuple[str, str], asyncio.Event] = {}
        self.next_id = 42

    def fail(self, method: str, status_code: int = 500) -> None:
        self.failures[method] = status_code

    def go_offline(self, *methods: str) -> None:
        self.offline.update(methods or ("GET", "POST", "PUT", "DELETE"))

    def restore(self) -> None:
        self.failures.clear()
        self.offline.clear()

    def hold(self, method: str, path: str) -> asyncio.Event:
        """Block matching requests until the returned event is set."""

        gate = asyncio.Event()
        self.gates[(method, path)] = gate
        return gate

    async def handle(self, request: httpx.Request) -> httpx.Response:
        method, path = request.method, request.url.path
        self.requests.append((method, path))
        gate = self.gates.get((method, path))
        if gate is not None:
            await gate.wait()
        if method in self.offline:
            raise httpx.ConnectError("network unreachable", request=request)
        if method in self.failures:
            return httpx.Response(self.failures[method], json={"error": "Remote failure"})

        body = json.loads(request.content) if request.content else None
        if path == "/health":
            return httpx.Response(200, json={"status": "ok", "timestamp": REMOTE_CREATED_AT})
        if path == "/signup":
            return httpx.Response(200, json={"user": {"id": "signed-up", "email": body["email"]}})
        if path == "/projects" and method == "GET":
            return httpx.Response(200, json={"projects": list(self.projects.values())})
        if path == "/projects" and method == "POST":
            project_id = str(self.next_id)
            self.next_id += 1
            project = {**body, "id": project_id, "createdAt": REMOTE_CREATED_AT}
            self.projects[project_id] = project
            return httpx.Response(200, json={"project": project})
        if path == "/profile":
            if method == "PUT":
                self.profile = {**self.profile, **body}
            return httpx.Response(200, json={"profile": self.profile})
        if path == "/teams" and method == "GET":
            return httpx.Response(200, json={"teams": list(self.teams.values())})
        if path == "/teams" and method == "POST":
            team_id = f"team-{self.next_id}"
            self.next_id += 1
            team = {
                **body,
                "id": team_id,
                "ownerId": "user-1",
                "createdAt": REMOTE_CREATED_AT,
                "memberCount": 1,
                "isOwner": True,
                "isMember": True,
            }
            self.teams[team_id] = team
            return httpx.Response(200, json={"team": team})
        if path == "/teams/join":
            team = self.teams.get(body["teamId"])
            if team is None:
                return httpx.Response(404, json={"error": "Team not found"})
            team.update(memberCount=team["memberCount"] + 1, isMember=True)
            return httpx.Response(200, json={"team": team})
        if path.startswith("/projects/"):
            project_id = path.rsplit("/", 1)[-1]
            if method == "PUT":
                project = {**body, "id": project_id}
                self.projects[project_id] = project
                return httpx.Response(200, json={"project": project})
            if method == "DELETE":
                self.projects.pop(project_id, None)
                return httpx.Response(200, json={"success": True})
        return httpx.Response(404, json={"error": "Not found"})


@pytest.fixture(autouse=True)
def clear_settings_cache() -> None:
    get_settings.cache_clear()


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        environment="test",
        cache_enabled=True,
        api_base_url="http://api.test",
        auth_url="http://auth.test/auth/v1",
        public_anon_key="anon-key",
        jwt_secret="test-secret",
        service_role_key="service-role",
    )


@pytest.fixture()
async def redis_client() -> AsyncIterator[FakeRedis]:
    client = FakeRedis(decode_responses=True)
    try:
        yield client
    finally:
        await client.flushall()
        await client.aclose()


@pytest.fixture()
def kv(redis_client: FakeRedis) -> KeyValueStore:
    return KeyValueStore(redis_client)


@pytest.fixture()
def cache(kv: KeyValueStore, settings: Settings) -> LocalCacheStore:
    return LocalCacheStore(kv, settings=settings)


@pytest.fixture()
def remote() -> FakeRemote:
    return FakeRemote()


@pytest.fixture()
async def api(settings: Settings, remote: FakeRemote) -> AsyncIterator[ApiClient]:
    client = ApiClient(settings, transport=httpx.MockTransport(remote.handle))
    try:
        yield client
    finally:
        await client.aclose()


@pytest.fixture()
def auth_provider() -> FakeAuthProvider:
    provider = FakeAuthProvider()
    provider.add_user("alice@x.com", "secret-1", name="Alice", roles=("manager",))
    return provider


@pytest.fixture()
def sessions(auth_provider: FakeAuthProvider, api: ApiClient) -> SessionManager:
    return SessionManager(auth_provider, api)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def synchronizer(
    api: ApiClient,
    sessions: SessionManager,
    cache: LocalCacheStore,
    settings: Settings,
    clock: FakeClock,
) -> ProjectSynchronizer:
    return ProjectSynchronizer(api, sessions, cache, settings=settings, clock=clock)


class AuthAdminStub:
    """Auth service admin endpoint accepting every email once."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.registered: set[str] = set()

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        body = json.loads(request.content)
        if body["email"] in self.registered:
            return httpx.Response(
                422,
                json={"msg": "A user with this email address has already been registered", "error_code": "email_exists"},
            )
        self.registered.add(body["email"])
        return httpx.Response(200, json={"id": f"user-{len(self.registered)}", "email": body["email"]})


@pytest.fixture()
def auth_admin_stub() -> AuthAdminStub:
    return AuthAdminStub()


@pytest.fixture()
def server_app(settings: Settings, kv: KeyValueStore, auth_admin_stub: AuthAdminStub) -> FastAPI:
    admin = AuthAdminClient(settings, transport=httpx.MockTransport(auth_admin_stub))
    return create_app(settings, kv=kv, auth_admin=admin)


@pytest.fixture()
async def server_client(server_app: FastAPI) -> AsyncIterator[httpx.AsyncClient]:
    transport = httpx.ASGITransport(app=server_app, raise_app_exceptions=False)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture()
def auth_headers(settings: Settings) -> Callable[..., dict[str, str]]:
    def _headers(user_id: str = "user-1", email: str = "alice@x.com", **claims: Any) -> dict[str, str]:
        token = create_access_token(subject=user_id, email=email, settings=settings, **claims)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture()
def make_project() -> Callable[..., Project]:
    def _make(project_id: str = "1", **overrides: Any) -> Project:
        data: dict[str, Any] = {
            "id": project_id,
            "title": f"Project {project_id}",
            "description": "",
            "status": "planned",
            "priority": "medium",
            "progress": 0,
            "assignee": "Bob",
            "manager": "Carol",
            "deadline": "2030-01-01",
            "createdAt": "2024-01-01T00:00:00.000Z",
        }
        data.update(overrides)
        return Project.model_validate(data)

    return _make


@pytest.fixture()
def draft_payload() -> dict[str, Any]:
    return {
        "title": "T",
        "assignee": "Bob",
        "manager": "Carol",
        "deadline": "2030-06-01",
    }
