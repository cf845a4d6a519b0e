"""HTTP client for the project API.

Every public coroutine returns an :class:`ApiResult`; transport failures,
non-2xx responses and payloads that do not validate are all reported through
``ApiResult.error`` instead of being raised.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Generic, Mapping, TypeVar

import httpx
from pydantic import ValidationError as PydanticValidationError

from ..core.config import Settings, get_settings
from ..core.context import REQUEST_ID_HEADER, get_operation_id
from ..models import Project, ProjectDraft, ProjectUpdate, Team, TeamCreate, TeamJoin, UserProfile
from ..schemas import HealthCheckResponse

logger = logging.getLogger(__name__)

T = TypeVar("T")

INVALID_PAYLOAD_MESSAGE = "Invalid response payload"


@dataclass(slots=True)
class ApiResult(Generic[T]):
    """Outcome of one API call: either ``data`` or an ``error`` message."""

    data: T | None = None
    error: str | None = None
    status_code: int | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, data: T, status_code: int | None = None) -> "ApiResult[T]":
        return cls(data=data, status_code=status_code)

    @classmethod
    def failure(cls, error: str, status_code: int | None = None) -> "ApiResult[T]":
        return cls(error=error, status_code=status_code)


class ApiClient:
    """Typed wrapper around the remote project, team and profile endpoints."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=self._settings.api_base_url,
            timeout=self._settings.request_timeout_seconds,
            transport=transport,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    def _headers(self, token: str | None) -> dict[str, str]:
        credential = token or self._settings.public_anon_key
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {credential}",
        }
        operation_id = get_operation_id()
        if operation_id != "-":
            headers[REQUEST_ID_HEADER] = operation_id
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        token: str | None,
        fallback_error: str,
        parse: Callable[[Any], T],
        json: Mapping[str, Any] | None = None,
    ) -> ApiResult[T]:
        try:
            response = await self._client.request(
                method,
                path,
                json=dict(json) if json is not None else None,
                headers=self._headers(token),
            )
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            return ApiResult.failure(f"{fallback_error}: {exc.__class__.__name__}")

        try:
            body = response.json()
        except ValueError:
            body = None

        if response.is_error:
            message = fallback_error
            if isinstance(body, dict) and isinstance(body.get("error"), str) and body["error"]:
                message = body["error"]
            logger.warning(
                "%s %s returned %s",
                method,
                path,
                response.status_code,
                extra={"error": message},
            )
            return ApiResult.failure(message, response.status_code)

        if body is None:
            logger.warning("%s %s returned a non-JSON body", method, path)
            return ApiResult.failure(INVALID_PAYLOAD_MESSAGE, response.status_code)

        try:
            data = parse(body)
        except (AttributeError, KeyError, TypeError, ValueError, PydanticValidationError) as exc:
            logger.warning("%s %s returned an unexpected payload: %s", method, path, exc)
            return ApiResult.failure(INVALID_PAYLOAD_MESSAGE, response.status_code)
        return ApiResult.success(data, response.status_code)

    async def health_check(self) -> ApiResult[HealthCheckResponse]:
        return await self._request(
            "GET",
            "/health",
            token=None,
            fallback_error="Health check failed",
            parse=HealthCheckResponse.model_validate,
        )

    async def signup(self, email: str, password: str, name: str = "") -> ApiResult[dict[str, Any]]:
        def _parse(body: Any) -> dict[str, Any]:
            user = body["user"]
            if not isinstance(user, dict):
                raise TypeError("user must be an object")
            return user

        return await self._request(
            "POST",
            "/signup",
            token=None,
            json={"email": email, "password": password, "name": name},
            fallback_error="Signup failed",
            parse=_parse,
        )

    async def list_projects(self, token: str | None) -> ApiResult[list[Project]]:
        return await self._request(
            "GET",
            "/projects",
            token=token,
            fallback_error="Failed to fetch projects",
            parse=lambda body: [Project.model_validate(item) for item in body["projects"]],
        )

    async def create_project(
        self, draft: ProjectDraft | Mapping[str, Any], token: str | None
    ) -> ApiResult[Project]:
        payload = draft.to_payload() if isinstance(draft, ProjectDraft) else dict(draft)
        return await self._request(
            "POST",
            "/projects",
            token=token,
            json=payload,
            fallback_error="Failed to create project",
            parse=lambda body: Project.model_validate(body["project"]),
        )

    async def update_project(
        self,
        project_id: str,
        changes: Project | ProjectUpdate | Mapping[str, Any],
        token: str | None,
    ) -> ApiResult[Project]:
        if isinstance(changes, (Project, ProjectUpdate)):
            payload = changes.model_dump(mode="json", by_alias=True, exclude_none=True)
        else:
            payload = dict(changes)
        payload.pop("id", None)
        return await self._request(
            "PUT",
            f"/projects/{project_id}",
            token=token,
            json=payload,
            fallback_error="Failed to update project",
            parse=lambda body: Project.model_validate(body["project"]),
        )

    async def delete_project(self, project_id: str, token: str | None) -> ApiResult[bool]:
        return await self._request(
            "DELETE",
            f"/projects/{project_id}",
            token=token,
            fallback_error="Failed to delete project",
            parse=lambda body: bool(body.get("success", False)),
        )

    async def list_teams(self, token: str | None) -> ApiResult[list[Team]]:
        return await self._request(
            "GET",
            "/teams",
            token=token,
            fallback_error="Failed to fetch teams",
            parse=lambda body: [Team.model_validate(item) for item in body["teams"]],
        )

    async def create_team(self, team: TeamCreate, token: str | None) -> ApiResult[Team]:
        return await self._request(
            "POST",
            "/teams",
            token=token,
            json=team.model_dump(mode="json", by_alias=True, exclude_none=True),
            fallback_error="Failed to create team",
            parse=lambda body: Team.model_validate(body["team"]),
        )

    async def join_team(self, request: TeamJoin, token: str | None) -> ApiResult[Team]:
        return await self._request(
            "POST",
            "/teams/join",
            token=token,
            json=request.model_dump(mode="json", by_alias=True, exclude_none=True),
            fallback_error="Failed to join team",
            parse=lambda body: Team.model_validate(body["team"]),
        )

    async def get_profile(self, token: str | None) -> ApiResult[UserProfile]:
        return await self._request(
            "GET",
            "/profile",
            token=token,
            fallback_error="Failed to fetch profile",
            parse=lambda body: UserProfile.model_validate(body["profile"]),
        )

    async def update_profile(
        self, changes: Mapping[str, Any], token: str | None
    ) -> ApiResult[UserProfile]:
        return await self._request(
            "PUT",
            "/profile",
            token=token,
            json=changes,
            fallback_error="Failed to update profile",
            parse=lambda body: UserProfile.model_validate(body["profile"]),
        )


__all__ = ["ApiClient", "ApiResult", "INVALID_PAYLOAD_MESSAGE"]
