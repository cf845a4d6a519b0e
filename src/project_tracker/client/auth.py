"""Adapter for the hosted authentication service."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Protocol, runtime_checkable

import httpx
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from ..core.config import Settings, get_settings
from ..core.kv import KeyValueStore
from ..core.logging import token_preview

logger = logging.getLogger(__name__)

# Sessions expiring within this many seconds are refreshed ahead of time.
EXPIRY_LEEWAY_SECONDS = 10


class AuthUser(BaseModel):
    """Identity record returned by the auth service."""

    model_config = ConfigDict(extra="ignore")

    id: str
    email: str | None = None
    app_metadata: dict[str, Any] = Field(default_factory=dict)
    user_metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def roles(self) -> frozenset[str]:
        """Roles granted by the server; clients cannot write ``app_metadata``."""

        raw = self.app_metadata.get("roles")
        if isinstance(raw, str):
            raw = [raw]
        if not isinstance(raw, (list, tuple, set, frozenset)):
            return frozenset()
        return frozenset(str(role) for role in raw if role)

    @property
    def display_name(self) -> str:
        name = self.user_metadata.get("name")
        if isinstance(name, str) and name.strip():
            return name.strip()
        return self.email or ""


class AuthSession(BaseModel):
    """Bearer credentials issued by the auth service."""

    model_config = ConfigDict(extra="ignore")

    access_token: str
    token_type: str = "bearer"
    refresh_token: str | None = None
    expires_in: int | None = None
    expires_at: int | None = None
    user: AuthUser

    def is_expired(self, now: float | None = None) -> bool:
        if self.expires_at is None:
            return False
        current = time.time() if now is None else now
        return self.expires_at - EXPIRY_LEEWAY_SECONDS <= current


@dataclass(slots=True)
class AuthProviderError:
    message: str
    status_code: int | None = None


@dataclass(slots=True)
class AuthResponse:
    session: AuthSession | None = None
    user: AuthUser | None = None
    error: AuthProviderError | None = None


@runtime_checkable
class AuthProvider(Protocol):
    """Operations the session manager needs from an auth backend.

    Implementations report failures through return values and never raise.
    """

    async def get_session(self) -> AuthSession | None: ...

    async def sign_in_with_password(self, email: str, password: str) -> AuthResponse: ...

    async def sign_out(self) -> AuthProviderError | None: ...

    async def sign_up(
        self, email: str, password: str, metadata: Mapping[str, Any] | None = None
    ) -> AuthResponse: ...


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for key in ("error_description", "msg", "message", "error"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
    return f"Auth request failed with status {response.status_code}"


class GoTrueAuthProvider:
    """Auth provider speaking the GoTrue REST protocol.

    The current session is kept in memory and persisted as JSON under
    ``settings.auth_session_key`` so that a restarted client can restore it.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        store: KeyValueStore | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._settings = settings or get_settings()
        self._store = store
        self._clock = clock
        self._session: AuthSession | None = None
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=self._settings.auth_url,
            timeout=self._settings.request_timeout_seconds,
            transport=transport,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _headers(self, access_token: str | None = None) -> dict[str, str]:
        headers = {
            "apikey": self._settings.public_anon_key,
            "Content-Type": "application/json",
        }
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        return headers

    async def _post(
        self,
        path: str,
        payload: Mapping[str, Any] | None,
        *,
        params: Mapping[str, str] | None = None,
        access_token: str | None = None,
    ) -> httpx.Response | AuthProviderError:
        try:
            response = await self._client.post(
                path,
                json=dict(payload) if payload is not None else None,
                params=params,
                headers=self._headers(access_token),
            )
        except httpx.HTTPError as exc:
            logger.warning("Auth request %s failed: %s", path, exc)
            return AuthProviderError(f"Network error: {exc.__class__.__name__}")
        if response.is_error:
            message = _error_message(response)
            logger.info("Auth request %s rejected with %s", path, response.status_code)
            return AuthProviderError(message, response.status_code)
        return response

    async def _load_persisted(self) -> AuthSession | None:
        if self._store is None:
            return None
        try:
            raw = await self._store.get_json(self._settings.auth_session_key)
        except Exception:
            logger.warning("Could not read the persisted auth session.", exc_info=True)
            return None
        if raw is None:
            return None
        try:
            return AuthSession.model_validate(raw)
        except PydanticValidationError:
            logger.warning("Discarding malformed persisted auth session.")
            return None

    async def _persist(self, session: AuthSession | None) -> None:
        self._session = session
        if self._store is None:
            return
        key = self._settings.auth_session_key
        try:
            if session is None:
                await self._store.delete(key)
            else:
                await self._store.set_json(key, session.model_dump(mode="json"))
        except Exception:
            logger.warning("Could not persist the auth session.", exc_info=True)

    def _stamp_expiry(self, session: AuthSession) -> AuthSession:
        if session.expires_at is None and session.expires_in is not None:
            return session.model_copy(update={"expires_at": int(self._clock()) + session.expires_in})
        return session

    async def _refresh(self, session: AuthSession) -> AuthSession | None:
        if not session.refresh_token:
            return None
        result = await self._post(
            "/token",
            {"refresh_token": session.refresh_token},
            params={"grant_type": "refresh_token"},
        )
        if isinstance(result, AuthProviderError):
            return None
        try:
            refreshed = AuthSession.model_validate(result.json())
        except (ValueError, PydanticValidationError):
            logger.warning("Refresh response did not contain a session.")
            return None
        return self._stamp_expiry(refreshed)

    async def get_session(self) -> AuthSession | None:
        session = self._session or await self._load_persisted()
        if session is None:
            return None
        if session.is_expired(self._clock()):
            logger.info("Auth session expired; refreshing.")
            refreshed = await self._refresh(session)
            await self._persist(refreshed)
            return refreshed
        self._session = session
        return session

    async def sign_in_with_password(self, email: str, password: str) -> AuthResponse:
        result = await self._post(
            "/token",
            {"email": email, "password": password},
            params={"grant_type": "password"},
        )
        if isinstance(result, AuthProviderError):
            return AuthResponse(error=result)
        try:
            session = self._stamp_expiry(AuthSession.model_validate(result.json()))
        except (ValueError, PydanticValidationError):
            return AuthResponse(error=AuthProviderError("Malformed sign-in response", result.status_code))
        await self._persist(session)
        logger.info("Signed in %s with token %s", email, token_preview(session.access_token))
        return AuthResponse(session=session, user=session.user)

    async def sign_out(self) -> AuthProviderError | None:
        session = self._session or await self._load_persisted()
        await self._persist(None)
        if session is None:
            return None
        result = await self._post("/logout", None, access_token=session.access_token)
        if isinstance(result, AuthProviderError):
            return result
        return None

    async def sign_up(
        self, email: str, password: str, metadata: Mapping[str, Any] | None = None
    ) -> AuthResponse:
        result = await self._post(
            "/signup",
            {"email": email, "password": password, "data": dict(metadata or {})},
        )
        if isinstance(result, AuthProviderError):
            return AuthResponse(error=result)
        try:
            body = result.json()
        except ValueError:
            return AuthResponse(error=AuthProviderError("Malformed sign-up response", result.status_code))

        # Auto-confirmed projects answer with a session, others with the bare user.
        try:
            if isinstance(body, dict) and "access_token" in body:
                session = self._stamp_expiry(AuthSession.model_validate(body))
                await self._persist(session)
                return AuthResponse(session=session, user=session.user)
            return AuthResponse(user=AuthUser.model_validate(body))
        except PydanticValidationError:
            return AuthResponse(error=AuthProviderError("Malformed sign-up response", result.status_code))


__all__ = [
    "AuthProvider",
    "AuthProviderError",
    "AuthResponse",
    "AuthSession",
    "AuthUser",
    "EXPIRY_LEEWAY_SECONDS",
    "GoTrueAuthProvider",
]
