"""Bearer token verification for the reference API."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Sequence

from jose import JWTError, jwt

from ..core.config import Settings
from ..errors import UnauthorizedError


@dataclass(slots=True, frozen=True)
class AuthenticatedUser:
    """Identity extracted from a verified access token."""

    id: str
    email: str | None = None
    roles: frozenset[str] = frozenset()
    user_metadata: Mapping[str, Any] = field(default_factory=dict)

    @property
    def name(self) -> str:
        value = self.user_metadata.get("name")
        return value if isinstance(value, str) else ""


def extract_bearer_token(headers: Mapping[str, str]) -> str | None:
    """Pull a bearer token out of the provided header mapping."""

    auth = headers.get("authorization") or headers.get("Authorization")
    if not auth:
        return None
    scheme, _, token = auth.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def create_access_token(
    *,
    subject: str,
    email: str,
    settings: Settings,
    roles: Sequence[str] | None = None,
    name: str | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    """Sign an access token shaped like the ones the auth service issues."""

    now = datetime.now(timezone.utc)
    payload: dict[str, Any] = {
        "sub": subject,
        "email": email,
        "aud": settings.jwt_audience,
        "role": "authenticated",
        "iat": now,
        "exp": now + (expires_delta or timedelta(hours=1)),
        "app_metadata": {"roles": list(roles or [])},
        "user_metadata": {"name": name} if name else {},
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str, settings: Settings) -> AuthenticatedUser:
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
        )
    except JWTError as exc:
        raise UnauthorizedError() from exc

    subject = payload.get("sub")
    if not isinstance(subject, str) or not subject:
        raise UnauthorizedError()

    app_metadata = payload.get("app_metadata") or {}
    raw_roles = app_metadata.get("roles") if isinstance(app_metadata, dict) else None
    roles = frozenset(str(role) for role in raw_roles) if isinstance(raw_roles, list) else frozenset()
    user_metadata = payload.get("user_metadata")
    return AuthenticatedUser(
        id=subject,
        email=payload.get("email"),
        roles=roles,
        user_metadata=user_metadata if isinstance(user_metadata, dict) else {},
    )


__all__ = [
    "AuthenticatedUser",
    "JWTError",
    "create_access_token",
    "decode_access_token",
    "extract_bearer_token",
]
