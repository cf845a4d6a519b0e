"""Session lifecycle on top of an :class:`AuthProvider`."""

from __future__ import annotations

import logging
from http import HTTPStatus

from ..core.logging import token_preview
from ..errors import AuthenticationError, AuthErrorKind
from ..models import Session
from .api import ApiClient
from .auth import AuthProvider, AuthProviderError, AuthSession

logger = logging.getLogger(__name__)

_CREDENTIAL_STATUSES = frozenset(
    {
        HTTPStatus.BAD_REQUEST,
        HTTPStatus.UNAUTHORIZED,
        HTTPStatus.FORBIDDEN,
        HTTPStatus.UNPROCESSABLE_ENTITY,
    }
)


def classify_auth_error(error: AuthProviderError) -> AuthErrorKind:
    """Map a provider failure onto the kinds callers can act on."""

    if error.status_code is None:
        return AuthErrorKind.NETWORK
    if error.status_code in _CREDENTIAL_STATUSES:
        return AuthErrorKind.INVALID_CREDENTIALS
    return AuthErrorKind.UNKNOWN


def session_from_auth(auth_session: AuthSession | None) -> Session | None:
    """Build a :class:`Session` when both a token and an email are present."""

    if auth_session is None:
        return None
    user = auth_session.user
    if not auth_session.access_token or not user.email:
        return None
    return Session(
        user_email=user.email,
        user_name=user.display_name,
        access_token=auth_session.access_token,
        roles=user.roles,
        user_id=user.id,
    )


class SessionManager:
    """Holds the current :class:`Session` and performs its transitions.

    The manager keeps no storage of its own; persistence belongs to the auth
    provider.
    """

    def __init__(self, provider: AuthProvider, api: ApiClient | None = None) -> None:
        self._provider = provider
        self._api = api
        self._session: Session | None = None

    @property
    def current(self) -> Session | None:
        return self._session

    @property
    def is_logged_in(self) -> bool:
        return self._session is not None and self._session.is_logged_in

    async def restore_session(self) -> Session | None:
        try:
            auth_session = await self._provider.get_session()
        except Exception:
            logger.warning("Session restore failed; continuing anonymously.", exc_info=True)
            auth_session = None

        self._session = session_from_auth(auth_session)
        if self._session is None:
            logger.info("No valid session found.")
        else:
            logger.info(
                "Restored session for %s (token %s)",
                self._session.user_email,
                token_preview(self._session.access_token),
            )
        return self._session

    async def login(self, email: str, password: str) -> Session:
        """Sign in; raises :class:`AuthenticationError` on any failure."""

        try:
            response = await self._provider.sign_in_with_password(email, password)
        except Exception as exc:
            logger.warning("Auth provider raised during sign-in.", exc_info=True)
            raise AuthenticationError(str(exc) or "Sign-in failed.", kind=AuthErrorKind.UNKNOWN) from exc

        if response.error is not None:
            kind = classify_auth_error(response.error)
            logger.info("Sign-in for %s failed (%s)", email, kind.value)
            raise AuthenticationError(response.error.message, kind=kind)

        session = session_from_auth(response.session)
        if session is None:
            raise AuthenticationError(
                "Sign-in succeeded without an access token.",
                kind=AuthErrorKind.UNKNOWN,
            )
        self._session = session
        logger.info("Logged in %s (token %s)", session.user_email, token_preview(session.access_token))
        return session

    async def logout(self) -> None:
        """Sign out remotely if possible; local state is cleared regardless."""

        try:
            error = await self._provider.sign_out()
        except Exception:
            logger.warning("Auth provider raised during sign-out.", exc_info=True)
        else:
            if error is not None:
                logger.warning("Remote sign-out failed: %s", error.message)
        finally:
            self._session = None

    async def register(self, email: str, password: str, name: str = "") -> Session:
        """Create an account then sign into it.

        The API's admin-backed signup is tried first; when it fails the auth
        provider's self-service sign-up is used instead.
        """

        if self._api is not None:
            health = await self._api.health_check()
            if not health.ok:
                raise AuthenticationError(
                    f"Server unavailable: {health.error}",
                    kind=AuthErrorKind.NETWORK,
                )
            signup = await self._api.signup(email, password, name)
            if signup.ok:
                return await self.login(email, password)
            logger.info("API signup failed (%s); falling back to the auth provider.", signup.error)

        try:
            response = await self._provider.sign_up(email, password, {"name": name})
        except Exception as exc:
            logger.warning("Auth provider raised during sign-up.", exc_info=True)
            raise AuthenticationError(str(exc) or "Sign-up failed.", kind=AuthErrorKind.UNKNOWN) from exc
        if response.error is not None:
            raise AuthenticationError(response.error.message, kind=classify_auth_error(response.error))
        return await self.login(email, password)


__all__ = ["SessionManager", "classify_auth_error", "session_from_auth"]
