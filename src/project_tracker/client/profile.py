"""Profile of the signed-in user with an offline copy."""

from __future__ import annotations

import logging
from typing import Any, Mapping

from pydantic import ValidationError as PydanticValidationError

from ..errors import AuthenticationRequiredError, ValidationError
from ..models import Session, UserProfile
from .api import ApiClient
from .local_cache import PROFILE_PREFIX, LocalCacheStore
from .session import SessionManager

logger = logging.getLogger(__name__)

# Identity fields are owned by the session, never by the edited profile.
_IDENTITY_FIELDS = frozenset({"id", "email", "updatedAt", "updated_at"})


class ProfileSync:
    """Loads and saves :class:`UserProfile` with ``profile_<email>`` as fallback.

    The name and email always come from the current session, whatever the API
    or the cache returned. Saving writes the offline copy even when the API
    rejects the update, so the edit survives a reload while offline.
    """

    def __init__(self, api: ApiClient, sessions: SessionManager, cache: LocalCacheStore) -> None:
        self._api = api
        self._sessions = sessions
        self._cache = cache
        self._profile: UserProfile | None = None

    @property
    def profile(self) -> UserProfile | None:
        return self._profile

    async def load(self) -> UserProfile | None:
        """Return the profile, or ``None`` when nobody is signed in."""

        session = self._sessions.current
        if session is None or not session.is_logged_in:
            self._profile = None
            return None

        key = self._cache.namespace_key(session.user_email, PROFILE_PREFIX)
        result = await self._api.get_profile(session.access_token)
        if result.ok and result.data is not None:
            self._profile = self._with_identity(result.data, session)
            await self._cache.write_model(key, self._profile)
            return self._profile

        logger.warning("Profile unavailable (%s); using the offline copy.", result.error)
        cached = await self._cache.read_model(key, UserProfile)
        if cached is None:
            cached = UserProfile(id=session.user_id or session.user_email, email=session.user_email)
        self._profile = self._with_identity(cached, session)
        return self._profile

    async def save(self, changes: Mapping[str, Any]) -> UserProfile:
        session = self._sessions.current
        if session is None or not session.is_logged_in:
            raise AuthenticationRequiredError(operation="save_profile")

        current = self._profile if self._profile is not None else await self.load()
        assert current is not None
        merged = {**current.to_payload(), **{k: v for k, v in changes.items() if k not in _IDENTITY_FIELDS}}
        try:
            profile = self._with_identity(UserProfile.model_validate(merged), session)
        except PydanticValidationError as exc:
            raise ValidationError(
                "Profile is invalid.",
                details=exc.errors(include_url=False, include_context=False),
            ) from exc

        payload = {k: v for k, v in profile.to_payload().items() if k not in _IDENTITY_FIELDS}
        result = await self._api.update_profile(payload, session.access_token)
        if result.ok and result.data is not None:
            profile = self._with_identity(result.data, session)
        else:
            logger.warning("Profile update failed (%s); keeping the offline copy.", result.error)

        self._profile = profile
        await self._cache.write_model(self._cache.namespace_key(session.user_email, PROFILE_PREFIX), profile)
        return profile

    @staticmethod
    def _with_identity(profile: UserProfile, session: Session) -> UserProfile:
        return profile.model_copy(update={"name": session.user_name or profile.name, "email": session.user_email})


__all__ = ["ProfileSync"]
