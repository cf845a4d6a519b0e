"""Account creation through the auth service's admin API."""

from __future__ import annotations

import logging
from typing import Any

import httpx
from fastapi import status

from ..core.config import Settings
from ..errors import ApplicationError, ConflictError

logger = logging.getLogger(__name__)

ALREADY_REGISTERED_MESSAGE = "A user with this email address has already been registered"


def _is_already_registered(response: httpx.Response, message: str) -> bool:
    if "already been registered" in message or "already registered" in message:
        return True
    try:
        body = response.json()
    except ValueError:
        return False
    return isinstance(body, dict) and body.get("error_code") == "email_exists"


class AuthAdminClient:
    """Creates pre-confirmed users with the service-role key."""

    def __init__(
        self,
        settings: Settings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._client = httpx.AsyncClient(
            base_url=settings.auth_url,
            timeout=settings.request_timeout_seconds,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def create_user(self, email: str, password: str, name: str = "") -> dict[str, Any]:
        headers = {
            "apikey": self._settings.service_role_key,
            "Authorization": f"Bearer {self._settings.service_role_key}",
        }
        payload = {
            "email": email,
            "password": password,
            "user_metadata": {"name": name},
            "email_confirm": True,
        }
        try:
            response = await self._client.post("/admin/users", json=payload, headers=headers)
        except httpx.HTTPError as exc:
            logger.error("Auth admin API unreachable: %s", exc)
            raise ApplicationError(
                "Internal server error during signup",
                code="signup_unavailable",
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            ) from exc

        if response.is_error:
            try:
                body = response.json()
            except ValueError:
                body = {}
            message = ""
            if isinstance(body, dict):
                message = str(body.get("msg") or body.get("message") or body.get("error_description") or "")
            logger.warning("Signup rejected with %s: %s", response.status_code, message)
            if _is_already_registered(response, message):
                raise ConflictError(ALREADY_REGISTERED_MESSAGE, code="already_registered")
            raise ApplicationError(message or "Signup failed.", code="signup_failed")

        user = response.json()
        logger.info("Created user %s", user.get("id"))
        return user


__all__ = ["ALREADY_REGISTERED_MESSAGE", "AuthAdminClient"]
