from __future__ import annotations

from functools import lru_cache
from typing import Any, Literal, Sequence

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .. import __version__ as package_version

EnvironmentName = Literal["development", "test", "ci"]

_ENVIRONMENT_ALIASES: dict[str, EnvironmentName] = {
    "development": "development",
    "dev": "development",
    "test": "test",
    "testing": "test",
    "ci": "ci",
}

_ENVIRONMENT_PROFILES: dict[EnvironmentName, dict[str, Any]] = {
    "development": {
        "log_level": "DEBUG",
        "reload": True,
        "request_timeout_seconds": 10.0,
        "cache_enabled": True,
    },
    "test": {
        "log_level": "WARNING",
        "reload": False,
        "request_timeout_seconds": 2.0,
        "cache_enabled": False,
    },
    "ci": {
        "log_level": "INFO",
        "reload": False,
        "request_timeout_seconds": 5.0,
        "cache_enabled": True,
    },
}


class Settings(BaseSettings):
    """Runtime configuration shared by the sync client and the reference API."""

    model_config = SettingsConfigDict(
        env_prefix="TRACKER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    project_name: str = "Project Tracker"
    environment: EnvironmentName = "development"
    version: str = package_version
    log_level: str = "INFO"

    # Client side: remote API, auth provider and the local offline cache.
    api_base_url: str = "http://localhost:8005"
    public_anon_key: str = "public-anon-key"
    auth_url: str = "http://localhost:9999/auth/v1"
    request_timeout_seconds: float = 10.0
    cache_url: str = "redis://localhost:6379/0"
    cache_enabled: bool = True
    cache_key_prefix: str = "projects_"
    public_scan_enabled: bool = True
    public_namespace: str | None = None
    auth_session_key: str = "auth:session"

    # Server side: the key-value backed HTTP API.
    app_host: str = "0.0.0.0"
    app_port: int = 8005
    reload: bool = True
    api_prefix: str = ""
    kv_url: str = "redis://localhost:6379/1"
    jwt_secret: str = "change-me"
    jwt_audience: str = "authenticated"
    jwt_algorithm: str = "HS256"
    service_role_key: str = "change-me-service-role"
    cors_allow_origins: list[str] = Field(default_factory=lambda: ["*"])
    cors_allow_methods: list[str] = Field(
        default_factory=lambda: ["GET", "POST", "PUT", "DELETE", "OPTIONS"]
    )
    cors_allow_headers: list[str] = Field(
        default_factory=lambda: ["Content-Type", "Authorization", "X-Request-ID"]
    )

    @field_validator("environment", mode="before")
    @classmethod
    def _normalise_environment(cls, value: object) -> EnvironmentName:
        if isinstance(value, str):
            normalized = value.strip().lower()
        else:
            normalized = ""
        return _ENVIRONMENT_ALIASES.get(normalized, "development")

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalise_log_level(cls, value: object) -> str:
        if not isinstance(value, str) or not value.strip():
            return "INFO"
        return value.strip().upper()

    @field_validator("request_timeout_seconds", mode="before")
    @classmethod
    def _ensure_positive_timeout(cls, value: object) -> float:
        try:
            timeout = float(value)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return 10.0
        if timeout <= 0:
            return 10.0
        return timeout

    @field_validator("api_base_url", "auth_url", mode="before")
    @classmethod
    def _strip_trailing_slash(cls, value: object) -> str:
        return str(value).strip().rstrip("/")

    @field_validator("api_prefix", mode="before")
    @classmethod
    def _normalise_api_prefix(cls, value: object) -> str:
        prefix = str(value or "").strip().rstrip("/")
        if prefix and not prefix.startswith("/"):
            prefix = f"/{prefix}"
        return prefix

    @field_validator("public_namespace", mode="before")
    @classmethod
    def _blank_namespace_is_none(cls, value: object) -> str | None:
        if value is None:
            return None
        candidate = str(value).strip()
        return candidate or None

    @field_validator(
        "cors_allow_origins",
        "cors_allow_methods",
        "cors_allow_headers",
        mode="before",
    )
    @classmethod
    def _coerce_comma_separated(cls, value: object) -> list[str]:
        """Allow comma separated strings for CORS configuration."""

        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        if isinstance(value, Sequence):
            return [str(item) for item in value if str(item).strip()]
        return []

    @model_validator(mode="after")
    def _apply_environment_profile(self) -> "Settings":
        profile = _ENVIRONMENT_PROFILES[self.environment]
        fields_set = set(getattr(self, "model_fields_set", set()))
        for field_name, value in profile.items():
            if field_name not in fields_set:
                setattr(self, field_name, value)
        return self


@lru_cache()
def get_settings() -> Settings:
    """Return a cached ``Settings`` instance."""

    return Settings()


__all__ = ["EnvironmentName", "Settings", "get_settings"]
