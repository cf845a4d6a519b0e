"""Entry point for the project API."""

from __future__ import annotations

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ..core.config import Settings, get_settings
from ..core.kv import KeyValueStore
from ..core.logging import configure_logging
from .admin import AuthAdminClient
from .errors import register_exception_handlers
from .middleware import CorrelationIdMiddleware
from .routers import api_router


def create_app(
    settings: Settings | None = None,
    *,
    kv: KeyValueStore | None = None,
    auth_admin: AuthAdminClient | None = None,
) -> FastAPI:
    """Instantiate and configure the FastAPI application.

    ``kv`` and ``auth_admin`` are created from settings when not supplied;
    injected instances are left open on shutdown.
    """

    settings = settings or get_settings()
    configure_logging(settings)

    router_prefix = settings.api_prefix
    openapi_url = f"{router_prefix}/openapi.json"

    application = FastAPI(
        title=settings.project_name,
        version=settings.version,
        summary="Key-value backed project, team and profile API.",
        docs_url=f"{router_prefix}/docs",
        redoc_url=None,
        openapi_url=openapi_url,
    )

    application.state.settings = settings
    application.state.kv = kv
    application.state.auth_admin = auth_admin or AuthAdminClient(settings)
    owns_kv = kv is None
    owns_auth_admin = auth_admin is None

    application.add_middleware(CorrelationIdMiddleware)
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=False,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )

    if router_prefix:
        application.include_router(api_router, prefix=router_prefix)
    else:
        application.include_router(api_router)

    register_exception_handlers(application)

    @application.on_event("startup")
    async def _open_kv_store() -> None:
        if application.state.kv is None:
            application.state.kv = KeyValueStore.from_url(settings.kv_url)

    @application.on_event("shutdown")
    async def _close_clients() -> None:
        if owns_kv and application.state.kv is not None:
            await application.state.kv.close()
            application.state.kv = None
        if owns_auth_admin:
            await application.state.auth_admin.aclose()

    return application


def run() -> None:
    """Console entry point for ``project-tracker-api``."""

    settings = get_settings()
    uvicorn.run(
        "project_tracker.server.main:create_app",
        factory=True,
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.reload,
        log_config=None,
    )


__all__ = ["create_app", "run"]
