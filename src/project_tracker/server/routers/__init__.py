"""Router registrations for the project API."""

from __future__ import annotations

from fastapi import APIRouter

from .profile import router as profile_router
from .projects import router as projects_router
from .system import router as system_router
from .teams import router as teams_router

api_router = APIRouter()
api_router.include_router(system_router)
api_router.include_router(projects_router)
api_router.include_router(teams_router)
api_router.include_router(profile_router)

__all__ = ["api_router", "profile_router", "projects_router", "system_router", "teams_router"]
