"""Profile routes."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body

from ...schemas import ProfileResponse
from ..deps import CurrentUserDependency, ProfileRepositoryDependency

router = APIRouter(prefix="/profile", tags=["profile"])


@router.get("", response_model=ProfileResponse, summary="Return the caller's profile")
async def read_profile(user: CurrentUserDependency, repository: ProfileRepositoryDependency) -> ProfileResponse:
    return ProfileResponse(profile=await repository.get_or_create(user))


@router.put("", response_model=ProfileResponse, summary="Update the caller's profile")
async def update_profile(
    user: CurrentUserDependency,
    repository: ProfileRepositoryDependency,
    payload: dict[str, Any] = Body(...),
) -> ProfileResponse:
    return ProfileResponse(profile=await repository.update(user, payload))


__all__ = ["router"]
