"""Health and account creation routes; both accept the public credential."""

from __future__ import annotations

from fastapi import APIRouter

from ...models import isoformat_utc
from ...schemas import HealthCheckResponse, SignupRequest, SignupResponse
from ..deps import AuthAdminDependency

router = APIRouter(tags=["system"])


@router.get("/health", response_model=HealthCheckResponse, summary="Service health check")
async def health() -> HealthCheckResponse:
    return HealthCheckResponse(status="ok", timestamp=isoformat_utc())


@router.post("/signup", response_model=SignupResponse, summary="Register a confirmed user")
async def signup(payload: SignupRequest, admin: AuthAdminDependency) -> SignupResponse:
    user = await admin.create_user(payload.email, payload.password, payload.name)
    return SignupResponse(user=user)


__all__ = ["router"]
