"""Team routes."""

from __future__ import annotations

from fastapi import APIRouter

from ...models import TeamCreate, TeamJoin
from ...schemas import TeamListResponse, TeamResponse
from ..deps import CurrentUserDependency, TeamRepositoryDependency

router = APIRouter(prefix="/teams", tags=["teams"])


@router.get("", response_model=TeamListResponse, summary="List teams the caller belongs to")
async def list_teams(user: CurrentUserDependency, repository: TeamRepositoryDependency) -> TeamListResponse:
    return TeamListResponse(teams=await repository.list_for_user(user.id))


@router.post("", response_model=TeamResponse, summary="Create a team owned by the caller")
async def create_team(
    payload: TeamCreate,
    user: CurrentUserDependency,
    repository: TeamRepositoryDependency,
) -> TeamResponse:
    return TeamResponse(team=await repository.create(user, payload))


@router.post("/join", response_model=TeamResponse, summary="Join an existing team")
async def join_team(
    payload: TeamJoin,
    user: CurrentUserDependency,
    repository: TeamRepositoryDependency,
) -> TeamResponse:
    return TeamResponse(team=await repository.join(user, payload.team_id))


__all__ = ["router"]
