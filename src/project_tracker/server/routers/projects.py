"""Routes handling project CRUD operations."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Path

from ...models import ProjectBase, ProjectUpdate
from ...schemas import ProjectListResponse, ProjectResponse, SuccessResponse
from ..deps import CurrentUserDependency, ProjectRepositoryDependency

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/projects", tags=["projects"])


@router.get("", response_model=ProjectListResponse, summary="List the caller's projects")
async def list_projects(
    user: CurrentUserDependency,
    repository: ProjectRepositoryDependency,
) -> ProjectListResponse:
    projects = await repository.list_for_user(user.id)
    logger.info("Returning %d projects for user %s", len(projects), user.id)
    return ProjectListResponse(projects=projects)


@router.post("", response_model=ProjectResponse, summary="Create a project")
async def create_project(
    payload: ProjectBase,
    user: CurrentUserDependency,
    repository: ProjectRepositoryDependency,
) -> ProjectResponse:
    project = await repository.create(user.id, payload)
    return ProjectResponse(project=project)


@router.put("/{project_id}", response_model=ProjectResponse, summary="Create or replace a project")
async def update_project(
    payload: ProjectUpdate,
    user: CurrentUserDependency,
    repository: ProjectRepositoryDependency,
    project_id: str = Path(min_length=1),
) -> ProjectResponse:
    project = await repository.update(user.id, project_id, payload)
    return ProjectResponse(project=project)


@router.delete("/{project_id}", response_model=SuccessResponse, summary="Delete a project")
async def delete_project(
    user: CurrentUserDependency,
    repository: ProjectRepositoryDependency,
    project_id: str = Path(min_length=1),
) -> SuccessResponse:
    removed = await repository.delete(user.id, project_id)
    if not removed:
        logger.info("Delete of unknown project %s for user %s", project_id, user.id)
    return SuccessResponse()


__all__ = ["router"]
