"""Project routes: list, create, rename/recolor, delete."""

import uuid

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from timekeeper.core.auth import get_current_user
from timekeeper.dependencies import get_db
from timekeeper.models.user import User
from timekeeper.schemas.project import ProjectRead, ProjectWrite
from timekeeper.services import project_service

router = APIRouter(prefix="/projects", tags=["projects"])


@router.get("", response_model=list[ProjectRead])
async def list_projects(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await project_service.get_projects(db, current_user.id)


@router.post("", status_code=201, response_model=ProjectRead)
async def create_project(
    body: ProjectWrite,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    ip = request.client.host if request.client else None
    return await project_service.create_project(
        db, user_id=current_user.id, name=body.name, color=body.color, ip_address=ip
    )


@router.put("/{project_id}", response_model=ProjectRead)
async def update_project(
    project_id: uuid.UUID,
    body: ProjectWrite,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    ip = request.client.host if request.client else None
    return await project_service.update_project(
        db,
        project_id=project_id,
        user_id=current_user.id,
        name=body.name,
        color=body.color,
        ip_address=ip,
    )


@router.delete("/{project_id}", status_code=204)
async def delete_project(
    project_id: uuid.UUID,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Delete a project. 409 while sessions are filed under it."""
    ip = request.client.host if request.client else None
    await project_service.delete_project(
        db, project_id=project_id, user_id=current_user.id, ip_address=ip
    )
    return Response(status_code=204)
