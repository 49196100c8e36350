"""Historical session routes: list, manual entry, edit, delete."""

import uuid
from datetime import datetime

from fastapi import APIRouter, Depends, Query, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from timekeeper.core.auth import get_current_user
from timekeeper.dependencies import get_db
from timekeeper.models.user import User
from timekeeper.schemas.time_session import (
    TimeSessionCreate,
    TimeSessionPage,
    TimeSessionRead,
    TimeSessionUpdate,
)
from timekeeper.services import time_session_service

router = APIRouter(prefix="/sessions", tags=["sessions"])


@router.get("", response_model=TimeSessionPage)
async def list_sessions(
    project_id: uuid.UUID | None = None,
    start_from: datetime | None = Query(None, alias="from"),
    start_to: datetime | None = Query(None, alias="to"),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await time_session_service.list_time_sessions(
        db,
        current_user.id,
        project_id=project_id,
        start_from=start_from,
        start_to=start_to,
        page=page,
        limit=limit,
    )


@router.post("", status_code=201, response_model=TimeSessionRead)
async def create_session(
    body: TimeSessionCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    ip = request.client.host if request.client else None
    return await time_session_service.create_time_session(
        db,
        user_id=current_user.id,
        start_time=body.start_time,
        end_time=body.end_time,
        mode=body.mode,
        project_id=body.project_id,
        description=body.description,
        duration_seconds=body.duration_seconds,
        ip_address=ip,
    )


@router.patch("/{session_id}", response_model=TimeSessionRead)
async def update_session(
    session_id: uuid.UUID,
    body: TimeSessionUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    ip = request.client.host if request.client else None
    # Only fields the client actually sent; explicit null unlinks a project
    changes = body.model_dump(include=body.model_fields_set)
    return await time_session_service.update_time_session(
        db,
        session_id=session_id,
        user_id=current_user.id,
        changes=changes,
        ip_address=ip,
    )


@router.delete("/{session_id}", status_code=204)
async def delete_session(
    session_id: uuid.UUID,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    ip = request.client.host if request.client else None
    await time_session_service.delete_time_session(
        db, session_id=session_id, user_id=current_user.id, ip_address=ip
    )
    return Response(status_code=204)
