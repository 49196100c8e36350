"""Settings routes: per-user pomodoro configuration."""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from timekeeper.core.auth import get_current_user
from timekeeper.dependencies import get_db
from timekeeper.models.user import User
from timekeeper.schemas.settings import PomodoroSettingsRead, PomodoroSettingsWrite
from timekeeper.services import settings_service

router = APIRouter(prefix="/settings", tags=["settings"])


@router.get("/pomodoro", response_model=PomodoroSettingsRead)
async def get_pomodoro_settings(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await settings_service.get_pomodoro_settings(db, current_user.id)


@router.put("/pomodoro", response_model=PomodoroSettingsRead)
async def save_pomodoro_settings(
    body: PomodoroSettingsWrite,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    ip = request.client.host if request.client else None
    return await settings_service.save_pomodoro_settings(
        db, user_id=current_user.id, ip_address=ip, **body.model_dump()
    )
