"""Pomodoro settings: one row per user, created with defaults on first read."""

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from timekeeper.models.pomodoro_settings import PomodoroSettings
from timekeeper.services import audit_service
from timekeeper.services.audit_service import AuditEvent


async def _find(db: AsyncSession, user_id: uuid.UUID) -> PomodoroSettings | None:
    result = await db.execute(
        select(PomodoroSettings).where(PomodoroSettings.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def get_pomodoro_settings(db: AsyncSession, user_id: uuid.UUID) -> PomodoroSettings:
    settings = await _find(db, user_id)
    if settings is None:
        settings = PomodoroSettings(user_id=user_id)
        db.add(settings)
        await db.flush()
    return settings


async def save_pomodoro_settings(
    db: AsyncSession,
    *,
    user_id: uuid.UUID,
    work_minutes: int,
    short_break_minutes: int,
    long_break_minutes: int,
    long_break_interval: int,
    auto_start_break: bool,
    ip_address: str | None = None,
) -> PomodoroSettings:
    values = {
        "work_minutes": work_minutes,
        "short_break_minutes": short_break_minutes,
        "long_break_minutes": long_break_minutes,
        "long_break_interval": long_break_interval,
        "auto_start_break": auto_start_break,
    }
    settings = await _find(db, user_id)
    if settings is None:
        settings = PomodoroSettings(user_id=user_id, **values)
        db.add(settings)
    else:
        for name, value in values.items():
            setattr(settings, name, value)
    await db.flush()

    await audit_service.log_event(
        db,
        AuditEvent.pomodoro_settings_saved,
        user_id=user_id,
        entity_id=settings.id,
        detail=values,
        ip_address=ip_address,
    )

    return settings
