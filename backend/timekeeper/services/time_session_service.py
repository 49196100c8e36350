"""Historical session service: the permanent record of completed work.

duration_seconds is always recomputed from start/end here; a duration sent by
a client is only accepted when it agrees. All writes audit-logged.
"""

import math
import uuid
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from timekeeper.core.errors import SessionNotFound, ValidationError
from timekeeper.models.base import as_utc
from timekeeper.models.project import Project
from timekeeper.models.time_session import SessionMode, TimeSession
from timekeeper.schemas.project import ProjectSummary
from timekeeper.schemas.time_session import Pagination, TimeSessionPage, TimeSessionRead
from timekeeper.services import audit_service, project_service
from timekeeper.services.audit_service import AuditEvent


def normalize_description(description: str | None) -> str | None:
    """Strip whitespace; blank descriptions are stored as None."""
    if description is None:
        return None
    description = description.strip()
    return description or None


def compute_duration(start_time: datetime, end_time: datetime) -> int:
    """Whole seconds between start and end, rounded down."""
    delta = as_utc(end_time) - as_utc(start_time)
    return math.floor(delta.total_seconds())


def to_read(session: TimeSession, project: Project | None) -> TimeSessionRead:
    read = TimeSessionRead.model_validate(session)
    if project is not None:
        read.project = ProjectSummary.model_validate(project)
    return read


async def _get_owned_session(
    db: AsyncSession,
    session_id: uuid.UUID,
    user_id: uuid.UUID,
) -> TimeSession:
    result = await db.execute(
        select(TimeSession).where(
            TimeSession.id == session_id,
            TimeSession.user_id == user_id,
        )
    )
    session = result.scalar_one_or_none()
    if session is None:
        raise SessionNotFound()
    return session


async def _project_for(db: AsyncSession, session: TimeSession) -> Project | None:
    if session.project_id is None:
        return None
    return await db.get(Project, session.project_id)


async def list_time_sessions(
    db: AsyncSession,
    user_id: uuid.UUID,
    *,
    project_id: uuid.UUID | None = None,
    start_from: datetime | None = None,
    start_to: datetime | None = None,
    page: int = 1,
    limit: int = 50,
) -> TimeSessionPage:
    """List sessions newest first, filtered by project and start-time range."""
    conditions = [TimeSession.user_id == user_id]
    if project_id is not None:
        conditions.append(TimeSession.project_id == project_id)
    if start_from is not None:
        conditions.append(TimeSession.start_time >= start_from)
    if start_to is not None:
        conditions.append(TimeSession.start_time <= start_to)

    total = (
        await db.execute(select(func.count(TimeSession.id)).where(*conditions))
    ).scalar_one()

    result = await db.execute(
        select(TimeSession, Project)
        .outerjoin(Project, Project.id == TimeSession.project_id)
        .where(*conditions)
        .order_by(TimeSession.start_time.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    items = [to_read(session, project) for session, project in result.all()]

    return TimeSessionPage(
        data=items,
        pagination=Pagination(
            page=page,
            limit=limit,
            total=total,
            total_pages=math.ceil(total / limit) if limit else 0,
        ),
    )


async def record_time_session(
    db: AsyncSession,
    *,
    user_id: uuid.UUID,
    start_time: datetime,
    end_time: datetime,
    mode: SessionMode,
    project_id: uuid.UUID | None = None,
    description: str | None = None,
) -> TimeSession:
    """Insert a historical session without committing or auditing.

    Shared by manual entry and by promotion of an active session, so both
    paths derive the duration the same way.
    """
    duration = compute_duration(start_time, end_time)
    if duration <= 0:
        raise ValidationError("end_time", "must be after start_time")

    session = TimeSession(
        user_id=user_id,
        project_id=project_id,
        description=normalize_description(description),
        start_time=start_time,
        end_time=end_time,
        duration_seconds=duration,
        mode=mode,
    )
    db.add(session)
    await db.flush()
    return session


async def create_time_session(
    db: AsyncSession,
    *,
    user_id: uuid.UUID,
    start_time: datetime,
    end_time: datetime,
    mode: SessionMode,
    project_id: uuid.UUID | None = None,
    description: str | None = None,
    duration_seconds: int | None = None,
    ip_address: str | None = None,
) -> TimeSessionRead:
    """Manually record a completed session."""
    project = None
    if project_id is not None:
        project = await project_service.get_owned_project(db, project_id, user_id)

    if duration_seconds is not None and duration_seconds != compute_duration(start_time, end_time):
        raise ValidationError("duration_seconds", "does not match end_time - start_time")

    session = await record_time_session(
        db,
        user_id=user_id,
        start_time=start_time,
        end_time=end_time,
        mode=mode,
        project_id=project_id,
        description=description,
    )

    await audit_service.log_event(
        db,
        AuditEvent.session_created,
        user_id=user_id,
        entity_id=session.id,
        detail={"mode": mode.value, "duration_seconds": session.duration_seconds},
        ip_address=ip_address,
    )

    return to_read(session, project)


async def update_time_session(
    db: AsyncSession,
    *,
    session_id: uuid.UUID,
    user_id: uuid.UUID,
    changes: dict,
    ip_address: str | None = None,
) -> TimeSessionRead:
    """Apply a partial update.

    Only keys present in ``changes`` are touched; ``project_id: None`` unlinks
    the project. Changing either bound recomputes the duration, which must
    stay positive.
    """
    session = await _get_owned_session(db, session_id, user_id)

    if "description" in changes:
        session.description = normalize_description(changes["description"])

    if "project_id" in changes:
        project_id = changes["project_id"]
        if project_id is not None:
            await project_service.get_owned_project(db, project_id, user_id)
        session.project_id = project_id

    start_time = changes.get("start_time") or session.start_time
    end_time = changes.get("end_time") or session.end_time
    if changes.get("start_time") or changes.get("end_time"):
        duration = compute_duration(start_time, end_time)
        if duration <= 0:
            raise ValidationError("end_time", "must be after start_time")
        session.start_time = start_time
        session.end_time = end_time
        session.duration_seconds = duration

    await db.flush()

    await audit_service.log_event(
        db,
        AuditEvent.session_updated,
        user_id=user_id,
        entity_id=session.id,
        detail={"fields": sorted(changes)},
        ip_address=ip_address,
    )

    return to_read(session, await _project_for(db, session))


async def delete_time_session(
    db: AsyncSession,
    *,
    session_id: uuid.UUID,
    user_id: uuid.UUID,
    ip_address: str | None = None,
) -> None:
    session = await _get_owned_session(db, session_id, user_id)

    await audit_service.log_event(
        db,
        AuditEvent.session_deleted,
        user_id=user_id,
        entity_id=session.id,
        ip_address=ip_address,
    )

    await db.delete(session)
    await db.flush()
