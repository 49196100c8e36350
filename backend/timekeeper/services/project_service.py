"""Project service: per-user projects that sessions can be filed under.

All lookups are scoped to the owner. All writes audit-logged.
"""

import uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from timekeeper.core.errors import ConflictError, ProjectNotFound
from timekeeper.models.project import Project
from timekeeper.models.time_session import TimeSession
from timekeeper.services import audit_service
from timekeeper.services.audit_service import AuditEvent


async def get_projects(db: AsyncSession, user_id: uuid.UUID) -> list[Project]:
    result = await db.execute(
        select(Project)
        .where(Project.user_id == user_id)
        .order_by(Project.created_at.asc())
    )
    return list(result.scalars().all())


async def get_owned_project(
    db: AsyncSession,
    project_id: uuid.UUID,
    user_id: uuid.UUID,
) -> Project:
    """Fetch a project that belongs to user_id.

    Another user's project is reported exactly like a missing one.
    """
    result = await db.execute(
        select(Project).where(Project.id == project_id, Project.user_id == user_id)
    )
    project = result.scalar_one_or_none()
    if project is None:
        raise ProjectNotFound()
    return project


async def create_project(
    db: AsyncSession,
    *,
    user_id: uuid.UUID,
    name: str,
    color: str,
    ip_address: str | None = None,
) -> Project:
    project = Project(user_id=user_id, name=name, color=color)
    db.add(project)
    await db.flush()

    await audit_service.log_event(
        db,
        AuditEvent.project_created,
        user_id=user_id,
        entity_id=project.id,
        detail={"name": name, "color": color},
        ip_address=ip_address,
    )

    return project


async def update_project(
    db: AsyncSession,
    *,
    project_id: uuid.UUID,
    user_id: uuid.UUID,
    name: str,
    color: str,
    ip_address: str | None = None,
) -> Project:
    project = await get_owned_project(db, project_id, user_id)
    project.name = name
    project.color = color
    await db.flush()

    await audit_service.log_event(
        db,
        AuditEvent.project_updated,
        user_id=user_id,
        entity_id=project.id,
        detail={"name": name, "color": color},
        ip_address=ip_address,
    )

    return project


async def delete_project(
    db: AsyncSession,
    *,
    project_id: uuid.UUID,
    user_id: uuid.UUID,
    ip_address: str | None = None,
) -> None:
    """Delete a project. Refused with ConflictError while sessions reference it."""
    project = await get_owned_project(db, project_id, user_id)

    result = await db.execute(
        select(func.count(TimeSession.id)).where(
            TimeSession.project_id == project.id,
            TimeSession.user_id == user_id,
        )
    )
    if result.scalar_one() > 0:
        raise ConflictError("Cannot delete a project that has sessions")

    await audit_service.log_event(
        db,
        AuditEvent.project_deleted,
        user_id=user_id,
        entity_id=project.id,
        ip_address=ip_address,
    )

    await db.delete(project)
    await db.flush()
