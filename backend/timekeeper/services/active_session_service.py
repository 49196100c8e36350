"""Active session service: the per-user running timer and its lifecycle.

Register level (no commit, no notification):
  get_active_session, upsert_active_session, delete_active_session

Lifecycle level (commit first, then notify exactly once):
  start_active_session, stop_active_session, cancel_active_session,
  read_active_session, load_active_state

Elapsed time is never stored. Every reader derives it as now - start_time.
"""

import logging
import math
import uuid
from datetime import datetime

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from timekeeper.core.errors import ConflictError, InvalidDuration, NoActiveSession, ValidationError
from timekeeper.core.notifier import ActiveSessionNotifier, get_notifier
from timekeeper.models.active_session import ActiveSession, PomodoroPhase
from timekeeper.models.base import as_utc, generate_uuid, utcnow
from timekeeper.models.project import Project
from timekeeper.models.time_session import SessionMode
from timekeeper.schemas.active_session import ActiveSessionState
from timekeeper.schemas.project import ProjectSummary
from timekeeper.schemas.time_session import TimeSessionRead
from timekeeper.services import audit_service, project_service, time_session_service
from timekeeper.services.audit_service import AuditEvent

logger = logging.getLogger("timekeeper")

# Every field an upsert replaces; identity (id, user_id) is kept
_MUTABLE_FIELDS = (
    "start_time",
    "mode",
    "project_id",
    "description",
    "target_seconds",
    "pomodoro_phase",
    "pomodoro_cycle",
)


def elapsed_seconds(start_time: datetime, now: datetime) -> int:
    return math.floor((as_utc(now) - as_utc(start_time)).total_seconds())


def _parse_mode(value: SessionMode | str) -> SessionMode:
    try:
        return SessionMode(value)
    except ValueError:
        raise ValidationError("mode", f"must be one of {[m.value for m in SessionMode]}")


def _parse_phase(value: PomodoroPhase | str | None) -> PomodoroPhase | None:
    if value is None:
        return None
    try:
        return PomodoroPhase(value)
    except ValueError:
        raise ValidationError(
            "pomodoro_phase", f"must be one of {[p.value for p in PomodoroPhase]}"
        )


def _insert_for(db: AsyncSession):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise RuntimeError(f"Active session upsert not supported on {dialect}")
    return insert


# ── Register ──


async def get_active_session(db: AsyncSession, user_id: uuid.UUID) -> ActiveSession | None:
    result = await db.execute(
        select(ActiveSession).where(ActiveSession.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def upsert_active_session(
    db: AsyncSession,
    *,
    user_id: uuid.UUID,
    fields: dict,
) -> ActiveSession:
    """Create or wholly replace the user's active session in one statement.

    Missing mutable fields reset to their defaults, so concurrent writers
    always leave one writer's complete payload behind.
    """
    values = {
        "start_time": fields["start_time"],
        "mode": fields["mode"],
        "project_id": fields.get("project_id"),
        "description": fields.get("description"),
        "target_seconds": fields.get("target_seconds"),
        "pomodoro_phase": fields.get("pomodoro_phase"),
        "pomodoro_cycle": fields.get("pomodoro_cycle") or 0,
    }
    insert = _insert_for(db)
    stmt = insert(ActiveSession).values(id=generate_uuid(), user_id=user_id, **values)
    stmt = stmt.on_conflict_do_update(
        index_elements=[ActiveSession.user_id],
        set_={name: stmt.excluded[name] for name in _MUTABLE_FIELDS},
    )
    await db.execute(stmt)

    result = await db.execute(
        select(ActiveSession)
        .where(ActiveSession.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def delete_active_session(db: AsyncSession, user_id: uuid.UUID) -> ActiveSession:
    """Remove the user's active session. Raises NoActiveSession when there is none."""
    active = await get_active_session(db, user_id)
    if active is None:
        raise NoActiveSession()
    await db.delete(active)
    await db.flush()
    return active


# ── Lifecycle ──


async def start_active_session(
    db: AsyncSession,
    *,
    user_id: uuid.UUID,
    mode: SessionMode | str,
    start_time: datetime | None = None,
    project_id: uuid.UUID | None = None,
    description: str | None = None,
    target_seconds: int | None = None,
    pomodoro_phase: PomodoroPhase | str | None = None,
    pomodoro_cycle: int = 0,
    notifier: ActiveSessionNotifier | None = None,
    ip_address: str | None = None,
) -> ActiveSession:
    """Start a timer, or replace the running one in place."""
    mode = _parse_mode(mode)
    phase = _parse_phase(pomodoro_phase)
    if target_seconds is not None and target_seconds <= 0:
        raise ValidationError("target_seconds", "must be positive")
    if pomodoro_cycle < 0:
        raise ValidationError("pomodoro_cycle", "must be zero or greater")
    if project_id is not None:
        await project_service.get_owned_project(db, project_id, user_id)

    active = await upsert_active_session(
        db,
        user_id=user_id,
        fields={
            "start_time": start_time or utcnow(),
            "mode": mode,
            "project_id": project_id,
            "description": time_session_service.normalize_description(description),
            "target_seconds": target_seconds,
            "pomodoro_phase": phase,
            "pomodoro_cycle": pomodoro_cycle,
        },
    )

    await audit_service.log_event(
        db,
        AuditEvent.active_session_started,
        user_id=user_id,
        entity_id=active.id,
        detail={
            "mode": mode.value,
            "pomodoro_phase": phase.value if phase else None,
            "pomodoro_cycle": pomodoro_cycle,
        },
        ip_address=ip_address,
    )

    await db.commit()
    (notifier or get_notifier()).publish(user_id)
    return active


async def _lock_active_session(db: AsyncSession, user_id: uuid.UUID) -> ActiveSession | None:
    # FOR UPDATE is a no-op on SQLite; _delete_as_read covers that case
    result = await db.execute(
        select(ActiveSession)
        .where(ActiveSession.user_id == user_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _delete_as_read(db: AsyncSession, active: ActiveSession, seen: dict) -> None:
    """Delete the slot only while it still holds the values read into ``seen``."""
    result = await db.execute(
        delete(ActiveSession)
        .where(
            ActiveSession.id == active.id,
            *(getattr(ActiveSession, name).is_not_distinct_from(value) for name, value in seen.items()),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ConflictError("Active session was replaced while stopping")
    db.expunge(active)


async def stop_active_session(
    db: AsyncSession,
    *,
    user_id: uuid.UUID,
    now: datetime | None = None,
    notifier: ActiveSessionNotifier | None = None,
    ip_address: str | None = None,
) -> TimeSessionRead:
    """Promote the active session into a historical session.

    History creation and slot removal commit together or not at all. A
    non-positive elapsed time still clears the slot but records nothing and
    raises InvalidDuration. A replace that lands between the read and the
    delete raises ConflictError and leaves the replacement running.
    """
    notifier = notifier or get_notifier()
    active = await _lock_active_session(db, user_id)
    if active is None:
        raise NoActiveSession()
    seen = {name: getattr(active, name) for name in _MUTABLE_FIELDS}

    now = now or utcnow()
    elapsed = elapsed_seconds(seen["start_time"], now)

    try:
        if elapsed <= 0:
            logger.warning(
                "discarding active session %s with non-positive elapsed %ss", active.id, elapsed
            )
            await audit_service.log_event(
                db,
                AuditEvent.active_session_discarded,
                user_id=user_id,
                entity_id=active.id,
                detail={"elapsed_seconds": elapsed},
                ip_address=ip_address,
            )
        else:
            history = await time_session_service.record_time_session(
                db,
                user_id=user_id,
                start_time=seen["start_time"],
                end_time=now,
                mode=seen["mode"],
                project_id=seen["project_id"],
                description=seen["description"],
            )
            await audit_service.log_event(
                db,
                AuditEvent.active_session_stopped,
                user_id=user_id,
                entity_id=history.id,
                detail={"mode": seen["mode"].value, "duration_seconds": history.duration_seconds},
                ip_address=ip_address,
            )
        await _delete_as_read(db, active, seen)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    notifier.publish(user_id)
    if elapsed <= 0:
        raise InvalidDuration()

    project_id = seen["project_id"]
    project = await db.get(Project, project_id) if project_id is not None else None
    return time_session_service.to_read(history, project)


async def cancel_active_session(
    db: AsyncSession,
    *,
    user_id: uuid.UUID,
    notifier: ActiveSessionNotifier | None = None,
    ip_address: str | None = None,
) -> None:
    """Discard the running timer without recording history."""
    active = await delete_active_session(db, user_id)

    await audit_service.log_event(
        db,
        AuditEvent.active_session_cancelled,
        user_id=user_id,
        entity_id=active.id,
        ip_address=ip_address,
    )

    await db.commit()
    (notifier or get_notifier()).publish(user_id)


def render_state(
    active: ActiveSession | None,
    project: Project | None,
    now: datetime | None = None,
) -> ActiveSessionState:
    if active is None:
        return ActiveSessionState(active=False)
    return ActiveSessionState(
        active=True,
        id=active.id,
        start_time=as_utc(active.start_time),
        mode=active.mode,
        project_id=active.project_id,
        description=active.description,
        target_seconds=active.target_seconds,
        pomodoro_phase=active.pomodoro_phase,
        pomodoro_cycle=active.pomodoro_cycle,
        elapsed_seconds=max(0, elapsed_seconds(active.start_time, now or utcnow())),
        project=ProjectSummary.model_validate(project) if project is not None else None,
    )


async def _fetch_state(db: AsyncSession, user_id: uuid.UUID) -> ActiveSessionState:
    result = await db.execute(
        select(ActiveSession, Project)
        .outerjoin(Project, Project.id == ActiveSession.project_id)
        .where(ActiveSession.user_id == user_id)
    )
    row = result.first()
    if row is None:
        return render_state(None, None)
    return render_state(row[0], row[1])


async def read_active_session(db: AsyncSession, user_id: uuid.UUID) -> ActiveSessionState:
    """Current active session with derived elapsed time. Raises NoActiveSession."""
    state = await _fetch_state(db, user_id)
    if not state.active:
        raise NoActiveSession()
    return state


async def load_active_state(
    session_factory: async_sessionmaker[AsyncSession],
    user_id: uuid.UUID,
) -> ActiveSessionState:
    """Fresh read in a short-lived session of its own; inactive when absent."""
    async with session_factory() as db:
        return await _fetch_state(db, user_id)
