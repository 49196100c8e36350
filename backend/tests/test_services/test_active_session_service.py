"""Active session register and lifecycle tests."""

import asyncio
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from timekeeper.core.errors import (
    ConflictError,
    InvalidDuration,
    NoActiveSession,
    ProjectNotFound,
    ValidationError,
)
from timekeeper.core.notifier import ActiveSessionNotifier
from timekeeper.models.active_session import ActiveSession, PomodoroPhase
from timekeeper.models.audit import AuditLogEvent
from timekeeper.models.project import Project
from timekeeper.models.time_session import SessionMode, TimeSession
from timekeeper.models.user import User
from timekeeper.services import active_session_service, time_session_service


async def _create_user(db: AsyncSession, email: str = "timer@test.com") -> User:
    user = User(email=email)
    db.add(user)
    await db.flush()
    return user


async def _create_project(db: AsyncSession, user: User, name: str = "Thesis") -> Project:
    project = Project(user_id=user.id, name=name, color="#ff0000")
    db.add(project)
    await db.flush()
    return project


def _recorder(notifier: ActiveSessionNotifier, user_id: uuid.UUID) -> list:
    events = []
    notifier.subscribe(user_id, events.append)
    return events


async def _count(db: AsyncSession, model, user_id: uuid.UUID) -> int:
    result = await db.execute(select(func.count()).select_from(model).where(model.user_id == user_id))
    return result.scalar_one()


@pytest.mark.asyncio
async def test_pomodoro_start_update_stop_scenario(db_session: AsyncSession, notifier):
    user = await _create_user(db_session)
    start = datetime(2026, 3, 1, 9, 0, 0, tzinfo=timezone.utc)

    await active_session_service.start_active_session(
        db_session,
        user_id=user.id,
        mode=SessionMode.pomodoro,
        start_time=start,
        target_seconds=1500,
        pomodoro_phase=PomodoroPhase.work,
        pomodoro_cycle=0,
    )
    active = await active_session_service.get_active_session(db_session, user.id)
    assert active.pomodoro_cycle == 0
    assert active.target_seconds == 1500

    await active_session_service.start_active_session(
        db_session,
        user_id=user.id,
        mode=SessionMode.pomodoro,
        start_time=start,
        target_seconds=1500,
        pomodoro_phase=PomodoroPhase.work,
        pomodoro_cycle=1,
    )
    active = await active_session_service.get_active_session(db_session, user.id)
    assert active.pomodoro_cycle == 1
    assert await _count(db_session, ActiveSession, user.id) == 1

    history = await active_session_service.stop_active_session(
        db_session, user_id=user.id, now=start + timedelta(seconds=10)
    )
    assert history.duration_seconds == 10
    assert history.mode == SessionMode.pomodoro
    assert await active_session_service.get_active_session(db_session, user.id) is None
    assert await _count(db_session, TimeSession, user.id) == 1


@pytest.mark.asyncio
async def test_upsert_replaces_whole_record(db_session: AsyncSession):
    """Second upsert wins entirely, including fields it leaves unset."""
    user = await _create_user(db_session)
    project = await _create_project(db_session, user)

    first = await active_session_service.start_active_session(
        db_session,
        user_id=user.id,
        mode=SessionMode.timer,
        project_id=project.id,
        description="first",
        target_seconds=600,
    )
    second = await active_session_service.start_active_session(
        db_session,
        user_id=user.id,
        mode=SessionMode.stopwatch,
    )

    assert second.id == first.id
    assert second.mode == SessionMode.stopwatch
    assert second.project_id is None
    assert second.description is None
    assert second.target_seconds is None
    assert await _count(db_session, ActiveSession, user.id) == 1


@pytest.mark.asyncio
async def test_blank_description_is_stored_as_none(db_session: AsyncSession):
    user = await _create_user(db_session)
    active = await active_session_service.start_active_session(
        db_session, user_id=user.id, mode="stopwatch", description="   "
    )
    assert active.description is None


@pytest.mark.asyncio
async def test_start_rejects_unknown_mode(db_session: AsyncSession):
    user = await _create_user(db_session)
    with pytest.raises(ValidationError):
        await active_session_service.start_active_session(
            db_session, user_id=user.id, mode="marathon"
        )


@pytest.mark.asyncio
async def test_start_rejects_non_positive_target(db_session: AsyncSession):
    user = await _create_user(db_session)
    with pytest.raises(ValidationError):
        await active_session_service.start_active_session(
            db_session, user_id=user.id, mode="timer", target_seconds=0
        )


@pytest.mark.asyncio
async def test_start_with_foreign_project_is_not_found(db_session: AsyncSession, notifier):
    owner = await _create_user(db_session, "owner@test.com")
    intruder = await _create_user(db_session, "intruder@test.com")
    project = await _create_project(db_session, owner)
    events = _recorder(notifier, intruder.id)

    with pytest.raises(ProjectNotFound):
        await active_session_service.start_active_session(
            db_session, user_id=intruder.id, mode="stopwatch", project_id=project.id
        )

    assert events == []
    assert await active_session_service.get_active_session(db_session, intruder.id) is None


@pytest.mark.asyncio
async def test_each_write_notifies_exactly_once(db_session: AsyncSession, notifier):
    user = await _create_user(db_session)
    events = _recorder(notifier, user.id)
    start = datetime.now(timezone.utc) - timedelta(minutes=5)

    await active_session_service.start_active_session(
        db_session, user_id=user.id, mode="stopwatch", start_time=start
    )
    assert events == [user.id]

    await active_session_service.start_active_session(
        db_session, user_id=user.id, mode="stopwatch", start_time=start, description="renamed"
    )
    assert len(events) == 2

    await active_session_service.stop_active_session(db_session, user_id=user.id)
    assert len(events) == 3

    await active_session_service.start_active_session(db_session, user_id=user.id, mode="timer")
    await active_session_service.cancel_active_session(db_session, user_id=user.id)
    assert len(events) == 5


@pytest.mark.asyncio
async def test_notification_observes_committed_state(db_session: AsyncSession, notifier, session_factory):
    """A subscriber reading on notification sees the post-write row."""
    user = await _create_user(db_session)
    seen = []

    def on_change(user_id):
        seen.append(asyncio.ensure_future(
            active_session_service.load_active_state(session_factory, user_id)
        ))

    notifier.subscribe(user.id, on_change)
    await active_session_service.start_active_session(
        db_session, user_id=user.id, mode="timer", description="committed"
    )

    state = await seen[0]
    assert state.active is True
    assert state.description == "committed"


@pytest.mark.asyncio
async def test_stop_without_active_session(db_session: AsyncSession, notifier):
    user = await _create_user(db_session)
    events = _recorder(notifier, user.id)

    with pytest.raises(NoActiveSession):
        await active_session_service.stop_active_session(db_session, user_id=user.id)

    assert events == []
    assert await _count(db_session, TimeSession, user.id) == 0


@pytest.mark.asyncio
async def test_stop_with_non_positive_elapsed_discards_slot(db_session: AsyncSession, notifier):
    user = await _create_user(db_session)
    start = datetime(2026, 3, 1, 9, 0, 0, tzinfo=timezone.utc)
    await active_session_service.start_active_session(
        db_session, user_id=user.id, mode="stopwatch", start_time=start
    )
    events = _recorder(notifier, user.id)

    with pytest.raises(InvalidDuration):
        await active_session_service.stop_active_session(
            db_session, user_id=user.id, now=start - timedelta(seconds=3)
        )

    assert await active_session_service.get_active_session(db_session, user.id) is None
    assert await _count(db_session, TimeSession, user.id) == 0
    assert events == [user.id]


@pytest.mark.asyncio
async def test_stop_with_zero_elapsed_discards_slot(db_session: AsyncSession):
    user = await _create_user(db_session)
    start = datetime(2026, 3, 1, 9, 0, 0, tzinfo=timezone.utc)
    await active_session_service.start_active_session(
        db_session, user_id=user.id, mode="stopwatch", start_time=start
    )

    with pytest.raises(InvalidDuration):
        await active_session_service.stop_active_session(
            db_session, user_id=user.id, now=start + timedelta(milliseconds=900)
        )

    assert await active_session_service.get_active_session(db_session, user.id) is None
    assert await _count(db_session, TimeSession, user.id) == 0


@pytest.mark.asyncio
async def test_failed_promotion_leaves_active_session(db_session: AsyncSession, notifier, monkeypatch):
    user = await _create_user(db_session)
    user_id = user.id
    start = datetime.now(timezone.utc) - timedelta(minutes=1)
    await active_session_service.start_active_session(
        db_session, user_id=user.id, mode="timer", start_time=start, description="keep me"
    )
    events = _recorder(notifier, user.id)

    async def failing_record(*args, **kwargs):
        raise SQLAlchemyError("insert failed")

    monkeypatch.setattr(time_session_service, "record_time_session", failing_record)

    with pytest.raises(SQLAlchemyError):
        await active_session_service.stop_active_session(db_session, user_id=user.id)

    active = await active_session_service.get_active_session(db_session, user_id)
    assert active is not None
    assert active.description == "keep me"
    assert await _count(db_session, TimeSession, user_id) == 0
    assert events == []


@pytest.mark.asyncio
async def test_stop_conflicts_with_replace_during_promotion(
    db_session: AsyncSession, notifier, session_factory, monkeypatch
):
    """A PUT committed between the stop's read and delete keeps its timer."""
    user = await _create_user(db_session)
    user_id = user.id
    start = datetime.now(timezone.utc) - timedelta(minutes=10)
    await active_session_service.start_active_session(
        db_session, user_id=user_id, mode="timer", start_time=start, description="original"
    )
    events = _recorder(notifier, user_id)
    record = time_session_service.record_time_session

    async def record_after_replace(*args, **kwargs):
        async with session_factory() as other:
            await active_session_service.start_active_session(
                other,
                user_id=user_id,
                mode="stopwatch",
                start_time=start + timedelta(minutes=5),
                description="replaced",
            )
        return await record(*args, **kwargs)

    monkeypatch.setattr(time_session_service, "record_time_session", record_after_replace)

    with pytest.raises(ConflictError):
        await active_session_service.stop_active_session(db_session, user_id=user_id)

    active = await active_session_service.get_active_session(db_session, user_id)
    assert active is not None
    assert active.description == "replaced"
    assert active.mode == SessionMode.stopwatch
    assert await _count(db_session, TimeSession, user_id) == 0
    assert await _count(db_session, AuditLogEvent, user_id) == 2
    # Only the replacement notified
    assert events == [user_id]


@pytest.mark.asyncio
async def test_promotion_copies_fields(db_session: AsyncSession):
    user = await _create_user(db_session)
    project = await _create_project(db_session, user)
    start = datetime(2026, 3, 1, 9, 0, 0, tzinfo=timezone.utc)
    await active_session_service.start_active_session(
        db_session,
        user_id=user.id,
        mode="timer",
        start_time=start,
        project_id=project.id,
        description="Chapter 2",
        target_seconds=3600,
    )

    history = await active_session_service.stop_active_session(
        db_session, user_id=user.id, now=start + timedelta(minutes=25, seconds=30)
    )

    assert history.duration_seconds == 1530
    assert history.project_id == project.id
    assert history.project.name == "Thesis"
    assert history.description == "Chapter 2"
    assert history.mode == SessionMode.timer

    result = await db_session.execute(
        select(AuditLogEvent).where(
            AuditLogEvent.user_id == user.id, AuditLogEvent.event_type == "active_session.stopped"
        )
    )
    event = result.scalar_one()
    assert event.entity_id == history.id


@pytest.mark.asyncio
async def test_cancel_without_active_session(db_session: AsyncSession, notifier):
    user = await _create_user(db_session)
    events = _recorder(notifier, user.id)

    with pytest.raises(NoActiveSession):
        await active_session_service.cancel_active_session(db_session, user_id=user.id)
    assert events == []


@pytest.mark.asyncio
async def test_read_active_session_derives_elapsed(db_session: AsyncSession):
    user = await _create_user(db_session)
    project = await _create_project(db_session, user)
    start = datetime.now(timezone.utc) - timedelta(seconds=90)
    await active_session_service.start_active_session(
        db_session, user_id=user.id, mode="stopwatch", start_time=start, project_id=project.id
    )

    state = await active_session_service.read_active_session(db_session, user.id)

    assert state.active is True
    assert 89 <= state.elapsed_seconds <= 95
    assert state.project.color == "#ff0000"


@pytest.mark.asyncio
async def test_read_active_session_absent(db_session: AsyncSession):
    user = await _create_user(db_session)
    with pytest.raises(NoActiveSession):
        await active_session_service.read_active_session(db_session, user.id)


@pytest.mark.asyncio
async def test_upserts_from_separate_sessions_leave_one_row(db_session: AsyncSession, session_factory):
    """A writer that never read the row still replaces it instead of adding one."""
    user = await _create_user(db_session)
    await db_session.commit()
    payload_a = {"mode": "timer", "description": "A", "target_seconds": 600, "pomodoro_cycle": 2}
    payload_b = {"mode": "stopwatch", "description": "B", "target_seconds": None, "pomodoro_cycle": 0}

    async with session_factory() as first, session_factory() as second:
        await active_session_service.start_active_session(first, user_id=user.id, **payload_a)
        await active_session_service.start_active_session(second, user_id=user.id, **payload_b)

    active = await active_session_service.get_active_session(db_session, user.id)
    observed = {
        "mode": active.mode.value,
        "description": active.description,
        "target_seconds": active.target_seconds,
        "pomodoro_cycle": active.pomodoro_cycle,
    }
    assert observed == payload_b
    assert await _count(db_session, ActiveSession, user.id) == 1
