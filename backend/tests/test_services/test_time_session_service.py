"""Historical session service tests."""

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from timekeeper.core.errors import ProjectNotFound, SessionNotFound, ValidationError
from timekeeper.models.time_session import SessionMode
from timekeeper.models.user import User
from timekeeper.services import project_service, time_session_service

START = datetime(2026, 3, 1, 9, 0, 0, tzinfo=timezone.utc)


async def _create_user(db: AsyncSession, email: str = "history@test.com") -> User:
    user = User(email=email)
    db.add(user)
    await db.flush()
    return user


async def _record(db, user, *, offset_hours=0, minutes=30, mode=SessionMode.stopwatch, **kwargs):
    start = START + timedelta(hours=offset_hours)
    return await time_session_service.create_time_session(
        db,
        user_id=user.id,
        start_time=start,
        end_time=start + timedelta(minutes=minutes),
        mode=mode,
        **kwargs,
    )


def test_normalize_description():
    assert time_session_service.normalize_description(None) is None
    assert time_session_service.normalize_description("   ") is None
    assert time_session_service.normalize_description("  notes ") == "notes"


def test_compute_duration_rounds_down():
    assert time_session_service.compute_duration(START, START + timedelta(seconds=59.9)) == 59
    assert time_session_service.compute_duration(START, START) == 0


@pytest.mark.asyncio
async def test_create_derives_duration(db_session: AsyncSession):
    user = await _create_user(db_session)
    project = await project_service.create_project(
        db_session, user_id=user.id, name="Thesis", color="#123456"
    )

    session = await _record(db_session, user, minutes=45, project_id=project.id, description=" draft ")

    assert session.duration_seconds == 2700
    assert session.description == "draft"
    assert session.project.name == "Thesis"


@pytest.mark.asyncio
async def test_create_accepts_matching_duration(db_session: AsyncSession):
    user = await _create_user(db_session)
    session = await _record(db_session, user, minutes=10, duration_seconds=600)
    assert session.duration_seconds == 600


@pytest.mark.asyncio
async def test_create_rejects_mismatched_duration(db_session: AsyncSession):
    user = await _create_user(db_session)
    with pytest.raises(ValidationError) as exc_info:
        await _record(db_session, user, minutes=10, duration_seconds=601)
    assert exc_info.value.field == "duration_seconds"
    assert exc_info.value.errors[0]["loc"] == ["duration_seconds"]


@pytest.mark.asyncio
async def test_create_rejects_non_positive_range(db_session: AsyncSession):
    user = await _create_user(db_session)
    with pytest.raises(ValidationError):
        await _record(db_session, user, minutes=0)
    with pytest.raises(ValidationError):
        await _record(db_session, user, minutes=-5)


@pytest.mark.asyncio
async def test_create_with_foreign_project(db_session: AsyncSession):
    owner = await _create_user(db_session, "owner@test.com")
    other = await _create_user(db_session, "other@test.com")
    project = await project_service.create_project(
        db_session, user_id=owner.id, name="Private", color="#000000"
    )

    with pytest.raises(ProjectNotFound):
        await _record(db_session, other, project_id=project.id)


@pytest.mark.asyncio
async def test_list_newest_first_with_pagination(db_session: AsyncSession):
    user = await _create_user(db_session)
    for hour in range(5):
        await _record(db_session, user, offset_hours=hour)

    page = await time_session_service.list_time_sessions(db_session, user.id, page=1, limit=2)

    assert page.pagination.total == 5
    assert page.pagination.total_pages == 3
    assert len(page.data) == 2
    assert page.data[0].start_time.replace(tzinfo=timezone.utc) == START + timedelta(hours=4)

    last = await time_session_service.list_time_sessions(db_session, user.id, page=3, limit=2)
    assert len(last.data) == 1


@pytest.mark.asyncio
async def test_list_filters(db_session: AsyncSession):
    user = await _create_user(db_session)
    project = await project_service.create_project(
        db_session, user_id=user.id, name="Thesis", color="#123456"
    )
    await _record(db_session, user, offset_hours=0, project_id=project.id)
    await _record(db_session, user, offset_hours=2)
    await _record(db_session, user, offset_hours=26, project_id=project.id)

    by_project = await time_session_service.list_time_sessions(
        db_session, user.id, project_id=project.id
    )
    assert by_project.pagination.total == 2

    first_day = await time_session_service.list_time_sessions(
        db_session,
        user.id,
        start_from=START,
        start_to=START + timedelta(hours=23),
    )
    assert first_day.pagination.total == 2


@pytest.mark.asyncio
async def test_list_is_scoped_to_owner(db_session: AsyncSession):
    owner = await _create_user(db_session, "owner@test.com")
    other = await _create_user(db_session, "other@test.com")
    await _record(db_session, owner)

    page = await time_session_service.list_time_sessions(db_session, other.id)
    assert page.pagination.total == 0
    assert page.data == []


@pytest.mark.asyncio
async def test_update_recomputes_duration(db_session: AsyncSession):
    user = await _create_user(db_session)
    session = await _record(db_session, user, minutes=30)

    updated = await time_session_service.update_time_session(
        db_session,
        session_id=session.id,
        user_id=user.id,
        changes={"end_time": START + timedelta(hours=1)},
    )

    assert updated.duration_seconds == 3600


@pytest.mark.asyncio
async def test_update_rejects_inverted_range(db_session: AsyncSession):
    user = await _create_user(db_session)
    session = await _record(db_session, user)

    with pytest.raises(ValidationError):
        await time_session_service.update_time_session(
            db_session,
            session_id=session.id,
            user_id=user.id,
            changes={"end_time": START - timedelta(minutes=1)},
        )


@pytest.mark.asyncio
async def test_update_links_and_unlinks_project(db_session: AsyncSession):
    user = await _create_user(db_session)
    project = await project_service.create_project(
        db_session, user_id=user.id, name="Thesis", color="#123456"
    )
    session = await _record(db_session, user, description="keep")

    linked = await time_session_service.update_time_session(
        db_session, session_id=session.id, user_id=user.id, changes={"project_id": project.id}
    )
    assert linked.project.name == "Thesis"
    assert linked.description == "keep"

    unlinked = await time_session_service.update_time_session(
        db_session, session_id=session.id, user_id=user.id, changes={"project_id": None}
    )
    assert unlinked.project_id is None
    assert unlinked.project is None


@pytest.mark.asyncio
async def test_update_and_delete_foreign_session(db_session: AsyncSession):
    owner = await _create_user(db_session, "owner@test.com")
    other = await _create_user(db_session, "other@test.com")
    session = await _record(db_session, owner)

    with pytest.raises(SessionNotFound):
        await time_session_service.update_time_session(
            db_session, session_id=session.id, user_id=other.id, changes={"description": "x"}
        )
    with pytest.raises(SessionNotFound):
        await time_session_service.delete_time_session(
            db_session, session_id=session.id, user_id=other.id
        )


@pytest.mark.asyncio
async def test_delete_time_session(db_session: AsyncSession):
    user = await _create_user(db_session)
    session = await _record(db_session, user)

    await time_session_service.delete_time_session(db_session, session_id=session.id, user_id=user.id)

    page = await time_session_service.list_time_sessions(db_session, user.id)
    assert page.pagination.total == 0
    with pytest.raises(SessionNotFound):
        await time_session_service.delete_time_session(
            db_session, session_id=uuid.uuid4(), user_id=user.id
        )
