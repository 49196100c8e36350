"""Reports: read-only aggregations over historical sessions.

Sessions are grouped by project. Sessions whose project was deleted are
grouped together under a null project.
"""

import uuid
from datetime import date, datetime, time, timezone

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from timekeeper.models.project import Project
from timekeeper.models.time_session import SessionMode, TimeSession
from timekeeper.schemas.project import ProjectSummary
from timekeeper.schemas.report import (
    PomodoroReport,
    ProjectPomodoroCount,
    ProjectTotal,
    ReportPeriod,
    SummaryReport,
)


def resolve_period(start: date | None, end: date | None) -> ReportPeriod:
    """Inclusive whole UTC days; either bound defaults to today."""
    today = datetime.now(timezone.utc).date()
    return ReportPeriod(
        start=datetime.combine(start or today, time.min, tzinfo=timezone.utc),
        end=datetime.combine(end or today, time.max, tzinfo=timezone.utc),
    )


async def _grouped(
    db: AsyncSession,
    user_id: uuid.UUID,
    period: ReportPeriod,
    mode: SessionMode | None = None,
) -> list[tuple[ProjectSummary | None, int, int]]:
    conditions = [
        TimeSession.user_id == user_id,
        TimeSession.start_time >= period.start,
        TimeSession.start_time <= period.end,
    ]
    if mode is not None:
        conditions.append(TimeSession.mode == mode)

    result = await db.execute(
        select(
            Project,
            func.coalesce(func.sum(TimeSession.duration_seconds), 0),
            func.count(TimeSession.id),
        )
        .select_from(TimeSession)
        .outerjoin(Project, Project.id == TimeSession.project_id)
        .where(*conditions)
        .group_by(TimeSession.project_id, Project.id)
        .order_by(func.sum(TimeSession.duration_seconds).desc())
    )
    return [
        (
            ProjectSummary.model_validate(project) if project is not None else None,
            int(total_seconds),
            int(count),
        )
        for project, total_seconds, count in result.all()
    ]


async def summary_report(
    db: AsyncSession,
    user_id: uuid.UUID,
    *,
    start: date | None = None,
    end: date | None = None,
) -> SummaryReport:
    """Total time and session count per project over the period."""
    period = resolve_period(start, end)
    groups = await _grouped(db, user_id, period)

    total_seconds = sum(seconds for _, seconds, _ in groups)
    return SummaryReport(
        period=period,
        total_seconds=total_seconds,
        total_hours=total_seconds / 3600,
        session_count=sum(count for _, _, count in groups),
        by_project=[
            ProjectTotal(project=project, total_seconds=seconds, session_count=count)
            for project, seconds, count in groups
        ],
    )


async def pomodoro_report(
    db: AsyncSession,
    user_id: uuid.UUID,
    *,
    start: date | None = None,
    end: date | None = None,
) -> PomodoroReport:
    """Number of pomodoro-mode sessions per project over the period."""
    period = resolve_period(start, end)
    groups = await _grouped(db, user_id, period, mode=SessionMode.pomodoro)

    return PomodoroReport(
        period=period,
        total=sum(count for _, _, count in groups),
        by_project=[
            ProjectPomodoroCount(project=project, count=count)
            for project, _, count in groups
        ],
    )
