"""Report routes: time per project and pomodoro counts over a date range."""

from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from timekeeper.core.auth import get_current_user
from timekeeper.dependencies import get_db
from timekeeper.models.user import User
from timekeeper.schemas.report import PomodoroReport, SummaryReport
from timekeeper.services import report_service

router = APIRouter(prefix="/reports", tags=["reports"])


@router.get("/summary", response_model=SummaryReport)
async def get_summary(
    start: date | None = Query(None, alias="from"),
    end: date | None = Query(None, alias="to"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await report_service.summary_report(db, current_user.id, start=start, end=end)


@router.get("/pomodoro", response_model=PomodoroReport)
async def get_pomodoro_counts(
    start: date | None = Query(None, alias="from"),
    end: date | None = Query(None, alias="to"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await report_service.pomodoro_report(db, current_user.id, start=start, end=end)
