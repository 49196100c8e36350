from datetime import datetime

from pydantic import BaseModel, Field

from timekeeper.schemas.project import ProjectSummary


class ReportPeriod(BaseModel):
    start: datetime = Field(serialization_alias="from")
    end: datetime = Field(serialization_alias="to")


class ProjectTotal(BaseModel):
    project: ProjectSummary | None = None
    total_seconds: int
    session_count: int


class SummaryReport(BaseModel):
    period: ReportPeriod
    total_seconds: int
    total_hours: float
    session_count: int
    by_project: list[ProjectTotal]


class ProjectPomodoroCount(BaseModel):
    project: ProjectSummary | None = None
    count: int


class PomodoroReport(BaseModel):
    period: ReportPeriod
    total: int
    by_project: list[ProjectPomodoroCount]
