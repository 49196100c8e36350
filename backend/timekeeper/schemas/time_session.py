import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from timekeeper.models.time_session import SessionMode
from timekeeper.schemas.project import ProjectSummary


class TimeSessionCreate(BaseModel):
    project_id: uuid.UUID | None = None
    description: str | None = Field(None, max_length=1000)
    start_time: datetime
    end_time: datetime
    # Optional; when given it must agree with end_time - start_time
    duration_seconds: int | None = Field(None, gt=0)
    mode: SessionMode


class TimeSessionUpdate(BaseModel):
    description: str | None = Field(None, max_length=1000)
    project_id: uuid.UUID | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None


class TimeSessionRead(BaseModel):
    id: uuid.UUID
    project_id: uuid.UUID | None = None
    description: str | None = None
    start_time: datetime
    end_time: datetime
    duration_seconds: int
    mode: SessionMode
    project: ProjectSummary | None = None

    model_config = {"from_attributes": True}


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class TimeSessionPage(BaseModel):
    data: list[TimeSessionRead]
    pagination: Pagination
