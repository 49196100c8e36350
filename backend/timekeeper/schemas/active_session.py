import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from timekeeper.models.active_session import PomodoroPhase
from timekeeper.models.time_session import SessionMode
from timekeeper.schemas.project import ProjectSummary


class ActiveSessionWrite(BaseModel):
    """Full replacement payload for the user's active session."""

    mode: SessionMode
    start_time: datetime | None = None
    project_id: uuid.UUID | None = None
    description: str | None = Field(None, max_length=1000)
    target_seconds: int | None = Field(None, gt=0)
    pomodoro_phase: PomodoroPhase | None = None
    pomodoro_cycle: int = Field(0, ge=0)


class ActiveSessionState(BaseModel):
    """Snapshot pushed to clients. Inactive snapshots only carry the flag."""

    active: bool
    id: uuid.UUID | None = None
    start_time: datetime | None = None
    mode: SessionMode | None = None
    project_id: uuid.UUID | None = None
    description: str | None = None
    target_seconds: int | None = None
    pomodoro_phase: PomodoroPhase | None = None
    pomodoro_cycle: int | None = None
    elapsed_seconds: int = 0
    project: ProjectSummary | None = None

    def to_payload(self) -> dict:
        if not self.active:
            return {"active": False, "elapsed_seconds": 0}
        return self.model_dump(mode="json")
