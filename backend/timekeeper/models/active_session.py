import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from timekeeper.models.base import Base, generate_uuid
from timekeeper.models.time_session import SessionMode


class PomodoroPhase(str, enum.Enum):
    work = "work"
    short_break = "shortBreak"
    long_break = "longBreak"


class ActiveSession(Base):
    """The single in-flight timer of a user.

    One row per user (unique user_id). Elapsed time is never stored; readers
    derive it from start_time.
    """

    __tablename__ = "active_sessions"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=generate_uuid)
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id"), unique=True, nullable=False, index=True
    )
    project_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("projects.id", ondelete="SET NULL"), nullable=True
    )
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    mode: Mapped[SessionMode] = mapped_column(
        Enum(SessionMode, native_enum=False), nullable=False
    )
    description: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    target_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    pomodoro_phase: Mapped[PomodoroPhase | None] = mapped_column(
        Enum(PomodoroPhase, native_enum=False), nullable=True
    )
    pomodoro_cycle: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
