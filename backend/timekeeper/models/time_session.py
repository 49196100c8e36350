import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, Enum, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from timekeeper.models.base import Base, generate_uuid


class SessionMode(str, enum.Enum):
    stopwatch = "stopwatch"
    timer = "timer"
    pomodoro = "pomodoro"


class TimeSession(Base):
    """Completed (historical) work session.

    duration_seconds is always derived from end_time - start_time by the
    service layer; it is never trusted from a client on its own.
    """

    __tablename__ = "time_sessions"
    __table_args__ = (
        Index("ix_time_sessions_user_id_start_time", "user_id", "start_time"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=generate_uuid)
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    project_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("projects.id", ondelete="SET NULL"), nullable=True, index=True
    )
    description: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    duration_seconds: Mapped[int] = mapped_column(Integer, nullable=False)
    mode: Mapped[SessionMode] = mapped_column(
        Enum(SessionMode, native_enum=False), nullable=False
    )
