import uuid

from sqlalchemy import Boolean, ForeignKey, Integer
from sqlalchemy.orm import Mapped, mapped_column

from timekeeper.models.base import Base, TimestampMixin, generate_uuid

DEFAULT_WORK_MINUTES = 25
DEFAULT_SHORT_BREAK_MINUTES = 5
DEFAULT_LONG_BREAK_MINUTES = 15
DEFAULT_LONG_BREAK_INTERVAL = 4


class PomodoroSettings(TimestampMixin, Base):
    __tablename__ = "pomodoro_settings"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=generate_uuid)
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id"), unique=True, nullable=False, index=True
    )
    work_minutes: Mapped[int] = mapped_column(
        Integer, nullable=False, default=DEFAULT_WORK_MINUTES
    )
    short_break_minutes: Mapped[int] = mapped_column(
        Integer, nullable=False, default=DEFAULT_SHORT_BREAK_MINUTES
    )
    long_break_minutes: Mapped[int] = mapped_column(
        Integer, nullable=False, default=DEFAULT_LONG_BREAK_MINUTES
    )
    long_break_interval: Mapped[int] = mapped_column(
        Integer, nullable=False, default=DEFAULT_LONG_BREAK_INTERVAL
    )
    auto_start_break: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
