from pydantic import BaseModel, Field

from timekeeper.models.pomodoro_settings import (
    DEFAULT_LONG_BREAK_INTERVAL,
    DEFAULT_LONG_BREAK_MINUTES,
    DEFAULT_SHORT_BREAK_MINUTES,
    DEFAULT_WORK_MINUTES,
)


class PomodoroSettingsWrite(BaseModel):
    """Omitted fields fall back to the defaults, not to the stored values."""

    work_minutes: int = Field(DEFAULT_WORK_MINUTES, gt=0)
    short_break_minutes: int = Field(DEFAULT_SHORT_BREAK_MINUTES, gt=0)
    long_break_minutes: int = Field(DEFAULT_LONG_BREAK_MINUTES, gt=0)
    long_break_interval: int = Field(DEFAULT_LONG_BREAK_INTERVAL, gt=0)
    auto_start_break: bool = False


class PomodoroSettingsRead(BaseModel):
    work_minutes: int
    short_break_minutes: int
    long_break_minutes: int
    long_break_interval: int
    auto_start_break: bool

    model_config = {"from_attributes": True}
