# Import all models so Base.metadata is populated for create_all.
from timekeeper.models.user import User  # noqa: F401
from timekeeper.models.access_token import AccessToken  # noqa: F401
from timekeeper.models.audit import AuditLogEvent  # noqa: F401
from timekeeper.models.project import Project  # noqa: F401
from timekeeper.models.time_session import SessionMode, TimeSession  # noqa: F401
from timekeeper.models.active_session import ActiveSession, PomodoroPhase  # noqa: F401
from timekeeper.models.pomodoro_settings import PomodoroSettings  # noqa: F401
