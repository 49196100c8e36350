"""Audit trail of writes made through the services.

Each event type knows which entity it is about and what was done to it, so
callers only name the event. Rows are written in the caller's transaction
and never updated or deleted by the application.
"""

import enum
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from timekeeper.models.audit import AuditLogEvent


class AuditEvent(str, enum.Enum):
    token_issued = "token.issued"
    token_revoked = "token.revoked"
    project_created = "project.created"
    project_updated = "project.updated"
    project_deleted = "project.deleted"
    session_created = "session.created"
    session_updated = "session.updated"
    session_deleted = "session.deleted"
    active_session_started = "active_session.started"
    active_session_stopped = "active_session.stopped"
    active_session_discarded = "active_session.discarded"
    active_session_cancelled = "active_session.cancelled"
    pomodoro_settings_saved = "settings.pomodoro_saved"


# event -> (entity_type, action)
_EVENT_TARGETS: dict[AuditEvent, tuple[str, str]] = {
    AuditEvent.token_issued: ("AccessToken", "create"),
    AuditEvent.token_revoked: ("AccessToken", "revoke"),
    AuditEvent.project_created: ("Project", "create"),
    AuditEvent.project_updated: ("Project", "update"),
    AuditEvent.project_deleted: ("Project", "delete"),
    AuditEvent.session_created: ("TimeSession", "create"),
    AuditEvent.session_updated: ("TimeSession", "update"),
    AuditEvent.session_deleted: ("TimeSession", "delete"),
    AuditEvent.active_session_started: ("ActiveSession", "upsert"),
    # A stop is recorded against the history row it produced
    AuditEvent.active_session_stopped: ("TimeSession", "promote"),
    AuditEvent.active_session_discarded: ("ActiveSession", "delete"),
    AuditEvent.active_session_cancelled: ("ActiveSession", "delete"),
    AuditEvent.pomodoro_settings_saved: ("PomodoroSettings", "upsert"),
}


async def log_event(
    db: AsyncSession,
    event: AuditEvent,
    *,
    user_id: uuid.UUID,
    entity_id: uuid.UUID,
    detail: dict | None = None,
    ip_address: str | None = None,
) -> AuditLogEvent:
    event = AuditEvent(event)
    entity_type, action = _EVENT_TARGETS[event]
    row = AuditLogEvent(
        user_id=user_id,
        event_type=event.value,
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        detail=detail,
        ip_address=ip_address,
    )
    db.add(row)
    await db.flush()
    return row
