"""Active session routes: the running timer and its live stream.

Endpoints:
- GET /sessions/active: Current timer with derived elapsed time
- PUT /sessions/active: Start a timer or replace the running one
- DELETE /sessions/active: Discard the running timer
- POST /sessions/active/stop: Turn the running timer into a historical session
- GET /sessions/active/stream: Server-sent events with live timer state
"""

from functools import partial

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from timekeeper.config import settings
from timekeeper.core.auth import get_current_user, get_stream_user
from timekeeper.core.notifier import ActiveSessionNotifier, get_notifier
from timekeeper.core.streaming import EventStreamResponse
from timekeeper.dependencies import get_db, get_session_factory
from timekeeper.models.user import User
from timekeeper.schemas.active_session import ActiveSessionState, ActiveSessionWrite
from timekeeper.schemas.time_session import TimeSessionRead
from timekeeper.services import active_session_service
from timekeeper.services.active_session_stream import ActiveSessionStream

router = APIRouter(prefix="/sessions/active", tags=["active session"])


@router.get("", response_model=ActiveSessionState)
async def get_active_session(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await active_session_service.read_active_session(db, current_user.id)


@router.put("", response_model=ActiveSessionState)
async def put_active_session(
    body: ActiveSessionWrite,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    notifier: ActiveSessionNotifier = Depends(get_notifier),
):
    ip = request.client.host if request.client else None
    await active_session_service.start_active_session(
        db,
        user_id=current_user.id,
        mode=body.mode,
        start_time=body.start_time,
        project_id=body.project_id,
        description=body.description,
        target_seconds=body.target_seconds,
        pomodoro_phase=body.pomodoro_phase,
        pomodoro_cycle=body.pomodoro_cycle,
        notifier=notifier,
        ip_address=ip,
    )
    return await active_session_service.read_active_session(db, current_user.id)


@router.delete("", status_code=204)
async def cancel_active_session(
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    notifier: ActiveSessionNotifier = Depends(get_notifier),
):
    ip = request.client.host if request.client else None
    await active_session_service.cancel_active_session(
        db, user_id=current_user.id, notifier=notifier, ip_address=ip
    )
    return Response(status_code=204)


@router.post("/stop", status_code=201, response_model=TimeSessionRead)
async def stop_active_session(
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    notifier: ActiveSessionNotifier = Depends(get_notifier),
):
    """Promote the running timer.

    400 (timer discarded) when no time elapsed, 409 when a replace landed
    while stopping.
    """
    ip = request.client.host if request.client else None
    return await active_session_service.stop_active_session(
        db, user_id=current_user.id, notifier=notifier, ip_address=ip
    )


@router.get("/stream")
async def stream_active_session(
    request: Request,
    current_user: User = Depends(get_stream_user),
    notifier: ActiveSessionNotifier = Depends(get_notifier),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
):
    """Push the timer state on connect, on every change, and once per tick."""
    stream = ActiveSessionStream(
        current_user.id,
        loader=partial(active_session_service.load_active_state, session_factory),
        notifier=notifier,
        tick_interval=settings.stream_tick_seconds,
        refresh_window=settings.stream_refresh_window_seconds,
        max_lifetime=settings.stream_max_lifetime_seconds,
    )
    # Subscribe before responding so the per-user cap surfaces as a 429
    stream.open()
    return EventStreamResponse(stream.events(request.is_disconnected), on_close=stream.close)
