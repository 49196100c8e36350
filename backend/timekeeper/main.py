import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from timekeeper.config import settings
from timekeeper.core.errors import register_error_handlers
from timekeeper.core.middleware import AccessLogMiddleware, RequestIDMiddleware
from timekeeper.core.notifier import ActiveSessionNotifier, set_notifier
from timekeeper.core.rate_limit import RateLimitMiddleware
from timekeeper.routers import active_session, projects, reports, sessions, tokens
from timekeeper.routers import settings as settings_router

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger("timekeeper")


@asynccontextmanager
async def lifespan(application: FastAPI):
    """Create tables and the change notifier on startup; drop both on shutdown."""
    from timekeeper.dependencies import engine
    from timekeeper.models.base import Base
    import timekeeper.models  # noqa: F401  populate Base.metadata

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables verified/created")

    notifier = ActiveSessionNotifier(settings.notifier_max_subscribers_per_user)
    set_notifier(notifier)
    try:
        yield
    finally:
        notifier.clear()
        set_notifier(None)
        await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    version="0.1.0",
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    lifespan=lifespan,
)

# Middleware: last added = outermost = first to execute
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials="*" not in settings.cors_origins_list,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["x-request-id"],
)
app.add_middleware(RateLimitMiddleware)
app.add_middleware(AccessLogMiddleware)
app.add_middleware(RequestIDMiddleware)

register_error_handlers(app)

app.include_router(tokens.router)
app.include_router(projects.router)
# Before the sessions router so /sessions/active is not read as a session id
app.include_router(active_session.router)
app.include_router(sessions.router)
app.include_router(reports.router)
app.include_router(settings_router.router)


@app.get("/health")
async def health_check():
    return {"status": "ok", "app": settings.app_name, "version": "0.1.0"}
