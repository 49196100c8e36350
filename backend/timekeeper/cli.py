"""Operator commands.

The HTTP API only issues tokens to callers that already hold one, so the
first token of an installation comes from here:

    timekeeper create-token --email me@example.com
"""

import asyncio

import typer
from rich.console import Console
from rich.panel import Panel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from timekeeper.models.access_token import AccessToken
from timekeeper.models.user import User
from timekeeper.services import token_service

app = typer.Typer(help="Timekeeper backend administration.", no_args_is_help=True)
console = Console()

DEFAULT_EMAIL = "user@example.com"


async def bootstrap_token(db: AsyncSession, email: str = DEFAULT_EMAIL) -> tuple[User, AccessToken, bool]:
    """Find the installation's user (creating it if there is none) and issue a token.

    Returns (user, token, created) where created tells whether the user is new.
    """
    result = await db.execute(select(User).order_by(User.created_at.asc()).limit(1))
    user = result.scalar_one_or_none()
    created = False
    if user is None:
        user = User(email=email)
        db.add(user)
        await db.flush()
        created = True

    access_token = await token_service.issue_token(db, user_id=user.id)
    await db.commit()
    return user, access_token, created


async def _create_token(email: str) -> tuple[User, AccessToken, bool]:
    from timekeeper.dependencies import async_session_factory, engine
    from timekeeper.models.base import Base
    import timekeeper.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        async with async_session_factory() as db:
            return await bootstrap_token(db, email)
    finally:
        await engine.dispose()


@app.command("create-token")
def create_token(
    email: str = typer.Option(DEFAULT_EMAIL, help="Email for the user created on first run."),
):
    """Issue an access token, creating the default user on first run."""
    user, access_token, created = asyncio.run(_create_token(email))
    if created:
        console.print(f"Created user [bold]{user.id}[/bold]")
    console.print(
        Panel(
            access_token.token,
            title="Access token",
            subtitle="store it somewhere safe",
        )
    )


@app.command()
def serve(
    host: str = typer.Option(None, help="Bind address (defaults to HOST)."),
    port: int = typer.Option(None, help="Bind port (defaults to PORT)."),
    reload: bool = typer.Option(False, help="Reload on code changes."),
):
    """Run the HTTP API under uvicorn."""
    import uvicorn

    from timekeeper.config import settings

    uvicorn.run(
        "timekeeper.main:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )


@app.callback()
def main():
    """Timekeeper backend administration."""


if __name__ == "__main__":
    app()
