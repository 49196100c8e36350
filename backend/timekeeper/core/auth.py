"""Authentication: resolve a bearer token (header or query string) to a user.

EventSource clients cannot send headers, so ?token= is accepted as well.
"""

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from timekeeper.dependencies import get_db, get_session_factory
from timekeeper.models.user import User
from timekeeper.services import token_service

BEARER_PREFIX = "Bearer "
TOKEN_QUERY_PARAM = "token"


def extract_token(request: Request) -> str | None:
    """Pull the credential from the Authorization header, falling back to ?token=."""
    header = request.headers.get("Authorization", "")
    if header.startswith(BEARER_PREFIX):
        token = header[len(BEARER_PREFIX):].strip()
        if token:
            return token
    return request.query_params.get(TOKEN_QUERY_PARAM) or None


async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> User:
    """FastAPI dependency: validate the token and return the current user.

    Raises Unauthenticated (401) if the token is missing, unknown, or revoked.
    """
    user = await token_service.authenticate(db, extract_token(request))
    request.state.user_id = user.id
    return user


async def get_stream_user(
    request: Request,
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> User:
    """Authenticate a long-lived stream in a session of its own.

    The request-scoped session is only committed once the response ends, which
    for a stream is when the client leaves; the last_used_at write would hold
    its transaction open that long.
    """
    async with session_factory() as db:
        user = await token_service.authenticate(db, extract_token(request))
        await db.commit()
    request.state.user_id = user.id
    return user
