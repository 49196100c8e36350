"""Access token service: issue, list, revoke, authenticate.

Tokens are opaque 64-char hex strings. Revocation sets revoked_at;
a revoked token never authenticates again.
"""

import secrets
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from timekeeper.core.errors import TokenNotFound, Unauthenticated
from timekeeper.models.access_token import AccessToken
from timekeeper.models.base import utcnow
from timekeeper.models.user import User
from timekeeper.services import audit_service
from timekeeper.services.audit_service import AuditEvent


def generate_token() -> str:
    """Generate a cryptographically secure token (32 bytes, hex encoded)."""
    return secrets.token_hex(32)


async def issue_token(
    db: AsyncSession,
    *,
    user_id: uuid.UUID,
    ip_address: str | None = None,
) -> AccessToken:
    access_token = AccessToken(user_id=user_id, token=generate_token())
    db.add(access_token)
    await db.flush()

    await audit_service.log_event(
        db,
        AuditEvent.token_issued,
        user_id=user_id,
        entity_id=access_token.id,
        ip_address=ip_address,
    )

    return access_token


async def list_tokens(db: AsyncSession, user_id: uuid.UUID) -> list[AccessToken]:
    """List a user's tokens, newest first."""
    result = await db.execute(
        select(AccessToken)
        .where(AccessToken.user_id == user_id)
        .order_by(AccessToken.created_at.desc())
    )
    return list(result.scalars().all())


async def revoke_token(
    db: AsyncSession,
    *,
    token_id: uuid.UUID,
    user_id: uuid.UUID,
    ip_address: str | None = None,
) -> AccessToken:
    """Revoke one of the user's tokens. Raises TokenNotFound for foreign ids."""
    result = await db.execute(
        select(AccessToken).where(
            AccessToken.id == token_id,
            AccessToken.user_id == user_id,
        )
    )
    access_token = result.scalar_one_or_none()
    if access_token is None:
        raise TokenNotFound()

    if access_token.revoked_at is None:
        access_token.revoked_at = utcnow()
        await db.flush()

        await audit_service.log_event(
            db,
            AuditEvent.token_revoked,
            user_id=user_id,
            entity_id=access_token.id,
            ip_address=ip_address,
        )

    return access_token


async def authenticate(db: AsyncSession, token: str | None) -> User:
    """Resolve a presented token to its user and touch last_used_at.

    Raises Unauthenticated for missing, unknown, or revoked tokens.
    """
    if not token:
        raise Unauthenticated()

    result = await db.execute(
        select(AccessToken).where(
            AccessToken.token == token,
            AccessToken.revoked_at.is_(None),
        )
    )
    access_token = result.scalar_one_or_none()
    if access_token is None:
        raise Unauthenticated("Invalid token")

    user = await db.get(User, access_token.user_id)
    if user is None:
        raise Unauthenticated("Invalid token")

    access_token.last_used_at = utcnow()
    await db.flush()
    return user
