"""Token routes: issue, list, revoke access tokens."""

import uuid

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from timekeeper.core.auth import get_current_user
from timekeeper.dependencies import get_db
from timekeeper.models.user import User
from timekeeper.schemas.token import TokenIssued, TokenRead
from timekeeper.services import token_service

router = APIRouter(prefix="/tokens", tags=["tokens"])


@router.post("", status_code=201, response_model=TokenIssued)
async def issue_token(
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    ip = request.client.host if request.client else None
    return await token_service.issue_token(db, user_id=current_user.id, ip_address=ip)


@router.get("", response_model=list[TokenRead])
async def list_tokens(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await token_service.list_tokens(db, current_user.id)


@router.delete("/{token_id}", status_code=204)
async def revoke_token(
    token_id: uuid.UUID,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    ip = request.client.host if request.client else None
    await token_service.revoke_token(
        db, token_id=token_id, user_id=current_user.id, ip_address=ip
    )
    return Response(status_code=204)
