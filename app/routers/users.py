from __future__ import annotations

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from app.auth import TenantContext, get_current_context
from app.db import get_db
from app.schemas import PushTokenIn
from app.services import team_service

router = APIRouter(prefix='/users', tags=['users'])


@router.get('/me')
def me(ctx: TenantContext = Depends(get_current_context)) -> dict:
    return {
        'id': ctx.user_id,
        'tenant_id': ctx.tenant_id,
        'role': ctx.role.value,
        'email': ctx.email,
        'first_name': ctx.first_name,
        'last_name': ctx.last_name,
    }


@router.post('/me/push-token', status_code=204)
def register_push_token(
    payload: PushTokenIn,
    ctx: TenantContext = Depends(get_current_context),
    db: Session = Depends(get_db),
):
    team_service.register_push_token(db, ctx, token=payload.token)
    return Response(status_code=204)
