from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.auth import TenantContext, get_current_context
from app.db import get_db
from app.schemas import ActivityOut
from app.services import activity_service

router = APIRouter(prefix='/activity', tags=['activity'])


@router.get('', response_model=list[ActivityOut])
def recent_activity(
    limit: int = Query(default=20, ge=1, le=activity_service.MAX_FEED_LIMIT),
    ctx: TenantContext = Depends(get_current_context),
    db: Session = Depends(get_db),
):
    return [ActivityOut.model_validate(row) for row in activity_service.list_recent_activity(db, ctx, limit=limit)]


@router.get('/{entity_type}/{entity_id}', response_model=list[ActivityOut])
def entity_activity(
    entity_type: str,
    entity_id: int,
    ctx: TenantContext = Depends(get_current_context),
    db: Session = Depends(get_db),
):
    rows = activity_service.list_entity_activity(db, ctx, entity_type=entity_type, entity_id=entity_id)
    return [ActivityOut.model_validate(row) for row in rows]
