from __future__ import annotations

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.auth import TenantContext
from app.models import ActivityLog
from app.services.permission_service import Action, Resource, assert_permission


logger = structlog.get_logger(__name__)

MAX_FEED_LIMIT = 100


def log_activity(
    db: Session,
    ctx: TenantContext,
    *,
    entity_type: str,
    entity_id: int,
    action: str,
    changes: dict | None = None,
    ip: str | None = None,
) -> ActivityLog | None:
    """Append one audit row in its own commit, after the domain change committed.

    Failures are logged and swallowed so they never undo or fail the
    operation that triggered them.
    """
    entry = ActivityLog(
        tenant_id=ctx.tenant_id,
        user_id=ctx.user_id,
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        changes=changes,
        ip=ip,
    )
    try:
        db.add(entry)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.warning(
            'activity_log_write_failed',
            tenant_id=ctx.tenant_id,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            exc_info=True,
        )
        return None
    return entry


def list_recent_activity(db: Session, ctx: TenantContext, *, limit: int = 20) -> list[ActivityLog]:
    assert_permission(ctx, Resource.REPORTS, Action.READ)
    limit = min(max(limit, 1), MAX_FEED_LIMIT)
    return db.execute(
        select(ActivityLog)
        .where(ActivityLog.tenant_id == ctx.tenant_id)
        .order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())
        .limit(limit)
    ).scalars().all()


def list_entity_activity(db: Session, ctx: TenantContext, *, entity_type: str, entity_id: int) -> list[ActivityLog]:
    assert_permission(ctx, Resource.REPORTS, Action.READ)
    return db.execute(
        select(ActivityLog)
        .where(
            ActivityLog.tenant_id == ctx.tenant_id,
            ActivityLog.entity_type == entity_type,
            ActivityLog.entity_id == entity_id,
        )
        .order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())
    ).scalars().all()
