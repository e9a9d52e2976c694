from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.auth import TenantContext
from app.errors import ValidationError
from app.models import User
from app.services.permission_service import Action, Resource, assert_permission
from app.services.tenant_scope import load_owned, unit_of_work


def list_technicians(db: Session, ctx: TenantContext) -> list[User]:
    """Active users that can be put on the schedule, by name."""
    assert_permission(ctx, Resource.SCHEDULE, Action.READ)
    return list(
        db.execute(
            select(User)
            .where(User.tenant_id == ctx.tenant_id, User.is_active.is_(True), User.can_be_dispatched.is_(True))
            .order_by(User.first_name, User.last_name, User.id)
        ).scalars().all()
    )


def register_push_token(db: Session, ctx: TenantContext, *, token: str) -> User:
    token = token.strip()
    if not token:
        raise ValidationError('Push token is required', field='token')
    with unit_of_work(db):
        user = load_owned(db, ctx, User, ctx.user_id, label='User')
        user.push_token = token
    return user
