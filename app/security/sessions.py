from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone

from fastapi import FastAPI, Request
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.auth import TenantContext
from app.config import settings
from app.models import ApiSession, User
from app.services.permission_service import DEFAULT_PERMISSIONS, PermissionMatrix


BEARER_PREFIX = 'bearer '


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _session_expiry() -> datetime:
    return _now() + timedelta(minutes=settings.api_session_ttl_minutes)


def create_api_session(db: Session, user_id: int, ip: str | None = None, user_agent: str | None = None) -> str:
    token = secrets.token_urlsafe(48)
    db.add(
        ApiSession(
            session_token=token,
            user_id=user_id,
            ip=ip,
            user_agent=user_agent,
            expires_at=_session_expiry(),
        )
    )
    db.flush()
    return token


def revoke_api_session(db: Session, token: str) -> None:
    session = db.execute(select(ApiSession).where(ApiSession.session_token == token)).scalar_one_or_none()
    if not session or session.revoked_at is not None:
        return
    session.revoked_at = _now()


def bearer_token(request: Request) -> str | None:
    header = request.headers.get('authorization', '')
    if not header.lower().startswith(BEARER_PREFIX):
        return None
    return header[len(BEARER_PREFIX):].strip() or None


def load_context_from_token(
    db: Session,
    token: str | None,
    *,
    permissions: PermissionMatrix = DEFAULT_PERMISSIONS,
) -> TenantContext | None:
    if not token:
        return None

    now = _now()
    # Expiry is compared in SQL; SQLite hands back naive datetimes.
    row = db.execute(
        select(ApiSession, User)
        .join(User, User.id == ApiSession.user_id)
        .where(
            ApiSession.session_token == token,
            ApiSession.revoked_at.is_(None),
            ApiSession.expires_at > now,
            User.is_active.is_(True),
        )
    ).one_or_none()
    if not row:
        return None

    api_session, user = row
    api_session.last_seen_at = now
    api_session.expires_at = _session_expiry()
    return TenantContext(
        user_id=user.id,
        tenant_id=user.tenant_id,
        role=user.role,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        permissions=permissions,
    )


def install_api_session_middleware(app: FastAPI) -> None:
    @app.middleware('http')
    async def api_session_middleware(request: Request, call_next):
        token = bearer_token(request)
        context = None
        if token:
            with request.app.state.session_factory() as db:
                context = load_context_from_token(db, token, permissions=request.app.state.permissions)
                db.commit()
        request.state.tenant_context = context
        return await call_next(request)
