from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Generic, Iterator, TypeVar

from sqlalchemy import Select, func, select
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import Session

from app.auth import TenantContext
from app.config import settings
from app.errors import NotFoundError, ValidationError


T = TypeVar('T')


@dataclass(frozen=True)
class Page(Generic[T]):
    items: list[T]
    page: int
    page_size: int
    total: int


def now_utc() -> datetime:
    return datetime.now(tz=timezone.utc)


@contextmanager
def unit_of_work(db: Session) -> Iterator[Session]:
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise


def load_owned(
    db: Session,
    ctx: TenantContext,
    model: type[T],
    entity_id: int,
    *,
    label: str,
    for_update: bool = False,
) -> T:
    """Load a row by id inside the caller's tenant; anything else is a 404."""
    stmt = select(model).where(model.id == entity_id, model.tenant_id == ctx.tenant_id)
    if hasattr(model, 'deleted_at'):
        stmt = stmt.where(model.deleted_at.is_(None))
    if for_update:
        # Locked reads must see the committed row, not a stale identity-map copy.
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    row = db.execute(stmt).scalar_one_or_none()
    if row is None:
        raise NotFoundError(label)
    return row


def clamp_page(page: int, page_size: int | None) -> tuple[int, int]:
    size = page_size or settings.default_page_size
    return max(page, 1), min(max(size, 1), settings.max_page_size)


def paginate(db: Session, stmt: Select, *, page: int, page_size: int | None) -> Page:
    page, size = clamp_page(page, page_size)
    total = db.execute(select(func.count()).select_from(stmt.order_by(None).subquery())).scalar_one()
    items = db.execute(stmt.limit(size).offset((page - 1) * size)).scalars().all()
    return Page(items=list(items), page=page, page_size=size, total=int(total))


def apply_changes(entity: object, changes: dict) -> None:
    """Copy a partial update onto a row; explicit nulls on NOT NULL columns are refused."""
    columns = sa_inspect(entity).mapper.columns
    for key, value in changes.items():
        if value is None and key in columns and not columns[key].nullable:
            raise ValidationError(f'{key} cannot be null', field=key)
    for key, value in changes.items():
        setattr(entity, key, value)
