from __future__ import annotations

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models import TenantSequence


logger = structlog.get_logger(__name__)

DEFAULT_PREFIXES = {
    'job': 'JOB',
    'estimate': 'EST',
    'invoice': 'INV',
}


def _locked_counter(db: Session, *, tenant_id: int, sequence_type: str) -> TenantSequence | None:
    return db.execute(
        select(TenantSequence)
        .where(TenantSequence.tenant_id == tenant_id, TenantSequence.sequence_type == sequence_type)
        .with_for_update()
    ).scalar_one_or_none()


def _create_counter(db: Session, *, tenant_id: int, sequence_type: str) -> None:
    try:
        with db.begin_nested():
            db.add(
                TenantSequence(
                    tenant_id=tenant_id,
                    sequence_type=sequence_type,
                    prefix=DEFAULT_PREFIXES[sequence_type],
                    current_value=0,
                )
            )
    except IntegrityError:
        # Another transaction created it first; its row is read back under lock.
        logger.info('sequence_counter_already_created', tenant_id=tenant_id, sequence_type=sequence_type)


def next_document_number(db: Session, *, tenant_id: int, sequence_type: str) -> str:
    """Allocate the next per-tenant number inside the caller's transaction.

    The counter row is locked so concurrent creators serialize on it. A
    missing counter is created in a savepoint so a concurrent first
    allocation cannot fail the caller on the primary key.
    """
    if sequence_type not in DEFAULT_PREFIXES:
        raise ValueError(f'Unknown sequence type: {sequence_type}')
    row = _locked_counter(db, tenant_id=tenant_id, sequence_type=sequence_type)
    if row is None:
        _create_counter(db, tenant_id=tenant_id, sequence_type=sequence_type)
        row = _locked_counter(db, tenant_id=tenant_id, sequence_type=sequence_type)
    row.current_value += 1
    db.flush()
    return f'{row.prefix}-{row.current_value:04d}'


def initialize_sequences(db: Session, *, tenant_id: int) -> None:
    for sequence_type, prefix in DEFAULT_PREFIXES.items():
        db.add(TenantSequence(tenant_id=tenant_id, sequence_type=sequence_type, prefix=prefix, current_value=0))
    db.flush()
