from __future__ import annotations

import structlog
from sqlalchemy.orm import Session

from app.models import Tenant
from app.services.sequence_service import initialize_sequences
from app.services.tenant_scope import unit_of_work


logger = structlog.get_logger(__name__)


def provision_tenant(db: Session, *, name: str, slug: str) -> Tenant:
    """Create a tenant together with its document-number counters."""
    with unit_of_work(db):
        tenant = Tenant(name=name, slug=slug)
        db.add(tenant)
        db.flush()
        initialize_sequences(db, tenant_id=tenant.id)
    logger.info('tenant_provisioned', tenant_id=tenant.id, slug=slug)
    return tenant
