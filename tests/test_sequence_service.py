from __future__ import annotations

import unittest

from sqlalchemy import select

from app.models import Tenant, TenantSequence
from app.services import sequence_service
from tests.support import DatabaseTestCase


class SequenceServiceTests(DatabaseTestCase):
    def _next(self, tenant_id: int, sequence_type: str) -> str:
        number = sequence_service.next_document_number(self.db, tenant_id=tenant_id, sequence_type=sequence_type)
        self.db.commit()
        return number

    def _bare_tenant(self) -> Tenant:
        tenant = Tenant(name='Initech', slug='initech')
        self.db.add(tenant)
        self.db.commit()
        return tenant

    def test_provisioned_tenant_has_every_counter(self) -> None:
        rows = self.db.execute(
            select(TenantSequence).where(TenantSequence.tenant_id == self.tenant.id)
        ).scalars().all()
        self.assertEqual(
            {row.sequence_type: row.prefix for row in rows},
            {'job': 'JOB', 'estimate': 'EST', 'invoice': 'INV'},
        )
        self.assertEqual(self._next(self.tenant.id, 'job'), 'JOB-0001')
        self.assertEqual(self._next(self.tenant.id, 'job'), 'JOB-0002')
        self.assertEqual(self._next(self.tenant.id, 'estimate'), 'EST-0001')

    def test_missing_counter_is_created_on_first_use(self) -> None:
        tenant = self._bare_tenant()
        self.assertEqual(self._next(tenant.id, 'invoice'), 'INV-0001')
        self.assertEqual(self._next(tenant.id, 'invoice'), 'INV-0002')

    def test_counter_created_by_another_session_is_reused(self) -> None:
        tenant = self._bare_tenant()
        tenant_id = tenant.id
        with self.session_factory() as other:
            other.add(TenantSequence(tenant_id=tenant_id, sequence_type='invoice', prefix='INV', current_value=41))
            other.commit()

        sequence_service._create_counter(self.db, tenant_id=tenant_id, sequence_type='invoice')
        self.assertEqual(self._next(tenant_id, 'invoice'), 'INV-0042')

    def test_unknown_type_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            sequence_service.next_document_number(self.db, tenant_id=self.tenant.id, sequence_type='receipt')


if __name__ == '__main__':
    unittest.main()
