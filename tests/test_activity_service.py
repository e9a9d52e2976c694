from __future__ import annotations

import unittest
from unittest.mock import patch

from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from app.errors import ForbiddenError
from app.models import ActivityLog, Customer, JobStatus, UserRole
from app.services import activity_service, job_service
from tests.support import DatabaseTestCase


class ActivityServiceTests(DatabaseTestCase):
    def test_feed_is_newest_first_and_tenant_scoped(self) -> None:
        job = self.make_job()
        job_service.change_job_status(self.db, self.admin_ctx, job.id, status=JobStatus.SCHEDULED)

        other_tenant = self.make_tenant('globex')
        outsider = self.ctx_for(self.make_user(UserRole.ADMIN, tenant=other_tenant))
        self.make_customer(outsider)

        feed = activity_service.list_recent_activity(self.db, self.admin_ctx)
        self.assertEqual(feed[0].action, 'status_changed')
        self.assertEqual(feed[0].changes, {'from': 'new', 'to': 'scheduled'})
        self.assertTrue(all(row.tenant_id == self.tenant.id for row in feed))

        history = activity_service.list_entity_activity(self.db, self.admin_ctx, entity_type='job', entity_id=job.id)
        self.assertEqual([row.action for row in history], ['status_changed', 'created'])

    def test_limit_is_capped(self) -> None:
        for _ in range(3):
            self.make_customer()
        self.assertEqual(len(activity_service.list_recent_activity(self.db, self.admin_ctx, limit=2)), 2)
        self.assertEqual(len(activity_service.list_recent_activity(self.db, self.admin_ctx, limit=0)), 1)

    def test_technician_cannot_read_feed(self) -> None:
        tech_ctx = self.ctx_for(self.make_user(UserRole.TECHNICIAN, dispatchable=True))
        with self.assertRaises(ForbiddenError):
            activity_service.list_recent_activity(self.db, tech_ctx)

    def test_failed_audit_write_does_not_undo_the_change(self) -> None:
        real_commit = self.db.commit
        calls = []

        def flaky_commit() -> None:
            calls.append(1)
            if len(calls) == 2:
                raise OperationalError('INSERT INTO activity_logs', {}, Exception('disk full'))
            real_commit()

        with patch.object(self.db, 'commit', side_effect=flaky_commit), patch.object(
            activity_service, 'logger'
        ) as logger:
            customer = self.make_customer(last_name='Durable')

        logger.warning.assert_called_once()
        self.assertEqual(logger.warning.call_args.args[0], 'activity_log_write_failed')
        stored = self.db.execute(select(Customer).where(Customer.id == customer.id)).scalar_one()
        self.assertEqual(stored.last_name, 'Durable')
        rows = self.db.execute(
            select(ActivityLog).where(ActivityLog.entity_type == 'customer', ActivityLog.entity_id == customer.id)
        ).scalars().all()
        self.assertEqual(rows, [])


if __name__ == '__main__':
    unittest.main()
