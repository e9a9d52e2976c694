from __future__ import annotations

import unittest

from app.auth import TenantContext
from app.errors import ForbiddenError
from app.models import UserRole
from app.services.permission_service import (
    DEFAULT_PERMISSIONS,
    Action,
    PermissionMatrix,
    Resource,
    assert_permission,
    has_permission,
)


def _ctx(role: UserRole, permissions: PermissionMatrix = DEFAULT_PERMISSIONS) -> TenantContext:
    return TenantContext(user_id=1, tenant_id=1, role=role, email='x@example.test', permissions=permissions)


class PermissionServiceTests(unittest.TestCase):
    def test_matrix_covers_every_role_and_eleven_resources(self) -> None:
        self.assertEqual(len(Resource), 11)
        self.assertEqual(set(DEFAULT_PERMISSIONS.grants), set(UserRole))

    def test_admin_can_do_everything_on_documents(self) -> None:
        for resource in (Resource.JOBS, Resource.ESTIMATES, Resource.INVOICES, Resource.PAYMENTS):
            for action in (Action.CREATE, Action.READ, Action.UPDATE, Action.DELETE):
                self.assertTrue(has_permission(UserRole.ADMIN, resource, action), (resource, action))

    def test_manage_implies_every_action(self) -> None:
        matrix = PermissionMatrix.from_table({UserRole.CSR: {Resource.REPORTS: (Action.MANAGE,)}})
        for action in Action:
            self.assertTrue(has_permission(UserRole.CSR, Resource.REPORTS, action, matrix=matrix))

    def test_technician_limits(self) -> None:
        self.assertTrue(has_permission(UserRole.TECHNICIAN, Resource.JOBS, Action.UPDATE))
        self.assertTrue(has_permission(UserRole.TECHNICIAN, Resource.PAYMENTS, Action.CREATE))
        self.assertFalse(has_permission(UserRole.TECHNICIAN, Resource.JOBS, Action.CREATE))
        self.assertFalse(has_permission(UserRole.TECHNICIAN, Resource.INVOICES, Action.READ))
        self.assertFalse(has_permission(UserRole.TECHNICIAN, Resource.CUSTOMERS, Action.DELETE))

    def test_dispatcher_and_csr(self) -> None:
        self.assertTrue(has_permission(UserRole.DISPATCHER, Resource.SCHEDULE, Action.UPDATE))
        self.assertFalse(has_permission(UserRole.DISPATCHER, Resource.JOBS, Action.DELETE))
        self.assertTrue(has_permission(UserRole.CSR, Resource.CUSTOMERS, Action.CREATE))
        self.assertFalse(has_permission(UserRole.CSR, Resource.JOBS, Action.UPDATE))
        self.assertFalse(has_permission(UserRole.CSR, Resource.PAYMENTS, Action.CREATE))

    def test_missing_resource_is_denied(self) -> None:
        self.assertFalse(has_permission(UserRole.CSR, Resource.SETTINGS, Action.READ))

    def test_assert_permission_raises_forbidden(self) -> None:
        with self.assertRaises(ForbiddenError) as caught:
            assert_permission(_ctx(UserRole.TECHNICIAN), Resource.INVOICES, Action.CREATE)
        self.assertEqual(caught.exception.status_code, 403)
        self.assertEqual(caught.exception.code, 'FORBIDDEN')

    def test_context_carries_substitute_matrix(self) -> None:
        locked_down = PermissionMatrix.from_table({})
        with self.assertRaises(ForbiddenError):
            assert_permission(_ctx(UserRole.ADMIN, locked_down), Resource.JOBS, Action.READ)
        # The shared default is untouched.
        assert_permission(_ctx(UserRole.ADMIN), Resource.JOBS, Action.READ)

    def test_matrix_is_immutable(self) -> None:
        with self.assertRaises(TypeError):
            DEFAULT_PERMISSIONS.grants[UserRole.CSR] = {}  # type: ignore[index]


if __name__ == '__main__':
    unittest.main()
