from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Mapping

from app.errors import ForbiddenError
from app.models import UserRole

if TYPE_CHECKING:
    from app.auth import TenantContext


class Resource(str, Enum):
    SETTINGS = 'settings'
    USERS = 'users'
    CUSTOMERS = 'customers'
    PROPERTIES = 'properties'
    EQUIPMENT = 'equipment'
    JOBS = 'jobs'
    SCHEDULE = 'schedule'
    ESTIMATES = 'estimates'
    INVOICES = 'invoices'
    PAYMENTS = 'payments'
    REPORTS = 'reports'


class Action(str, Enum):
    CREATE = 'create'
    READ = 'read'
    UPDATE = 'update'
    DELETE = 'delete'
    MANAGE = 'manage'


@dataclass(frozen=True)
class PermissionMatrix:
    """Immutable role -> resource -> actions table.

    A role holding ``manage`` on a resource is granted every action on it.
    Roles and resources missing from the table are denied.
    """

    grants: Mapping[UserRole, Mapping[Resource, frozenset[Action]]]

    @classmethod
    def from_table(cls, table: Mapping[UserRole, Mapping[Resource, tuple[Action, ...]]]) -> PermissionMatrix:
        frozen = {
            role: MappingProxyType({resource: frozenset(actions) for resource, actions in resources.items()})
            for role, resources in table.items()
        }
        return cls(grants=MappingProxyType(frozen))

    def allows(self, role: UserRole, resource: Resource, action: Action) -> bool:
        actions = self.grants.get(role, {}).get(resource)
        if not actions:
            return False
        return action in actions or Action.MANAGE in actions


CRUD = (Action.CREATE, Action.READ, Action.UPDATE, Action.DELETE)
ALL = CRUD + (Action.MANAGE,)

DEFAULT_PERMISSIONS = PermissionMatrix.from_table(
    {
        UserRole.ADMIN: {
            Resource.SETTINGS: ALL,
            Resource.USERS: ALL,
            Resource.CUSTOMERS: CRUD,
            Resource.PROPERTIES: CRUD,
            Resource.EQUIPMENT: CRUD,
            Resource.JOBS: CRUD,
            Resource.SCHEDULE: CRUD,
            Resource.ESTIMATES: CRUD,
            Resource.INVOICES: CRUD,
            Resource.PAYMENTS: CRUD,
            Resource.REPORTS: (Action.READ,),
        },
        UserRole.OFFICE_MANAGER: {
            Resource.SETTINGS: (Action.READ,),
            Resource.USERS: (Action.READ,),
            Resource.CUSTOMERS: CRUD,
            Resource.PROPERTIES: CRUD,
            Resource.EQUIPMENT: CRUD,
            Resource.JOBS: CRUD,
            Resource.SCHEDULE: CRUD,
            Resource.ESTIMATES: CRUD,
            Resource.INVOICES: CRUD,
            Resource.PAYMENTS: CRUD,
            Resource.REPORTS: (Action.READ,),
        },
        UserRole.DISPATCHER: {
            Resource.CUSTOMERS: (Action.READ,),
            Resource.PROPERTIES: (Action.READ,),
            Resource.EQUIPMENT: (Action.READ,),
            Resource.JOBS: (Action.CREATE, Action.READ, Action.UPDATE),
            Resource.SCHEDULE: CRUD,
            Resource.ESTIMATES: (Action.READ,),
            Resource.INVOICES: (Action.READ,),
            Resource.REPORTS: (Action.READ,),
        },
        UserRole.CSR: {
            Resource.CUSTOMERS: (Action.CREATE, Action.READ, Action.UPDATE),
            Resource.PROPERTIES: (Action.CREATE, Action.READ, Action.UPDATE),
            Resource.EQUIPMENT: (Action.CREATE, Action.READ, Action.UPDATE),
            Resource.JOBS: (Action.CREATE, Action.READ),
            Resource.SCHEDULE: (Action.CREATE, Action.READ),
            Resource.ESTIMATES: (Action.CREATE, Action.READ),
            Resource.INVOICES: (Action.READ,),
        },
        UserRole.TECHNICIAN: {
            Resource.CUSTOMERS: (Action.READ,),
            Resource.PROPERTIES: (Action.READ,),
            Resource.EQUIPMENT: (Action.CREATE, Action.READ, Action.UPDATE),
            Resource.JOBS: (Action.READ, Action.UPDATE),
            Resource.SCHEDULE: (Action.READ,),
            Resource.ESTIMATES: (Action.CREATE, Action.READ),
            Resource.PAYMENTS: (Action.CREATE,),
        },
    }
)


def has_permission(
    role: UserRole,
    resource: Resource,
    action: Action,
    *,
    matrix: PermissionMatrix = DEFAULT_PERMISSIONS,
) -> bool:
    return matrix.allows(role, resource, action)


def assert_permission(ctx: TenantContext, resource: Resource, action: Action) -> None:
    if not ctx.permissions.allows(ctx.role, resource, action):
        raise ForbiddenError()
