from dataclasses import dataclass, field

from fastapi import Request

from app.errors import UnauthorizedError
from app.models import UserRole
from app.services.permission_service import DEFAULT_PERMISSIONS, PermissionMatrix


@dataclass(frozen=True)
class TenantContext:
    user_id: int
    tenant_id: int
    role: UserRole
    email: str
    first_name: str = ''
    last_name: str = ''
    permissions: PermissionMatrix = field(default=DEFAULT_PERMISSIONS, repr=False)

    @property
    def is_technician(self) -> bool:
        return self.role == UserRole.TECHNICIAN


def get_current_context(request: Request) -> TenantContext:
    context = getattr(request.state, 'tenant_context', None)
    if context is None:
        raise UnauthorizedError()
    return context
