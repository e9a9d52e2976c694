from __future__ import annotations

import unittest
from datetime import date
from decimal import Decimal
from itertools import count

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.auth import TenantContext
from app.models import Base, Customer, Property, Tenant, User, UserRole
from app.schemas import CustomerCreate, InvoiceCreate, JobCreate, LineItemIn, PropertyIn
from app.services import customer_service, invoice_service, job_service, tenant_service
from app.services.permission_service import DEFAULT_PERMISSIONS, PermissionMatrix


_email_seq = count(1)


def make_session_factory() -> sessionmaker:
    engine = create_engine(
        'sqlite+pysqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=True)


def line(quantity: str, unit_price: str, description: str = 'Service') -> LineItemIn:
    return LineItemIn(description=description, quantity=Decimal(quantity), unit_price=Decimal(unit_price))


class DatabaseTestCase(unittest.TestCase):
    """Fresh in-memory schema per test with one tenant and an admin context."""

    def setUp(self) -> None:
        self.session_factory = make_session_factory()
        self.db = self.session_factory()
        self.addCleanup(self.db.close)
        self.tenant = self.make_tenant('acme')
        self.admin = self.make_user(UserRole.ADMIN)
        self.admin_ctx = self.ctx_for(self.admin)

    def make_tenant(self, slug: str) -> Tenant:
        return tenant_service.provision_tenant(self.db, name=slug.title(), slug=slug)

    def make_user(
        self,
        role: UserRole,
        *,
        tenant: Tenant | None = None,
        dispatchable: bool = False,
        is_active: bool = True,
        push_token: str | None = None,
    ) -> User:
        user = User(
            tenant_id=(tenant or self.tenant).id,
            email=f'user{next(_email_seq)}@example.test',
            first_name=role.value.title(),
            last_name='User',
            role=role,
            can_be_dispatched=dispatchable,
            is_active=is_active,
            push_token=push_token,
        )
        self.db.add(user)
        self.db.commit()
        return user

    def ctx_for(self, user: User, permissions: PermissionMatrix = DEFAULT_PERMISSIONS) -> TenantContext:
        return TenantContext(
            user_id=user.id,
            tenant_id=user.tenant_id,
            role=user.role,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            permissions=permissions,
        )

    def make_customer(self, ctx: TenantContext | None = None, *, last_name: str = 'Smith') -> Customer:
        data = CustomerCreate(
            first_name='Jane',
            last_name=last_name,
            phone='555-0100',
            email=f'{last_name.lower()}@example.test',
            property=PropertyIn(address_line1='1 Main St', city='Springfield', state='IL', zip='62701'),
        )
        return customer_service.create_customer(self.db, ctx or self.admin_ctx, data=data)

    def primary_property(self, customer: Customer, ctx: TenantContext | None = None) -> Property:
        detail = customer_service.get_customer_with_relations(self.db, ctx or self.admin_ctx, customer.id)
        return detail.properties[0]

    def make_job(self, ctx: TenantContext | None = None, *, customer: Customer | None = None, **overrides):
        ctx = ctx or self.admin_ctx
        customer = customer or self.make_customer(ctx)
        fields = {
            'customer_id': customer.id,
            'property_id': self.primary_property(customer, ctx).id,
            'job_type': 'repair',
            'summary': 'No heat',
        }
        fields.update(overrides)
        return job_service.create_job(self.db, ctx, data=JobCreate(**fields))

    def make_invoice(self, ctx: TenantContext | None = None, *, customer: Customer | None = None, **overrides):
        ctx = ctx or self.admin_ctx
        customer = customer or self.make_customer(ctx)
        fields = {
            'customer_id': customer.id,
            'due_date': date(2026, 11, 1),
            'line_items': [line('2', '50.00'), line('1', '25.00')],
            'tax_rate': Decimal('0.08'),
        }
        fields.update(overrides)
        return invoice_service.create_invoice(self.db, ctx, data=InvoiceCreate(**fields))
