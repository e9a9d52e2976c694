from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.auth import TenantContext
from app.errors import ConflictError, NotFoundError, ValidationError
from app.models import Customer, CustomerType, Equipment, Property
from app.schemas import (
    CustomerCreate,
    CustomerUpdate,
    EquipmentCreate,
    EquipmentUpdate,
    PropertyIn,
    PropertyUpdate,
)
from app.services.activity_service import log_activity
from app.services.permission_service import Action, Resource, assert_permission
from app.services.tenant_scope import Page, apply_changes, load_owned, now_utc, paginate, unit_of_work


CUSTOMER_SORTS = {
    'name': (Customer.last_name, Customer.first_name),
    'email': (Customer.email,),
    'phone': (Customer.phone,),
    'created_at': (Customer.created_at,),
}


@dataclass(frozen=True)
class CustomerWithRelations:
    customer: Customer
    properties: list[Property]
    equipment: list[Equipment]


def _primary_conflict() -> ConflictError:
    return ConflictError(
        'Customer already has a primary property',
        details=[{'field': 'is_primary', 'message': 'duplicate'}],
    )


def _demote_primary_siblings(db: Session, *, tenant_id: int, customer_id: int) -> None:
    db.execute(
        update(Property)
        .where(Property.tenant_id == tenant_id, Property.customer_id == customer_id, Property.is_primary.is_(True))
        .values(is_primary=False)
    )
    db.flush()


def _property_row(ctx: TenantContext, customer_id: int, data: PropertyIn, *, is_primary: bool) -> Property:
    fields = data.model_dump(exclude={'is_primary'})
    return Property(tenant_id=ctx.tenant_id, customer_id=customer_id, is_primary=is_primary, **fields)


def create_customer(db: Session, ctx: TenantContext, *, data: CustomerCreate, ip: str | None = None) -> Customer:
    assert_permission(ctx, Resource.CUSTOMERS, Action.CREATE)
    with unit_of_work(db):
        customer = Customer(
            tenant_id=ctx.tenant_id,
            created_by=ctx.user_id,
            **data.model_dump(exclude={'property'}),
        )
        db.add(customer)
        db.flush()
        if data.property is not None:
            # The first property of a customer is always its primary one.
            db.add(_property_row(ctx, customer.id, data.property, is_primary=True))
            db.flush()
    log_activity(db, ctx, entity_type='customer', entity_id=customer.id, action='created', ip=ip)
    return customer


def get_customer(db: Session, ctx: TenantContext, customer_id: int) -> Customer:
    assert_permission(ctx, Resource.CUSTOMERS, Action.READ)
    return load_owned(db, ctx, Customer, customer_id, label='Customer')


def get_customer_with_relations(db: Session, ctx: TenantContext, customer_id: int) -> CustomerWithRelations:
    customer = get_customer(db, ctx, customer_id)
    properties = db.execute(
        select(Property)
        .where(Property.tenant_id == ctx.tenant_id, Property.customer_id == customer.id)
        .order_by(Property.is_primary.desc(), Property.id)
    ).scalars().all()
    equipment = db.execute(
        select(Equipment)
        .where(Equipment.tenant_id == ctx.tenant_id, Equipment.customer_id == customer.id)
        .order_by(Equipment.id)
    ).scalars().all()
    return CustomerWithRelations(customer=customer, properties=list(properties), equipment=list(equipment))


def list_customers(
    db: Session,
    ctx: TenantContext,
    *,
    search: str | None = None,
    customer_type: CustomerType | None = None,
    sort: str = 'name',
    order: str = 'asc',
    page: int = 1,
    page_size: int | None = None,
) -> Page[Customer]:
    assert_permission(ctx, Resource.CUSTOMERS, Action.READ)
    if sort not in CUSTOMER_SORTS:
        raise ValidationError(f'Unsupported sort "{sort}"', field='sort')

    stmt = select(Customer).where(Customer.tenant_id == ctx.tenant_id, Customer.deleted_at.is_(None))
    if search:
        term = f'%{search.strip()}%'
        stmt = stmt.where(
            or_(
                Customer.first_name.ilike(term),
                Customer.last_name.ilike(term),
                Customer.email.ilike(term),
                Customer.phone.ilike(term),
                Customer.company_name.ilike(term),
            )
        )
    if customer_type is not None:
        stmt = stmt.where(Customer.type == customer_type)

    columns = CUSTOMER_SORTS[sort]
    ordering = [c.desc() if order == 'desc' else c.asc() for c in columns]
    stmt = stmt.order_by(*ordering, Customer.id)
    return paginate(db, stmt, page=page, page_size=page_size)


def update_customer(
    db: Session,
    ctx: TenantContext,
    customer_id: int,
    *,
    data: CustomerUpdate,
    ip: str | None = None,
) -> Customer:
    assert_permission(ctx, Resource.CUSTOMERS, Action.UPDATE)
    changes = data.model_dump(exclude_unset=True)
    with unit_of_work(db):
        customer = load_owned(db, ctx, Customer, customer_id, label='Customer')
        apply_changes(customer, changes)
    log_activity(
        db, ctx, entity_type='customer', entity_id=customer_id, action='updated',
        changes={'fields': sorted(changes)}, ip=ip,
    )
    return customer


def delete_customer(db: Session, ctx: TenantContext, customer_id: int, *, ip: str | None = None) -> None:
    assert_permission(ctx, Resource.CUSTOMERS, Action.DELETE)
    with unit_of_work(db):
        customer = load_owned(db, ctx, Customer, customer_id, label='Customer')
        customer.deleted_at = now_utc()
    log_activity(db, ctx, entity_type='customer', entity_id=customer_id, action='deleted', ip=ip)


def _load_customer_property(db: Session, ctx: TenantContext, customer_id: int, property_id: int) -> Property:
    prop = load_owned(db, ctx, Property, property_id, label='Property')
    if prop.customer_id != customer_id:
        raise NotFoundError('Property')
    return prop


def create_property(
    db: Session,
    ctx: TenantContext,
    customer_id: int,
    *,
    data: PropertyIn,
    ip: str | None = None,
) -> Property:
    assert_permission(ctx, Resource.PROPERTIES, Action.CREATE)
    try:
        with unit_of_work(db):
            customer = load_owned(db, ctx, Customer, customer_id, label='Customer')
            has_any = db.execute(
                select(Property.id).where(Property.tenant_id == ctx.tenant_id, Property.customer_id == customer.id).limit(1)
            ).first()
            make_primary = data.is_primary or has_any is None
            if make_primary:
                _demote_primary_siblings(db, tenant_id=ctx.tenant_id, customer_id=customer.id)
            prop = _property_row(ctx, customer.id, data, is_primary=make_primary)
            db.add(prop)
            db.flush()
    except IntegrityError as exc:
        raise _primary_conflict() from exc
    log_activity(db, ctx, entity_type='property', entity_id=prop.id, action='created', ip=ip)
    return prop


def update_property(
    db: Session,
    ctx: TenantContext,
    customer_id: int,
    property_id: int,
    *,
    data: PropertyUpdate,
    ip: str | None = None,
) -> Property:
    assert_permission(ctx, Resource.PROPERTIES, Action.UPDATE)
    changes = data.model_dump(exclude_unset=True)
    with unit_of_work(db):
        prop = _load_customer_property(db, ctx, customer_id, property_id)
        apply_changes(prop, changes)
    log_activity(
        db, ctx, entity_type='property', entity_id=property_id, action='updated',
        changes={'fields': sorted(changes)}, ip=ip,
    )
    return prop


def set_primary_property(
    db: Session,
    ctx: TenantContext,
    customer_id: int,
    property_id: int,
    *,
    ip: str | None = None,
) -> Property:
    assert_permission(ctx, Resource.PROPERTIES, Action.UPDATE)
    try:
        with unit_of_work(db):
            prop = _load_customer_property(db, ctx, customer_id, property_id)
            if not prop.is_primary:
                _demote_primary_siblings(db, tenant_id=ctx.tenant_id, customer_id=customer_id)
                prop.is_primary = True
                db.flush()
    except IntegrityError as exc:
        raise _primary_conflict() from exc
    log_activity(db, ctx, entity_type='property', entity_id=property_id, action='set_primary', ip=ip)
    return prop


def delete_property(
    db: Session,
    ctx: TenantContext,
    customer_id: int,
    property_id: int,
    *,
    ip: str | None = None,
) -> None:
    assert_permission(ctx, Resource.PROPERTIES, Action.DELETE)
    try:
        with unit_of_work(db):
            prop = _load_customer_property(db, ctx, customer_id, property_id)
            db.delete(prop)
    except IntegrityError as exc:
        raise ConflictError('Property is referenced by jobs or estimates') from exc
    log_activity(db, ctx, entity_type='property', entity_id=property_id, action='deleted', ip=ip)


def create_equipment(
    db: Session,
    ctx: TenantContext,
    customer_id: int,
    *,
    data: EquipmentCreate,
    ip: str | None = None,
) -> Equipment:
    assert_permission(ctx, Resource.EQUIPMENT, Action.CREATE)
    with unit_of_work(db):
        customer = load_owned(db, ctx, Customer, customer_id, label='Customer')
        prop = load_owned(db, ctx, Property, data.property_id, label='Property')
        if prop.customer_id != customer.id:
            raise ValidationError('Property does not belong to this customer', field='property_id')
        item = Equipment(tenant_id=ctx.tenant_id, customer_id=customer.id, **data.model_dump())
        db.add(item)
        db.flush()
    log_activity(db, ctx, entity_type='equipment', entity_id=item.id, action='created', ip=ip)
    return item


def _load_customer_equipment(db: Session, ctx: TenantContext, customer_id: int, equipment_id: int) -> Equipment:
    item = load_owned(db, ctx, Equipment, equipment_id, label='Equipment')
    if item.customer_id != customer_id:
        raise NotFoundError('Equipment')
    return item


def update_equipment(
    db: Session,
    ctx: TenantContext,
    customer_id: int,
    equipment_id: int,
    *,
    data: EquipmentUpdate,
    ip: str | None = None,
) -> Equipment:
    assert_permission(ctx, Resource.EQUIPMENT, Action.UPDATE)
    changes = data.model_dump(exclude_unset=True)
    with unit_of_work(db):
        item = _load_customer_equipment(db, ctx, customer_id, equipment_id)
        apply_changes(item, changes)
    log_activity(
        db, ctx, entity_type='equipment', entity_id=equipment_id, action='updated',
        changes={'fields': sorted(changes)}, ip=ip,
    )
    return item


def delete_equipment(
    db: Session,
    ctx: TenantContext,
    customer_id: int,
    equipment_id: int,
    *,
    ip: str | None = None,
) -> None:
    assert_permission(ctx, Resource.EQUIPMENT, Action.DELETE)
    with unit_of_work(db):
        item = _load_customer_equipment(db, ctx, customer_id, equipment_id)
        db.delete(item)
    log_activity(db, ctx, entity_type='equipment', entity_id=equipment_id, action='deleted', ip=ip)
