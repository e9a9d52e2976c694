from __future__ import annotations

from datetime import date
from decimal import Decimal

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from app.auth import TenantContext
from app.errors import ConflictError, NotFoundError, ValidationError
from app.models import (
    Customer,
    Estimate,
    EstimateOption,
    EstimateOptionItem,
    EstimateStatus,
    Invoice,
    Job,
    Property,
)
from app.schemas import EstimateCreate, EstimateOptionIn, EstimateUpdate
from app.services.activity_service import log_activity
from app.services.financial_math_service import ZERO, compute_subtotal, line_total
from app.services.invoice_service import build_invoice
from app.services.permission_service import Action, Resource, assert_permission
from app.services.sequence_service import next_document_number
from app.services.status_machine_service import assert_estimate_options_editable, estimate_action_target
from app.services.tenant_scope import Page, apply_changes, load_owned, now_utc, paginate, unit_of_work


def _build_option(ctx: TenantContext, data: EstimateOptionIn, *, sort_order: int) -> EstimateOption:
    if not data.items:
        raise ValidationError('Each option needs at least one line item', field='options.items')
    option = EstimateOption(
        tenant_id=ctx.tenant_id,
        name=data.name,
        description=data.description,
        is_recommended=data.is_recommended,
        sort_order=sort_order,
    )
    for index, item in enumerate(data.items):
        option.items.append(
            EstimateOptionItem(
                tenant_id=ctx.tenant_id,
                description=item.description,
                quantity=item.quantity,
                unit_price=item.unit_price,
                total=line_total(item.quantity, item.unit_price),
                type=item.type,
                sort_order=index,
            )
        )
    option.total = compute_subtotal(option.items)
    return option


def _load_estimate(db: Session, ctx: TenantContext, estimate_id: int, *, for_update: bool = False) -> Estimate:
    return load_owned(db, ctx, Estimate, estimate_id, label='Estimate', for_update=for_update)


def create_estimate(db: Session, ctx: TenantContext, *, data: EstimateCreate, ip: str | None = None) -> Estimate:
    """Create an estimate with all of its options and items in one transaction."""
    assert_permission(ctx, Resource.ESTIMATES, Action.CREATE)
    if not data.options:
        raise ValidationError('At least one option is required', field='options')
    with unit_of_work(db):
        customer = load_owned(db, ctx, Customer, data.customer_id, label='Customer')
        prop = load_owned(db, ctx, Property, data.property_id, label='Property')
        if prop.customer_id != customer.id:
            raise ValidationError('Property does not belong to this customer', field='property_id')
        if data.job_id is not None:
            job = load_owned(db, ctx, Job, data.job_id, label='Job')
            if job.customer_id != customer.id:
                raise ValidationError('Job does not belong to this customer', field='job_id')

        estimate = Estimate(
            tenant_id=ctx.tenant_id,
            estimate_number=next_document_number(db, tenant_id=ctx.tenant_id, sequence_type='estimate'),
            customer_id=customer.id,
            property_id=prop.id,
            job_id=data.job_id,
            status=EstimateStatus.DRAFT,
            summary=data.summary,
            notes=data.notes,
            internal_notes=data.internal_notes,
            valid_until=data.valid_until,
            total_amount=None,
            created_by=ctx.user_id,
        )
        for index, option in enumerate(data.options):
            estimate.options.append(_build_option(ctx, option, sort_order=index))
        db.add(estimate)
        db.flush()
    log_activity(
        db, ctx, entity_type='estimate', entity_id=estimate.id, action='created',
        changes={'estimate_number': estimate.estimate_number, 'options': len(data.options)}, ip=ip,
    )
    return estimate


def get_estimate(db: Session, ctx: TenantContext, estimate_id: int) -> Estimate:
    assert_permission(ctx, Resource.ESTIMATES, Action.READ)
    return _load_estimate(db, ctx, estimate_id)


def get_estimate_with_relations(db: Session, ctx: TenantContext, estimate_id: int) -> Estimate:
    return get_estimate(db, ctx, estimate_id)


def list_estimates(
    db: Session,
    ctx: TenantContext,
    *,
    status: EstimateStatus | None = None,
    customer_id: int | None = None,
    search: str | None = None,
    page: int = 1,
    page_size: int | None = None,
) -> Page[Estimate]:
    assert_permission(ctx, Resource.ESTIMATES, Action.READ)
    stmt = select(Estimate).where(Estimate.tenant_id == ctx.tenant_id)
    if status is not None:
        stmt = stmt.where(Estimate.status == status)
    if customer_id is not None:
        stmt = stmt.where(Estimate.customer_id == customer_id)
    if search:
        term = f'%{search.strip()}%'
        stmt = stmt.where(or_(Estimate.estimate_number.ilike(term), Estimate.summary.ilike(term)))
    stmt = stmt.order_by(Estimate.created_at.desc(), Estimate.id.desc())
    return paginate(db, stmt, page=page, page_size=page_size)


def update_estimate(
    db: Session,
    ctx: TenantContext,
    estimate_id: int,
    *,
    data: EstimateUpdate,
    ip: str | None = None,
) -> Estimate:
    assert_permission(ctx, Resource.ESTIMATES, Action.UPDATE)
    changes = data.model_dump(exclude_unset=True)
    with unit_of_work(db):
        estimate = _load_estimate(db, ctx, estimate_id, for_update=True)
        if estimate.status != EstimateStatus.DRAFT:
            raise ConflictError(f'Cannot edit a {estimate.status.value} estimate')
        apply_changes(estimate, changes)
    log_activity(
        db, ctx, entity_type='estimate', entity_id=estimate_id, action='updated',
        changes={'fields': sorted(changes)}, ip=ip,
    )
    return estimate


def _apply_action(
    db: Session,
    ctx: TenantContext,
    estimate_id: int,
    *,
    action: str,
    stamp: str,
    ip: str | None,
) -> Estimate:
    assert_permission(ctx, Resource.ESTIMATES, Action.UPDATE)
    with unit_of_work(db):
        estimate = _load_estimate(db, ctx, estimate_id, for_update=True)
        previous = estimate.status
        estimate.status = estimate_action_target(previous, action)
        setattr(estimate, stamp, now_utc())
    log_activity(
        db, ctx, entity_type='estimate', entity_id=estimate_id, action='status_changed',
        changes={'from': previous.value, 'to': estimate.status.value}, ip=ip,
    )
    return estimate


def send_estimate(db: Session, ctx: TenantContext, estimate_id: int, *, ip: str | None = None) -> Estimate:
    return _apply_action(db, ctx, estimate_id, action='send', stamp='sent_at', ip=ip)


def mark_estimate_viewed(db: Session, ctx: TenantContext, estimate_id: int, *, ip: str | None = None) -> Estimate:
    return _apply_action(db, ctx, estimate_id, action='mark_viewed', stamp='viewed_at', ip=ip)


def decline_estimate(db: Session, ctx: TenantContext, estimate_id: int, *, ip: str | None = None) -> Estimate:
    return _apply_action(db, ctx, estimate_id, action='decline', stamp='declined_at', ip=ip)


def approve_estimate(
    db: Session,
    ctx: TenantContext,
    estimate_id: int,
    *,
    option_id: int,
    ip: str | None = None,
) -> Estimate:
    assert_permission(ctx, Resource.ESTIMATES, Action.UPDATE)
    with unit_of_work(db):
        estimate = _load_estimate(db, ctx, estimate_id, for_update=True)
        previous = estimate.status
        target = estimate_action_target(previous, 'approve')
        option = next((o for o in estimate.options if o.id == option_id), None)
        if option is None:
            raise NotFoundError('Estimate option')
        estimate.status = target
        estimate.approved_option_id = option.id
        estimate.approved_at = now_utc()
        estimate.total_amount = option.total
    log_activity(
        db, ctx, entity_type='estimate', entity_id=estimate_id, action='approved',
        changes={'from': previous.value, 'option_id': option_id}, ip=ip,
    )
    return estimate


def add_estimate_option(
    db: Session,
    ctx: TenantContext,
    estimate_id: int,
    *,
    data: EstimateOptionIn,
    ip: str | None = None,
) -> EstimateOption:
    assert_permission(ctx, Resource.ESTIMATES, Action.UPDATE)
    with unit_of_work(db):
        estimate = _load_estimate(db, ctx, estimate_id, for_update=True)
        assert_estimate_options_editable(estimate.status)
        next_order = max((o.sort_order for o in estimate.options), default=-1) + 1
        option = _build_option(ctx, data, sort_order=next_order)
        estimate.options.append(option)
        db.flush()
    log_activity(
        db, ctx, entity_type='estimate', entity_id=estimate_id, action='option_added',
        changes={'option_id': option.id}, ip=ip,
    )
    return option


def delete_estimate_option(
    db: Session,
    ctx: TenantContext,
    estimate_id: int,
    option_id: int,
    *,
    ip: str | None = None,
) -> Estimate:
    assert_permission(ctx, Resource.ESTIMATES, Action.UPDATE)
    with unit_of_work(db):
        estimate = _load_estimate(db, ctx, estimate_id, for_update=True)
        assert_estimate_options_editable(estimate.status)
        option = next((o for o in estimate.options if o.id == option_id), None)
        if option is None:
            raise NotFoundError('Estimate option')
        if len(estimate.options) == 1:
            raise ValidationError('An estimate must keep at least one option', field='option_id')
        estimate.options.remove(option)
    log_activity(
        db, ctx, entity_type='estimate', entity_id=estimate_id, action='option_deleted',
        changes={'option_id': option_id}, ip=ip,
    )
    return estimate


def create_invoice_from_estimate(
    db: Session,
    ctx: TenantContext,
    estimate_id: int,
    *,
    due_date: date,
    tax_rate: Decimal = ZERO,
    ip: str | None = None,
) -> Invoice:
    """Bill the approved option of an estimate as a new draft invoice."""
    assert_permission(ctx, Resource.INVOICES, Action.CREATE)
    with unit_of_work(db):
        estimate = _load_estimate(db, ctx, estimate_id)
        if estimate.status != EstimateStatus.APPROVED or estimate.approved_option_id is None:
            raise ConflictError('Only approved estimates can be invoiced')
        option = next((o for o in estimate.options if o.id == estimate.approved_option_id), None)
        if option is None:
            raise NotFoundError('Estimate option')
        invoice = build_invoice(
            db,
            ctx,
            customer_id=estimate.customer_id,
            due_date=due_date,
            tax_rate=tax_rate,
            lines=option.items,
            job_id=estimate.job_id,
            estimate_id=estimate.id,
            notes=estimate.notes,
        )
    log_activity(
        db, ctx, entity_type='invoice', entity_id=invoice.id, action='created',
        changes={'invoice_number': invoice.invoice_number, 'estimate_id': estimate_id}, ip=ip,
    )
    return invoice
