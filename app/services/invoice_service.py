from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Iterable, Protocol

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from app.auth import TenantContext
from app.errors import NotFoundError, ValidationError
from app.models import (
    Customer,
    Estimate,
    Invoice,
    InvoiceLineItem,
    InvoiceStatus,
    Job,
    LineItemType,
    Payment,
    PaymentStatus,
)
from app.schemas import InvoiceCreate, InvoiceUpdate, LineItemIn, PaymentCreate
from app.services.activity_service import log_activity
from app.services.financial_math_service import ZERO, compute_invoice_financials, line_total
from app.services.permission_service import Action, Resource, assert_permission
from app.services.sequence_service import next_document_number
from app.services.status_machine_service import (
    INVOICE_OVERDUE_ELIGIBLE,
    assert_invoice_accepts_payment,
    assert_invoice_editable,
    assert_invoice_sendable,
    assert_invoice_viewable,
    assert_invoice_voidable,
    derive_invoice_status,
    effective_invoice_status,
)
from app.services.tenant_scope import Page, apply_changes, load_owned, now_utc, paginate, unit_of_work


class SourceLine(Protocol):
    description: str
    quantity: Decimal
    unit_price: Decimal
    type: LineItemType


def _line_item(ctx: TenantContext, line: SourceLine, *, sort_order: int) -> InvoiceLineItem:
    return InvoiceLineItem(
        tenant_id=ctx.tenant_id,
        description=line.description,
        quantity=line.quantity,
        unit_price=line.unit_price,
        total=line_total(line.quantity, line.unit_price),
        type=line.type,
        sort_order=sort_order,
    )


def _payments_for(db: Session, invoice: Invoice) -> list[Payment]:
    return list(db.execute(select(Payment).where(Payment.invoice_id == invoice.id)).scalars().all())


def recompute_invoice(db: Session, invoice: Invoice, *, payments: Iterable[Payment] | None = None) -> Invoice:
    """Re-derive money columns and status from current line items and payments.

    Payments are re-read inside the caller's transaction unless given, so
    totals always reflect rows committed by concurrent writers.
    """
    if payments is None:
        payments = _payments_for(db, invoice) if invoice.id is not None else []
    financials = compute_invoice_financials(invoice.line_items, invoice.tax_rate, payments)
    invoice.subtotal = financials.subtotal
    invoice.tax_amount = financials.tax_amount
    invoice.total = financials.total
    invoice.amount_paid = financials.amount_paid
    invoice.balance_due = financials.balance_due
    invoice.status = derive_invoice_status(
        invoice.status,
        total=financials.total,
        amount_paid=financials.amount_paid,
        was_sent=invoice.sent_at is not None,
        was_viewed=invoice.viewed_at is not None,
    )
    if invoice.status == InvoiceStatus.PAID and invoice.paid_at is None:
        invoice.paid_at = now_utc()
    return invoice


def build_invoice(
    db: Session,
    ctx: TenantContext,
    *,
    customer_id: int,
    due_date: date,
    tax_rate: Decimal,
    lines: Iterable[SourceLine],
    job_id: int | None = None,
    estimate_id: int | None = None,
    notes: str | None = None,
    internal_notes: str | None = None,
) -> Invoice:
    """Create a draft invoice with its line items inside the caller's transaction."""
    lines = list(lines)
    if not lines:
        raise ValidationError('At least one line item is required', field='line_items')
    if tax_rate < 0:
        raise ValidationError('Tax rate cannot be negative', field='tax_rate')
    invoice = Invoice(
        tenant_id=ctx.tenant_id,
        invoice_number=next_document_number(db, tenant_id=ctx.tenant_id, sequence_type='invoice'),
        customer_id=customer_id,
        job_id=job_id,
        estimate_id=estimate_id,
        status=InvoiceStatus.DRAFT,
        due_date=due_date,
        tax_rate=tax_rate,
        notes=notes,
        internal_notes=internal_notes,
        created_by=ctx.user_id,
    )
    for index, line in enumerate(lines):
        invoice.line_items.append(_line_item(ctx, line, sort_order=index))
    recompute_invoice(db, invoice, payments=[])
    db.add(invoice)
    db.flush()
    return invoice


def invoice_effective_status(invoice: Invoice, *, today: date | None = None) -> InvoiceStatus:
    return effective_invoice_status(
        invoice.status,
        due_date=invoice.due_date,
        balance_due=invoice.balance_due,
        today=today or now_utc().date(),
    )


def create_invoice(db: Session, ctx: TenantContext, *, data: InvoiceCreate, ip: str | None = None) -> Invoice:
    assert_permission(ctx, Resource.INVOICES, Action.CREATE)
    with unit_of_work(db):
        customer = load_owned(db, ctx, Customer, data.customer_id, label='Customer')
        if data.job_id is not None:
            load_owned(db, ctx, Job, data.job_id, label='Job')
        if data.estimate_id is not None:
            load_owned(db, ctx, Estimate, data.estimate_id, label='Estimate')
        invoice = build_invoice(
            db,
            ctx,
            customer_id=customer.id,
            due_date=data.due_date,
            tax_rate=data.tax_rate,
            lines=data.line_items,
            job_id=data.job_id,
            estimate_id=data.estimate_id,
            notes=data.notes,
            internal_notes=data.internal_notes,
        )
    log_activity(
        db, ctx, entity_type='invoice', entity_id=invoice.id, action='created',
        changes={'invoice_number': invoice.invoice_number, 'total': str(invoice.total)}, ip=ip,
    )
    return invoice


def get_invoice(db: Session, ctx: TenantContext, invoice_id: int) -> Invoice:
    assert_permission(ctx, Resource.INVOICES, Action.READ)
    return load_owned(db, ctx, Invoice, invoice_id, label='Invoice')


def get_invoice_with_relations(db: Session, ctx: TenantContext, invoice_id: int) -> Invoice:
    return get_invoice(db, ctx, invoice_id)


def list_invoices(
    db: Session,
    ctx: TenantContext,
    *,
    status: InvoiceStatus | None = None,
    customer_id: int | None = None,
    due_from: date | None = None,
    due_to: date | None = None,
    search: str | None = None,
    today: date | None = None,
    page: int = 1,
    page_size: int | None = None,
) -> Page[Invoice]:
    assert_permission(ctx, Resource.INVOICES, Action.READ)
    stmt = select(Invoice).where(Invoice.tenant_id == ctx.tenant_id)
    if status == InvoiceStatus.OVERDUE:
        # Overdue is never stored; match what the read-time status reports.
        stmt = stmt.where(
            Invoice.status.in_(INVOICE_OVERDUE_ELIGIBLE),
            Invoice.due_date < (today or now_utc().date()),
            Invoice.balance_due > 0,
        )
    elif status is not None:
        stmt = stmt.where(Invoice.status == status)
    if customer_id is not None:
        stmt = stmt.where(Invoice.customer_id == customer_id)
    if due_from is not None:
        stmt = stmt.where(Invoice.due_date >= due_from)
    if due_to is not None:
        stmt = stmt.where(Invoice.due_date <= due_to)
    if search:
        term = f'%{search.strip()}%'
        stmt = stmt.where(or_(Invoice.invoice_number.ilike(term), Invoice.notes.ilike(term)))
    stmt = stmt.order_by(Invoice.created_at.desc(), Invoice.id.desc())
    return paginate(db, stmt, page=page, page_size=page_size)


def update_invoice(
    db: Session,
    ctx: TenantContext,
    invoice_id: int,
    *,
    data: InvoiceUpdate,
    ip: str | None = None,
) -> Invoice:
    assert_permission(ctx, Resource.INVOICES, Action.UPDATE)
    changes = data.model_dump(exclude_unset=True)
    with unit_of_work(db):
        invoice = load_owned(db, ctx, Invoice, invoice_id, label='Invoice', for_update=True)
        assert_invoice_editable(invoice.status)
        apply_changes(invoice, changes)
        if 'tax_rate' in changes:
            recompute_invoice(db, invoice)
    log_activity(
        db, ctx, entity_type='invoice', entity_id=invoice_id, action='updated',
        changes={'fields': sorted(changes)}, ip=ip,
    )
    return invoice


def add_invoice_line_item(
    db: Session,
    ctx: TenantContext,
    invoice_id: int,
    *,
    data: LineItemIn,
    ip: str | None = None,
) -> InvoiceLineItem:
    assert_permission(ctx, Resource.INVOICES, Action.UPDATE)
    with unit_of_work(db):
        invoice = load_owned(db, ctx, Invoice, invoice_id, label='Invoice', for_update=True)
        assert_invoice_editable(invoice.status)
        next_order = max((li.sort_order for li in invoice.line_items), default=-1) + 1
        item = _line_item(ctx, data, sort_order=next_order)
        invoice.line_items.append(item)
        recompute_invoice(db, invoice)
        db.flush()
    log_activity(
        db, ctx, entity_type='invoice', entity_id=invoice_id, action='line_item_added',
        changes={'line_item_id': item.id}, ip=ip,
    )
    return item


def delete_invoice_line_item(
    db: Session,
    ctx: TenantContext,
    invoice_id: int,
    line_item_id: int,
    *,
    ip: str | None = None,
) -> Invoice:
    assert_permission(ctx, Resource.INVOICES, Action.UPDATE)
    with unit_of_work(db):
        invoice = load_owned(db, ctx, Invoice, invoice_id, label='Invoice', for_update=True)
        assert_invoice_editable(invoice.status)
        item = next((li for li in invoice.line_items if li.id == line_item_id), None)
        if item is None:
            raise NotFoundError('Line item')
        if len(invoice.line_items) == 1:
            raise ValidationError('An invoice must keep at least one line item', field='line_item_id')
        invoice.line_items.remove(item)
        recompute_invoice(db, invoice)
    log_activity(
        db, ctx, entity_type='invoice', entity_id=invoice_id, action='line_item_deleted',
        changes={'line_item_id': line_item_id}, ip=ip,
    )
    return invoice


def send_invoice(db: Session, ctx: TenantContext, invoice_id: int, *, ip: str | None = None) -> Invoice:
    assert_permission(ctx, Resource.INVOICES, Action.UPDATE)
    with unit_of_work(db):
        invoice = load_owned(db, ctx, Invoice, invoice_id, label='Invoice', for_update=True)
        assert_invoice_sendable(invoice.status)
        invoice.status = InvoiceStatus.SENT
        invoice.sent_at = now_utc()
    log_activity(db, ctx, entity_type='invoice', entity_id=invoice_id, action='sent', ip=ip)
    return invoice


def mark_invoice_viewed(db: Session, ctx: TenantContext, invoice_id: int, *, ip: str | None = None) -> Invoice:
    assert_permission(ctx, Resource.INVOICES, Action.UPDATE)
    with unit_of_work(db):
        invoice = load_owned(db, ctx, Invoice, invoice_id, label='Invoice', for_update=True)
        assert_invoice_viewable(invoice.status)
        invoice.status = InvoiceStatus.VIEWED
        invoice.viewed_at = now_utc()
    log_activity(db, ctx, entity_type='invoice', entity_id=invoice_id, action='viewed', ip=ip)
    return invoice


def void_invoice(db: Session, ctx: TenantContext, invoice_id: int, *, ip: str | None = None) -> Invoice:
    assert_permission(ctx, Resource.INVOICES, Action.UPDATE)
    with unit_of_work(db):
        invoice = load_owned(db, ctx, Invoice, invoice_id, label='Invoice', for_update=True)
        previous = invoice.status
        assert_invoice_voidable(previous)
        invoice.status = InvoiceStatus.VOID
        invoice.voided_at = now_utc()
    log_activity(
        db, ctx, entity_type='invoice', entity_id=invoice_id, action='voided',
        changes={'from': previous.value}, ip=ip,
    )
    return invoice


def record_payment(
    db: Session,
    ctx: TenantContext,
    invoice_id: int,
    *,
    data: PaymentCreate,
    ip: str | None = None,
) -> Payment:
    """Apply a succeeded payment and re-derive the invoice in one transaction.

    The invoice row is locked first so concurrent payments serialize and
    each one validates against the balance left by the previous.
    """
    assert_permission(ctx, Resource.PAYMENTS, Action.CREATE)
    if data.amount <= 0:
        raise ValidationError('Payment amount must be positive', field='amount')
    with unit_of_work(db):
        invoice = load_owned(db, ctx, Invoice, invoice_id, label='Invoice', for_update=True)
        assert_invoice_accepts_payment(invoice.status)
        current = compute_invoice_financials(invoice.line_items, invoice.tax_rate, _payments_for(db, invoice))
        if data.amount > current.balance_due:
            raise ValidationError(
                f'Payment of {data.amount} exceeds balance due of {current.balance_due}',
                field='amount',
            )
        payment = Payment(
            tenant_id=ctx.tenant_id,
            invoice_id=invoice.id,
            customer_id=invoice.customer_id,
            amount=data.amount,
            method=data.method,
            status=PaymentStatus.SUCCEEDED,
            reference_number=data.reference_number,
            notes=data.notes,
            recorded_by=ctx.user_id,
        )
        db.add(payment)
        db.flush()
        recompute_invoice(db, invoice)
        db.flush()
    log_activity(
        db, ctx, entity_type='invoice', entity_id=invoice_id, action='payment_recorded',
        changes={'payment_id': payment.id, 'amount': str(data.amount), 'method': data.method.value}, ip=ip,
    )
    return payment


def generate_invoice_from_job(
    db: Session,
    ctx: TenantContext,
    job_id: int,
    *,
    due_date: date,
    tax_rate: Decimal = ZERO,
    ip: str | None = None,
) -> Invoice:
    assert_permission(ctx, Resource.INVOICES, Action.CREATE)
    with unit_of_work(db):
        job = load_owned(db, ctx, Job, job_id, label='Job')
        if not job.line_items:
            raise ValidationError('Job has no line items to invoice', field='job_id')
        invoice = build_invoice(
            db,
            ctx,
            customer_id=job.customer_id,
            due_date=due_date,
            tax_rate=tax_rate,
            lines=job.line_items,
            job_id=job.id,
        )
    log_activity(
        db, ctx, entity_type='invoice', entity_id=invoice.id, action='created',
        changes={'invoice_number': invoice.invoice_number, 'job_id': job_id}, ip=ip,
    )
    return invoice
