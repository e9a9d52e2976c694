from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.orm import Session

from app.auth import TenantContext, get_current_context
from app.db import get_db
from app.dependencies import get_client_ip, page_params
from app.models import Invoice, InvoiceStatus
from app.schemas import (
    InvoiceCreate,
    InvoiceDetailOut,
    InvoiceOut,
    InvoiceUpdate,
    LineItemIn,
    LineItemOut,
    PageOut,
    PaymentCreate,
    PaymentOut,
)
from app.services import invoice_service

router = APIRouter(prefix='/invoices', tags=['invoices'])


def present_invoice(invoice: Invoice, schema: type[InvoiceOut] = InvoiceOut) -> InvoiceOut:
    out = schema.model_validate(invoice)
    out.effective_status = invoice_service.invoice_effective_status(invoice)
    return out


@router.get('', response_model=PageOut[InvoiceOut])
def list_invoices(
    status: InvoiceStatus | None = None,
    customer_id: int | None = None,
    due_from: date | None = None,
    due_to: date | None = None,
    search: str | None = None,
    paging: dict = Depends(page_params),
    ctx: TenantContext = Depends(get_current_context),
    db: Session = Depends(get_db),
):
    page = invoice_service.list_invoices(
        db,
        ctx,
        status=status,
        customer_id=customer_id,
        due_from=due_from,
        due_to=due_to,
        search=search,
        **paging,
    )
    return PageOut[InvoiceOut](
        items=[present_invoice(invoice) for invoice in page.items],
        page=page.page,
        page_size=page.page_size,
        total=page.total,
    )


@router.post('', response_model=InvoiceDetailOut, status_code=201)
def create_invoice(
    payload: InvoiceCreate,
    request: Request,
    ctx: TenantContext = Depends(get_current_context),
    db: Session = Depends(get_db),
):
    invoice = invoice_service.create_invoice(db, ctx, data=payload, ip=get_client_ip(request))
    return present_invoice(invoice, InvoiceDetailOut)


@router.get('/{invoice_id}', response_model=InvoiceDetailOut)
def get_invoice(invoice_id: int, ctx: TenantContext = Depends(get_current_context), db: Session = Depends(get_db)):
    return present_invoice(invoice_service.get_invoice_with_relations(db, ctx, invoice_id), InvoiceDetailOut)


@router.patch('/{invoice_id}', response_model=InvoiceOut)
def update_invoice(
    invoice_id: int,
    payload: InvoiceUpdate,
    request: Request,
    ctx: TenantContext = Depends(get_current_context),
    db: Session = Depends(get_db),
):
    invoice = invoice_service.update_invoice(db, ctx, invoice_id, data=payload, ip=get_client_ip(request))
    return present_invoice(invoice)


@router.post('/{invoice_id}/line-items', response_model=LineItemOut, status_code=201)
def add_line_item(
    invoice_id: int,
    payload: LineItemIn,
    request: Request,
    ctx: TenantContext = Depends(get_current_context),
    db: Session = Depends(get_db),
):
    item = invoice_service.add_invoice_line_item(db, ctx, invoice_id, data=payload, ip=get_client_ip(request))
    return LineItemOut.model_validate(item)


@router.delete('/{invoice_id}/line-items/{line_item_id}', status_code=204)
def delete_line_item(
    invoice_id: int,
    line_item_id: int,
    request: Request,
    ctx: TenantContext = Depends(get_current_context),
    db: Session = Depends(get_db),
):
    invoice_service.delete_invoice_line_item(db, ctx, invoice_id, line_item_id, ip=get_client_ip(request))
    return Response(status_code=204)


@router.post('/{invoice_id}/send', response_model=InvoiceOut)
def send_invoice(
    invoice_id: int,
    request: Request,
    ctx: TenantContext = Depends(get_current_context),
    db: Session = Depends(get_db),
):
    return present_invoice(invoice_service.send_invoice(db, ctx, invoice_id, ip=get_client_ip(request)))


@router.post('/{invoice_id}/viewed', response_model=InvoiceOut)
def mark_viewed(
    invoice_id: int,
    request: Request,
    ctx: TenantContext = Depends(get_current_context),
    db: Session = Depends(get_db),
):
    return present_invoice(invoice_service.mark_invoice_viewed(db, ctx, invoice_id, ip=get_client_ip(request)))


@router.post('/{invoice_id}/void', response_model=InvoiceOut)
def void_invoice(
    invoice_id: int,
    request: Request,
    ctx: TenantContext = Depends(get_current_context),
    db: Session = Depends(get_db),
):
    return present_invoice(invoice_service.void_invoice(db, ctx, invoice_id, ip=get_client_ip(request)))


@router.post('/{invoice_id}/payments', response_model=PaymentOut, status_code=201)
def record_payment(
    invoice_id: int,
    payload: PaymentCreate,
    request: Request,
    ctx: TenantContext = Depends(get_current_context),
    db: Session = Depends(get_db),
):
    payment = invoice_service.record_payment(db, ctx, invoice_id, data=payload, ip=get_client_ip(request))
    return PaymentOut.model_validate(payment)
