from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from app.auth import TenantContext, get_current_context
from app.db import get_db
from app.dependencies import get_client_ip, page_params
from app.models import EstimateStatus
from app.routers.invoices import present_invoice
from app.schemas import (
    EstimateApprove,
    EstimateCreate,
    EstimateDetailOut,
    EstimateOptionIn,
    EstimateOptionOut,
    EstimateOut,
    EstimateUpdate,
    InvoiceFromDocument,
    InvoiceOut,
    PageOut,
    to_page,
)
from app.services import estimate_service

router = APIRouter(prefix='/estimates', tags=['estimates'])


@router.get('', response_model=PageOut[EstimateOut])
def list_estimates(
    status: EstimateStatus | None = None,
    customer_id: int | None = None,
    search: str | None = None,
    paging: dict = Depends(page_params),
    ctx: TenantContext = Depends(get_current_context),
    db: Session = Depends(get_db),
):
    page = estimate_service.list_estimates(
        db, ctx, status=status, customer_id=customer_id, search=search, **paging
    )
    return to_page(page, EstimateOut)


@router.post('', response_model=EstimateDetailOut, status_code=201)
def create_estimate(
    payload: EstimateCreate,
    request: Request,
    ctx: TenantContext = Depends(get_current_context),
    db: Session = Depends(get_db),
):
    estimate = estimate_service.create_estimate(db, ctx, data=payload, ip=get_client_ip(request))
    return EstimateDetailOut.model_validate(estimate)


@router.get('/{estimate_id}', response_model=EstimateDetailOut)
def get_estimate(estimate_id: int, ctx: TenantContext = Depends(get_current_context), db: Session = Depends(get_db)):
    return EstimateDetailOut.model_validate(estimate_service.get_estimate_with_relations(db, ctx, estimate_id))


@router.patch('/{estimate_id}', response_model=EstimateOut)
def update_estimate(
    estimate_id: int,
    payload: EstimateUpdate,
    request: Request,
    ctx: TenantContext = Depends(get_current_context),
    db: Session = Depends(get_db),
):
    estimate = estimate_service.update_estimate(db, ctx, estimate_id, data=payload, ip=get_client_ip(request))
    return EstimateOut.model_validate(estimate)


@router.post('/{estimate_id}/send', response_model=EstimateOut)
def send_estimate(
    estimate_id: int,
    request: Request,
    ctx: TenantContext = Depends(get_current_context),
    db: Session = Depends(get_db),
):
    return EstimateOut.model_validate(
        estimate_service.send_estimate(db, ctx, estimate_id, ip=get_client_ip(request))
    )


@router.post('/{estimate_id}/viewed', response_model=EstimateOut)
def mark_viewed(
    estimate_id: int,
    request: Request,
    ctx: TenantContext = Depends(get_current_context),
    db: Session = Depends(get_db),
):
    return EstimateOut.model_validate(
        estimate_service.mark_estimate_viewed(db, ctx, estimate_id, ip=get_client_ip(request))
    )


@router.post('/{estimate_id}/approve', response_model=EstimateOut)
def approve_estimate(
    estimate_id: int,
    payload: EstimateApprove,
    request: Request,
    ctx: TenantContext = Depends(get_current_context),
    db: Session = Depends(get_db),
):
    estimate = estimate_service.approve_estimate(
        db, ctx, estimate_id, option_id=payload.option_id, ip=get_client_ip(request)
    )
    return EstimateOut.model_validate(estimate)


@router.post('/{estimate_id}/decline', response_model=EstimateOut)
def decline_estimate(
    estimate_id: int,
    request: Request,
    ctx: TenantContext = Depends(get_current_context),
    db: Session = Depends(get_db),
):
    return EstimateOut.model_validate(
        estimate_service.decline_estimate(db, ctx, estimate_id, ip=get_client_ip(request))
    )


@router.post('/{estimate_id}/options', response_model=EstimateOptionOut, status_code=201)
def add_option(
    estimate_id: int,
    payload: EstimateOptionIn,
    request: Request,
    ctx: TenantContext = Depends(get_current_context),
    db: Session = Depends(get_db),
):
    option = estimate_service.add_estimate_option(db, ctx, estimate_id, data=payload, ip=get_client_ip(request))
    return EstimateOptionOut.model_validate(option)


@router.delete('/{estimate_id}/options/{option_id}', response_model=EstimateDetailOut)
def delete_option(
    estimate_id: int,
    option_id: int,
    request: Request,
    ctx: TenantContext = Depends(get_current_context),
    db: Session = Depends(get_db),
):
    estimate = estimate_service.delete_estimate_option(db, ctx, estimate_id, option_id, ip=get_client_ip(request))
    return EstimateDetailOut.model_validate(estimate)


@router.post('/{estimate_id}/invoice', response_model=InvoiceOut, status_code=201)
def invoice_estimate(
    estimate_id: int,
    payload: InvoiceFromDocument,
    request: Request,
    ctx: TenantContext = Depends(get_current_context),
    db: Session = Depends(get_db),
):
    invoice = estimate_service.create_invoice_from_estimate(
        db, ctx, estimate_id, due_date=payload.due_date, tax_rate=payload.tax_rate, ip=get_client_ip(request)
    )
    return present_invoice(invoice)
