from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query, Request, Response
from sqlalchemy.orm import Session

from app.auth import TenantContext, get_current_context
from app.db import get_db
from app.dependencies import get_client_ip, page_params
from app.models import JobPriority, JobStatus
from app.routers.invoices import present_invoice
from app.schemas import (
    InvoiceFromDocument,
    InvoiceOut,
    JobAssign,
    JobCreate,
    JobDetailOut,
    JobNoteCreate,
    JobNoteOut,
    JobOut,
    JobPhotoCreate,
    JobPhotoOut,
    JobSignatureCreate,
    JobSignatureOut,
    JobStatusChange,
    JobUpdate,
    LineItemIn,
    LineItemOut,
    LineItemUpdate,
    PageOut,
    to_page,
)
from app.services import invoice_service, job_service

router = APIRouter(prefix='/jobs', tags=['jobs'])


@router.get('/status-transitions')
def status_transitions() -> dict[str, list[str]]:
    return job_service.job_status_transitions()


@router.get('', response_model=PageOut[JobOut])
def list_jobs(
    status: list[JobStatus] | None = Query(default=None),
    priority: JobPriority | None = None,
    assigned_to: int | None = None,
    customer_id: int | None = None,
    scheduled_from: datetime | None = None,
    scheduled_to: datetime | None = None,
    search: str | None = None,
    sort: str = 'created_at',
    order: str = Query(default='desc', pattern='^(asc|desc)$'),
    paging: dict = Depends(page_params),
    ctx: TenantContext = Depends(get_current_context),
    db: Session = Depends(get_db),
):
    page = job_service.list_jobs(
        db,
        ctx,
        statuses=status,
        priority=priority,
        assigned_to=assigned_to,
        customer_id=customer_id,
        scheduled_from=scheduled_from,
        scheduled_to=scheduled_to,
        search=search,
        sort=sort,
        order=order,
        **paging,
    )
    return to_page(page, JobOut)


@router.post('', response_model=JobDetailOut, status_code=201)
def create_job(
    payload: JobCreate,
    request: Request,
    ctx: TenantContext = Depends(get_current_context),
    db: Session = Depends(get_db),
):
    job = job_service.create_job(db, ctx, data=payload, ip=get_client_ip(request))
    return JobDetailOut.model_validate(job)


@router.get('/{job_id}', response_model=JobDetailOut)
def get_job(job_id: int, ctx: TenantContext = Depends(get_current_context), db: Session = Depends(get_db)):
    return JobDetailOut.model_validate(job_service.get_job_with_relations(db, ctx, job_id))


@router.patch('/{job_id}', response_model=JobOut)
def update_job(
    job_id: int,
    payload: JobUpdate,
    request: Request,
    ctx: TenantContext = Depends(get_current_context),
    db: Session = Depends(get_db),
):
    job = job_service.update_job(db, ctx, job_id, data=payload, ip=get_client_ip(request))
    return JobOut.model_validate(job)


@router.post('/{job_id}/status', response_model=JobOut)
def change_status(
    job_id: int,
    payload: JobStatusChange,
    request: Request,
    ctx: TenantContext = Depends(get_current_context),
    db: Session = Depends(get_db),
):
    job = job_service.change_job_status(db, ctx, job_id, status=payload.status, ip=get_client_ip(request))
    return JobOut.model_validate(job)


@router.post('/{job_id}/assign', response_model=JobOut)
def assign(
    job_id: int,
    payload: JobAssign,
    request: Request,
    ctx: TenantContext = Depends(get_current_context),
    db: Session = Depends(get_db),
):
    job = job_service.assign_job(db, ctx, job_id, technician_id=payload.technician_id, ip=get_client_ip(request))
    return JobOut.model_validate(job)


@router.post('/{job_id}/line-items', response_model=LineItemOut, status_code=201)
def add_line_item(
    job_id: int,
    payload: LineItemIn,
    request: Request,
    ctx: TenantContext = Depends(get_current_context),
    db: Session = Depends(get_db),
):
    item = job_service.add_job_line_item(db, ctx, job_id, data=payload, ip=get_client_ip(request))
    return LineItemOut.model_validate(item)


@router.patch('/{job_id}/line-items/{line_item_id}', response_model=LineItemOut)
def update_line_item(
    job_id: int,
    line_item_id: int,
    payload: LineItemUpdate,
    request: Request,
    ctx: TenantContext = Depends(get_current_context),
    db: Session = Depends(get_db),
):
    item = job_service.update_job_line_item(
        db, ctx, job_id, line_item_id, data=payload, ip=get_client_ip(request)
    )
    return LineItemOut.model_validate(item)


@router.delete('/{job_id}/line-items/{line_item_id}', status_code=204)
def delete_line_item(
    job_id: int,
    line_item_id: int,
    request: Request,
    ctx: TenantContext = Depends(get_current_context),
    db: Session = Depends(get_db),
):
    job_service.delete_job_line_item(db, ctx, job_id, line_item_id, ip=get_client_ip(request))
    return Response(status_code=204)


@router.post('/{job_id}/notes', response_model=JobNoteOut, status_code=201)
def add_note(
    job_id: int,
    payload: JobNoteCreate,
    request: Request,
    ctx: TenantContext = Depends(get_current_context),
    db: Session = Depends(get_db),
):
    note = job_service.add_job_note(db, ctx, job_id, data=payload, ip=get_client_ip(request))
    return JobNoteOut.model_validate(note)


@router.post('/{job_id}/photos', response_model=JobPhotoOut, status_code=201)
def add_photo(
    job_id: int,
    payload: JobPhotoCreate,
    request: Request,
    ctx: TenantContext = Depends(get_current_context),
    db: Session = Depends(get_db),
):
    photo = job_service.add_job_photo(db, ctx, job_id, data=payload, ip=get_client_ip(request))
    return JobPhotoOut.model_validate(photo)


@router.delete('/{job_id}/photos/{photo_id}', status_code=204)
def delete_photo(
    job_id: int,
    photo_id: int,
    request: Request,
    ctx: TenantContext = Depends(get_current_context),
    db: Session = Depends(get_db),
):
    job_service.delete_job_photo(db, ctx, job_id, photo_id, ip=get_client_ip(request))
    return Response(status_code=204)


@router.post('/{job_id}/signatures', response_model=JobSignatureOut, status_code=201)
def add_signature(
    job_id: int,
    payload: JobSignatureCreate,
    request: Request,
    ctx: TenantContext = Depends(get_current_context),
    db: Session = Depends(get_db),
):
    signature = job_service.add_job_signature(db, ctx, job_id, data=payload, ip=get_client_ip(request))
    return JobSignatureOut.model_validate(signature)


@router.post('/{job_id}/invoice', response_model=InvoiceOut, status_code=201)
def invoice_job(
    job_id: int,
    payload: InvoiceFromDocument,
    request: Request,
    ctx: TenantContext = Depends(get_current_context),
    db: Session = Depends(get_db),
):
    invoice = invoice_service.generate_invoice_from_job(
        db, ctx, job_id, due_date=payload.due_date, tax_rate=payload.tax_rate, ip=get_client_ip(request)
    )
    return present_invoice(invoice)
