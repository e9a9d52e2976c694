from __future__ import annotations

from datetime import datetime

import structlog
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from app.auth import TenantContext
from app.errors import InvalidTransitionError, NotFoundError, ValidationError
from app.models import (
    Customer,
    Job,
    JobLineItem,
    JobNote,
    JobPhoto,
    JobPriority,
    JobSignature,
    JobStatus,
    Property,
    User,
)
from app.schemas import (
    JobCreate,
    JobNoteCreate,
    JobPhotoCreate,
    JobSignatureCreate,
    JobUpdate,
    LineItemIn,
    LineItemUpdate,
)
from app.services.activity_service import log_activity
from app.services.financial_math_service import compute_subtotal, line_total
from app.services.notification_service import PushDispatcher, get_push_dispatcher, notify_job_assigned
from app.services.permission_service import Action, Resource, assert_permission
from app.services.sequence_service import next_document_number
from app.services.status_machine_service import JOB_ENTRY_STAMPS, assert_job_transition, job_transition_table
from app.services.tenant_scope import Page, apply_changes, load_owned, now_utc, paginate, unit_of_work


logger = structlog.get_logger(__name__)

JOB_SORTS = {
    'scheduled_start': Job.scheduled_start,
    'created_at': Job.created_at,
    'job_number': Job.job_number,
    'priority': Job.priority,
    'status': Job.status,
}


def _load_job(db: Session, ctx: TenantContext, job_id: int, *, for_update: bool = False) -> Job:
    job = load_owned(db, ctx, Job, job_id, label='Job', for_update=for_update)
    # Technicians only ever see their own work.
    if ctx.is_technician and job.assigned_to != ctx.user_id:
        raise NotFoundError('Job')
    return job


def _load_dispatchable_technician(db: Session, ctx: TenantContext, user_id: int, *, field: str) -> User:
    technician = load_owned(db, ctx, User, user_id, label='Technician')
    if not technician.is_active or not technician.can_be_dispatched:
        raise ValidationError('User cannot be assigned to jobs', field=field)
    return technician


def _line_item(ctx: TenantContext, data: LineItemIn, *, sort_order: int) -> JobLineItem:
    return JobLineItem(
        tenant_id=ctx.tenant_id,
        description=data.description,
        quantity=data.quantity,
        unit_price=data.unit_price,
        total=line_total(data.quantity, data.unit_price),
        type=data.type,
        sort_order=sort_order,
    )


def _recompute_total(job: Job) -> None:
    job.total_amount = compute_subtotal(job.line_items)


def _find_child(children: list, child_id: int, label: str):
    for child in children:
        if child.id == child_id:
            return child
    raise NotFoundError(label)


def job_status_transitions() -> dict[str, list[str]]:
    return job_transition_table()


def create_job(db: Session, ctx: TenantContext, *, data: JobCreate, ip: str | None = None) -> Job:
    assert_permission(ctx, Resource.JOBS, Action.CREATE)
    with unit_of_work(db):
        customer = load_owned(db, ctx, Customer, data.customer_id, label='Customer')
        prop = load_owned(db, ctx, Property, data.property_id, label='Property')
        if prop.customer_id != customer.id:
            raise ValidationError('Property does not belong to this customer', field='property_id')
        if data.assigned_to is not None:
            _load_dispatchable_technician(db, ctx, data.assigned_to, field='assigned_to')

        status = JobStatus.SCHEDULED if data.scheduled_start and data.assigned_to else JobStatus.NEW
        job = Job(
            tenant_id=ctx.tenant_id,
            job_number=next_document_number(db, tenant_id=ctx.tenant_id, sequence_type='job'),
            customer_id=customer.id,
            property_id=prop.id,
            job_type=data.job_type,
            service_type=data.service_type,
            summary=data.summary,
            description=data.description,
            status=status,
            priority=data.priority,
            assigned_to=data.assigned_to,
            scheduled_start=data.scheduled_start,
            scheduled_end=data.scheduled_end,
            internal_notes=data.internal_notes,
            customer_notes=data.customer_notes,
            tags=data.tags,
            created_by=ctx.user_id,
        )
        for index, item in enumerate(data.line_items):
            job.line_items.append(_line_item(ctx, item, sort_order=index))
        _recompute_total(job)
        db.add(job)
        db.flush()
    log_activity(
        db, ctx, entity_type='job', entity_id=job.id, action='created',
        changes={'job_number': job.job_number, 'status': status.value}, ip=ip,
    )
    return job


def get_job(db: Session, ctx: TenantContext, job_id: int) -> Job:
    assert_permission(ctx, Resource.JOBS, Action.READ)
    return _load_job(db, ctx, job_id)


def get_job_with_relations(db: Session, ctx: TenantContext, job_id: int) -> Job:
    """Job plus line items, notes, photos and signatures (all selectin-loaded)."""
    return get_job(db, ctx, job_id)


def list_jobs(
    db: Session,
    ctx: TenantContext,
    *,
    statuses: list[JobStatus] | None = None,
    priority: JobPriority | None = None,
    assigned_to: int | None = None,
    customer_id: int | None = None,
    scheduled_from: datetime | None = None,
    scheduled_to: datetime | None = None,
    search: str | None = None,
    sort: str = 'created_at',
    order: str = 'desc',
    page: int = 1,
    page_size: int | None = None,
) -> Page[Job]:
    assert_permission(ctx, Resource.JOBS, Action.READ)
    if sort not in JOB_SORTS:
        raise ValidationError(f'Unsupported sort "{sort}"', field='sort')

    stmt = select(Job).where(Job.tenant_id == ctx.tenant_id)
    if ctx.is_technician:
        stmt = stmt.where(Job.assigned_to == ctx.user_id)
    elif assigned_to is not None:
        stmt = stmt.where(Job.assigned_to == assigned_to)
    if statuses:
        stmt = stmt.where(Job.status.in_(statuses))
    if priority is not None:
        stmt = stmt.where(Job.priority == priority)
    if customer_id is not None:
        stmt = stmt.where(Job.customer_id == customer_id)
    if scheduled_from is not None:
        stmt = stmt.where(Job.scheduled_start >= scheduled_from)
    if scheduled_to is not None:
        stmt = stmt.where(Job.scheduled_start < scheduled_to)
    if search:
        term = f'%{search.strip()}%'
        stmt = stmt.where(or_(Job.job_number.ilike(term), Job.summary.ilike(term), Job.job_type.ilike(term)))

    column = JOB_SORTS[sort]
    stmt = stmt.order_by(column.desc() if order == 'desc' else column.asc(), Job.id.desc())
    return paginate(db, stmt, page=page, page_size=page_size)


def update_job(db: Session, ctx: TenantContext, job_id: int, *, data: JobUpdate, ip: str | None = None) -> Job:
    assert_permission(ctx, Resource.JOBS, Action.UPDATE)
    changes = data.model_dump(exclude_unset=True)
    with unit_of_work(db):
        job = _load_job(db, ctx, job_id, for_update=True)
        apply_changes(job, changes)
        if job.scheduled_start and job.scheduled_end and job.scheduled_end < job.scheduled_start:
            raise ValidationError('scheduled_end must not be before scheduled_start', field='scheduled_end')
    log_activity(
        db, ctx, entity_type='job', entity_id=job_id, action='updated',
        changes={'fields': sorted(changes)}, ip=ip,
    )
    return job


def change_job_status(
    db: Session,
    ctx: TenantContext,
    job_id: int,
    *,
    status: JobStatus,
    ip: str | None = None,
) -> Job:
    assert_permission(ctx, Resource.JOBS, Action.UPDATE)
    with unit_of_work(db):
        job = _load_job(db, ctx, job_id, for_update=True)
        previous = job.status
        try:
            assert_job_transition(previous, status)
        except InvalidTransitionError:
            logger.info('job_status_rejected', job_id=job.id, current=previous.value, target=status.value)
            raise
        job.status = status
        now = now_utc()
        for column in JOB_ENTRY_STAMPS.get(status, ()):
            if getattr(job, column) is None:
                setattr(job, column, now)
    log_activity(
        db, ctx, entity_type='job', entity_id=job_id, action='status_changed',
        changes={'from': previous.value, 'to': status.value}, ip=ip,
    )
    return job


def assign_job(
    db: Session,
    ctx: TenantContext,
    job_id: int,
    *,
    technician_id: int | None,
    dispatcher: PushDispatcher | None = None,
    ip: str | None = None,
) -> Job:
    assert_permission(ctx, Resource.SCHEDULE, Action.UPDATE)
    technician = None
    with unit_of_work(db):
        job = _load_job(db, ctx, job_id, for_update=True)
        previous = job.assigned_to
        if technician_id is not None:
            technician = _load_dispatchable_technician(db, ctx, technician_id, field='technician_id')
        job.assigned_to = technician_id
    log_activity(
        db, ctx, entity_type='job', entity_id=job_id, action='assigned',
        changes={'from': previous, 'to': technician_id}, ip=ip,
    )
    if technician is not None and technician_id != previous:
        notify_job_assigned(dispatcher or get_push_dispatcher(), technician=technician, job=job)
    return job


def add_job_line_item(
    db: Session,
    ctx: TenantContext,
    job_id: int,
    *,
    data: LineItemIn,
    ip: str | None = None,
) -> JobLineItem:
    assert_permission(ctx, Resource.JOBS, Action.UPDATE)
    with unit_of_work(db):
        job = _load_job(db, ctx, job_id, for_update=True)
        next_order = max((li.sort_order for li in job.line_items), default=-1) + 1
        item = _line_item(ctx, data, sort_order=next_order)
        job.line_items.append(item)
        _recompute_total(job)
        db.flush()
    log_activity(
        db, ctx, entity_type='job', entity_id=job_id, action='line_item_added',
        changes={'line_item_id': item.id}, ip=ip,
    )
    return item


def update_job_line_item(
    db: Session,
    ctx: TenantContext,
    job_id: int,
    line_item_id: int,
    *,
    data: LineItemUpdate,
    ip: str | None = None,
) -> JobLineItem:
    assert_permission(ctx, Resource.JOBS, Action.UPDATE)
    changes = data.model_dump(exclude_unset=True)
    with unit_of_work(db):
        job = _load_job(db, ctx, job_id, for_update=True)
        item = _find_child(job.line_items, line_item_id, 'Line item')
        apply_changes(item, changes)
        item.total = line_total(item.quantity, item.unit_price)
        _recompute_total(job)
    log_activity(
        db, ctx, entity_type='job', entity_id=job_id, action='line_item_updated',
        changes={'line_item_id': line_item_id, 'fields': sorted(changes)}, ip=ip,
    )
    return item


def delete_job_line_item(
    db: Session,
    ctx: TenantContext,
    job_id: int,
    line_item_id: int,
    *,
    ip: str | None = None,
) -> Job:
    assert_permission(ctx, Resource.JOBS, Action.UPDATE)
    with unit_of_work(db):
        job = _load_job(db, ctx, job_id, for_update=True)
        item = _find_child(job.line_items, line_item_id, 'Line item')
        job.line_items.remove(item)
        _recompute_total(job)
    log_activity(
        db, ctx, entity_type='job', entity_id=job_id, action='line_item_deleted',
        changes={'line_item_id': line_item_id}, ip=ip,
    )
    return job


def add_job_note(
    db: Session,
    ctx: TenantContext,
    job_id: int,
    *,
    data: JobNoteCreate,
    ip: str | None = None,
) -> JobNote:
    assert_permission(ctx, Resource.JOBS, Action.UPDATE)
    with unit_of_work(db):
        job = _load_job(db, ctx, job_id)
        note = JobNote(tenant_id=ctx.tenant_id, user_id=ctx.user_id, content=data.content, is_internal=data.is_internal)
        job.notes.append(note)
        db.flush()
    log_activity(
        db, ctx, entity_type='job', entity_id=job_id, action='note_added',
        changes={'note_id': note.id}, ip=ip,
    )
    return note


def add_job_photo(
    db: Session,
    ctx: TenantContext,
    job_id: int,
    *,
    data: JobPhotoCreate,
    ip: str | None = None,
) -> JobPhoto:
    assert_permission(ctx, Resource.JOBS, Action.UPDATE)
    with unit_of_work(db):
        job = _load_job(db, ctx, job_id)
        photo = JobPhoto(
            tenant_id=ctx.tenant_id,
            uploaded_by=ctx.user_id,
            storage_path=data.storage_path,
            caption=data.caption,
        )
        job.photos.append(photo)
        db.flush()
    log_activity(
        db, ctx, entity_type='job', entity_id=job_id, action='photo_added',
        changes={'photo_id': photo.id}, ip=ip,
    )
    return photo


def delete_job_photo(
    db: Session,
    ctx: TenantContext,
    job_id: int,
    photo_id: int,
    *,
    ip: str | None = None,
) -> None:
    assert_permission(ctx, Resource.JOBS, Action.UPDATE)
    with unit_of_work(db):
        job = _load_job(db, ctx, job_id)
        photo = _find_child(job.photos, photo_id, 'Photo')
        job.photos.remove(photo)
    log_activity(
        db, ctx, entity_type='job', entity_id=job_id, action='photo_deleted',
        changes={'photo_id': photo_id}, ip=ip,
    )


def add_job_signature(
    db: Session,
    ctx: TenantContext,
    job_id: int,
    *,
    data: JobSignatureCreate,
    ip: str | None = None,
) -> JobSignature:
    assert_permission(ctx, Resource.JOBS, Action.UPDATE)
    with unit_of_work(db):
        job = _load_job(db, ctx, job_id)
        signature = JobSignature(
            tenant_id=ctx.tenant_id,
            signer_name=data.signer_name,
            signer_role=data.signer_role,
            storage_path=data.storage_path,
        )
        job.signatures.append(signature)
        db.flush()
    log_activity(
        db, ctx, entity_type='job', entity_id=job_id, action='signature_added',
        changes={'signature_id': signature.id, 'signer_role': data.signer_role.value}, ip=ip,
    )
    return signature


def get_schedule(
    db: Session,
    ctx: TenantContext,
    *,
    start: datetime,
    end: datetime,
    technician_id: int | None = None,
) -> list[Job]:
    """Jobs whose scheduled start falls in ``[start, end)``, canceled excluded."""
    assert_permission(ctx, Resource.SCHEDULE, Action.READ)
    if end < start:
        raise ValidationError('end must not be before start', field='end')
    stmt = select(Job).where(
        Job.tenant_id == ctx.tenant_id,
        Job.scheduled_start.is_not(None),
        Job.scheduled_start >= start,
        Job.scheduled_start < end,
        Job.status != JobStatus.CANCELED,
    )
    if ctx.is_technician:
        stmt = stmt.where(Job.assigned_to == ctx.user_id)
    elif technician_id is not None:
        stmt = stmt.where(Job.assigned_to == technician_id)
    return list(db.execute(stmt.order_by(Job.scheduled_start, Job.id)).scalars().all())
