from __future__ import annotations

from datetime import date
from decimal import Decimal
from types import MappingProxyType
from typing import Mapping

from app.errors import ConflictError, InvalidTransitionError
from app.models import EstimateStatus, InvoiceStatus, JobStatus


JOB_TRANSITIONS: Mapping[JobStatus, frozenset[JobStatus]] = MappingProxyType(
    {
        JobStatus.NEW: frozenset({JobStatus.SCHEDULED, JobStatus.CANCELED}),
        JobStatus.SCHEDULED: frozenset({JobStatus.DISPATCHED, JobStatus.NEW, JobStatus.CANCELED}),
        JobStatus.DISPATCHED: frozenset({JobStatus.IN_PROGRESS, JobStatus.SCHEDULED, JobStatus.CANCELED}),
        JobStatus.IN_PROGRESS: frozenset({JobStatus.COMPLETED, JobStatus.DISPATCHED}),
        JobStatus.COMPLETED: frozenset(),
        JobStatus.CANCELED: frozenset({JobStatus.NEW}),
    }
)

# Timestamp columns filled the first time a job enters the status. Never cleared.
JOB_ENTRY_STAMPS: Mapping[JobStatus, tuple[str, ...]] = MappingProxyType(
    {
        JobStatus.DISPATCHED: ('dispatched_at',),
        JobStatus.IN_PROGRESS: ('actual_start',),
        JobStatus.COMPLETED: ('actual_end', 'completed_at'),
    }
)


def can_transition_job(current: JobStatus, target: JobStatus) -> bool:
    return target in JOB_TRANSITIONS.get(current, frozenset())


def assert_job_transition(current: JobStatus, target: JobStatus) -> None:
    if not can_transition_job(current, target):
        raise InvalidTransitionError(current.value, target.value)


def job_transition_table() -> dict[str, list[str]]:
    order = list(JobStatus)
    return {
        current.value: sorted((t.value for t in targets), key=lambda v: order.index(JobStatus(v)))
        for current, targets in JOB_TRANSITIONS.items()
    }


# Estimates move through explicit actions rather than a generic status setter.
ESTIMATE_ACTIONS: Mapping[str, tuple[frozenset[EstimateStatus], EstimateStatus]] = MappingProxyType(
    {
        'send': (frozenset({EstimateStatus.DRAFT}), EstimateStatus.SENT),
        'mark_viewed': (frozenset({EstimateStatus.SENT}), EstimateStatus.VIEWED),
        'approve': (frozenset({EstimateStatus.SENT, EstimateStatus.VIEWED}), EstimateStatus.APPROVED),
        'decline': (frozenset({EstimateStatus.SENT, EstimateStatus.VIEWED}), EstimateStatus.DECLINED),
    }
)

ESTIMATE_OPTIONS_EDITABLE = frozenset({EstimateStatus.DRAFT, EstimateStatus.SENT, EstimateStatus.VIEWED})


def estimate_action_target(current: EstimateStatus, action: str) -> EstimateStatus:
    allowed_from, target = ESTIMATE_ACTIONS[action]
    if current not in allowed_from:
        raise InvalidTransitionError(current.value, target.value)
    return target


def assert_estimate_options_editable(current: EstimateStatus) -> None:
    if current not in ESTIMATE_OPTIONS_EDITABLE:
        raise ConflictError(f'Options cannot be changed on a {current.value} estimate')


INVOICE_EDITABLE = frozenset({InvoiceStatus.DRAFT, InvoiceStatus.SENT, InvoiceStatus.VIEWED})
INVOICE_DERIVED = frozenset({InvoiceStatus.PAID, InvoiceStatus.PARTIAL, InvoiceStatus.OVERDUE})
INVOICE_OVERDUE_ELIGIBLE = frozenset({InvoiceStatus.SENT, InvoiceStatus.VIEWED, InvoiceStatus.PARTIAL})


def assert_invoice_editable(current: InvoiceStatus) -> None:
    if current not in INVOICE_EDITABLE:
        raise ConflictError(f'Cannot modify a {current.value} invoice')


def assert_invoice_sendable(current: InvoiceStatus) -> None:
    if current != InvoiceStatus.DRAFT:
        raise InvalidTransitionError(current.value, InvoiceStatus.SENT.value)


def assert_invoice_viewable(current: InvoiceStatus) -> None:
    if current != InvoiceStatus.SENT:
        raise InvalidTransitionError(current.value, InvoiceStatus.VIEWED.value)


def assert_invoice_voidable(current: InvoiceStatus) -> None:
    if current == InvoiceStatus.VOID:
        raise ConflictError('Invoice is already void')
    if current == InvoiceStatus.PAID:
        raise ConflictError('Cannot void a fully paid invoice')


def assert_invoice_accepts_payment(current: InvoiceStatus) -> None:
    if current == InvoiceStatus.VOID:
        raise ConflictError('Cannot record payment on a void invoice')
    if current == InvoiceStatus.PAID:
        raise ConflictError('Invoice is already paid in full')


def derive_invoice_status(
    current: InvoiceStatus,
    *,
    total: Decimal,
    amount_paid: Decimal,
    was_sent: bool,
    was_viewed: bool = False,
) -> InvoiceStatus:
    """Single authority for the stored invoice status after a money change.

    ``paid`` and ``partial`` follow from the totals. Once no money is
    applied the invoice falls back to the last explicit lifecycle state
    it reached (draft, sent or viewed). ``overdue`` is never stored; see
    :func:`effective_invoice_status`.
    """
    if current == InvoiceStatus.VOID:
        return current
    balance_due = total - amount_paid
    # A zero-total invoice with nothing applied is not considered paid.
    if amount_paid > 0 and balance_due <= 0:
        return InvoiceStatus.PAID
    if 0 < amount_paid < total:
        return InvoiceStatus.PARTIAL
    if current in (InvoiceStatus.DRAFT, InvoiceStatus.SENT, InvoiceStatus.VIEWED):
        return current
    if was_viewed:
        return InvoiceStatus.VIEWED
    return InvoiceStatus.SENT if was_sent else InvoiceStatus.DRAFT


def effective_invoice_status(
    status: InvoiceStatus,
    *,
    due_date: date | None,
    balance_due: Decimal,
    today: date,
) -> InvoiceStatus:
    if status in INVOICE_OVERDUE_ELIGIBLE and due_date is not None and due_date < today and balance_due > 0:
        return InvoiceStatus.OVERDUE
    return status
