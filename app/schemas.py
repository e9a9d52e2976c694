from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, model_validator

from app.models import (
    CustomerType,
    EstimateStatus,
    InvoiceStatus,
    JobPriority,
    JobStatus,
    LineItemType,
    PaymentMethod,
    PaymentStatus,
    SignerRole,
)


T = TypeVar('T')


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class PageOut(ORMModel, Generic[T]):
    items: list[T]
    page: int
    page_size: int
    total: int


# ---------- Line items ----------


class LineItemIn(BaseModel):
    description: str = Field(min_length=1, max_length=500)
    quantity: Decimal = Field(ge=Decimal('0.01'), decimal_places=4)
    unit_price: Decimal = Field(ge=0, decimal_places=2)
    type: LineItemType = LineItemType.SERVICE


class LineItemUpdate(BaseModel):
    description: Optional[str] = Field(default=None, min_length=1, max_length=500)
    quantity: Optional[Decimal] = Field(default=None, ge=Decimal('0.01'), decimal_places=4)
    unit_price: Optional[Decimal] = Field(default=None, ge=0, decimal_places=2)
    type: Optional[LineItemType] = None


class LineItemOut(ORMModel):
    id: int
    description: str
    quantity: Decimal
    unit_price: Decimal
    total: Decimal
    type: LineItemType
    sort_order: int


# ---------- Customers ----------


class PropertyIn(BaseModel):
    name: Optional[str] = None
    address_line1: str = Field(min_length=1, max_length=255)
    address_line2: Optional[str] = None
    city: str = Field(min_length=1, max_length=100)
    state: str = Field(min_length=1, max_length=50)
    zip: str = Field(min_length=1, max_length=20)
    latitude: Optional[Decimal] = Field(default=None, ge=-90, le=90)
    longitude: Optional[Decimal] = Field(default=None, ge=-180, le=180)
    access_notes: Optional[str] = None
    is_primary: bool = False


class PropertyUpdate(BaseModel):
    name: Optional[str] = None
    address_line1: Optional[str] = Field(default=None, min_length=1, max_length=255)
    address_line2: Optional[str] = None
    city: Optional[str] = Field(default=None, min_length=1, max_length=100)
    state: Optional[str] = Field(default=None, min_length=1, max_length=50)
    zip: Optional[str] = Field(default=None, min_length=1, max_length=20)
    latitude: Optional[Decimal] = Field(default=None, ge=-90, le=90)
    longitude: Optional[Decimal] = Field(default=None, ge=-180, le=180)
    access_notes: Optional[str] = None


class PropertyOut(ORMModel):
    id: int
    customer_id: int
    name: Optional[str]
    address_line1: str
    address_line2: Optional[str]
    city: str
    state: str
    zip: str
    latitude: Optional[Decimal]
    longitude: Optional[Decimal]
    access_notes: Optional[str]
    is_primary: bool


class CustomerCreate(BaseModel):
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    phone: str = Field(min_length=1, max_length=50)
    email: Optional[str] = Field(default=None, max_length=255)
    alt_phone: Optional[str] = None
    company_name: Optional[str] = None
    type: CustomerType = CustomerType.RESIDENTIAL
    source: Optional[str] = None
    notes: Optional[str] = None
    property: Optional[PropertyIn] = None


class CustomerUpdate(BaseModel):
    first_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    phone: Optional[str] = Field(default=None, min_length=1, max_length=50)
    email: Optional[str] = None
    alt_phone: Optional[str] = None
    company_name: Optional[str] = None
    type: Optional[CustomerType] = None
    source: Optional[str] = None
    notes: Optional[str] = None
    do_not_contact: Optional[bool] = None


class CustomerOut(ORMModel):
    id: int
    first_name: str
    last_name: str
    email: Optional[str]
    phone: str
    alt_phone: Optional[str]
    company_name: Optional[str]
    type: CustomerType
    source: Optional[str]
    notes: Optional[str]
    do_not_contact: bool
    created_at: datetime


class EquipmentCreate(BaseModel):
    property_id: int
    type: str = Field(min_length=1, max_length=100)
    brand: Optional[str] = None
    model: Optional[str] = None
    serial_number: Optional[str] = None
    install_date: Optional[date] = None
    warranty_expiry: Optional[date] = None
    location_in_property: Optional[str] = None
    notes: Optional[str] = None


class EquipmentUpdate(BaseModel):
    type: Optional[str] = Field(default=None, min_length=1, max_length=100)
    brand: Optional[str] = None
    model: Optional[str] = None
    serial_number: Optional[str] = None
    install_date: Optional[date] = None
    warranty_expiry: Optional[date] = None
    location_in_property: Optional[str] = None
    notes: Optional[str] = None


class EquipmentOut(ORMModel):
    id: int
    customer_id: int
    property_id: int
    type: str
    brand: Optional[str]
    model: Optional[str]
    serial_number: Optional[str]
    install_date: Optional[date]
    warranty_expiry: Optional[date]
    location_in_property: Optional[str]
    notes: Optional[str]


class CustomerDetailOut(CustomerOut):
    properties: list[PropertyOut]
    equipment: list[EquipmentOut]


# ---------- Jobs ----------


class JobCreate(BaseModel):
    customer_id: int
    property_id: int
    job_type: str = Field(min_length=1, max_length=100)
    summary: str = Field(min_length=1, max_length=500)
    service_type: Optional[str] = None
    description: Optional[str] = None
    priority: JobPriority = JobPriority.NORMAL
    assigned_to: Optional[int] = None
    scheduled_start: Optional[datetime] = None
    scheduled_end: Optional[datetime] = None
    internal_notes: Optional[str] = None
    customer_notes: Optional[str] = None
    tags: Optional[list[str]] = None
    line_items: list[LineItemIn] = Field(default_factory=list)

    @model_validator(mode='after')
    def _window_is_ordered(self) -> JobCreate:
        if self.scheduled_start and self.scheduled_end and self.scheduled_end < self.scheduled_start:
            raise ValueError('scheduled_end must not be before scheduled_start')
        return self


class JobUpdate(BaseModel):
    job_type: Optional[str] = Field(default=None, min_length=1, max_length=100)
    service_type: Optional[str] = None
    summary: Optional[str] = Field(default=None, min_length=1, max_length=500)
    description: Optional[str] = None
    priority: Optional[JobPriority] = None
    scheduled_start: Optional[datetime] = None
    scheduled_end: Optional[datetime] = None
    internal_notes: Optional[str] = None
    customer_notes: Optional[str] = None
    tags: Optional[list[str]] = None


class JobStatusChange(BaseModel):
    status: JobStatus


class JobAssign(BaseModel):
    technician_id: Optional[int] = None


class JobNoteCreate(BaseModel):
    content: str = Field(min_length=1)
    is_internal: bool = True


class JobPhotoCreate(BaseModel):
    storage_path: str = Field(min_length=1)
    caption: Optional[str] = None


class JobSignatureCreate(BaseModel):
    signer_name: str = Field(min_length=1, max_length=255)
    signer_role: SignerRole
    storage_path: str = Field(min_length=1)


class JobNoteOut(ORMModel):
    id: int
    user_id: Optional[int]
    content: str
    is_internal: bool
    created_at: datetime


class JobPhotoOut(ORMModel):
    id: int
    storage_path: str
    caption: Optional[str]
    created_at: datetime


class JobSignatureOut(ORMModel):
    id: int
    signer_name: str
    signer_role: SignerRole
    storage_path: str
    created_at: datetime


class JobOut(ORMModel):
    id: int
    job_number: str
    customer_id: int
    property_id: int
    job_type: str
    service_type: Optional[str]
    summary: str
    description: Optional[str]
    status: JobStatus
    priority: JobPriority
    assigned_to: Optional[int]
    scheduled_start: Optional[datetime]
    scheduled_end: Optional[datetime]
    actual_start: Optional[datetime]
    actual_end: Optional[datetime]
    dispatched_at: Optional[datetime]
    completed_at: Optional[datetime]
    total_amount: Decimal
    tags: Optional[list[str]]
    created_at: datetime


class JobDetailOut(JobOut):
    internal_notes: Optional[str]
    customer_notes: Optional[str]
    line_items: list[LineItemOut]
    notes: list[JobNoteOut]
    photos: list[JobPhotoOut]
    signatures: list[JobSignatureOut]


# ---------- Estimates ----------


class EstimateOptionIn(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    is_recommended: bool = False
    items: list[LineItemIn] = Field(min_length=1)


class EstimateCreate(BaseModel):
    customer_id: int
    property_id: int
    job_id: Optional[int] = None
    summary: str = Field(min_length=1, max_length=500)
    notes: Optional[str] = None
    internal_notes: Optional[str] = None
    valid_until: Optional[date] = None
    options: list[EstimateOptionIn] = Field(min_length=1)


class EstimateUpdate(BaseModel):
    summary: Optional[str] = Field(default=None, min_length=1, max_length=500)
    notes: Optional[str] = None
    internal_notes: Optional[str] = None
    valid_until: Optional[date] = None


class EstimateApprove(BaseModel):
    option_id: int


class EstimateOptionOut(ORMModel):
    id: int
    name: str
    description: Optional[str]
    is_recommended: bool
    total: Decimal
    sort_order: int
    items: list[LineItemOut]


class EstimateOut(ORMModel):
    id: int
    estimate_number: str
    customer_id: int
    property_id: int
    job_id: Optional[int]
    status: EstimateStatus
    summary: str
    notes: Optional[str]
    valid_until: Optional[date]
    approved_option_id: Optional[int]
    total_amount: Optional[Decimal]
    sent_at: Optional[datetime]
    approved_at: Optional[datetime]
    created_at: datetime


class EstimateDetailOut(EstimateOut):
    internal_notes: Optional[str]
    options: list[EstimateOptionOut]


# ---------- Invoices ----------


class InvoiceFromDocument(BaseModel):
    due_date: date
    tax_rate: Decimal = Field(default=Decimal('0'), ge=0, le=1, decimal_places=4)


class InvoiceCreate(BaseModel):
    customer_id: int
    due_date: date
    line_items: list[LineItemIn] = Field(min_length=1)
    tax_rate: Decimal = Field(default=Decimal('0'), ge=0, le=1, decimal_places=4)
    job_id: Optional[int] = None
    estimate_id: Optional[int] = None
    notes: Optional[str] = None
    internal_notes: Optional[str] = None


class InvoiceUpdate(BaseModel):
    due_date: Optional[date] = None
    tax_rate: Optional[Decimal] = Field(default=None, ge=0, le=1, decimal_places=4)
    notes: Optional[str] = None
    internal_notes: Optional[str] = None


class PaymentCreate(BaseModel):
    amount: Decimal = Field(gt=0, decimal_places=2)
    method: PaymentMethod
    reference_number: Optional[str] = Field(default=None, max_length=255)
    notes: Optional[str] = None


class PaymentOut(ORMModel):
    id: int
    invoice_id: int
    amount: Decimal
    method: PaymentMethod
    status: PaymentStatus
    reference_number: Optional[str]
    created_at: datetime


class InvoiceOut(ORMModel):
    id: int
    invoice_number: str
    customer_id: int
    job_id: Optional[int]
    estimate_id: Optional[int]
    status: InvoiceStatus
    effective_status: Optional[InvoiceStatus] = None
    due_date: date
    tax_rate: Decimal
    subtotal: Decimal
    tax_amount: Decimal
    total: Decimal
    amount_paid: Decimal
    balance_due: Decimal
    sent_at: Optional[datetime]
    paid_at: Optional[datetime]
    created_at: datetime


class InvoiceDetailOut(InvoiceOut):
    notes: Optional[str]
    internal_notes: Optional[str]
    line_items: list[LineItemOut]
    payments: list[PaymentOut]


# ---------- Activity / team ----------


class ActivityOut(ORMModel):
    id: int
    user_id: Optional[int]
    entity_type: str
    entity_id: int
    action: str
    changes: Optional[dict]
    created_at: datetime


class TechnicianOut(ORMModel):
    id: int
    first_name: str
    last_name: str
    color: str
    phone: Optional[str]


class PushTokenIn(BaseModel):
    token: str = Field(min_length=1)


def to_page(page, schema: type[BaseModel]) -> PageOut:
    return PageOut[schema](
        items=[schema.model_validate(item) for item in page.items],
        page=page.page,
        page_size=page.page_size,
        total=page.total,
    )
