from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Date,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# SQLite only autoincrements INTEGER PRIMARY KEY columns.
IdType = BigInteger().with_variant(Integer(), 'sqlite')
Money = Numeric(12, 2)
Quantity = Numeric(12, 4)
Rate = Numeric(6, 4)


class Base(DeclarativeBase):
    pass


def _enum(enum_cls: type[Enum], name: str) -> SQLEnum:
    return SQLEnum(enum_cls, name=name, values_callable=lambda members: [m.value for m in members])


class UserRole(str, Enum):
    ADMIN = 'admin'
    OFFICE_MANAGER = 'office_manager'
    DISPATCHER = 'dispatcher'
    CSR = 'csr'
    TECHNICIAN = 'technician'


class CustomerType(str, Enum):
    RESIDENTIAL = 'residential'
    COMMERCIAL = 'commercial'


class JobStatus(str, Enum):
    NEW = 'new'
    SCHEDULED = 'scheduled'
    DISPATCHED = 'dispatched'
    IN_PROGRESS = 'in_progress'
    COMPLETED = 'completed'
    CANCELED = 'canceled'


class JobPriority(str, Enum):
    LOW = 'low'
    NORMAL = 'normal'
    HIGH = 'high'
    EMERGENCY = 'emergency'


class LineItemType(str, Enum):
    SERVICE = 'service'
    MATERIAL = 'material'
    LABOR = 'labor'
    DISCOUNT = 'discount'
    OTHER = 'other'


line_item_type_enum = _enum(LineItemType, 'line_item_type')


class EstimateStatus(str, Enum):
    DRAFT = 'draft'
    SENT = 'sent'
    VIEWED = 'viewed'
    APPROVED = 'approved'
    DECLINED = 'declined'
    EXPIRED = 'expired'


class InvoiceStatus(str, Enum):
    DRAFT = 'draft'
    SENT = 'sent'
    VIEWED = 'viewed'
    PAID = 'paid'
    PARTIAL = 'partial'
    OVERDUE = 'overdue'
    VOID = 'void'


class PaymentMethod(str, Enum):
    CREDIT_CARD = 'credit_card'
    DEBIT_CARD = 'debit_card'
    ACH = 'ach'
    CASH = 'cash'
    CHECK = 'check'
    OTHER = 'other'


class PaymentStatus(str, Enum):
    PENDING = 'pending'
    SUCCEEDED = 'succeeded'
    FAILED = 'failed'
    REFUNDED = 'refunded'


class SignerRole(str, Enum):
    CUSTOMER = 'customer'
    TECHNICIAN = 'technician'


class Tenant(Base):
    __tablename__ = 'tenants'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    slug: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    timezone: Mapped[str] = mapped_column(String(64), nullable=False, default='America/New_York')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class User(Base):
    __tablename__ = 'users'
    __table_args__ = (
        UniqueConstraint('tenant_id', 'email', name='uq_users_tenant_email'),
        Index('ix_users_tenant', 'tenant_id'),
    )

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(IdType, ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(50))
    role: Mapped[UserRole] = mapped_column(_enum(UserRole, 'user_role'), nullable=False, default=UserRole.TECHNICIAN)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default='true')
    can_be_dispatched: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default='false')
    color: Mapped[str] = mapped_column(String(7), nullable=False, default='#3b82f6')
    push_token: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )


class ApiSession(Base):
    __tablename__ = 'api_sessions'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    session_token: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    user_id: Mapped[int] = mapped_column(IdType, ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    ip: Mapped[str | None] = mapped_column(String(45))
    user_agent: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    last_seen_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class TenantSequence(Base):
    __tablename__ = 'tenant_sequences'

    tenant_id: Mapped[int] = mapped_column(IdType, ForeignKey('tenants.id', ondelete='CASCADE'), primary_key=True)
    sequence_type: Mapped[str] = mapped_column(String(50), primary_key=True)
    prefix: Mapped[str] = mapped_column(String(10), nullable=False)
    current_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )


class Customer(Base):
    __tablename__ = 'customers'
    __table_args__ = (
        Index('ix_customers_tenant', 'tenant_id'),
        Index('ix_customers_tenant_name', 'tenant_id', 'last_name', 'first_name'),
    )

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(IdType, ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255))
    phone: Mapped[str] = mapped_column(String(50), nullable=False)
    alt_phone: Mapped[str | None] = mapped_column(String(50))
    company_name: Mapped[str | None] = mapped_column(String(255))
    type: Mapped[CustomerType] = mapped_column(
        _enum(CustomerType, 'customer_type'), nullable=False, default=CustomerType.RESIDENTIAL
    )
    source: Mapped[str | None] = mapped_column(String(100))
    notes: Mapped[str | None] = mapped_column(Text)
    do_not_contact: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default='false')
    created_by: Mapped[int | None] = mapped_column(IdType, ForeignKey('users.id'))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class Property(Base):
    __tablename__ = 'properties'
    __table_args__ = (
        Index('ix_properties_tenant_customer', 'tenant_id', 'customer_id'),
        Index(
            'uq_properties_customer_primary',
            'customer_id',
            unique=True,
            postgresql_where=text('is_primary'),
            sqlite_where=text('is_primary'),
        ),
    )

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(IdType, ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False)
    customer_id: Mapped[int] = mapped_column(IdType, ForeignKey('customers.id', ondelete='CASCADE'), nullable=False)
    name: Mapped[str | None] = mapped_column(String(255))
    address_line1: Mapped[str] = mapped_column(String(255), nullable=False)
    address_line2: Mapped[str | None] = mapped_column(String(255))
    city: Mapped[str] = mapped_column(String(100), nullable=False)
    state: Mapped[str] = mapped_column(String(50), nullable=False)
    zip: Mapped[str] = mapped_column(String(20), nullable=False)
    latitude: Mapped[Decimal | None] = mapped_column(Numeric(10, 7))
    longitude: Mapped[Decimal | None] = mapped_column(Numeric(10, 7))
    access_notes: Mapped[str | None] = mapped_column(Text)
    is_primary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default='false')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )


class Equipment(Base):
    __tablename__ = 'equipment'
    __table_args__ = (Index('ix_equipment_tenant_property', 'tenant_id', 'property_id'),)

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(IdType, ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False)
    customer_id: Mapped[int] = mapped_column(IdType, ForeignKey('customers.id', ondelete='CASCADE'), nullable=False)
    property_id: Mapped[int] = mapped_column(IdType, ForeignKey('properties.id', ondelete='CASCADE'), nullable=False)
    type: Mapped[str] = mapped_column(String(100), nullable=False)
    brand: Mapped[str | None] = mapped_column(String(100))
    model: Mapped[str | None] = mapped_column(String(100))
    serial_number: Mapped[str | None] = mapped_column(String(100))
    install_date: Mapped[date | None] = mapped_column(Date)
    warranty_expiry: Mapped[date | None] = mapped_column(Date)
    location_in_property: Mapped[str | None] = mapped_column(String(255))
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )


class Job(Base):
    __tablename__ = 'jobs'
    __table_args__ = (
        UniqueConstraint('tenant_id', 'job_number', name='uq_jobs_tenant_number'),
        Index('ix_jobs_tenant_status', 'tenant_id', 'status'),
        Index('ix_jobs_tenant_schedule', 'tenant_id', 'scheduled_start'),
        Index('ix_jobs_tenant_assignee', 'tenant_id', 'assigned_to'),
    )

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(IdType, ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False)
    job_number: Mapped[str] = mapped_column(String(20), nullable=False)
    customer_id: Mapped[int] = mapped_column(IdType, ForeignKey('customers.id'), nullable=False)
    property_id: Mapped[int] = mapped_column(IdType, ForeignKey('properties.id'), nullable=False)
    job_type: Mapped[str] = mapped_column(String(100), nullable=False)
    service_type: Mapped[str | None] = mapped_column(String(100))
    summary: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    status: Mapped[JobStatus] = mapped_column(_enum(JobStatus, 'job_status'), nullable=False, default=JobStatus.NEW)
    priority: Mapped[JobPriority] = mapped_column(
        _enum(JobPriority, 'job_priority'), nullable=False, default=JobPriority.NORMAL
    )
    assigned_to: Mapped[int | None] = mapped_column(IdType, ForeignKey('users.id'))
    scheduled_start: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    scheduled_end: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    actual_start: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    actual_end: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    dispatched_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    total_amount: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal('0.00'))
    internal_notes: Mapped[str | None] = mapped_column(Text)
    customer_notes: Mapped[str | None] = mapped_column(Text)
    tags: Mapped[list | None] = mapped_column(JSON)
    created_by: Mapped[int | None] = mapped_column(IdType, ForeignKey('users.id'))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    line_items: Mapped[list[JobLineItem]] = relationship(
        order_by='JobLineItem.sort_order', cascade='all, delete-orphan', lazy='selectin'
    )
    notes: Mapped[list[JobNote]] = relationship(
        order_by='JobNote.created_at.desc()', cascade='all, delete-orphan', lazy='selectin'
    )
    photos: Mapped[list[JobPhoto]] = relationship(
        order_by='JobPhoto.created_at.desc()', cascade='all, delete-orphan', lazy='selectin'
    )
    signatures: Mapped[list[JobSignature]] = relationship(
        order_by='JobSignature.created_at.desc()', cascade='all, delete-orphan', lazy='selectin'
    )


class JobLineItem(Base):
    __tablename__ = 'job_line_items'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(IdType, ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False)
    job_id: Mapped[int] = mapped_column(IdType, ForeignKey('jobs.id', ondelete='CASCADE'), nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Quantity, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Money, nullable=False)
    total: Mapped[Decimal] = mapped_column(Money, nullable=False)
    type: Mapped[LineItemType] = mapped_column(
        line_item_type_enum, nullable=False, default=LineItemType.SERVICE
    )
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class JobNote(Base):
    __tablename__ = 'job_notes'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(IdType, ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False)
    job_id: Mapped[int] = mapped_column(IdType, ForeignKey('jobs.id', ondelete='CASCADE'), nullable=False)
    user_id: Mapped[int | None] = mapped_column(IdType, ForeignKey('users.id'))
    content: Mapped[str] = mapped_column(Text, nullable=False)
    is_internal: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class JobPhoto(Base):
    __tablename__ = 'job_photos'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(IdType, ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False)
    job_id: Mapped[int] = mapped_column(IdType, ForeignKey('jobs.id', ondelete='CASCADE'), nullable=False)
    uploaded_by: Mapped[int | None] = mapped_column(IdType, ForeignKey('users.id'))
    storage_path: Mapped[str] = mapped_column(Text, nullable=False)
    caption: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class JobSignature(Base):
    __tablename__ = 'job_signatures'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(IdType, ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False)
    job_id: Mapped[int] = mapped_column(IdType, ForeignKey('jobs.id', ondelete='CASCADE'), nullable=False)
    signer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    signer_role: Mapped[SignerRole] = mapped_column(_enum(SignerRole, 'signer_role'), nullable=False)
    storage_path: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Estimate(Base):
    __tablename__ = 'estimates'
    __table_args__ = (
        UniqueConstraint('tenant_id', 'estimate_number', name='uq_estimates_tenant_number'),
        Index('ix_estimates_tenant_status', 'tenant_id', 'status'),
    )

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(IdType, ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False)
    estimate_number: Mapped[str] = mapped_column(String(20), nullable=False)
    customer_id: Mapped[int] = mapped_column(IdType, ForeignKey('customers.id'), nullable=False)
    property_id: Mapped[int] = mapped_column(IdType, ForeignKey('properties.id'), nullable=False)
    job_id: Mapped[int | None] = mapped_column(IdType, ForeignKey('jobs.id'))
    status: Mapped[EstimateStatus] = mapped_column(
        _enum(EstimateStatus, 'estimate_status'), nullable=False, default=EstimateStatus.DRAFT
    )
    summary: Mapped[str] = mapped_column(String(500), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)
    internal_notes: Mapped[str | None] = mapped_column(Text)
    valid_until: Mapped[date | None] = mapped_column(Date)
    approved_option_id: Mapped[int | None] = mapped_column(IdType)
    total_amount: Mapped[Decimal | None] = mapped_column(Money)
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    viewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    declined_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_by: Mapped[int | None] = mapped_column(IdType, ForeignKey('users.id'))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    options: Mapped[list[EstimateOption]] = relationship(
        order_by='EstimateOption.sort_order', cascade='all, delete-orphan', lazy='selectin'
    )


class EstimateOption(Base):
    __tablename__ = 'estimate_options'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(IdType, ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False)
    estimate_id: Mapped[int] = mapped_column(IdType, ForeignKey('estimates.id', ondelete='CASCADE'), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    is_recommended: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    total: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal('0.00'))
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    items: Mapped[list[EstimateOptionItem]] = relationship(
        order_by='EstimateOptionItem.sort_order', cascade='all, delete-orphan', lazy='selectin'
    )


class EstimateOptionItem(Base):
    __tablename__ = 'estimate_option_items'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(IdType, ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False)
    option_id: Mapped[int] = mapped_column(IdType, ForeignKey('estimate_options.id', ondelete='CASCADE'), nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Quantity, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Money, nullable=False)
    total: Mapped[Decimal] = mapped_column(Money, nullable=False)
    type: Mapped[LineItemType] = mapped_column(
        line_item_type_enum, nullable=False, default=LineItemType.SERVICE
    )
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class Invoice(Base):
    __tablename__ = 'invoices'
    __table_args__ = (
        UniqueConstraint('tenant_id', 'invoice_number', name='uq_invoices_tenant_number'),
        Index('ix_invoices_tenant_status', 'tenant_id', 'status'),
        Index('ix_invoices_tenant_due', 'tenant_id', 'due_date'),
    )

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(IdType, ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False)
    invoice_number: Mapped[str] = mapped_column(String(20), nullable=False)
    customer_id: Mapped[int] = mapped_column(IdType, ForeignKey('customers.id'), nullable=False)
    job_id: Mapped[int | None] = mapped_column(IdType, ForeignKey('jobs.id'))
    estimate_id: Mapped[int | None] = mapped_column(IdType, ForeignKey('estimates.id'))
    status: Mapped[InvoiceStatus] = mapped_column(
        _enum(InvoiceStatus, 'invoice_status'), nullable=False, default=InvoiceStatus.DRAFT
    )
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    tax_rate: Mapped[Decimal] = mapped_column(Rate, nullable=False, default=Decimal('0'))
    subtotal: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal('0.00'))
    tax_amount: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal('0.00'))
    total: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal('0.00'))
    amount_paid: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal('0.00'))
    balance_due: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal('0.00'))
    notes: Mapped[str | None] = mapped_column(Text)
    internal_notes: Mapped[str | None] = mapped_column(Text)
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    viewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    voided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_by: Mapped[int | None] = mapped_column(IdType, ForeignKey('users.id'))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    line_items: Mapped[list[InvoiceLineItem]] = relationship(
        order_by='InvoiceLineItem.sort_order', cascade='all, delete-orphan', lazy='selectin'
    )
    payments: Mapped[list[Payment]] = relationship(
        order_by='Payment.id.desc()', lazy='selectin', viewonly=True
    )


class InvoiceLineItem(Base):
    __tablename__ = 'invoice_line_items'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(IdType, ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False)
    invoice_id: Mapped[int] = mapped_column(IdType, ForeignKey('invoices.id', ondelete='CASCADE'), nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Quantity, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Money, nullable=False)
    total: Mapped[Decimal] = mapped_column(Money, nullable=False)
    type: Mapped[LineItemType] = mapped_column(
        line_item_type_enum, nullable=False, default=LineItemType.SERVICE
    )
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class Payment(Base):
    __tablename__ = 'payments'
    __table_args__ = (Index('ix_payments_tenant_invoice', 'tenant_id', 'invoice_id'),)

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(IdType, ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False)
    invoice_id: Mapped[int] = mapped_column(IdType, ForeignKey('invoices.id'), nullable=False)
    customer_id: Mapped[int] = mapped_column(IdType, ForeignKey('customers.id'), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    method: Mapped[PaymentMethod] = mapped_column(_enum(PaymentMethod, 'payment_method'), nullable=False)
    status: Mapped[PaymentStatus] = mapped_column(
        _enum(PaymentStatus, 'payment_status'), nullable=False, default=PaymentStatus.SUCCEEDED
    )
    reference_number: Mapped[str | None] = mapped_column(String(255))
    notes: Mapped[str | None] = mapped_column(Text)
    recorded_by: Mapped[int | None] = mapped_column(IdType, ForeignKey('users.id'))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class ActivityLog(Base):
    __tablename__ = 'activity_log'
    __table_args__ = (
        Index('ix_activity_log_entity', 'tenant_id', 'entity_type', 'entity_id'),
        Index('ix_activity_log_tenant_created', 'tenant_id', 'created_at'),
    )

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(IdType, ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False)
    user_id: Mapped[int | None] = mapped_column(IdType, ForeignKey('users.id'))
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[int] = mapped_column(IdType, nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    changes: Mapped[dict | None] = mapped_column('changes', JSON)
    ip: Mapped[str | None] = mapped_column(String(45))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
