from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Protocol

from app.models import PaymentStatus


CENT = Decimal('0.01')
ZERO = Decimal('0.00')


class PricedLine(Protocol):
    quantity: Decimal
    unit_price: Decimal


class AppliedPayment(Protocol):
    amount: Decimal
    status: PaymentStatus


@dataclass(frozen=True)
class LineAmount:
    quantity: Decimal
    unit_price: Decimal


@dataclass(frozen=True)
class DocumentTotals:
    subtotal: Decimal
    tax_amount: Decimal
    total: Decimal


@dataclass(frozen=True)
class InvoiceFinancials:
    subtotal: Decimal
    tax_amount: Decimal
    total: Decimal
    amount_paid: Decimal
    balance_due: Decimal


def round2(value: Decimal | int | str) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def _as_decimal(value: Decimal | int | float | str) -> Decimal:
    if isinstance(value, Decimal):
        return value
    # str() keeps floats like 0.1 from dragging binary noise into cents.
    return Decimal(str(value))


def line_total(quantity: Decimal | int | float | str, unit_price: Decimal | int | float | str) -> Decimal:
    return round2(_as_decimal(quantity) * _as_decimal(unit_price))


def compute_subtotal(lines: Iterable[PricedLine]) -> Decimal:
    return round2(sum((line_total(line.quantity, line.unit_price) for line in lines), ZERO))


def compute_document_totals(lines: Iterable[PricedLine], tax_rate: Decimal | int | str = ZERO) -> DocumentTotals:
    rate = _as_decimal(tax_rate)
    if rate < 0:
        raise ValueError('Tax rate cannot be negative')
    subtotal = compute_subtotal(lines)
    tax_amount = round2(subtotal * rate)
    return DocumentTotals(subtotal=subtotal, tax_amount=tax_amount, total=subtotal + tax_amount)


def settled_amount(payments: Iterable[AppliedPayment]) -> Decimal:
    return round2(
        sum((_as_decimal(p.amount) for p in payments if p.status == PaymentStatus.SUCCEEDED), ZERO)
    )


def compute_invoice_financials(
    lines: Iterable[PricedLine],
    tax_rate: Decimal | int | str,
    payments: Iterable[AppliedPayment],
) -> InvoiceFinancials:
    totals = compute_document_totals(lines, tax_rate)
    amount_paid = settled_amount(payments)
    return InvoiceFinancials(
        subtotal=totals.subtotal,
        tax_amount=totals.tax_amount,
        total=totals.total,
        amount_paid=amount_paid,
        balance_due=totals.total - amount_paid,
    )
