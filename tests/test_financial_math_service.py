from __future__ import annotations

import unittest
from decimal import Decimal

from app.models import PaymentStatus
from app.services.financial_math_service import (
    LineAmount,
    compute_document_totals,
    compute_invoice_financials,
    line_total,
    round2,
    settled_amount,
)


class _Paid:
    def __init__(self, amount: str, status: PaymentStatus = PaymentStatus.SUCCEEDED) -> None:
        self.amount = Decimal(amount)
        self.status = status


LINES = [LineAmount(Decimal('2'), Decimal('50.00')), LineAmount(Decimal('1'), Decimal('25.00'))]


class FinancialMathServiceTests(unittest.TestCase):
    def test_round2_is_half_up(self) -> None:
        self.assertEqual(round2(Decimal('1.005')), Decimal('1.01'))
        self.assertEqual(round2(Decimal('1.004')), Decimal('1.00'))
        self.assertEqual(round2(Decimal('-1.005')), Decimal('-1.01'))

    def test_line_total_rounds_per_line(self) -> None:
        self.assertEqual(line_total(Decimal('3'), Decimal('0.335')), Decimal('1.01'))
        self.assertEqual(line_total(Decimal('1.5'), Decimal('19.99')), Decimal('29.99'))

    def test_float_inputs_do_not_leak_binary_noise(self) -> None:
        self.assertEqual(line_total(0.1, 3), Decimal('0.30'))

    def test_invoice_scenario_totals(self) -> None:
        totals = compute_document_totals(LINES, Decimal('0.08'))
        self.assertEqual(totals.subtotal, Decimal('125.00'))
        self.assertEqual(totals.tax_amount, Decimal('10.00'))
        self.assertEqual(totals.total, Decimal('135.00'))

    def test_tax_is_rounded_at_the_boundary(self) -> None:
        lines = [LineAmount(Decimal('1'), Decimal('10.05'))]
        totals = compute_document_totals(lines, Decimal('0.0725'))
        self.assertEqual(totals.tax_amount, Decimal('0.73'))
        self.assertEqual(totals.total, Decimal('10.78'))

    def test_empty_document_is_zero(self) -> None:
        totals = compute_document_totals([], Decimal('0.08'))
        self.assertEqual(totals.total, Decimal('0.00'))

    def test_negative_tax_rate_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            compute_document_totals(LINES, Decimal('-0.01'))

    def test_only_succeeded_payments_count(self) -> None:
        payments = [
            _Paid('60.00'),
            _Paid('10.00', PaymentStatus.PENDING),
            _Paid('5.00', PaymentStatus.FAILED),
            _Paid('7.00', PaymentStatus.REFUNDED),
        ]
        self.assertEqual(settled_amount(payments), Decimal('60.00'))

    def test_invoice_financials_balance(self) -> None:
        result = compute_invoice_financials(LINES, Decimal('0.08'), [_Paid('60.00'), _Paid('75.00')])
        self.assertEqual(result.amount_paid, Decimal('135.00'))
        self.assertEqual(result.balance_due, Decimal('0.00'))

    def test_derivation_is_idempotent(self) -> None:
        payments = [_Paid('33.33')]
        first = compute_invoice_financials(LINES, Decimal('0.0825'), payments)
        second = compute_invoice_financials(LINES, Decimal('0.0825'), payments)
        self.assertEqual(first, second)

    def test_payment_order_does_not_change_balance(self) -> None:
        amounts = ['10.10', '20.20', '30.30']
        forward = compute_invoice_financials(LINES, Decimal('0.08'), [_Paid(a) for a in amounts])
        backward = compute_invoice_financials(LINES, Decimal('0.08'), [_Paid(a) for a in reversed(amounts)])
        self.assertEqual(forward.balance_due, backward.balance_due)
        self.assertEqual(forward.balance_due, Decimal('135.00') - Decimal('60.60'))


if __name__ == '__main__':
    unittest.main()
