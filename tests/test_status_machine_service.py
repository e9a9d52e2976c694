from __future__ import annotations

import unittest
from datetime import date
from decimal import Decimal

from app.errors import ConflictError, InvalidTransitionError
from app.models import EstimateStatus, InvoiceStatus, JobStatus
from app.services.status_machine_service import (
    assert_estimate_options_editable,
    assert_invoice_accepts_payment,
    assert_invoice_editable,
    assert_invoice_sendable,
    assert_invoice_voidable,
    assert_job_transition,
    can_transition_job,
    derive_invoice_status,
    effective_invoice_status,
    estimate_action_target,
    job_transition_table,
)


EXPECTED_JOB_TABLE = {
    'new': ['scheduled', 'canceled'],
    'scheduled': ['new', 'dispatched', 'canceled'],
    'dispatched': ['scheduled', 'in_progress', 'canceled'],
    'in_progress': ['dispatched', 'completed'],
    'completed': [],
    'canceled': ['new'],
}


class JobStateMachineTests(unittest.TestCase):
    def test_every_pair_matches_the_table(self) -> None:
        for current in JobStatus:
            for target in JobStatus:
                expected = target.value in EXPECTED_JOB_TABLE[current.value]
                self.assertEqual(can_transition_job(current, target), expected, (current, target))

    def test_published_table_is_the_enforced_table(self) -> None:
        self.assertEqual(job_transition_table(), EXPECTED_JOB_TABLE)

    def test_completed_is_terminal(self) -> None:
        with self.assertRaises(InvalidTransitionError) as caught:
            assert_job_transition(JobStatus.COMPLETED, JobStatus.IN_PROGRESS)
        error = caught.exception
        self.assertEqual(error.status_code, 422)
        self.assertEqual(error.code, 'VALIDATION_ERROR')
        self.assertEqual(error.details, [{'field': 'status', 'message': error.message}])
        self.assertIn('completed', error.message)

    def test_self_transition_is_rejected(self) -> None:
        with self.assertRaises(InvalidTransitionError):
            assert_job_transition(JobStatus.NEW, JobStatus.NEW)


class EstimateStateMachineTests(unittest.TestCase):
    def test_send_only_from_draft(self) -> None:
        self.assertEqual(estimate_action_target(EstimateStatus.DRAFT, 'send'), EstimateStatus.SENT)
        with self.assertRaises(InvalidTransitionError):
            estimate_action_target(EstimateStatus.SENT, 'send')

    def test_approve_and_decline_from_sent_or_viewed(self) -> None:
        for current in (EstimateStatus.SENT, EstimateStatus.VIEWED):
            self.assertEqual(estimate_action_target(current, 'approve'), EstimateStatus.APPROVED)
            self.assertEqual(estimate_action_target(current, 'decline'), EstimateStatus.DECLINED)
        for current in (EstimateStatus.DRAFT, EstimateStatus.APPROVED, EstimateStatus.DECLINED, EstimateStatus.EXPIRED):
            with self.assertRaises(InvalidTransitionError):
                estimate_action_target(current, 'approve')

    def test_options_freeze_once_decided(self) -> None:
        assert_estimate_options_editable(EstimateStatus.SENT)
        with self.assertRaises(ConflictError):
            assert_estimate_options_editable(EstimateStatus.APPROVED)


class InvoiceStateMachineTests(unittest.TestCase):
    def _derive(self, current, total, paid, **flags):
        return derive_invoice_status(current, total=Decimal(total), amount_paid=Decimal(paid), **flags)

    def test_paid_and_partial_are_derived(self) -> None:
        self.assertEqual(self._derive(InvoiceStatus.SENT, '135.00', '60.00', was_sent=True), InvoiceStatus.PARTIAL)
        self.assertEqual(self._derive(InvoiceStatus.PARTIAL, '135.00', '135.00', was_sent=True), InvoiceStatus.PAID)

    def test_no_money_keeps_lifecycle_state(self) -> None:
        self.assertEqual(self._derive(InvoiceStatus.DRAFT, '0.00', '0.00', was_sent=False), InvoiceStatus.DRAFT)
        self.assertEqual(self._derive(InvoiceStatus.VIEWED, '10.00', '0.00', was_sent=True), InvoiceStatus.VIEWED)

    def test_partial_falls_back_to_last_explicit_state(self) -> None:
        self.assertEqual(self._derive(InvoiceStatus.PARTIAL, '10.00', '0.00', was_sent=True), InvoiceStatus.SENT)
        self.assertEqual(
            self._derive(InvoiceStatus.PARTIAL, '10.00', '0.00', was_sent=True, was_viewed=True),
            InvoiceStatus.VIEWED,
        )

    def test_void_is_sticky(self) -> None:
        self.assertEqual(self._derive(InvoiceStatus.VOID, '10.00', '10.00', was_sent=True), InvoiceStatus.VOID)

    def test_overdue_is_read_time_only(self) -> None:
        today = date(2026, 10, 19)
        past = date(2026, 10, 1)
        self.assertEqual(
            effective_invoice_status(InvoiceStatus.SENT, due_date=past, balance_due=Decimal('1.00'), today=today),
            InvoiceStatus.OVERDUE,
        )
        self.assertEqual(
            effective_invoice_status(InvoiceStatus.PAID, due_date=past, balance_due=Decimal('0.00'), today=today),
            InvoiceStatus.PAID,
        )
        self.assertEqual(
            effective_invoice_status(InvoiceStatus.DRAFT, due_date=past, balance_due=Decimal('5.00'), today=today),
            InvoiceStatus.DRAFT,
        )
        self.assertEqual(
            effective_invoice_status(InvoiceStatus.SENT, due_date=today, balance_due=Decimal('5.00'), today=today),
            InvoiceStatus.SENT,
        )

    def test_guards(self) -> None:
        with self.assertRaises(ConflictError):
            assert_invoice_voidable(InvoiceStatus.PAID)
        with self.assertRaises(ConflictError):
            assert_invoice_voidable(InvoiceStatus.VOID)
        assert_invoice_voidable(InvoiceStatus.PARTIAL)
        with self.assertRaises(ConflictError):
            assert_invoice_accepts_payment(InvoiceStatus.VOID)
        with self.assertRaises(ConflictError):
            assert_invoice_editable(InvoiceStatus.PARTIAL)
        with self.assertRaises(InvalidTransitionError):
            assert_invoice_sendable(InvoiceStatus.SENT)


if __name__ == '__main__':
    unittest.main()
