from __future__ import annotations

import unittest
from datetime import date
from decimal import Decimal

from app.errors import ConflictError, ForbiddenError, InvalidTransitionError, NotFoundError, ValidationError
from app.models import EstimateStatus, InvoiceStatus, UserRole
from app.schemas import EstimateCreate, EstimateOptionIn, EstimateUpdate
from app.services import estimate_service
from tests.support import DatabaseTestCase, line


def _option(name: str, *items) -> EstimateOptionIn:
    return EstimateOptionIn(name=name, items=list(items))


class EstimateServiceTests(DatabaseTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.customer = self.make_customer()

    def _create(self, *options):
        options = options or (
            _option('Repair', line('1', '150.00')),
            _option('Replace', line('1', '4000.00'), line('8', '95.50')),
        )
        data = EstimateCreate(
            customer_id=self.customer.id,
            property_id=self.primary_property(self.customer).id,
            summary='Furnace options',
            options=list(options),
        )
        return estimate_service.create_estimate(self.db, self.admin_ctx, data=data)

    def _sent(self):
        estimate = self._create()
        return estimate_service.send_estimate(self.db, self.admin_ctx, estimate.id)

    def test_create_derives_option_totals_and_leaves_total_unset(self) -> None:
        estimate = self._create()
        self.assertEqual(estimate.estimate_number, 'EST-0001')
        self.assertEqual(estimate.status, EstimateStatus.DRAFT)
        self.assertIsNone(estimate.total_amount)
        self.assertEqual([o.total for o in estimate.options], [Decimal('150.00'), Decimal('4764.00')])

    def test_send_then_approve_sets_total_from_option(self) -> None:
        estimate = self._sent()
        self.assertIsNotNone(estimate.sent_at)
        replace = estimate.options[1]
        estimate = estimate_service.approve_estimate(self.db, self.admin_ctx, estimate.id, option_id=replace.id)
        self.assertEqual(estimate.status, EstimateStatus.APPROVED)
        self.assertEqual(estimate.approved_option_id, replace.id)
        self.assertEqual(estimate.total_amount, Decimal('4764.00'))
        self.assertIsNotNone(estimate.approved_at)

    def test_approve_with_foreign_option_is_not_found(self) -> None:
        other = self._create()
        estimate = self._sent()
        with self.assertRaises(NotFoundError) as caught:
            estimate_service.approve_estimate(self.db, self.admin_ctx, estimate.id, option_id=other.options[0].id)
        self.assertEqual(caught.exception.message, 'Estimate option not found')
        estimate = estimate_service.get_estimate(self.db, self.admin_ctx, estimate.id)
        self.assertIsNone(estimate.approved_option_id)
        self.assertEqual(estimate.status, EstimateStatus.SENT)

    def test_approve_from_draft_is_invalid(self) -> None:
        estimate = self._create()
        with self.assertRaises(InvalidTransitionError):
            estimate_service.approve_estimate(self.db, self.admin_ctx, estimate.id, option_id=estimate.options[0].id)

    def test_viewed_then_declined(self) -> None:
        estimate = self._sent()
        estimate = estimate_service.mark_estimate_viewed(self.db, self.admin_ctx, estimate.id)
        self.assertEqual(estimate.status, EstimateStatus.VIEWED)
        estimate = estimate_service.decline_estimate(self.db, self.admin_ctx, estimate.id)
        self.assertEqual(estimate.status, EstimateStatus.DECLINED)
        self.assertIsNotNone(estimate.declined_at)

    def test_update_only_while_draft(self) -> None:
        estimate = self._create()
        estimate = estimate_service.update_estimate(
            self.db, self.admin_ctx, estimate.id, data=EstimateUpdate(summary='Revised')
        )
        self.assertEqual(estimate.summary, 'Revised')
        estimate_service.send_estimate(self.db, self.admin_ctx, estimate.id)
        with self.assertRaises(ConflictError):
            estimate_service.update_estimate(self.db, self.admin_ctx, estimate.id, data=EstimateUpdate(summary='Late'))

    def test_null_summary_is_rejected(self) -> None:
        estimate = self._create()
        with self.assertRaises(ValidationError) as caught:
            estimate_service.update_estimate(self.db, self.admin_ctx, estimate.id, data=EstimateUpdate(summary=None))
        self.assertEqual(caught.exception.details[0]['field'], 'summary')
        self.assertEqual(estimate_service.get_estimate(self.db, self.admin_ctx, estimate.id).summary, 'Furnace options')

    def test_options_editable_after_send_but_not_after_approval(self) -> None:
        estimate = self._sent()
        option = estimate_service.add_estimate_option(
            self.db, self.admin_ctx, estimate.id, data=_option('Tune-up', line('1', '89.00'))
        )
        self.assertEqual(option.total, Decimal('89.00'))
        self.assertEqual(option.sort_order, 2)

        estimate_service.approve_estimate(self.db, self.admin_ctx, estimate.id, option_id=option.id)
        with self.assertRaises(ConflictError):
            estimate_service.add_estimate_option(
                self.db, self.admin_ctx, estimate.id, data=_option('Extra', line('1', '1.00'))
            )
        with self.assertRaises(ConflictError):
            estimate_service.delete_estimate_option(self.db, self.admin_ctx, estimate.id, option.id)

    def test_last_option_cannot_be_deleted(self) -> None:
        estimate = self._create(_option('Only', line('1', '10.00')))
        with self.assertRaises(ValidationError):
            estimate_service.delete_estimate_option(self.db, self.admin_ctx, estimate.id, estimate.options[0].id)

    def test_delete_option(self) -> None:
        estimate = self._create()
        estimate = estimate_service.delete_estimate_option(
            self.db, self.admin_ctx, estimate.id, estimate.options[0].id
        )
        self.assertEqual([o.name for o in estimate.options], ['Replace'])

    def test_dispatcher_cannot_create(self) -> None:
        dispatcher_ctx = self.ctx_for(self.make_user(UserRole.DISPATCHER))
        data = EstimateCreate(
            customer_id=self.customer.id,
            property_id=self.primary_property(self.customer).id,
            summary='x',
            options=[_option('A', line('1', '1.00'))],
        )
        with self.assertRaises(ForbiddenError):
            estimate_service.create_estimate(self.db, dispatcher_ctx, data=data)


class EstimateInvoiceTests(DatabaseTestCase):
    def setUp(self) -> None:
        super().setUp()
        customer = self.make_customer()
        data = EstimateCreate(
            customer_id=customer.id,
            property_id=self.primary_property(customer).id,
            summary='Duct cleaning',
            options=[_option('Standard', line('2', '50.00'), line('1', '25.00'))],
        )
        self.estimate = estimate_service.create_estimate(self.db, self.admin_ctx, data=data)

    def test_unapproved_estimate_cannot_be_invoiced(self) -> None:
        with self.assertRaises(ConflictError):
            estimate_service.create_invoice_from_estimate(
                self.db, self.admin_ctx, self.estimate.id, due_date=date(2026, 11, 1)
            )

    def test_approved_option_is_copied_to_a_draft_invoice(self) -> None:
        estimate_service.send_estimate(self.db, self.admin_ctx, self.estimate.id)
        estimate_service.approve_estimate(
            self.db, self.admin_ctx, self.estimate.id, option_id=self.estimate.options[0].id
        )
        invoice = estimate_service.create_invoice_from_estimate(
            self.db, self.admin_ctx, self.estimate.id, due_date=date(2026, 11, 1), tax_rate=Decimal('0.08')
        )
        self.assertEqual(invoice.status, InvoiceStatus.DRAFT)
        self.assertEqual(invoice.estimate_id, self.estimate.id)
        self.assertEqual(len(invoice.line_items), 2)
        self.assertEqual(invoice.total, Decimal('135.00'))
        self.assertEqual(invoice.balance_due, Decimal('135.00'))


if __name__ == '__main__':
    unittest.main()
