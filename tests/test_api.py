from __future__ import annotations

import unittest
from decimal import Decimal

from fastapi.testclient import TestClient

from app.db import get_db
from app.main import create_app
from app.models import UserRole
from app.security.sessions import create_api_session, revoke_api_session
from tests.support import DatabaseTestCase


class ApiTests(DatabaseTestCase):
    def setUp(self) -> None:
        super().setUp()
        app = create_app(session_factory=self.session_factory)

        def override_get_db():
            db = self.session_factory()
            try:
                yield db
            finally:
                db.close()

        app.dependency_overrides[get_db] = override_get_db
        self.client = TestClient(app)
        self.admin_token = self._token(self.admin)

    def _token(self, user) -> str:
        token = create_api_session(self.db, user.id)
        self.db.commit()
        return token

    def _auth(self, token: str | None = None) -> dict:
        return {'Authorization': f'Bearer {token or self.admin_token}'}

    def _create_customer(self) -> dict:
        response = self.client.post(
            '/api/v1/customers',
            headers=self._auth(),
            json={
                'first_name': 'Jane',
                'last_name': 'Smith',
                'phone': '555-0100',
                'property': {'address_line1': '1 Main St', 'city': 'Springfield', 'state': 'IL', 'zip': '62701'},
            },
        )
        self.assertEqual(response.status_code, 201, response.text)
        return response.json()

    def test_missing_token_is_unauthorized(self) -> None:
        response = self.client.get('/api/v1/customers')
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()['error']['code'], 'UNAUTHORIZED')

    def test_revoked_token_is_unauthorized(self) -> None:
        self.assertEqual(self.client.get('/api/v1/users/me', headers=self._auth()).status_code, 200)
        revoke_api_session(self.db, self.admin_token)
        self.db.commit()
        self.assertEqual(self.client.get('/api/v1/users/me', headers=self._auth()).status_code, 401)

    def test_me_reports_tenant_and_role(self) -> None:
        body = self.client.get('/api/v1/users/me', headers=self._auth()).json()
        self.assertEqual(body['tenant_id'], self.tenant.id)
        self.assertEqual(body['role'], 'admin')

    def test_invoice_payment_flow(self) -> None:
        customer = self._create_customer()
        response = self.client.post(
            '/api/v1/invoices',
            headers=self._auth(),
            json={
                'customer_id': customer['id'],
                'due_date': '2026-11-01',
                'tax_rate': '0.08',
                'line_items': [
                    {'description': 'Labor', 'quantity': '2', 'unit_price': '50.00'},
                    {'description': 'Filter', 'quantity': '1', 'unit_price': '25.00', 'type': 'material'},
                ],
            },
        )
        self.assertEqual(response.status_code, 201, response.text)
        invoice = response.json()
        self.assertEqual(invoice['status'], 'draft')
        self.assertEqual(Decimal(invoice['total']), Decimal('135.00'))

        response = self.client.post(f"/api/v1/invoices/{invoice['id']}/send", headers=self._auth())
        self.assertEqual(response.json()['status'], 'sent')

        response = self.client.post(
            f"/api/v1/invoices/{invoice['id']}/payments",
            headers=self._auth(),
            json={'amount': '60.00', 'method': 'check', 'reference_number': '1042'},
        )
        self.assertEqual(response.status_code, 201, response.text)
        self.assertEqual(response.json()['status'], 'succeeded')

        detail = self.client.get(f"/api/v1/invoices/{invoice['id']}", headers=self._auth()).json()
        self.assertEqual(detail['status'], 'partial')
        self.assertEqual(detail['effective_status'], 'partial')
        self.assertEqual(Decimal(detail['balance_due']), Decimal('75.00'))
        self.assertEqual(len(detail['payments']), 1)

        response = self.client.post(
            f"/api/v1/invoices/{invoice['id']}/payments",
            headers=self._auth(),
            json={'amount': '80.00', 'method': 'cash'},
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error']['details'][0]['field'], 'amount')

    def test_invalid_body_is_a_validation_error(self) -> None:
        response = self.client.post('/api/v1/customers', headers=self._auth(), json={'first_name': 'Only'})
        self.assertEqual(response.status_code, 400)
        error = response.json()['error']
        self.assertEqual(error['code'], 'VALIDATION_ERROR')
        self.assertIn('last_name', {detail['field'] for detail in error['details']})

    def test_null_on_required_column_is_a_validation_error(self) -> None:
        customer = self._create_customer()
        invoice = self.client.post(
            '/api/v1/invoices',
            headers=self._auth(),
            json={
                'customer_id': customer['id'],
                'due_date': '2026-11-01',
                'line_items': [{'description': 'Labor', 'quantity': '1', 'unit_price': '89.00'}],
            },
        ).json()
        response = self.client.patch(f"/api/v1/invoices/{invoice['id']}", headers=self._auth(), json={'due_date': None})
        self.assertEqual(response.status_code, 400, response.text)
        error = response.json()['error']
        self.assertEqual(error['code'], 'VALIDATION_ERROR')
        self.assertEqual(error['details'][0]['field'], 'due_date')

        response = self.client.post(
            f"/api/v1/invoices/{invoice['id']}/line-items",
            headers=self._auth(),
            json={'description': 'Coil cleaner', 'quantity': '3', 'unit_price': '0.333'},
        )
        self.assertEqual(response.status_code, 400, response.text)
        self.assertEqual(response.json()['error']['details'][0]['field'], 'unit_price')

    def test_illegal_job_transition_is_unprocessable(self) -> None:
        customer = self._create_customer()
        detail = self.client.get(f"/api/v1/customers/{customer['id']}", headers=self._auth()).json()
        response = self.client.post(
            '/api/v1/jobs',
            headers=self._auth(),
            json={
                'customer_id': customer['id'],
                'property_id': detail['properties'][0]['id'],
                'job_type': 'repair',
                'summary': 'No heat',
            },
        )
        self.assertEqual(response.status_code, 201, response.text)
        job = response.json()
        response = self.client.post(
            f"/api/v1/jobs/{job['id']}/status", headers=self._auth(), json={'status': 'completed'}
        )
        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()['error']['code'], 'VALIDATION_ERROR')

    def test_technician_cannot_create_customers(self) -> None:
        tech = self.make_user(UserRole.TECHNICIAN, dispatchable=True)
        response = self.client.post(
            '/api/v1/customers',
            headers=self._auth(self._token(tech)),
            json={'first_name': 'Jane', 'last_name': 'Smith', 'phone': '555-0100'},
        )
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()['error']['code'], 'FORBIDDEN')

    def test_other_tenant_gets_not_found(self) -> None:
        customer = self._create_customer()
        outsider = self.make_user(UserRole.ADMIN, tenant=self.make_tenant('globex'))
        response = self.client.get(f"/api/v1/customers/{customer['id']}", headers=self._auth(self._token(outsider)))
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()['error']['code'], 'NOT_FOUND')

    def test_request_id_and_headers(self) -> None:
        response = self.client.get('/health', headers={'X-Request-ID': 'req-123'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.headers['X-Request-ID'], 'req-123')
        self.assertEqual(response.headers['X-Content-Type-Options'], 'nosniff')
        self.assertEqual(response.headers['Cache-Control'], 'no-store')

    def test_status_transitions_are_published(self) -> None:
        body = self.client.get('/api/v1/jobs/status-transitions', headers=self._auth()).json()
        self.assertEqual(body['completed'], [])
        self.assertEqual(body['new'], ['scheduled', 'canceled'])


if __name__ == '__main__':
    unittest.main()
