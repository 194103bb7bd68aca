"""
HTTP surface: context headers, status mapping and business scoping.
"""

from retailcore.models import Product, Purchase
from retailcore.services import work_session_service

from conftest import context_headers, presentation_of


class TestContextHeaders:
    def test_missing_user_header(self, client, db_session):
        response = client.get('/api/products')
        assert response.status_code == 401

    def test_unknown_user(self, client, db_session):
        response = client.get('/api/products', headers={'X-User-Id': 'ghost'})
        assert response.status_code == 401


class TestSystemEndpoints:
    def test_health(self, client, db_session):
        response = client.get('/api/health')
        assert response.status_code == 200
        assert response.json['status'] == 'healthy'
        assert 'open_sessions' in response.json['checks']['database']['details']

    def test_version(self, client, db_session):
        response = client.get('/api/version')
        assert response.status_code == 200
        assert response.json['api_version']


class TestSalesRoutes:
    def _payload(self, product, variant, quantity, **extra):
        presentation = presentation_of(product, variant)
        item = {
            'product_id': product.id,
            'product_presentation_id': presentation.id,
            'quantity': quantity,
            'unit_price_cents': presentation.price_cents,
        }
        item.update(extra)
        return {'payment_method': 'cash', 'items': [item]}

    def test_create_sale(self, client, db_session, cashier, branch, water):
        response = client.post(
            '/api/sales/', json=self._payload(water, 'pack', 1), headers=context_headers(cashier, branch)
        )

        assert response.status_code == 201
        body = response.json
        assert body['success'] is True
        assert body['sale_data']['items'][0]['variant'] == 'pack'

        db_session.expire_all()
        assert db_session.get(Product, water.id).stock == 4

    def test_insufficient_stock_is_conflict(self, client, db_session, cashier, branch, water):
        response = client.post(
            '/api/sales/', json=self._payload(water, 'pack', 2), headers=context_headers(cashier, branch)
        )

        assert response.status_code == 409
        assert response.json['error_kind'] == 'integrity'
        assert response.json['details']['items'][0]['required'] == 12

    def test_decimal_quantity_is_bad_request(self, client, db_session, cashier, branch, water):
        response = client.post(
            '/api/sales/', json=self._payload(water, 'unidad', 1.5), headers=context_headers(cashier, branch)
        )

        assert response.status_code == 400
        assert response.json['error_kind'] == 'validation'

    def test_get_sale_is_business_scoped(self, client, db_session, cashier, outsider, branch, water):
        created = client.post(
            '/api/sales/', json=self._payload(water, 'unidad', 1), headers=context_headers(cashier, branch)
        ).json

        mine = client.get(f"/api/sales/{created['sale_id']}", headers=context_headers(cashier))
        theirs = client.get(f"/api/sales/{created['sale_id']}", headers=context_headers(outsider))

        assert mine.status_code == 200
        assert mine.json['receipt']['sale_id'] == created['sale_id']
        assert theirs.status_code == 404

    def test_list_sales(self, client, db_session, cashier, branch, water):
        client.post('/api/sales/', json=self._payload(water, 'unidad', 1), headers=context_headers(cashier, branch))

        response = client.get('/api/sales/', headers=context_headers(cashier, branch))

        assert response.status_code == 200
        assert response.json['count'] == 1
        assert response.json['branch_id'] == branch.id


class TestPurchaseRoutes:
    def test_create_and_receive(self, client, db_session, owner, branch):
        payload = {
            'supplier_name': 'Distribuidora Sur',
            'items': [{'product_name': 'Widget', 'quantity': 10, 'unit_cost_cents': 200, 'price_cents': 350}],
        }
        created = client.post('/api/purchases/', json=payload, headers=context_headers(owner, branch))
        assert created.status_code == 201
        purchase_id = created.json['purchase_id']

        received = client.post(f'/api/purchases/{purchase_id}/receive', headers=context_headers(owner, branch))
        assert received.status_code == 200
        assert received.json['purchase']['status'] == 'received'

        again = client.post(f'/api/purchases/{purchase_id}/receive', headers=context_headers(owner, branch))
        assert again.status_code == 409
        assert again.json['error_kind'] == 'state'

        db_session.expire_all()
        assert db_session.query(Product).filter_by(name='Widget').one().stock == 10

    def test_purchase_of_other_business_is_hidden(self, client, db_session, owner, outsider, branch):
        payload = {
            'supplier_name': 'Distribuidora Sur',
            'items': [{'product_name': 'Widget', 'quantity': 1, 'unit_cost_cents': 200, 'price_cents': 350}],
        }
        purchase_id = client.post('/api/purchases/', json=payload, headers=context_headers(owner, branch)).json['purchase_id']

        assert client.get(f'/api/purchases/{purchase_id}', headers=context_headers(outsider)).status_code == 404
        assert client.post(f'/api/purchases/{purchase_id}/cancel', headers=context_headers(outsider)).status_code == 404
        assert db_session.get(Purchase, purchase_id).status == 'pending'

    def test_cancel_with_reason(self, client, db_session, owner, branch):
        payload = {
            'supplier_name': 'Distribuidora Sur',
            'notes': 'Entrega martes',
            'items': [{'product_name': 'Widget', 'quantity': 1, 'unit_cost_cents': 200, 'price_cents': 350}],
        }
        headers = context_headers(owner, branch)
        purchase_id = client.post('/api/purchases/', json=payload, headers=headers).json['purchase_id']

        response = client.post(
            f'/api/purchases/{purchase_id}/cancel', json={'reason': 'Proveedor sin stock'}, headers=headers
        )

        assert response.status_code == 200
        assert response.json['purchase']['status'] == 'cancelled'
        assert response.json['purchase']['notes'] == 'Proveedor sin stock'

    def test_scheduled_purchase_exposes_delivery_time(self, client, db_session, owner, branch):
        payload = {
            'supplier_name': 'Distribuidora Sur',
            'expected_delivery_at': '2026-11-02T09:00:00Z',
            'items': [{'product_name': 'Widget', 'quantity': 1, 'unit_cost_cents': 200, 'price_cents': 350}],
        }

        response = client.post('/api/purchases/', json=payload, headers=context_headers(owner, branch))

        assert response.status_code == 201
        assert response.json['purchase']['expected_delivery_at'] == '2026-11-02T09:00:00Z'

        bad = dict(payload, expected_delivery_at='pronto')
        assert client.post('/api/purchases/', json=bad, headers=context_headers(owner, branch)).status_code == 400


class TestProductRoutes:
    def test_list_and_create(self, client, db_session, owner, branch, water):
        created = client.post(
            '/api/products',
            json={'name': 'Cafe', 'price_cents': 900, 'presentations': [{'variant': 'caja', 'units': 10}]},
            headers=context_headers(owner, branch),
        )
        assert created.status_code == 201
        assert {p['variant'] for p in created.json['product']['presentations']} == {'unidad', 'caja'}

        listing = client.get('/api/products', headers=context_headers(owner, branch))
        assert listing.status_code == 200
        assert listing.json['count'] == 2

    def test_unknown_field_is_rejected(self, client, db_session, owner, branch):
        response = client.post(
            '/api/products', json={'name': 'X', 'price_cents': 1, 'id': 'mine'}, headers=context_headers(owner, branch)
        )
        assert response.status_code == 400

    def test_other_business_product_is_not_found(self, client, db_session, outsider, water):
        response = client.patch(f'/api/products/{water.id}', json={'price_cents': 1}, headers=context_headers(outsider))
        assert response.status_code == 404

    def test_unidad_cannot_be_deactivated(self, client, db_session, owner, branch, water):
        unidad = presentation_of(water, 'unidad')
        response = client.post(
            f'/api/products/presentations/{unidad.id}/deactivate', headers=context_headers(owner, branch)
        )
        assert response.status_code == 400


class TestSessionRoutes:
    def test_start_close_and_delete(self, client, db_session, cashier, branch):
        headers = context_headers(cashier, branch)

        started = client.post('/api/sessions/start', headers=headers)
        assert started.status_code == 200
        session_id = started.json['session']['id']

        assert client.delete(f'/api/sessions/{session_id}', headers=headers).status_code == 409

        closed = client.post('/api/sessions/close', headers=headers)
        assert closed.json['closed'] == 1
        assert client.get('/api/sessions/active', headers=headers).json['session'] is None

        assert client.delete(f'/api/sessions/{session_id}', headers=headers).status_code == 200

    def test_session_of_another_user_is_hidden(self, client, db_session, cashier, owner, branch):
        session_id = client.post('/api/sessions/start', headers=context_headers(cashier, branch)).json['session']['id']

        response = client.post(f'/api/sessions/{session_id}/close', headers=context_headers(owner, branch))

        assert response.status_code == 404

    def test_unexpected_failure_is_a_server_error(self, client, db_session, cashier, branch, monkeypatch):
        def broken(*args, **kwargs):
            raise RuntimeError("database unreachable")

        monkeypatch.setattr(work_session_service, 'list_sessions', broken)
        monkeypatch.setattr(work_session_service, 'get_active_session', broken)
        headers = context_headers(cashier, branch)

        assert client.get('/api/sessions/', headers=headers).status_code == 500
        response = client.get('/api/sessions/active', headers=headers)
        assert response.status_code == 500
        assert response.json == {'error': 'Internal server error'}


class TestSupplierRoutes:
    def test_crud(self, client, db_session, owner):
        headers = context_headers(owner)

        created = client.post('/api/suppliers', json={'name': 'Lacteos del Valle'}, headers=headers)
        assert created.status_code == 201
        supplier_id = created.json['supplier']['id']

        updated = client.patch(f'/api/suppliers/{supplier_id}', json={'phone': '555-0100'}, headers=headers)
        assert updated.json['supplier']['phone'] == '555-0100'

        assert client.delete(f'/api/suppliers/{supplier_id}', headers=headers).status_code == 200
        assert client.get('/api/suppliers', headers=headers).json['count'] == 0

    def test_name_required(self, client, db_session, owner):
        response = client.post('/api/suppliers', json={}, headers=context_headers(owner))
        assert response.status_code == 400
