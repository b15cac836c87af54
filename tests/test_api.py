class TestCustomerAndOrderApi:
    def test_register_customer(self, client):
        resp = client.post('/api/customers', json={'first_name': 'Grace', 'last_name': 'Hopper',
                                                   'email': 'grace@example.com'})
        assert resp.status_code == 201
        body = resp.get_json()
        assert body['customer']['customer_code'] == 'CUST-000001'
        assert body['customer']['email'] == 'grace@example.com'

    def test_register_customer_requires_names(self, client):
        resp = client.post('/api/customers', json={'first_name': 'Grace'})
        assert resp.status_code == 400
        assert resp.get_json()['field'] == 'last_name'

    def test_register_customer_rejects_unknown_keys(self, client, db):
        resp = client.post('/api/customers', json={'first_name': 'A', 'last_name': 'B', 'identifiers': 'x'})
        assert resp.status_code == 400
        assert resp.get_json()['field'] == 'identifiers'

    def test_order_with_non_numeric_ids(self, client):
        resp = client.post('/api/orders', json={'customer_id': 'C1',
                                                'items': [{'product_id': 'P1', 'quantity': 1, 'unit_price': 1.0}]})
        assert resp.status_code == 400
        assert resp.get_json()['field'] == 'customer_id'

    def test_create_order_and_read_it_back(self, client, customer, make_product):
        p1, p2 = make_product(price=100.0), make_product(price=50.0)
        resp = client.post('/api/orders', json={
            'customer_id': customer.id,
            'items': [
                {'product_id': p1.id, 'quantity': 2, 'unit_price': 100.0},
                {'product_id': p2.id, 'quantity': 1, 'unit_price': 50.0},
            ],
        }, headers={'X-Actor-Id': 'web-42'})
        assert resp.status_code == 201
        order = resp.get_json()['order']
        assert (order['subtotal'], order['tax_amount'], order['total_amount']) == (250.0, 30.0, 280.0)
        assert order['created_by'] == 'web-42'

        detail = client.get(f"/api/orders/{order['id']}").get_json()['order']
        assert len(detail['items']) == 2
        assert [e['status'] for e in detail['status_history']] == ['pending']

    def test_validation_error_shape(self, client, customer):
        resp = client.post('/api/orders', json={'customer_id': customer.id, 'items': []})
        assert resp.status_code == 400
        body = resp.get_json()
        assert body == {'success': False, 'error': 'validation_error', 'field': 'items',
                        'message': body['message'], 'code': 400, 'retryable': False}

    def test_non_object_body(self, client):
        resp = client.post('/api/orders', json=[1, 2, 3])
        assert resp.status_code == 400

    def test_illegal_transition_is_409(self, client, customer, product):
        order = client.post('/api/orders', json={
            'customer_id': customer.id,
            'items': [{'product_id': product.id, 'quantity': 1, 'unit_price': 10.0}],
        }).get_json()['order']

        resp = client.post(f"/api/orders/{order['id']}/status", json={'status': 'delivered'})
        assert resp.status_code == 409
        assert resp.get_json()['error'] == 'state_error'

        resp = client.post(f"/api/orders/{order['id']}/status", json={'status': 'confirmed', 'notes': 'paid'},
                           headers={'X-Actor-Id': 'cashier'})
        assert resp.status_code == 200
        assert resp.get_json()['entry']['changed_by'] == 'cashier'

    def test_missing_order_is_404(self, client):
        resp = client.get('/api/orders/999')
        assert resp.status_code == 404
        assert resp.get_json()['error'] == 'not_found'

    def test_unknown_route_is_json_404(self, client):
        resp = client.get('/api/nothing-here')
        assert resp.status_code == 404
        assert resp.get_json()['success'] is False


class TestPurchaseAndStockApi:
    def test_purchase_order_flow(self, client, supplier, make_product):
        part = make_product()
        resp = client.post('/api/purchase-orders', json={
            'supplier_id': supplier.id,
            'items': [{'product_id': part.id, 'quantity_ordered': 6, 'unit_cost': 2.5}],
            'expected_date': '2024-07-01',
        })
        assert resp.status_code == 201
        po = resp.get_json()['purchase_order']
        item_id = po['items'][0]['id']

        assert client.post(f"/api/purchase-orders/{po['id']}/approve").get_json()['purchase_order']['status'] == \
            'confirmed'

        resp = client.post(f'/api/purchase-order-items/{item_id}/receive', json={'quantity': 2})
        assert resp.get_json()['item']['quantity_received'] == 2
        assert resp.get_json()['purchase_order']['status'] == 'confirmed'

        resp = client.post(f"/api/purchase-orders/{po['id']}/receive",
                           json={'items': [{'item_id': item_id, 'quantity': 4}], 'received_date': '2024-07-02'})
        body = resp.get_json()['purchase_order']
        assert body['status'] == 'received'
        assert body['actual_delivery_date'] == '2024-07-02'

        recon = client.get(f'/api/products/{part.id}/reconciliation').get_json()['reconciliation']
        assert recon == {'product_id': part.id, 'stock_quantity': 6, 'ledger_quantity': 6, 'drift': 0}

    def test_over_receipt_is_400(self, client, supplier, make_product):
        part = make_product()
        po = client.post('/api/purchase-orders', json={
            'supplier_id': supplier.id,
            'items': [{'product_id': part.id, 'quantity_ordered': 1, 'unit_cost': 2.5}],
        }).get_json()['purchase_order']
        resp = client.post(f"/api/purchase-order-items/{po['items'][0]['id']}/receive", json={'quantity': 2})
        assert resp.status_code == 400
        assert resp.get_json()['field'] == 'quantity'

    def test_manual_adjustment(self, client, product):
        resp = client.post(f'/api/products/{product.id}/movements', json={'direction': 'out', 'quantity': 5})
        assert resp.status_code == 201
        assert resp.get_json()['stock_quantity'] == 15

        resp = client.post(f'/api/products/{product.id}/movements', json={'direction': 'out', 'quantity': 50})
        assert resp.status_code == 409
