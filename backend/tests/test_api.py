"""
HTTP API tests.

SECURITY: every ledger endpoint requires a session token; permission checks
return 403 with the missing permission code.
"""

import pytest


STAFF_PASSWORD = "Password123!"


# =============================================================================
# AUTHENTICATION
# =============================================================================

class TestAuthentication:

    def test_login_returns_token_and_staff(self, client, admin_staff):
        response = client.post('/api/auth/login', json={
            'username': 'admin',
            'password': STAFF_PASSWORD,
        })

        assert response.status_code == 200
        assert response.json['token']
        assert response.json['staff']['username'] == 'admin'
        assert 'password_hash' not in response.json['staff']

    def test_wrong_password(self, client, admin_staff):
        response = client.post('/api/auth/login', json={
            'username': 'admin',
            'password': 'Wrong-password1!',
        })
        assert response.status_code == 401

    def test_missing_credentials(self, client, db_session):
        response = client.post('/api/auth/login', json={'username': 'admin'})
        assert response.status_code == 400

    def test_me(self, client, cashier_headers):
        response = client.get('/api/auth/me', headers=cashier_headers)

        assert response.status_code == 200
        assert response.json['permissions'] == ['cash_handle', 'pos_sales']

    def test_tampered_token_rejected(self, client, admin_headers):
        headers = {'Authorization': admin_headers['Authorization'] + 'x'}
        response = client.get('/api/auth/me', headers=headers)
        assert response.status_code == 401

    def test_logout_revokes_token(self, client, admin_headers):
        response = client.post('/api/auth/logout', headers=admin_headers)
        assert response.status_code == 200

        response = client.get('/api/auth/me', headers=admin_headers)
        assert response.status_code == 401

    @pytest.mark.parametrize("method,path", [
        ("get", "/api/accounts"),
        ("post", "/api/accounts"),
        ("get", "/api/accounts/1/credit"),
        ("get", "/api/products"),
        ("post", "/api/sales"),
        ("get", "/api/sales/summary"),
        ("post", "/api/payments"),
        ("post", "/api/egg-collections"),
        ("post", "/api/egg-collections/pay"),
        ("get", "/api/staff"),
        ("patch", "/api/products/1"),
    ])
    def test_protected_endpoints_require_token(self, client, db_session, method, path):
        response = getattr(client, method)(path, json={})
        assert response.status_code == 401


# =============================================================================
# PERMISSIONS
# =============================================================================

class TestPermissions:

    def test_cashier_cannot_create_accounts(self, client, cashier_headers):
        response = client.post('/api/accounts', headers=cashier_headers, json={
            'kind': 'FARMER', 'name': 'Hill Farm',
        })

        assert response.status_code == 403
        assert response.json['details']['required_permission'] == 'customer_manage'

    def test_cashier_cannot_sell_on_credit(self, client, cashier_headers, farmer, feed):
        response = client.post('/api/sales', headers=cashier_headers, json={
            'items': [{'product_id': feed.id, 'quantity': 1}],
            'payment_method': 'CREDIT',
            'customer_id': farmer.id,
        })

        assert response.status_code == 403
        assert response.json['details']['required_permission'] == 'credit_approve'

    def test_cashier_cannot_view_reports(self, client, cashier_headers):
        response = client.get('/api/sales/summary', headers=cashier_headers)
        assert response.status_code == 403

    def test_cashier_cannot_record_collections(self, client, cashier_headers, farmer):
        response = client.post('/api/egg-collections', headers=cashier_headers, json={
            'farmer_id': farmer.id,
            'hen_eggs': {'small': 12},
            'hen_egg_price_cents': 250,
            'duck_egg_price_cents': 400,
        })
        assert response.status_code == 403


# =============================================================================
# ACCOUNTS
# =============================================================================

class TestAccountEndpoints:

    def test_create_and_fetch_account(self, client, admin_headers):
        response = client.post('/api/accounts', headers=admin_headers, json={
            'kind': 'FARMER',
            'name': 'Hill Farm',
            'credit_limit_cents': 500000,
            'payment_terms_days': 14,
        })
        assert response.status_code == 201
        account_id = response.json['id']

        response = client.get(f'/api/accounts/{account_id}', headers=admin_headers)
        assert response.status_code == 200
        assert response.json['credit_balance_cents'] == 0
        assert response.json['available_credit_cents'] == 500000

    def test_invalid_account_payload(self, client, admin_headers):
        response = client.post('/api/accounts', headers=admin_headers, json={
            'kind': 'FARMER', 'name': 'Hill Farm', 'credit_balance_cents': 100,
        })
        assert response.status_code == 400
        assert 'Field not allowed' in response.json['error']

    def test_unknown_account_is_404(self, client, admin_headers):
        response = client.get('/api/accounts/999', headers=admin_headers)
        assert response.status_code == 404

    def test_credit_endpoint(self, client, admin_headers, farmer):
        response = client.get(f'/api/accounts/{farmer.id}/credit', headers=admin_headers)

        assert response.status_code == 200
        assert response.json['derived_credit_status'] == 'CURRENT'
        assert response.json['available_credit_cents'] == 1_500_000

    def test_ledger_endpoint_reconciles(self, client, admin_headers, vendor):
        response = client.get(f'/api/accounts/{vendor.id}/ledger', headers=admin_headers)

        assert response.status_code == 200
        assert response.json['reconciliation']['balanced'] is True
        assert [e['entry_type'] for e in response.json['items']] == ['OPENING_BALANCE']


# =============================================================================
# SALES
# =============================================================================

class TestSaleEndpoints:

    def test_cash_sale(self, client, cashier_headers, feeder):
        response = client.post('/api/sales', headers=cashier_headers, json={
            'items': [{'product_id': feeder.id, 'quantity': 2}],
            'payment_method': 'CASH',
        })

        assert response.status_code == 201
        txn = response.json['transaction']
        assert txn['total_cents'] == 5400
        assert txn['items'][0]['line_total_cents'] == 5000
        assert response.json['warnings'] == []

    def test_credit_sale_and_account_history(self, client, admin_headers, farmer, feed):
        response = client.post('/api/sales', headers=admin_headers, json={
            'items': [{'product_id': feed.id, 'quantity': 5}],
            'payment_method': 'CREDIT',
            'customer_id': farmer.id,
        })
        assert response.status_code == 201
        txn_id = response.json['transaction']['id']

        response = client.get(f'/api/accounts/{farmer.id}/transactions', headers=admin_headers)
        assert [t['id'] for t in response.json['items']] == [txn_id]

        response = client.get(f'/api/accounts/{farmer.id}', headers=admin_headers)
        assert response.json['credit_balance_cents'] == 17280

    def test_over_limit_is_409(self, client, admin_headers, regular_customer, feed):
        response = client.post('/api/sales', headers=admin_headers, json={
            'items': [{'product_id': feed.id, 'quantity': 13}],
            'payment_method': 'CREDIT',
            'customer_id': regular_customer.id,
        })

        assert response.status_code == 409
        assert response.json['details']['available_cents'] == 50000
        assert response.json['details']['requested_cents'] == 56160

    def test_stock_shortfall_is_409(self, client, admin_headers, feeder):
        response = client.post('/api/sales', headers=admin_headers, json={
            'items': [{'product_id': feeder.id, 'quantity': 50}],
            'payment_method': 'CASH',
        })

        assert response.status_code == 409
        assert response.json['details']['shortfalls'][0]['on_hand'] == 20

    def test_malformed_cart_is_400(self, client, admin_headers):
        response = client.post('/api/sales', headers=admin_headers, json={'payment_method': 'CASH'})
        assert response.status_code == 400

    def test_refund_endpoint(self, client, admin_headers, feeder):
        response = client.post('/api/sales', headers=admin_headers, json={
            'items': [{'product_id': feeder.id, 'quantity': 1}],
            'payment_method': 'CASH',
        })
        txn_id = response.json['transaction']['id']

        response = client.post(f'/api/sales/{txn_id}/refund', headers=admin_headers, json={
            'reason': 'Broken on arrival',
        })
        assert response.status_code == 201
        assert response.json['total_cents'] == -2700

        response = client.get(f'/api/sales/{txn_id}', headers=admin_headers)
        assert response.json['status'] == 'REFUNDED'

    def test_summary_endpoint(self, client, admin_headers, feeder):
        client.post('/api/sales', headers=admin_headers, json={
            'items': [{'product_id': feeder.id, 'quantity': 2}],
            'payment_method': 'CASH',
        })

        response = client.get('/api/sales/summary', headers=admin_headers)
        assert response.status_code == 200
        assert response.json['gross_sales_cents'] == 5400

    def test_summary_rejects_bad_dates(self, client, admin_headers):
        response = client.get('/api/sales/summary?start=yesterday', headers=admin_headers)
        assert response.status_code == 400


# =============================================================================
# PAYMENTS
# =============================================================================

class TestPaymentEndpoints:

    def test_record_and_edit_payment(self, client, admin_headers, regular_customer):
        response = client.post('/api/payments', headers=admin_headers, json={
            'account_id': regular_customer.id,
            'payment_type': 'DEBIT',
            'amount_cents': 700,
        })
        assert response.status_code == 201
        assert response.json['account']['credit_balance_cents'] == 700
        record_id = response.json['payment']['id']

        response = client.patch(f'/api/payments/{record_id}', headers=admin_headers, json={'notes': 'Late fee'})
        assert response.status_code == 200
        assert response.json['notes'] == 'Late fee'

        response = client.patch(f'/api/payments/{record_id}', headers=admin_headers, json={'amount_cents': 1})
        assert response.status_code == 400

    def test_missing_fields(self, client, admin_headers):
        response = client.post('/api/payments', headers=admin_headers, json={'payment_type': 'DEBIT'})
        assert response.status_code == 400
        assert 'account_id' in response.json['error']

    def test_float_amount_rejected(self, client, admin_headers, regular_customer):
        response = client.post('/api/payments', headers=admin_headers, json={
            'account_id': regular_customer.id,
            'payment_type': 'DEBIT',
            'amount_cents': 10.5,
        })
        assert response.status_code == 400


# =============================================================================
# STAFF
# =============================================================================

class TestStaffEndpoints:

    def test_cashier_cannot_manage_staff(self, client, cashier_headers, admin_staff):
        response = client.get('/api/staff', headers=cashier_headers)
        assert response.status_code == 403
        assert response.json['details']['required_permission'] == 'staff_manage'

        response = client.patch(f'/api/staff/{admin_staff.id}', headers=cashier_headers,
                                json={'is_active': False})
        assert response.status_code == 403

    def test_create_list_and_fetch(self, client, admin_headers):
        response = client.post('/api/staff', headers=admin_headers, json={
            'username': 'collector1',
            'password': STAFF_PASSWORD,
            'first_name': 'Route',
            'last_name': 'Collector',
            'position': 'COLLECTOR',
        })
        assert response.status_code == 201
        staff_id = response.json['id']
        assert response.json['permissions'] == ['egg_collection']

        response = client.get('/api/staff', headers=admin_headers)
        assert [s['username'] for s in response.json['items']] == ['admin', 'collector1']

        response = client.get(f'/api/staff/{staff_id}', headers=admin_headers)
        assert response.json['position'] == 'COLLECTOR'

        response = client.get('/api/staff/9999', headers=admin_headers)
        assert response.status_code == 404

    def test_create_requires_fields(self, client, admin_headers):
        response = client.post('/api/staff', headers=admin_headers, json={'username': 'x'})
        assert response.status_code == 400
        assert 'password' in response.json['error']

    def test_deactivation_signs_staff_out(self, client, admin_headers, cashier_staff, cashier_headers):
        assert client.get('/api/auth/me', headers=cashier_headers).status_code == 200

        response = client.patch(f'/api/staff/{cashier_staff.id}', headers=admin_headers,
                                json={'is_active': False})
        assert response.status_code == 200
        assert response.json['is_active'] is False

        assert client.get('/api/auth/me', headers=cashier_headers).status_code == 401

    def test_password_reset(self, client, admin_headers, cashier_staff):
        response = client.patch(f'/api/staff/{cashier_staff.id}', headers=admin_headers,
                                json={'password': 'Fresh!Passw0rd'})
        assert response.status_code == 200

        response = client.post('/api/auth/login', json={'username': 'cashier', 'password': 'Fresh!Passw0rd'})
        assert response.status_code == 200

    def test_cannot_deactivate_self(self, client, admin_headers, admin_staff):
        response = client.patch(f'/api/staff/{admin_staff.id}', headers=admin_headers,
                                json={'is_active': False})
        assert response.status_code == 400


# =============================================================================
# PRODUCTS
# =============================================================================

class TestProductEndpoints:

    def test_update_product(self, client, admin_headers, feed):
        response = client.patch(f'/api/products/{feed.id}', headers=admin_headers, json={
            'selling_price_cents': 4200,
            'minimum_stock': 10,
        })

        assert response.status_code == 200
        assert response.json['selling_price_cents'] == 4200
        assert response.json['minimum_stock'] == 10
        assert response.json['stock'] == 100

    def test_stock_is_not_patchable(self, client, admin_headers, feed):
        response = client.patch(f'/api/products/{feed.id}', headers=admin_headers, json={'stock': 500})

        assert response.status_code == 400
        assert response.json['error'] == 'Field not allowed: stock'

    def test_cashier_cannot_update_product(self, client, cashier_headers, feed):
        response = client.patch(f'/api/products/{feed.id}', headers=cashier_headers,
                                json={'selling_price_cents': 1})
        assert response.status_code == 403

    def test_unknown_product_is_404(self, client, admin_headers):
        response = client.patch('/api/products/9999', headers=admin_headers, json={'name': 'Ghost'})
        assert response.status_code == 404


# =============================================================================
# EGG COLLECTIONS
# =============================================================================

class TestEggCollectionEndpoints:

    COLLECTION = {
        'hen_eggs': {'small': 24, 'medium': 48, 'large': 36, 'extra_large': 12, 'damaged': 2},
        'duck_eggs': {'small': 12, 'medium': 18, 'large': 6, 'damaged': 0},
        'hen_egg_price_cents': 250,
        'duck_egg_price_cents': 400,
    }

    def test_value_preview(self, client, admin_headers):
        response = client.post('/api/egg-collections/value', headers=admin_headers, json=self.COLLECTION)

        assert response.status_code == 200
        assert response.json['total_value_cents'] == 3700
        assert response.json['hen_dozens_to_stock'] == 10

    def test_record_then_pay(self, client, admin_headers, farmer, hen_eggs_product, duck_eggs_product):
        response = client.post('/api/egg-collections', headers=admin_headers,
                               json={'farmer_id': farmer.id, **self.COLLECTION})
        assert response.status_code == 201
        collection_id = response.json['collection']['id']

        response = client.get(f'/api/egg-collections/unpaid/{farmer.id}', headers=admin_headers)
        assert response.json['count'] == 1
        assert response.json['total_value_cents'] == 3700

        response = client.post('/api/egg-collections/pay', headers=admin_headers, json={
            'collection_ids': [collection_id],
            'payment_method': 'CASH',
        })
        assert response.status_code == 200
        assert response.json['total_paid_cents'] == 3700

        response = client.get(f'/api/accounts/{farmer.id}', headers=admin_headers)
        assert response.json['credit_balance_cents'] == 0
        assert response.json['total_egg_sales_cents'] == 3700

    def test_list_and_fetch(self, client, admin_headers, farmer, hen_eggs_product, duck_eggs_product):
        response = client.post('/api/egg-collections', headers=admin_headers,
                               json={'farmer_id': farmer.id, **self.COLLECTION})
        collection_id = response.json['collection']['id']

        response = client.get(f'/api/egg-collections?farmer_id={farmer.id}', headers=admin_headers)
        assert [c['id'] for c in response.json['items']] == [collection_id]

        response = client.get(f'/api/egg-collections/{collection_id}', headers=admin_headers)
        assert response.status_code == 200
        assert response.json['farmer_id'] == farmer.id

        response = client.get('/api/egg-collections/9999', headers=admin_headers)
        assert response.status_code == 404

    def test_non_farmer_is_400(self, client, admin_headers, regular_customer):
        response = client.post('/api/egg-collections', headers=admin_headers,
                               json={'farmer_id': regular_customer.id, **self.COLLECTION})
        assert response.status_code == 400

    @pytest.mark.parametrize("price", ["250", -250, 0])
    def test_value_preview_rejects_bad_price(self, client, admin_headers, price):
        response = client.post('/api/egg-collections/value', headers=admin_headers,
                               json={**self.COLLECTION, 'hen_egg_price_cents': price})

        assert response.status_code == 400
        assert 'hen_egg_price_cents' in response.json['error']

    def test_pay_requires_cash_handle(self, client, admin_headers, farmer, hen_eggs_product, duck_eggs_product):
        from agripos.services.auth_service import create_staff

        response = client.post('/api/egg-collections', headers=admin_headers,
                               json={'farmer_id': farmer.id, **self.COLLECTION})
        collection_id = response.json['collection']['id']

        create_staff(username="collector", password=STAFF_PASSWORD,
                     first_name="Route", last_name="Collector", position="COLLECTOR")
        token = client.post('/api/auth/login', json={
            'username': 'collector', 'password': STAFF_PASSWORD,
        }).json['token']

        response = client.post('/api/egg-collections/pay', headers={'Authorization': f'Bearer {token}'},
                               json={'collection_ids': [collection_id]})

        assert response.status_code == 403
        assert response.json['details']['required_permission'] == 'cash_handle'

        response = client.get(f'/api/egg-collections/{collection_id}', headers=admin_headers)
        assert response.json['paid'] is False

    def test_pay_requires_id_list(self, client, admin_headers):
        response = client.post('/api/egg-collections/pay', headers=admin_headers, json={'collection_ids': 3})
        assert response.status_code == 400

    def test_routes(self, client, admin_headers, farmer):
        response = client.post('/api/egg-collections/routes', headers=admin_headers, json={
            'name': 'North Loop', 'farmer_ids': [farmer.id],
        })
        assert response.status_code == 201

        response = client.get('/api/egg-collections/routes', headers=admin_headers)
        assert [r['name'] for r in response.json['items']] == ['North Loop']

    def test_summary_requires_range(self, client, admin_headers):
        response = client.get('/api/egg-collections/summary', headers=admin_headers)
        assert response.status_code == 400


# =============================================================================
# HEALTH
# =============================================================================

class TestHealth:

    def test_health_reports_balanced_ledger(self, client, vendor):
        response = client.get('/api/health')

        assert response.status_code == 200
        assert response.json['status'] == 'healthy'
        assert response.json['checks']['database']['details']['unbalanced_accounts'] == []
