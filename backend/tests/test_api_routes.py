"""
HTTP tests for the ledger API.

Verifies:
- Protected endpoints return 401 without a valid token
- Success and failure envelopes
- Purchase, sale and cash flows end to end through the routes
"""

import pytest

from shopledger.services import inventory_service


# =============================================================================
# AUTH: 401
# =============================================================================


class TestAuthentication:
    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/accounts"),
            ("GET", "/api/transactions"),
            ("GET", "/api/cash"),
            ("POST", "/api/cash/deposit"),
            ("GET", "/api/inventory"),
            ("GET", "/api/purchases"),
            ("POST", "/api/purchases"),
            ("POST", "/api/sales/create"),
            ("GET", "/api/customers"),
            ("GET", "/api/suppliers"),
            ("GET", "/api/auth/me"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"
        assert resp.json == {"success": False, "error": "Authentication required"}

    def test_unknown_token_rejected(self, client, db_session):
        resp = client.get("/api/accounts", headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 401
        assert resp.json["error"] == "Invalid or expired token"

    def test_login_me_logout(self, client, user):
        resp = client.post("/api/auth/login", json={"username": "clerk", "password": "Password123!"})
        assert resp.status_code == 200
        token = resp.json["data"]["token"]
        headers = {"Authorization": f"Bearer {token}"}

        me = client.get("/api/auth/me", headers=headers)
        assert me.json["data"]["username"] == "clerk"

        assert client.post("/api/auth/logout", headers=headers).status_code == 200
        assert client.get("/api/auth/me", headers=headers).status_code == 401

    def test_login_with_wrong_password(self, client, user):
        resp = client.post("/api/auth/login", json={"username": "clerk", "password": "wrong-password"})
        assert resp.status_code == 401
        assert resp.json["success"] is False

    def test_health_is_public(self, client, db_session):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json["checks"]["database"]["status"] == "healthy"


# =============================================================================
# ACCOUNTS AND CASH
# =============================================================================


class TestAccountsAndCash:
    def test_create_account_and_deposit(self, client, auth_headers):
        resp = client.post("/api/accounts", json={"type": "cash", "name": "Cash Box"}, headers=auth_headers)
        assert resp.status_code == 201
        account = resp.json["data"]
        assert account["is_default"] is True
        assert account["balance"] == 0

        resp = client.post("/api/cash/deposit", json={"amount": 250.75}, headers=auth_headers)
        assert resp.status_code == 201
        assert resp.json["data"]["newBalance"] == 250.75

        resp = client.get("/api/cash", headers=auth_headers)
        assert resp.json["data"]["balance"] == 250.75
        [entry] = resp.json["data"]["transactions"]
        assert entry["entry_source"] == "manual_deposit"
        assert entry["created_by"] == "clerk"

    def test_withdraw_beyond_balance_fails_with_context(self, client, auth_headers, cash_account):
        resp = client.post("/api/cash/withdraw", json={"amount": 1500}, headers=auth_headers)
        assert resp.status_code == 400
        assert resp.json["success"] is False
        assert resp.json["error"] == "Insufficient balance"
        assert resp.json["context"]["account_id"] == cash_account.id
        assert resp.json["context"]["attempted_amount"] == 1500.0

    def test_deposit_requires_positive_amount(self, client, auth_headers, cash_account):
        resp = client.post("/api/cash/deposit", json={"amount": 0}, headers=auth_headers)
        assert resp.status_code == 400
        assert resp.json["context"]["field"] == "amount"

    def test_account_balance_cannot_be_set(self, client, auth_headers):
        resp = client.post(
            "/api/accounts", json={"type": "cash", "name": "Cash", "balance": 100}, headers=auth_headers,
        )
        assert resp.status_code == 400

    def test_unknown_account_is_404(self, client, auth_headers):
        resp = client.get("/api/accounts/999", headers=auth_headers)
        assert resp.status_code == 404

    def test_manual_transaction_and_verify(self, client, auth_headers, cash_account):
        resp = client.post(
            "/api/transactions",
            json={"account_id": cash_account.id, "amount": "40", "transaction_type": "debit"},
            headers=auth_headers,
        )
        assert resp.status_code == 201
        assert resp.json["newBalance"] == 960.0
        assert resp.json["data"]["entry_source"] == "manual"

        resp = client.get(f"/api/transactions/verify/{cash_account.id}", headers=auth_headers)
        assert resp.json["data"]["ok"] is True


# =============================================================================
# PURCHASES
# =============================================================================


class TestPurchaseRoutes:
    def _create(self, client, headers, product, supplier, **overrides):
        body = {
            "products": [{"product_id": product.id, "qty": 10, "purchasePrice": 30}],
            "totalAmount": 500,
            "paidAmount": 300,
            "paymentType": "cash",
            "supplierId": supplier.id,
        }
        body.update(overrides)
        return client.post("/api/purchases", json=body, headers=headers)

    def test_create_purchase(self, client, auth_headers, cash_account, product, supplier):
        resp = self._create(client, auth_headers, product, supplier)

        assert resp.status_code == 201
        assert resp.json["success"] is True
        assert resp.json["data"]["payment_due"] == 200.0
        assert resp.json["data"]["products"][0]["name"] == "Rice 5kg"
        assert resp.json["newBalances"] == {str(cash_account.id): 700.0}
        assert resp.json["invoiceId"] == resp.json["data"]["id"]
        assert inventory_service.get_item(product.id).stock_qty == 10

    def test_empty_products_rejected(self, client, auth_headers, cash_account, product, supplier):
        resp = self._create(client, auth_headers, product, supplier, products=[])
        assert resp.status_code == 400
        assert resp.json["error"] == "Products array is required and cannot be empty"

    def test_fractional_quantity_rejected(self, client, auth_headers, cash_account, product, supplier):
        resp = self._create(
            client, auth_headers, product, supplier,
            products=[{"product_id": product.id, "qty": 1.5, "purchasePrice": 30}],
        )
        assert resp.status_code == 400

    def test_update_and_pay_due(self, client, auth_headers, cash_account, product, supplier):
        purchase_id = self._create(client, auth_headers, product, supplier).json["invoiceId"]

        resp = client.put(
            f"/api/purchases/{purchase_id}",
            json={
                "products": [{"product_id": product.id, "qty": 10, "purchasePrice": 30}],
                "totalAmount": 500,
                "paidAmount": 250,
                "paymentAccountId": cash_account.id,
                "supplierId": supplier.id,
            },
            headers=auth_headers,
        )
        assert resp.status_code == 200
        assert resp.json["data"]["paidAmount"] == 250.0

        resp = client.patch(
            f"/api/purchases/pay/{purchase_id}",
            json={"payAmount": 300, "paymentAccountId": cash_account.id},
            headers=auth_headers,
        )
        assert resp.status_code == 400
        assert resp.json["error"] == "Payment exceeds due amount"

        resp = client.patch(
            f"/api/purchases/pay/{purchase_id}",
            json={"payAmount": 250, "paymentAccountId": cash_account.id},
            headers=auth_headers,
        )
        assert resp.status_code == 200
        assert resp.json["newBalance"] == 500.0
        assert resp.json["data"]["payment_due"] == 0.0

        due = client.get("/api/purchases?type=due", headers=auth_headers)
        assert due.json["data"] == []

    def test_delete_purchase(self, client, auth_headers, cash_account, product, supplier):
        purchase_id = self._create(client, auth_headers, product, supplier).json["invoiceId"]

        resp = client.delete(f"/api/purchases/{purchase_id}", headers=auth_headers)
        assert resp.status_code == 200
        assert resp.json["newBalances"] == {str(cash_account.id): 1000.0}
        assert client.get(f"/api/purchases/{purchase_id}", headers=auth_headers).status_code == 404


# =============================================================================
# SALES AND CUSTOMERS
# =============================================================================


class TestSaleRoutes:
    @pytest.fixture
    def stocked(self, cash_account, product):
        inventory_service.receive_stock(product.id, 20, "8.00", None)
        return product

    def test_create_sale_with_new_customer(self, client, auth_headers, stocked):
        resp = client.post(
            "/api/sales/create",
            json={
                "memoNo": "M-100",
                "customer": "Walk-in Jamal",
                "products": [{"product_id": stocked.id, "qty": 2, "salePrice": 12.5}],
                "total": 25,
                "paidAmount": 20,
                "due": 999,
            },
            headers=auth_headers,
        )
        assert resp.status_code == 201
        sale = resp.json["data"]
        assert sale["due"] == 5.0
        assert sale["customerName"] == "Walk-in Jamal"
        assert resp.json["memoId"] == sale["id"]
        assert resp.json["newCashBalance"] == 1020.0

        customers = client.get("/api/customers", headers=auth_headers).json["data"]
        assert [c["customer_type"] for c in customers] == ["temporary"]

    def test_sale_beyond_stock_rejected(self, client, auth_headers, stocked):
        resp = client.post(
            "/api/sales/create",
            json={
                "products": [{"product_id": stocked.id, "qty": 21, "salePrice": 12.5}],
                "total": 262.5,
                "paidAmount": 262.5,
            },
            headers=auth_headers,
        )
        assert resp.status_code == 400
        assert resp.json["context"]["requested"] == 21
        assert inventory_service.get_item(stocked.id).stock_qty == 20

    def test_customer_lump_sum_payment(self, client, auth_headers, stocked, customer):
        client.post(
            "/api/sales/create",
            json={
                "customerId": customer.id,
                "products": [{"product_id": stocked.id, "qty": 2, "salePrice": 12.5}],
                "total": 25,
                "paidAmount": 0,
            },
            headers=auth_headers,
        )

        resp = client.post(f"/api/customers/{customer.id}/payments", json={"amount": 30}, headers=auth_headers)
        assert resp.status_code == 200
        assert resp.json["data"]["advance"] == 5.0
        assert resp.json["data"]["customer"]["total_due"] == 0.0
        assert resp.json["data"]["newBalance"] == 1030.0

    def test_delete_sale_restores_stock(self, client, auth_headers, stocked):
        sale_id = client.post(
            "/api/sales/create",
            json={
                "products": [{"product_id": stocked.id, "qty": 3, "salePrice": 12.5}],
                "total": 37.5,
                "paidAmount": 37.5,
            },
            headers=auth_headers,
        ).json["memoId"]

        resp = client.delete(f"/api/sales/{sale_id}", headers=auth_headers)
        assert resp.status_code == 200
        assert inventory_service.get_item(stocked.id).stock_qty == 20
