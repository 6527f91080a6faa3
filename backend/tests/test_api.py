"""
HTTP API tests: auth, roles, and the checkout endpoint end to end.
"""

import pytest

from conftest import DEFAULT_PASSWORD, auth_headers, get_auth_token


@pytest.fixture
def owner_headers(client, owner):
    return auth_headers(get_auth_token(client, "owner"))


@pytest.fixture
def cashier_headers(client, cashier):
    return auth_headers(get_auth_token(client, "cashier"))


@pytest.fixture
def stocked_medicine(client, owner_headers):
    resp = client.post("/api/medicines", json={"name": "Paracetamol 500mg"}, headers=owner_headers)
    assert resp.status_code == 201
    medicine = resp.json["medicine"]

    resp = client.post("/api/batches", json={
        "medicine_id": medicine["id"],
        "batch_number": "PCM-01",
        "expiry_date": "2099-01-01T00:00:00Z",
        "purchase_price": "1.00",
        "mrp": "2.50",
        "selling_price": "2.00",
        "gst_percent": "12",
        "quantity": 10,
    }, headers=owner_headers)
    assert resp.status_code == 201
    return medicine


class TestAuthFlow:

    def test_register_login_me_logout(self, client):
        resp = client.post("/api/auth/register", json={
            "username": "asha", "password": DEFAULT_PASSWORD, "name": "Asha",
        })
        assert resp.status_code == 201
        assert resp.json["user"]["role"] == "owner"

        token = get_auth_token(client, "asha")
        resp = client.get("/api/auth/me", headers=auth_headers(token))
        assert resp.status_code == 200
        assert resp.json["user"]["username"] == "asha"

        assert client.post("/api/auth/logout", headers=auth_headers(token)).status_code == 200
        assert client.get("/api/auth/me", headers=auth_headers(token)).status_code == 401

    def test_bad_credentials(self, client, owner):
        resp = client.post("/api/auth/login", json={"username": "owner", "password": "Nope12345"})
        assert resp.status_code == 401
        assert resp.json["error"] == "Invalid credentials"

    def test_weak_password_on_register(self, client):
        resp = client.post("/api/auth/register", json={"username": "x", "password": "x", "name": "X"})
        assert resp.status_code == 400

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/medicines"),
            ("POST", "/api/invoices"),
            ("GET", "/api/reports/low-stock"),
            ("POST", "/api/stock-adjustments"),
            ("GET", "/api/audit-logs"),
            ("GET", "/api/users"),
        ],
    )
    def test_requires_auth(self, client, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"


class TestRoles:

    def test_cashier_cannot_manage_users(self, client, cashier_headers):
        assert client.get("/api/users", headers=cashier_headers).status_code == 403

    def test_cashier_cannot_adjust_stock(self, client, cashier_headers):
        resp = client.post("/api/stock-adjustments", json={
            "batch_id": 1, "adjustment_type": "addition", "quantity": 1, "reason": "x",
        }, headers=cashier_headers)
        assert resp.status_code == 403

    def test_owner_creates_manager(self, client, owner_headers):
        resp = client.post("/api/users", json={
            "username": "mgr", "password": DEFAULT_PASSWORD, "name": "Manager", "role": "manager",
        }, headers=owner_headers)
        assert resp.status_code == 201
        assert resp.json["user"]["role"] == "manager"


class TestCheckout:

    def test_cashier_checkout(self, client, cashier_headers, stocked_medicine):
        resp = client.post("/api/invoices", json={
            "items": [{"medicine_id": stocked_medicine["id"], "quantity": 3}],
            "customer_name": "Ravi",
            "payment_method": "upi",
        }, headers=cashier_headers)

        assert resp.status_code == 201
        invoice = resp.json["invoice"]
        assert invoice["invoice_number"].startswith("INV")
        assert len(invoice["invoice_number"]) == 15
        assert invoice["subtotal"] == "6.00"
        assert invoice["tax_amount"] == "0.72"
        assert invoice["total_amount"] == "6.72"
        assert invoice["items"][0]["batch_number"] == "PCM-01"
        assert invoice["items"][0]["medicine_name"] == "Paracetamol 500mg"

        resp = client.get(f"/api/invoices/availability/{stocked_medicine['id']}", headers=cashier_headers)
        assert resp.json["available_quantity"] == 7

        resp = client.get(f"/api/invoices/{invoice['id']}", headers=cashier_headers)
        assert resp.status_code == 200
        assert resp.json["invoice"]["invoice_number"] == invoice["invoice_number"]

    def test_insufficient_stock_is_409_with_details(self, client, cashier_headers, stocked_medicine):
        resp = client.post("/api/invoices", json={
            "items": [{"medicine_id": stocked_medicine["id"], "quantity": 11}],
        }, headers=cashier_headers)

        assert resp.status_code == 409
        assert resp.json["details"]["available"] == 10
        assert resp.json["details"]["shortfall"] == 1

    def test_empty_cart_is_400(self, client, cashier_headers):
        resp = client.post("/api/invoices", json={"items": []}, headers=cashier_headers)
        assert resp.status_code == 400

    def test_unknown_medicine_is_404(self, client, cashier_headers):
        resp = client.post("/api/invoices", json={
            "items": [{"medicine_id": 999, "quantity": 1}],
        }, headers=cashier_headers)
        assert resp.status_code == 404

    def test_next_number_preview(self, client, cashier_headers):
        resp = client.get("/api/invoices/next-number", headers=cashier_headers)
        assert resp.status_code == 200
        assert resp.json["invoice_number"].endswith("0001")


class TestReportsAndAdjustments:

    def test_low_stock_and_adjustment(self, client, owner_headers, stocked_medicine):
        resp = client.get("/api/reports/low-stock", headers=owner_headers)
        assert [m["id"] for m in resp.json["medicines"]] == [stocked_medicine["id"]]

        batch_id = client.get(
            f"/api/medicines/{stocked_medicine['id']}/batches", headers=owner_headers
        ).json["batches"][0]["id"]
        resp = client.post("/api/stock-adjustments", json={
            "batch_id": batch_id, "adjustment_type": "return", "quantity": 5, "reason": "Customer return",
        }, headers=owner_headers)
        assert resp.status_code == 201
        assert resp.json["adjustment"]["quantity_after"] == 15

        resp = client.get("/api/reports/low-stock", headers=owner_headers)
        assert resp.json["medicines"] == []

    def test_audit_log_lists_newest_first(self, client, owner_headers, stocked_medicine):
        resp = client.get("/api/audit-logs", headers=owner_headers)
        actions = [e["action"] for e in resp.json["audit_logs"]]
        assert actions[0] == "RECEIVE_BATCH"
        assert "LOGIN" in actions

    def test_bad_date_param(self, client, owner_headers):
        resp = client.get("/api/reports/daily?date=12/01/2024", headers=owner_headers)
        assert resp.status_code == 400

    def test_global_search(self, client, cashier_headers, stocked_medicine):
        resp = client.get("/api/search?q=para&type=medicine", headers=cashier_headers)
        assert resp.status_code == 200
        assert [r["id"] for r in resp.json["results"]] == [stocked_medicine["id"]]

        resp = client.get("/api/search?q=para&type=everything", headers=cashier_headers)
        assert resp.status_code == 400

    def test_notifications(self, client, cashier_headers, stocked_medicine):
        resp = client.get("/api/notifications", headers=cashier_headers)
        assert resp.status_code == 200
        assert [n["id"] for n in resp.json["notifications"]] == [f"low-stock-{stocked_medicine['id']}"]


def test_health(client):
    resp = client.get("/api/system/health")
    assert resp.status_code == 200
    assert resp.json["status"] == "healthy"
