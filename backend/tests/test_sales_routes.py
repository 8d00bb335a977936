"""
HTTP-level tests for auth, sales and branch routes.

Verifies:
- Unauthenticated requests return 401 with a reason
- Permission gates return 403 and are audit-logged
- Foreign-branch sales look exactly like missing ones (404)
- Lockout surfaces as 423 with Retry-After
"""

import pytest

from retailcore.extensions import db
from retailcore.models import AuditRecord
from retailcore.services import auth_service, sales_service

from conftest import PASSWORD, auth_headers, get_auth_token, login


@pytest.fixture
def cashier_headers(client, cashier_a):
    return auth_headers(get_auth_token(client, cashier_a.email))


@pytest.fixture
def manager_headers(client, manager_a):
    return auth_headers(get_auth_token(client, manager_a.email))


@pytest.fixture
def admin_headers(client, admin_user):
    return auth_headers(get_auth_token(client, admin_user.email))


def create_sale(client, headers, branch_id, product_id, quantity=3, **extra):
    body = {"branch_id": branch_id, "items": [{"product_id": product_id, "quantity": quantity}]}
    body.update(extra)
    return client.post("/api/sales", json=body, headers=headers)


# =============================================================================
# UNAUTHENTICATED ACCESS (401)
# =============================================================================


class TestUnauthenticatedAccess:

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/sales"),
            ("POST", "/api/sales"),
            ("GET", "/api/sales/1"),
            ("POST", "/api/sales/1/refund"),
            ("POST", "/api/sales/1/cancel"),
            ("GET", "/api/branches"),
            ("GET", "/api/auth/me"),
            ("POST", "/api/auth/logout-all"),
        ],
    )
    def test_requires_auth(self, client, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"
        assert resp.json["reason"] == "missing"

    def test_invalid_token(self, client):
        resp = client.get("/api/sales", headers=auth_headers("garbage"))
        assert resp.status_code == 401
        assert resp.json["reason"] == "invalid"


# =============================================================================
# AUTH ROUTES
# =============================================================================


class TestAuthRoutes:

    def test_login_returns_tokens_and_permissions(self, client, cashier_a):
        resp = login(client, cashier_a.email)
        assert resp.status_code == 200
        assert resp.json["token_type"] == "Bearer"
        assert "sales.create" in resp.json["permissions"]
        assert "sales.refund" not in resp.json["permissions"]
        assert "password_hash" not in resp.json["user"]

    def test_bad_password(self, client, cashier_a):
        resp = login(client, cashier_a.email, "Wrong123!")
        assert resp.status_code == 401

    def test_missing_body(self, client):
        resp = client.post("/api/auth/login", data="nope", content_type="text/plain")
        assert resp.status_code == 400

    def test_lockout_is_423_with_retry_after(self, client, cashier_a):
        for _ in range(4):
            assert login(client, cashier_a.email, "Wrong123!").status_code == 401

        resp = login(client, cashier_a.email, "Wrong123!")
        assert resp.status_code == 423
        assert resp.json["lock_until"].endswith("Z")
        assert int(resp.headers["Retry-After"]) > 0

        assert login(client, cashier_a.email, PASSWORD).status_code == 423

    def test_me(self, client, cashier_headers, cashier_a):
        resp = client.get("/api/auth/me", headers=cashier_headers)
        assert resp.status_code == 200
        assert resp.json["user"]["id"] == cashier_a.id
        assert resp.json["user"]["role"] == "Cashier"

    def test_refresh_and_logout(self, client, cashier_a):
        tokens = login(client, cashier_a.email).json

        rotated = client.post("/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert rotated.status_code == 200

        replay = client.post("/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert replay.status_code == 401

        out = client.post("/api/auth/logout", json={"refresh_token": rotated.json["refresh_token"]})
        assert out.status_code == 200
        assert out.json["revoked"] is True

    def test_logout_all(self, client, cashier_a):
        first = login(client, cashier_a.email).json
        second = login(client, cashier_a.email).json

        resp = client.post("/api/auth/logout-all", headers=auth_headers(second["access_token"]))
        assert resp.status_code == 200
        assert resp.json["revoked"] == 2

        replay = client.post("/api/auth/refresh", json={"refresh_token": first["refresh_token"]})
        assert replay.status_code == 401

    def test_change_password(self, client, cashier_a):
        tokens = login(client, cashier_a.email).json
        headers = auth_headers(tokens["access_token"])

        wrong = client.post(
            "/api/auth/change-password",
            json={"current_password": "Wrong123!", "new_password": "Changed456!"},
            headers=headers,
        )
        assert wrong.status_code == 401

        resp = client.post(
            "/api/auth/change-password",
            json={"current_password": PASSWORD, "new_password": "Changed456!"},
            headers=headers,
        )
        assert resp.status_code == 200
        assert resp.json["revoked"] == 1

        replay = client.post("/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert replay.status_code == 401
        assert login(client, cashier_a.email, "Changed456!").status_code == 200

    def test_change_password_requires_auth(self, client):
        resp = client.post(
            "/api/auth/change-password",
            json={"current_password": PASSWORD, "new_password": "Changed456!"},
        )
        assert resp.status_code == 401

    def test_deactivated_account_is_403_and_audited(self, client, cashier_a, cashier_headers):
        auth_service.set_user_active(cashier_a.id, False)

        resp = client.get("/api/sales", headers=cashier_headers)
        assert resp.status_code == 403

        record = db.session.query(AuditRecord).filter_by(action="auth.authenticate").one()
        assert record.outcome == "failure"
        assert record.risk_level == "high"
        assert record.resource_id == "GET /api/sales"


# =============================================================================
# SALES ROUTES
# =============================================================================


class TestSalesRoutes:

    def test_create_and_read(self, client, cashier_headers, branch_a, product):
        resp = create_sale(client, cashier_headers, branch_a.id, product.id)
        assert resp.status_code == 201
        sale = resp.json["sale"]
        assert sale["total_cents"] == 30000
        assert sale["tax_cents"] == 4576
        assert sale["status"] == "completed"

        fetched = client.get(f"/api/sales/{sale['id']}", headers=cashier_headers)
        assert fetched.status_code == 200
        assert fetched.json["sale"]["items"][0]["quantity"] == 3

    def test_branch_defaults_to_principal_branch(self, client, cashier_headers, product):
        resp = client.post(
            "/api/sales",
            json={"items": [{"product_id": product.id, "quantity": 1}]},
            headers=cashier_headers,
        )
        assert resp.status_code == 201

    def test_insufficient_stock_is_409(self, client, cashier_headers, branch_a, product):
        resp = create_sale(client, cashier_headers, branch_a.id, product.id, quantity=50)
        assert resp.status_code == 409
        assert resp.json["code"] == "insufficient_stock"

    def test_other_branch_is_403(self, client, cashier_headers, branch_b, product_at_b):
        resp = create_sale(client, cashier_headers, branch_b.id, product_at_b.id, quantity=1)
        assert resp.status_code == 403

    def test_foreign_sale_is_404(self, client, cashier_headers, admin_headers, branch_b, product_at_b):
        foreign = create_sale(client, admin_headers, branch_b.id, product_at_b.id, quantity=1).json["sale"]

        resp = client.get(f"/api/sales/{foreign['id']}", headers=cashier_headers)
        missing = client.get("/api/sales/999999", headers=cashier_headers)
        assert resp.status_code == 404
        assert resp.json == missing.json

    def test_list_other_branch_is_403(self, client, cashier_headers, branch_b):
        resp = client.get(f"/api/sales?branch_id={branch_b.id}", headers=cashier_headers)
        assert resp.status_code == 403

    def test_bad_pagination(self, client, cashier_headers):
        resp = client.get("/api/sales?limit=abc", headers=cashier_headers)
        assert resp.status_code == 400

    def test_cashier_refund_denied_and_audited(self, client, cashier_headers, branch_a, product):
        sale = create_sale(client, cashier_headers, branch_a.id, product.id).json["sale"]

        resp = client.post(f"/api/sales/{sale['id']}/refund", json={"reason": "x"}, headers=cashier_headers)
        assert resp.status_code == 403
        assert resp.json["details"]["missing_permissions"] == ["sales.refund"]

        denial = db.session.query(AuditRecord).filter_by(action="permission.denied").one()
        assert denial.outcome == "failure"

    def test_manager_refund(self, client, cashier_headers, manager_headers, branch_a, product):
        sale = create_sale(client, cashier_headers, branch_a.id, product.id).json["sale"]

        resp = client.post(
            f"/api/sales/{sale['id']}/refund",
            json={"reason": "damaged", "refund_items": [{"product_id": product.id, "quantity": 1}]},
            headers=manager_headers,
        )
        assert resp.status_code == 200
        assert resp.json["sale"]["refunded_cents"] == 10000

        amount = client.post(
            f"/api/sales/{sale['id']}/refund-amount",
            json={"reason": "goodwill", "amount_cents": 500},
            headers=manager_headers,
        )
        assert amount.status_code == 200
        assert amount.json["sale"]["refunded_cents"] == 10500

    def test_pending_payment_and_cancel(self, client, cashier_headers, manager_headers, branch_a, product):
        sale = create_sale(client, cashier_headers, branch_a.id, product.id, amount_paid_cents=0).json["sale"]
        assert sale["status"] == "pending"

        paid = client.post(f"/api/sales/{sale['id']}/payments", json={"amount_cents": 1000}, headers=cashier_headers)
        assert paid.status_code == 200
        assert paid.json["sale"]["amount_due_cents"] == 29000

        cancelled = client.post(f"/api/sales/{sale['id']}/cancel", json={"reason": "left"}, headers=manager_headers)
        assert cancelled.status_code == 200
        assert cancelled.json["sale"]["status"] == "cancelled"

        again = client.post(f"/api/sales/{sale['id']}/cancel", headers=manager_headers)
        assert again.status_code == 409

    def test_free_text_must_be_string(self, client, cashier_headers, branch_a, product):
        resp = create_sale(client, cashier_headers, branch_a.id, product.id, quantity=1, customer_name=42)
        assert resp.status_code == 400
        assert resp.json["details"]["field"] == "customer_name"

        resp = create_sale(client, cashier_headers, branch_a.id, product.id, quantity=1, notes={"a": 1})
        assert resp.status_code == 400
        assert resp.json["details"]["field"] == "notes"

    def test_unexpected_error_is_opaque_and_audited(self, monkeypatch, client, cashier_a, cashier_headers):
        def broken_list(*args, **kwargs):
            raise RuntimeError("disk on fire")

        monkeypatch.setattr(sales_service, "list_sales", broken_list)

        resp = client.get("/api/sales", headers={**cashier_headers, "X-Request-ID": "req-500"})
        assert resp.status_code == 500
        assert resp.json == {"error": "Internal server error", "code": "internal_error"}

        record = db.session.query(AuditRecord).filter_by(action="request.error").one()
        assert record.outcome == "failure"
        assert record.risk_level == "high"
        assert record.actor_user_id == cashier_a.id
        assert record.correlation_id == "req-500"
        assert "disk on fire" not in (record.reason or "")


# =============================================================================
# BRANCHES AND SYSTEM
# =============================================================================


class TestBranchesAndSystem:

    def test_cashier_sees_own_branch_only(self, client, cashier_headers, branch_a, branch_b):
        resp = client.get("/api/branches", headers=cashier_headers)
        assert resp.status_code == 200
        assert [b["id"] for b in resp.json["branches"]] == [branch_a.id]

    def test_admin_sees_all_branches(self, client, admin_headers, branch_a, branch_b):
        resp = client.get("/api/branches", headers=admin_headers)
        assert {b["code"] for b in resp.json["branches"]} == {"B1", "B2"}

    def test_cashier_cannot_name_other_branch(self, client, cashier_headers, branch_b):
        resp = client.get(f"/api/branches?branch_id={branch_b.id}", headers=cashier_headers)
        assert resp.status_code == 403

    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json["database"]["status"] == "healthy"

    def test_request_id_is_echoed(self, client):
        resp = client.get("/health", headers={"X-Request-ID": "req-123"})
        assert resp.headers["X-Request-ID"] == "req-123"
