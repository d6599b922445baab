"""
HTTP API tests.

Verifies:
- Requests without a valid X-Actor-Id header return 401
- Missing capabilities return 403, domain errors map to their status codes
- Submit / approve round trip over HTTP, including the insufficient stock body
- Branch and own-document scoping for sales agents
- Health endpoint and JSON error bodies
"""

import pytest

from salesops.extensions import db
from salesops.models import Area, User
from salesops.services import stock_service


# =============================================================================
# IDENTITY - 401
# =============================================================================


class TestActorRequired:

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/branches"),
            ("GET", "/api/products"),
            ("GET", "/api/stocks/low"),
            ("POST", "/api/stocks/adjust"),
            ("GET", "/api/transactions"),
            ("POST", "/api/transactions"),
            ("GET", "/api/visits"),
            ("GET", "/api/targets"),
            ("GET", "/api/commissions"),
        ],
    )
    def test_requires_actor(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_malformed_header(self, client, db_session):
        resp = client.get("/api/transactions", headers={"X-Actor-Id": "abc"})
        assert resp.status_code == 401

    def test_inactive_user(self, client, db_session, sales_user, sales_headers):
        sales_user.is_active = False
        db.session.commit()

        resp = client.get("/api/transactions", headers=sales_headers)
        assert resp.status_code == 401

    def test_me(self, client, sales_user, sales_headers):
        resp = client.get("/api/users/me", headers=sales_headers)
        assert resp.status_code == 200
        assert resp.get_json()["id"] == sales_user.id


# =============================================================================
# TRANSACTIONS OVER HTTP
# =============================================================================


class TestTransactionRoutes:

    def _submit(self, client, headers, branch, product, quantity):
        return client.post(
            "/api/transactions",
            json={"branch_id": branch.id, "items": [{"product_id": product.id, "quantity": quantity}]},
            headers=headers,
        )

    def test_submit_and_approve(
        self, client, branch, product, set_stock, sales_user, sales_headers, admin_headers
    ):
        set_stock(product, branch, 10)

        resp = self._submit(client, sales_headers, branch, product, 4)
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["status"] == "pending"
        assert body["sales_id"] == sales_user.id
        assert body["total"] == "100000.00"
        assert body["tax"] is None

        resp = client.post(f"/api/transactions/{body['id']}/approve", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.get_json()["status"] == "approved"
        assert stock_service.balance(product.id, branch.id) == 6

        resp = client.post(f"/api/transactions/{body['id']}/approve", headers=admin_headers)
        assert resp.status_code == 409

    def test_insufficient_stock_returns_422(
        self, client, branch, product, set_stock, sales_headers, admin_headers
    ):
        set_stock(product, branch, 6)
        txn_id = self._submit(client, sales_headers, branch, product, 10).get_json()["id"]

        resp = client.post(f"/api/transactions/{txn_id}/approve", headers=admin_headers)

        assert resp.status_code == 422
        body = resp.get_json()
        assert "Insufficient stock" in body["error"]
        assert body["details"]["requested"] == 10
        assert body["details"]["available"] == 6

        resp = client.get(f"/api/transactions/{txn_id}", headers=admin_headers)
        assert resp.get_json()["status"] == "pending"
        assert stock_service.balance(product.id, branch.id) == 6

    def test_sales_agent_cannot_approve(self, client, branch, product, set_stock, sales_headers):
        set_stock(product, branch, 10)
        txn_id = self._submit(client, sales_headers, branch, product, 1).get_json()["id"]

        resp = client.post(f"/api/transactions/{txn_id}/approve", headers=sales_headers)

        assert resp.status_code == 403
        assert resp.get_json()["required_capability"] == "APPROVE_TRANSACTIONS"

    def test_sales_agent_sees_only_own_documents(
        self, client, branch, product, sales_headers, admin_headers
    ):
        own_id = self._submit(client, sales_headers, branch, product, 1).get_json()["id"]
        other_id = self._submit(client, admin_headers, branch, product, 1).get_json()["id"]

        resp = client.get("/api/transactions", headers=sales_headers)
        assert [t["id"] for t in resp.get_json()["items"]] == [own_id]

        assert client.get(f"/api/transactions/{other_id}", headers=sales_headers).status_code == 403
        assert client.get(f"/api/transactions/{own_id}", headers=sales_headers).status_code == 200

    def test_submit_to_foreign_branch_forbidden(self, client, branch_b, product, sales_headers):
        resp = self._submit(client, sales_headers, branch_b, product, 1)
        assert resp.status_code == 403

    def test_invalid_draft_returns_400(self, client, branch, sales_headers):
        resp = client.post("/api/transactions", json={"branch_id": branch.id, "items": []}, headers=sales_headers)
        assert resp.status_code == 400
        assert "error" in resp.get_json()

    def test_unknown_transaction_returns_404(self, client, db_session, admin_headers):
        resp = client.post("/api/transactions/99999/approve", headers=admin_headers)
        assert resp.status_code == 404

    def test_non_text_customer_name_returns_400(self, client, branch, product, sales_headers):
        resp = client.post(
            "/api/transactions",
            json={"branch_id": branch.id, "customer_name": 123,
                  "items": [{"product_id": product.id, "quantity": 1}]},
            headers=sales_headers,
        )
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "customer_name must be a string"


class TestVisitRoutes:

    def test_non_text_customer_name_returns_400(self, client, branch, sales_headers):
        resp = client.post(
            "/api/visits", json={"branch_id": branch.id, "customer_name": 123}, headers=sales_headers
        )
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "customer_name must be a string"

    def test_submit_visit(self, client, branch, sales_user, sales_headers):
        resp = client.post(
            "/api/visits", json={"branch_id": branch.id, "customer_name": "Toko Maju"}, headers=sales_headers
        )
        assert resp.status_code == 201
        assert resp.get_json()["sales_id"] == sales_user.id


class TestAssignmentRoutes:

    @pytest.fixture
    def jkt_areas(self, branch):
        rows = [
            Area(branch_id=branch.id, code="JKT-01", name="Jakarta Pusat", is_active=True),
            Area(branch_id=branch.id, code="JKT-02", name="Jakarta Barat", is_active=True),
        ]
        db.session.add_all(rows)
        db.session.commit()
        return rows

    def test_agent_lists_only_assigned_areas(self, client, jkt_areas, sales_user, super_headers, sales_headers):
        resp = client.put(
            f"/api/users/{sales_user.id}/areas", json={"area_ids": [jkt_areas[1].id]}, headers=super_headers
        )
        assert resp.status_code == 200
        assert [a["code"] for a in resp.get_json()["items"]] == ["JKT-02"]

        resp = client.get("/api/areas", headers=sales_headers)
        assert [a["code"] for a in resp.get_json()["items"]] == ["JKT-02"]

    def test_branch_admin_sees_every_branch_area(self, client, jkt_areas, admin_headers):
        resp = client.get("/api/areas", headers=admin_headers)
        assert len(resp.get_json()["items"]) == 2

    def test_assignment_requires_manage_catalog(self, client, jkt_areas, sales_user, admin_headers):
        resp = client.put(
            f"/api/users/{sales_user.id}/areas", json={"area_ids": [jkt_areas[0].id]}, headers=admin_headers
        )
        assert resp.status_code == 403
        assert resp.get_json()["required_capability"] == "MANAGE_CATALOG"

    def test_other_branch_user_areas_hidden(self, client, branch_b, admin_headers):
        agent = User(name="Sales SBY", email="sales.sby@example.com", role="sales",
                     branch_id=branch_b.id, is_active=True)
        db.session.add(agent)
        db.session.commit()

        resp = client.get(f"/api/users/{agent.id}/areas", headers=admin_headers)
        assert resp.status_code == 403

    def test_category_branches_filter_products(self, client, branch_b, product, super_headers, sales_headers):
        resp = client.put(
            f"/api/categories/{product.category_id}/branches",
            json={"branch_ids": [branch_b.id]},
            headers=super_headers,
        )
        assert resp.status_code == 200
        assert resp.get_json() == {"branch_ids": [branch_b.id]}

        # The agent works in Jakarta, where the category is no longer offered.
        assert client.get("/api/products", headers=sales_headers).get_json()["items"] == []
        assert client.get("/api/categories", headers=sales_headers).get_json()["items"] == []

        resp = client.get(f"/api/categories/{product.category_id}/branches", headers=sales_headers)
        assert resp.get_json() == {"branch_ids": [branch_b.id]}

    def test_category_branches_require_list(self, client, category, super_headers):
        resp = client.put(
            f"/api/categories/{category.id}/branches", json={"branch_ids": 3}, headers=super_headers
        )
        assert resp.status_code == 400


class TestSalesSummaryRoute:

    def _agent_in(self, branch):
        agent = User(name="Sales SBY", email="sales.sby@example.com", role="sales",
                     branch_id=branch.id, is_active=True)
        db.session.add(agent)
        db.session.commit()
        return agent

    def test_admin_reads_own_branch_agent(self, client, sales_user, admin_headers):
        resp = client.get(f"/api/transactions/summary?sales_id={sales_user.id}", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.get_json()["sales_id"] == sales_user.id

    def test_admin_cannot_read_other_branch_agent(self, client, branch_b, admin_headers):
        agent = self._agent_in(branch_b)

        resp = client.get(f"/api/transactions/summary?sales_id={agent.id}", headers=admin_headers)

        assert resp.status_code == 403
        assert "total_sales" not in resp.get_json()

    def test_super_admin_reads_any_branch(self, client, branch_b, super_headers):
        agent = self._agent_in(branch_b)
        resp = client.get(f"/api/transactions/summary?sales_id={agent.id}", headers=super_headers)
        assert resp.status_code == 200

    def test_unknown_agent_returns_404(self, client, admin_headers):
        resp = client.get("/api/transactions/summary?sales_id=99999", headers=admin_headers)
        assert resp.status_code == 404

    def test_sales_agent_always_gets_own_summary(self, client, branch_b, sales_user, sales_headers):
        other = self._agent_in(branch_b)
        resp = client.get(f"/api/transactions/summary?sales_id={other.id}", headers=sales_headers)
        assert resp.status_code == 200
        assert resp.get_json()["sales_id"] == sales_user.id


# =============================================================================
# STOCK, TARGETS, COMMISSIONS
# =============================================================================


class TestStockRoutes:

    def test_zero_adjustment_returns_422(self, client, branch, product, set_stock, admin_headers):
        set_stock(product, branch, 5)

        resp = client.post(
            "/api/stocks/adjust",
            json={"product_id": product.id, "branch_id": branch.id, "quantity_change": 0},
            headers=admin_headers,
        )

        assert resp.status_code == 422

    def test_adjust_and_read_balance(self, client, branch, product, set_stock, admin_headers):
        set_stock(product, branch, 5)

        resp = client.post(
            "/api/stocks/adjust",
            json={"product_id": product.id, "branch_id": branch.id, "quantity_change": -2, "notes": "damaged"},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.get_json() == {"quantity": 3}

        resp = client.get(
            f"/api/stocks/balance?product_id={product.id}&branch_id={branch.id}", headers=admin_headers
        )
        assert resp.get_json()["quantity"] == 3

    def test_sales_agent_cannot_adjust(self, client, branch, product, set_stock, sales_headers):
        set_stock(product, branch, 5)

        resp = client.post(
            "/api/stocks/adjust",
            json={"product_id": product.id, "branch_id": branch.id, "quantity_change": 1},
            headers=sales_headers,
        )

        assert resp.status_code == 403
        assert stock_service.balance(product.id, branch.id) == 5

    def test_opname_with_non_object_count_returns_400(self, client, branch, product, set_stock, admin_headers):
        set_stock(product, branch, 5)

        resp = client.post(
            "/api/stocks/opname",
            json={"branch_id": branch.id, "counts": [5]},
            headers=admin_headers,
        )

        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Each count must be an object"
        assert stock_service.balance(product.id, branch.id) == 5

    def test_transfer(self, client, branch, branch_b, product, set_stock, super_headers):
        set_stock(product, branch, 5)

        resp = client.post(
            "/api/stocks/transfer",
            json={"product_id": product.id, "from_branch_id": branch.id, "to_branch_id": branch_b.id, "quantity": 2},
            headers=super_headers,
        )

        assert resp.status_code == 200
        assert resp.get_json() == {"from_quantity": 3, "to_quantity": 2}


class TestTargetRoutes:

    def test_progress_serializes_money_as_strings(
        self, client, branch, product, set_stock, sales_headers, admin_headers
    ):
        set_stock(product, branch, 100)
        resp = client.post(
            "/api/targets",
            json={"branch_id": branch.id, "type": "revenue", "amount": "1000000.00",
                  "period_type": "monthly", "year": 2025, "month": 1},
            headers=admin_headers,
        )
        assert resp.status_code == 201
        target_id = resp.get_json()["id"]

        for quantity, day in ((20, "2025-01-10"), (28, "2025-01-25")):
            txn = client.post(
                "/api/transactions",
                json={"branch_id": branch.id, "transaction_date": day,
                      "items": [{"product_id": product.id, "quantity": quantity}]},
                headers=sales_headers,
            ).get_json()
            client.post(f"/api/transactions/{txn['id']}/approve", headers=admin_headers)

        resp = client.get(f"/api/targets/{target_id}/progress?as_of=2025-01-31", headers=admin_headers)

        assert resp.status_code == 200
        body = resp.get_json()
        assert body["current"] == "1200000.00"
        assert body["goal"] == "1000000.00"
        assert body["percent"] == "120.00"
        assert body["start_date"] == "2025-01-01"
        assert body["end_date"] == "2025-01-31"

    def test_duplicate_target_returns_409(self, client, branch, admin_headers):
        payload = {"branch_id": branch.id, "type": "quantity", "quantity": 10,
                   "period_type": "yearly", "year": 2025}
        assert client.post("/api/targets", json=payload, headers=admin_headers).status_code == 201
        assert client.post("/api/targets", json=payload, headers=admin_headers).status_code == 409

    def test_sales_agent_cannot_create_target(self, client, branch, sales_headers):
        resp = client.post(
            "/api/targets",
            json={"branch_id": branch.id, "type": "quantity", "quantity": 10,
                  "period_type": "yearly", "year": 2025},
            headers=sales_headers,
        )
        assert resp.status_code == 403


class TestCommissionRoutes:

    def test_disabled_module_returns_404(self, client, admin_headers):
        resp = client.get("/api/commissions", headers=admin_headers)
        assert resp.status_code == 404
        assert resp.get_json()["error"] == "Commissions are disabled"

    def test_enabled_module_lists_commissions(
        self, app, monkeypatch, client, branch, product, set_stock, sales_headers, admin_headers
    ):
        monkeypatch.setitem(app.config, "COMMISSIONS_ENABLED", True)
        set_stock(product, branch, 10)
        txn = client.post(
            "/api/transactions",
            json={"branch_id": branch.id, "items": [{"product_id": product.id, "quantity": 4}]},
            headers=sales_headers,
        ).get_json()
        client.post(f"/api/transactions/{txn['id']}/approve", headers=admin_headers)

        resp = client.get("/api/commissions", headers=sales_headers)

        assert resp.status_code == 200
        items = resp.get_json()["items"]
        assert len(items) == 1
        assert items[0]["commission_amount"] == "2500.00"


# =============================================================================
# SYSTEM
# =============================================================================


class TestSystem:

    def test_health(self, client, db_session):
        resp = client.get("/health")
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["status"] == "ok"
        assert body["database"]["status"] == "healthy"
        assert body["features"] == {"commissions": False, "tax": False}

    def test_unknown_route_is_json(self, client, db_session):
        resp = client.get("/api/nope")
        assert resp.status_code == 404
        assert "error" in resp.get_json()

    def test_create_user_requires_catalog_capability(self, client, branch, admin_headers, super_headers):
        payload = {"name": "New Agent", "email": "New.Agent@Example.com", "role": "sales", "branch_id": branch.id}

        assert client.post("/api/users", json=payload, headers=admin_headers).status_code == 403

        resp = client.post("/api/users", json=payload, headers=super_headers)
        assert resp.status_code == 201
        assert db.session.get(User, resp.get_json()["id"]).email == "new.agent@example.com"
