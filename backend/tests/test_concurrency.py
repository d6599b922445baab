# Overview: Concurrent approvals against a file-backed SQLite database.

"""
Concurrency Tests

Two threads approve two pending transactions that compete for the last
pack in stock. Each thread has its own app context (and therefore its own
session and connection), so the ledger's version check and bounded retry
are what serialize them.
"""

import threading
from decimal import Decimal

import pytest

from salesops import create_app
from salesops.errors import SalesOpsError
from salesops.extensions import db
from salesops.models import Branch, Product, ProductCategory, SalesTransaction, Stock, StockMovement, User
from salesops.permissions import ROLE_BRANCH_ADMIN, ROLE_SALES, Capabilities
from salesops.services import stock_service, transaction_service


@pytest.fixture
def file_app(tmp_path):
    """Separate app on a real database file shared by every thread."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'concurrency.sqlite3'}",
        'LEDGER_RETRY_ATTEMPTS': 10,
        'LEDGER_RETRY_BACKOFF': 0.01,
        'COMMISSIONS_ENABLED': False,
    })
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


@pytest.fixture
def race(file_app):
    """One pack at the branch and two pending single-pack transactions."""
    with file_app.app_context():
        branch = Branch(code="JKT", name="Jakarta", is_active=True)
        category = ProductCategory(code="CIG", name="Cigarettes", is_active=True)
        db.session.add_all([branch, category])
        db.session.commit()

        product = Product(category_id=category.id, code="KRT-001", name="Kretek Filter 12", price=Decimal("25000.00"))
        admin = User(name="Admin", email="admin@example.com", role=ROLE_BRANCH_ADMIN, branch_id=branch.id, is_active=True)
        agent = User(name="Agent", email="agent@example.com", role=ROLE_SALES, branch_id=branch.id, is_active=True)
        db.session.add_all([product, admin, agent])
        db.session.commit()

        db.session.add(Stock(product_id=product.id, branch_id=branch.id, quantity=1, minimum_stock=0))
        db.session.commit()

        draft = {"branch_id": branch.id, "items": [{"product_id": product.id, "quantity": 1}]}
        txn_ids = [
            transaction_service.submit(draft, actor_id=agent.id, capabilities=Capabilities.for_user(agent)).id
            for _ in range(2)
        ]
        return {
            "branch_id": branch.id,
            "product_id": product.id,
            "admin_id": admin.id,
            "admin_caps": Capabilities.for_user(admin),
            "txn_ids": txn_ids,
        }


class TestConcurrentApproval:

    def test_last_pack_sold_once(self, file_app, race):
        results = []
        lock = threading.Lock()
        start = threading.Barrier(2)

        def worker(txn_id):
            with file_app.app_context():
                start.wait()
                try:
                    transaction_service.approve(
                        txn_id, actor_id=race["admin_id"], capabilities=race["admin_caps"]
                    )
                    with lock:
                        results.append("ok")
                except SalesOpsError as exc:
                    with lock:
                        results.append(type(exc).__name__)
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=worker, args=(txn_id,)) for txn_id in race["txn_ids"]]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

        assert sorted(results) == ["InsufficientStock", "ok"]

        with file_app.app_context():
            assert stock_service.balance(race["product_id"], race["branch_id"]) == 0
            statuses = sorted(
                db.session.get(SalesTransaction, txn_id).status for txn_id in race["txn_ids"]
            )
            assert statuses == ["approved", "pending"]
            assert db.session.query(StockMovement).filter_by(type="sale").count() == 1
