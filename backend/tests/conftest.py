"""
Pytest fixtures for the sales backend tests.

Provides an in-memory application, a per-test table wipe, master data
fixtures (branches, catalog, users per role) and capability helpers.
"""

from decimal import Decimal

import pytest

from salesops import create_app
from salesops.extensions import db
from salesops.models import Branch, Product, ProductCategory, Stock, User
from salesops.permissions import (
    ROLE_BRANCH_ADMIN,
    ROLE_SALES,
    ROLE_SUPER_ADMIN,
    Capabilities,
)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LEDGER_RETRY_BACKOFF': 0.0,
        'COMMISSIONS_ENABLED': False,
        'TAX_ENABLED': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def branch(db_session):
    """Primary branch."""
    branch = Branch(code="JKT", name="Jakarta", is_active=True)
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def branch_b(db_session):
    """Second branch for transfers and scope checks."""
    branch = Branch(code="SBY", name="Surabaya", is_active=True)
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def category(db_session):
    category = ProductCategory(code="CIG", name="Cigarettes", is_active=True)
    db_session.add(category)
    db_session.commit()
    return category


@pytest.fixture(scope='function')
def product(db_session, category):
    """Sellable product priced at 25,000.00 per pack."""
    product = Product(
        category_id=category.id,
        code="KRT-001",
        name="Kretek Filter 12",
        price=Decimal("25000.00"),
        cost=Decimal("21000.00"),
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product_b(db_session, category):
    product = Product(
        category_id=category.id,
        code="KRT-002",
        name="Kretek Mild 16",
        price=Decimal("30000.00"),
    )
    db_session.add(product)
    db_session.commit()
    return product


def _make_user(db_session, name, email, role, branch_id):
    user = User(name=name, email=email, role=role, branch_id=branch_id, is_active=True)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def super_admin(db_session):
    return _make_user(db_session, "Super Admin", "super@example.com", ROLE_SUPER_ADMIN, None)


@pytest.fixture(scope='function')
def branch_admin(db_session, branch):
    return _make_user(db_session, "Branch Admin", "admin.jkt@example.com", ROLE_BRANCH_ADMIN, branch.id)


@pytest.fixture(scope='function')
def sales_user(db_session, branch):
    return _make_user(db_session, "Sales Agent", "sales.jkt@example.com", ROLE_SALES, branch.id)


@pytest.fixture(scope='function')
def admin_caps(branch_admin):
    return Capabilities.for_user(branch_admin)


@pytest.fixture(scope='function')
def super_caps(super_admin):
    return Capabilities.for_user(super_admin)


@pytest.fixture(scope='function')
def sales_caps(sales_user):
    return Capabilities.for_user(sales_user)


@pytest.fixture(scope='function')
def set_stock(db_session):
    """Seed a stock row directly (bypasses the ledger, for arrangement only)."""
    def _set(product, branch, quantity, minimum_stock=0):
        stock = Stock(
            product_id=product.id,
            branch_id=branch.id,
            quantity=quantity,
            minimum_stock=minimum_stock,
        )
        db_session.add(stock)
        db_session.commit()
        return stock
    return _set


def actor_headers(user) -> dict:
    """Helper to create the gateway identity header."""
    return {'X-Actor-Id': str(user.id)}


@pytest.fixture(scope='function')
def admin_headers(branch_admin):
    return actor_headers(branch_admin)


@pytest.fixture(scope='function')
def super_headers(super_admin):
    return actor_headers(super_admin)


@pytest.fixture(scope='function')
def sales_headers(sales_user):
    return actor_headers(sales_user)
