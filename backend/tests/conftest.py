"""
Pytest fixtures for SmartStock backend tests.

Provides test database setup, catalog fixtures, and test client.
"""

from datetime import timedelta

import pytest

from smartstock import create_app
from smartstock.extensions import db
from smartstock.models import Category, Client, Product, Supplier
from smartstock.services import stock_service
from smartstock.time_utils import utcnow


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LOG_LEVEL': 'DEBUG',
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
def runner(app):
    return app.test_cli_runner()


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
def category(db_session):
    category = Category(name="Electronics")
    db_session.add(category)
    db_session.commit()
    return category


@pytest.fixture(scope='function')
def supplier(db_session):
    supplier = Supplier(name="Acme Supply", email="sales@acme.test")
    db_session.add(supplier)
    db_session.commit()
    return supplier


@pytest.fixture(scope='function')
def buyer(db_session):
    buyer = Client(name="Jane Buyer")
    db_session.add(buyer)
    db_session.commit()
    return buyer


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: make_product(sku, cost=1000, price=2500, stock=0, ...); prices in cents."""
    def _make(sku="SKU-1", *, name=None, cost=1000, price=2500, stock=0, category=None, supplier=None):
        product = Product(
            sku=sku,
            name=name or f"Product {sku}",
            cost_price_cents=cost,
            selling_price_cents=price,
            category_id=category.id if category else None,
            supplier_id=supplier.id if supplier else None,
        )
        db_session.add(product)
        db_session.commit()
        if stock:
            stock_service.record_addition(product.id, stock, "Initial stock")
        return product
    return _make


@pytest.fixture(scope='function')
def product(make_product, category, supplier):
    """Cost 10.00, price 25.00, category + supplier, no stock."""
    return make_product("WIDGET-1", name="Widget", category=category, supplier=supplier)


@pytest.fixture
def days_ago():
    def _days_ago(n):
        return utcnow() - timedelta(days=n)
    return _days_ago
