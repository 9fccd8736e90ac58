"""
Pytest fixtures for tillcore backend tests.

Provides test database setup, catalog/customer fixtures, an open cash
session and the test client.
"""

from decimal import Decimal

import pytest
from tillcore import create_app
from tillcore.extensions import db
from tillcore.models import User, Product, Customer
from tillcore.services import customer_service, register_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'EXPOSE_ERROR_DETAILS': False,
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
def cashier(db_session):
    """Cashier recording the sales."""
    user = User(name="Ana Cashier", email="ana@tillcore.local", is_active=True)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def manager(db_session):
    """Manager cancelling sales."""
    user = User(name="Marco Manager", email="marco@tillcore.local", is_active=True)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def cash_session(db_session, cashier):
    """Open cash session with a 100.00 float."""
    return register_service.open_session(cashier.id, "100.00")


@pytest.fixture(scope='function')
def coffee(db_session):
    """Unit product with 10 in stock."""
    product = Product(
        name="Coffee 1kg",
        barcode="7790001000011",
        unit_type="unit",
        price=Decimal("50.00"),
        stock=Decimal("10"),
        is_active=True,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def cheese(db_session):
    """Weighed product with 5 kg in stock."""
    product = Product(
        name="Cheese",
        barcode="2000000000022",
        unit_type="kg",
        price=Decimal("20.00"),
        stock=Decimal("5"),
        is_active=True,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def customer(db_session):
    """Account customer with a 500.00 credit limit and no balance."""
    account = Customer(
        name="Jane Buyer",
        document_type="ID",
        document_number="30111222",
        credit_limit=Decimal("500.00"),
        is_active=True,
    )
    db_session.add(account)
    db_session.commit()
    return account


@pytest.fixture(scope='function')
def walk_in(db_session):
    """Reserved walk-in customer."""
    account = customer_service.get_or_create_default_customer()
    db_session.commit()
    return account


def sale_payload(items, subtotal, total, tax=0, **extra):
    """Request body for a sale."""
    body = {
        "items": [
            {"product_id": product_id, "quantity": qty, "unit_price": price}
            for product_id, qty, price in items
        ],
        "subtotal": subtotal,
        "tax": tax,
        "total": total,
    }
    body.update(extra)
    return body


@pytest.fixture(scope='function')
def build_sale():
    """Factory for sale request bodies."""
    return sale_payload
