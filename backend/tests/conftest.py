"""
Pytest fixtures for gasbook backend tests.

Provides test database setup, owner-scope fixtures, customers, and test client.
"""

from datetime import date, datetime

import pytest
from gasbook import create_app
from gasbook.extensions import db
from gasbook.services import customer_service, inventory_service
from gasbook.services.change_feed import feed


OWNER_A = "shop-a"
OWNER_B = "shop-b"

# 11:30 in Asia/Kolkata, so the business date is 2026-01-05 as well
NOW = datetime(2026, 1, 5, 6, 0, 0)
TODAY = date(2026, 1, 5)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'SCHEDULER_ENABLED': False,
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


@pytest.fixture(autouse=True)
def reset_change_feed():
    """Subscribers never leak between tests."""
    yield
    feed.clear()


@pytest.fixture(scope='function')
def owner_a():
    return OWNER_A


@pytest.fixture(scope='function')
def owner_b():
    return OWNER_B


@pytest.fixture(scope='function')
def customer_a(db_session):
    """Domestic customer of owner A registered for 2 x 14.2kg."""
    return customer_service.register_customer(owner_key=OWNER_A, payload={
        "name": "Asha Rao",
        "phone": "9876543210",
        "book_id": "ab12cd34ef56gh78",
        "category": "Domestic",
        "address": "12 MG Road",
        "cylinders": 2,
        "cylinder_type": "14.2kg",
    })


@pytest.fixture(scope='function')
def customer_b(db_session):
    """Commercial customer of owner B registered for 5 x 19kg."""
    return customer_service.register_customer(owner_key=OWNER_B, payload={
        "name": "Hotel Sagar",
        "phone": "9000000001",
        "category": "Commercial",
        "cylinders": 5,
        "cylinder_type": "19kg",
    })


@pytest.fixture(scope='function')
def full_stock_a(db_session):
    """Ten FULL 14.2kg cylinders for owner A."""
    inventory_service.add_cylinders(owner_key=OWNER_A, cylinder_type="14.2kg", status="FULL", quantity=10)


def owner_headers(owner_key: str) -> dict:
    """Helper to create owner-scope headers."""
    return {'X-Owner-Key': owner_key}
