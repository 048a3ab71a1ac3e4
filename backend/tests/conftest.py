"""
Pytest fixtures for depot backend tests.

Provides test database setup, domain fixtures, actor headers, and test client.
"""

import pytest
from depot import create_app
from depot.extensions import db
from depot.models import Category, Client, Driver, Supplier
from depot.services import catalog_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'NEAR_EXPIRY_DAYS': 30,
        'RETRY_ATTEMPTS': 3,
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
def category(db_session):
    category = Category(name="Beverages")
    db_session.add(category)
    db_session.commit()
    return category


@pytest.fixture(scope='function')
def product(db_session, category):
    """Mineral water at 10.00 with 10 units in stock (booked as an IN movement)."""
    return catalog_service.create_product(
        patch={
            "reference": "WATER-15",
            "name": "Mineral water 1.5L",
            "category_id": category.id,
            "unit_price_cents": 1000,
            "minimum_stock": 2,
        },
        initial_stock=10,
        actor_id="seed",
    )


@pytest.fixture(scope='function')
def second_product(db_session, category):
    return catalog_service.create_product(
        patch={
            "reference": "JUICE-1",
            "name": "Orange juice 1L",
            "category_id": category.id,
            "unit_price_cents": 1500,
            "minimum_stock": 0,
        },
        initial_stock=5,
        actor_id="seed",
    )


@pytest.fixture(scope='function')
def hotel(db_session):
    client = Client(name="Hotel Atlantic", address="12 Ocean Drive", city="Kribi")
    db_session.add(client)
    db_session.commit()
    return client


@pytest.fixture(scope='function')
def driver(db_session):
    driver = Driver(name="Paul", vehicle="Van", plate_number="LT-123-AB")
    db_session.add(driver)
    db_session.commit()
    return driver


@pytest.fixture(scope='function')
def supplier(db_session):
    supplier = Supplier(name="Source Springs")
    db_session.add(supplier)
    db_session.commit()
    return supplier


def actor_headers(role: str = "ADMIN", actor_id: str = "u-1") -> dict:
    return {"X-Actor-Id": actor_id, "X-Actor-Role": role}


@pytest.fixture
def admin_headers():
    return actor_headers("ADMIN", "admin-1")


@pytest.fixture
def cashier_headers():
    return actor_headers("CASHIER", "cashier-1")


@pytest.fixture
def warehouse_headers():
    return actor_headers("WAREHOUSE", "wh-1")


@pytest.fixture
def driver_headers():
    return actor_headers("DRIVER", "driver-1")
