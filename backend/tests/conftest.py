"""
Pytest fixtures for the warehouse backend tests.

Provides test database setup, master data fixtures, a direct stock-row
helper and the test client.
"""

import pytest
from wms import create_app
from wms.config import TestingConfig
from wms.extensions import db
from wms.models import Container, Location, Product, Stock, User, Warehouse
from wms.models.catalog import ROLE_ADMIN, ROLE_MANAGER, ROLE_WAREHOUSE


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestingConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app, db_session):
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
def warehouse(db_session):
    wh = Warehouse(code="MAIN", name="Main Warehouse", is_active=True)
    db_session.add(wh)
    db_session.commit()
    return wh


def _make_user(db_session, name, email, role):
    user = User(name=name, email=email, role=role, is_active=True)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def admin(db_session):
    return _make_user(db_session, "Admin", "admin@wms.test", ROLE_ADMIN)


@pytest.fixture(scope='function')
def manager(db_session):
    return _make_user(db_session, "Manager", "manager@wms.test", ROLE_MANAGER)


@pytest.fixture(scope='function')
def worker(db_session):
    """WAREHOUSE role user (scanner operator)."""
    return _make_user(db_session, "Worker", "worker@wms.test", ROLE_WAREHOUSE)


@pytest.fixture(scope='function')
def product(db_session):
    p = Product(sku="ABC-100", ean="5901234123457", name="Widget", unit="szt", price_cents=1999)
    db_session.add(p)
    db_session.commit()
    return p


@pytest.fixture(scope='function')
def other_product(db_session):
    p = Product(sku="XYZ-200", ean="5909876543210", name="Gadget", unit="szt")
    db_session.add(p)
    db_session.commit()
    return p


def _make_location(db_session, warehouse, barcode, zone="A"):
    location = Location(warehouse_id=warehouse.id, barcode=barcode, zone=zone)
    db_session.add(location)
    db_session.commit()
    return location


@pytest.fixture(scope='function')
def loc_a(db_session, warehouse):
    return _make_location(db_session, warehouse, "A-01-01")


@pytest.fixture(scope='function')
def loc_b(db_session, warehouse):
    return _make_location(db_session, warehouse, "B-02-03", zone="B")


@pytest.fixture(scope='function')
def container(db_session, loc_a):
    c = Container(barcode="K000001", name="Tote 1", location_id=loc_a.id)
    db_session.add(c)
    db_session.commit()
    return c


@pytest.fixture(scope='function')
def put_stock(db_session):
    """Insert a raw stock row, bypassing documents."""
    def _put(product, location, qty, container=None):
        row = Stock(
            product_id=product.id,
            location_id=location.id,
            container_id=container.id if container is not None else None,
            qty=qty,
        )
        db_session.add(row)
        db_session.commit()
        return row
    return _put


@pytest.fixture(scope='function')
def on_hand(db_session):
    """Current quantity on hand straight from the stock table."""
    def _on_hand(product, location) -> int:
        rows = db_session.query(Stock).filter_by(product_id=product.id, location_id=location.id).all()
        return sum(r.qty for r in rows)
    return _on_hand


def user_headers(user) -> dict:
    """Helper to create the acting-user header."""
    return {'X-User-Id': str(user.id)}


@pytest.fixture(scope='function')
def admin_headers(admin):
    return user_headers(admin)


@pytest.fixture(scope='function')
def manager_headers(manager):
    return user_headers(manager)


@pytest.fixture(scope='function')
def worker_headers(worker):
    return user_headers(worker)
