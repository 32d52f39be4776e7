"""
Pytest fixtures for stock ledger backend tests.

Provides test database setup, tenant/master-data fixtures, and test client.
"""

import pytest
from stockledger import create_app
from stockledger.extensions import db
from stockledger.models import Customer, Product, Tenant, Warehouse
from stockledger.services import ledger_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LEDGER_RETRY_BACKOFF': 0,
        'REFERENCE_TIMEZONE': 'UTC',
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
def tenant(db_session):
    """Create Tenant A (first tenant)."""
    tenant = Tenant(name="Tenant A - Acme Corp", code="ACME", is_active=True)
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture(scope='function')
def other_tenant(db_session):
    """Create Tenant B (second tenant)."""
    tenant = Tenant(name="Tenant B - Beta Inc", code="BETA", is_active=True)
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture(scope='function')
def warehouse(db_session, tenant):
    warehouse = Warehouse(tenant_id=tenant.id, name="Central", location="Istanbul")
    db_session.add(warehouse)
    db_session.commit()
    return warehouse


@pytest.fixture(scope='function')
def second_warehouse(db_session, tenant):
    warehouse = Warehouse(tenant_id=tenant.id, name="Depot", location="Ankara")
    db_session.add(warehouse)
    db_session.commit()
    return warehouse


@pytest.fixture(scope='function')
def product(db_session, tenant):
    product = Product(tenant_id=tenant.id, sku="PROD-001", name="Bolt", unit="adet", price_cents=1500)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def second_product(db_session, tenant):
    product = Product(tenant_id=tenant.id, sku="PROD-002", name="Nut", unit="adet", price_cents=500)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def customer(db_session, tenant):
    customer = Customer(tenant_id=tenant.id, name="Customer C", email="c@example.com")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def other_tenant_warehouse(db_session, other_tenant):
    warehouse = Warehouse(tenant_id=other_tenant.id, name="Central")
    db_session.add(warehouse)
    db_session.commit()
    return warehouse


@pytest.fixture(scope='function')
def other_tenant_product(db_session, other_tenant):
    product = Product(tenant_id=other_tenant.id, sku="PROD-001", name="Foreign Bolt", unit="adet")
    db_session.add(product)
    db_session.commit()
    return product


def stock_in(tenant_id: int, product_id: int, warehouse_id: int, quantity: int):
    """Helper to receive stock through the public movement path."""
    return ledger_service.record_manual_movement(
        tenant_id=tenant_id,
        product_id=product_id,
        warehouse_id=warehouse_id,
        quantity=quantity,
        movement_type="IN",
    )


def tenant_headers(tenant_id: int, user_id: int | None = None) -> dict:
    """Helper to create tenant context headers."""
    headers = {'X-Tenant-ID': str(tenant_id)}
    if user_id is not None:
        headers['X-User-ID'] = str(user_id)
    return headers
