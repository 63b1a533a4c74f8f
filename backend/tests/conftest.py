"""
Pytest fixtures for attarhouse backend tests.

Provides test database setup, catalog/party fixtures, and test client.
"""

from decimal import Decimal

import pytest
from attarhouse import create_app
from attarhouse.extensions import db
from attarhouse.models import Product, ProductSet, Attar, StockRecord, Party
from attarhouse.models.parties import PARTY_CUSTOMER, PARTY_SUPPLIER
from attarhouse.services import settings_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'DEFAULT_GST_RATE': '18',
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
def gst_18(db_session):
    """Pin gst_rate to 18% in the settings table."""
    settings_service.set_setting(settings_service.GST_RATE_KEY, "18")
    db_session.commit()


@pytest.fixture(scope='function')
def customer(db_session):
    """Customer party with a zero balance."""
    party = Party(
        name="Noor Fragrances",
        kind=PARTY_CUSTOMER,
        phone="9000000001",
        email="noor@example.com",
        address="12 Market Road",
        balance=0,
    )
    db_session.add(party)
    db_session.commit()
    return party


@pytest.fixture(scope='function')
def supplier(db_session):
    """Supplier party with a zero balance."""
    party = Party(name="Kannauj Distillers", kind=PARTY_SUPPLIER, phone="9000000002", balance=0)
    db_session.add(party)
    db_session.commit()
    return party


@pytest.fixture(scope='function')
def product_a(db_session):
    """Product A with 20 units in stock."""
    product = Product(sku="PRD-A", name="Product A", price=Decimal("150.00"), cost_price=Decimal("100.00"))
    db_session.add(product)
    db_session.flush()
    db_session.add(StockRecord(item_kind=product.item_kind, item_id=product.id, quantity=20))
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def attar_b(db_session):
    """Attar B with 10 units in stock."""
    attar = Attar(sku="ATR-B", name="Attar B", price=Decimal("80.00"), cost_price=Decimal("50.00"))
    db_session.add(attar)
    db_session.flush()
    db_session.add(StockRecord(item_kind=attar.item_kind, item_id=attar.id, quantity=10))
    db_session.commit()
    return attar


@pytest.fixture(scope='function')
def gift_set(db_session):
    """Gift set with no stock record at all."""
    product_set = ProductSet(sku="SET-C", name="Gift Set C", price=Decimal("500.00"), cost_price=None)
    db_session.add(product_set)
    db_session.commit()
    return product_set


@pytest.fixture(scope='function')
def stock_of(db_session):
    """Current stock quantity for a catalog item, None when it has no record."""
    def _stock_of(item):
        record = (
            db_session.query(StockRecord)
            .filter_by(item_kind=item.item_kind, item_id=item.id)
            .first()
        )
        return record.quantity if record else None
    return _stock_of
