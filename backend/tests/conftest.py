"""
Pytest fixtures for stockflow backend tests.

Provides test database setup, catalog master data and test client.
"""

from decimal import Decimal

import pytest

from stockflow import create_app
from stockflow.extensions import db
from stockflow.models import (
    Product,
    ProductUnit,
    ProductVariant,
    Supplier,
    SupplierBankAccount,
    VariantAttribute,
    VariantPricingTier,
)
from stockflow.models.inventory import MOVEMENT_ADJUSTMENT
from stockflow.services import ledger_service, unit_conversion
from stockflow.services.concurrency import write_transaction


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
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


def build_supplier(session, name="PT Sumber Makmur", is_active=True):
    supplier = Supplier(name=name, is_active=is_active)
    session.add(supplier)
    session.flush()
    session.add(SupplierBankAccount(
        supplier_id=supplier.id,
        account_name=name,
        account_number="1234567890",
    ))
    session.commit()
    return supplier


def build_product(session, name="Kopi Sachet", sku="KOPI-001", tiers=((1, "75000"), (12, "70000"), (144, "65000"))):
    """Product with a pcs <- dozen (12 pcs) <- gross (12 dozen) unit chain and one priced variant."""
    product = Product(name=name, status="active")
    session.add(product)
    session.flush()

    pcs = ProductUnit(product_id=product.id, name="pcs", conversion_factor=Decimal("1"), is_base=True)
    session.add(pcs)
    session.flush()
    dozen = ProductUnit(product_id=product.id, name="dozen", conversion_factor=Decimal("12"), converts_to_id=pcs.id)
    session.add(dozen)
    session.flush()
    gross = ProductUnit(product_id=product.id, name="gross", conversion_factor=Decimal("12"), converts_to_id=dozen.id)
    session.add(gross)
    session.flush()
    unit_conversion.refresh_to_base_units(product)

    variant = ProductVariant(product_id=product.id, sku=sku, current_stock=0)
    session.add(variant)
    session.flush()
    session.add(VariantAttribute(variant_id=variant.id, attribute_name="Size", attribute_value="Sachet"))
    for min_qty, value in tiers:
        session.add(VariantPricingTier(variant_id=variant.id, min_qty=min_qty, value=Decimal(value)))
    session.commit()
    return product


@pytest.fixture
def supplier(db_session):
    """Active supplier with one bank account."""
    return build_supplier(db_session)


@pytest.fixture
def product(db_session):
    return build_product(db_session)


@pytest.fixture
def variant(product):
    return product.variants[0]


@pytest.fixture
def units(product):
    """Unit ids of the fixture product by name."""
    return {u.name: u.id for u in product.units}


@pytest.fixture
def add_stock(db_session):
    """Seed stock through the ledger so current_stock stays equal to the ledger sum."""
    def _add(variant_id, quantity):
        with write_transaction():
            ledger_service.apply_delta(variant_id, quantity, MOVEMENT_ADJUSTMENT, notes="Opening stock")
    return _add
