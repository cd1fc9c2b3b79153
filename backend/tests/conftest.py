"""
Pytest fixtures for YUANDI backend tests.

Provides test database setup, seeded product/cashbook fixtures, and test client.
"""

import pytest
from yuandi import create_app
from yuandi.extensions import db
from yuandi.services.cashbook_service import record_opening_balance
from yuandi.services.inventory_service import receive_inbound
from yuandi.services.order_service import create_order
from yuandi.services.products_service import register_product


OPENING_BALANCE = 10_000_000


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


@pytest.fixture(scope='function')
def product(db_session):
    """Active product with no stock."""
    return register_product(patch={
        "sku": "ELEC-iPhone15Pro-Black-000001",
        "name": "iPhone 15 Pro",
        "category": "electronics",
        "model": "iPhone15Pro",
        "color": "Black",
        "sale_price_krw": 1_200_000,
    })


@pytest.fixture(scope='function')
def second_product(db_session):
    return register_product(patch={
        "sku": "FASH-Hoodie-Gray-000002",
        "name": "Hoodie",
        "category": "fashion",
        "model": "Hoodie",
        "color": "Gray",
        "sale_price_krw": 45_000,
    })


@pytest.fixture(scope='function')
def opening_balance(db_session):
    """Cashbook seeded with 10,000,000 KRW."""
    return record_opening_balance(OPENING_BALANCE)


@pytest.fixture(scope='function')
def stocked_product(product, opening_balance):
    """100 units received at a total cost of 902,500 KRW."""
    receive_inbound(product_id=product.id, quantity=100, total_cost_krw=902_500)
    return product


@pytest.fixture(scope='function')
def paid_order(stocked_product):
    """Order for 2 units at 1,200,000 KRW each."""
    return create_order(
        customer_name="홍길동",
        customer_phone="010-1234-5678",
        pccc="P123456789012",
        shipping_address="서울특별시 강남구 테헤란로 1",
        items=[{"product_id": stocked_product.id, "quantity": 2, "price": 1_200_000}],
    )
