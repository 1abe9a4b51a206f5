from datetime import datetime, timedelta

import mongomock
import pytest
from fastapi.testclient import TestClient

import database
from auth import create_token
from main import app
from schemas import OrderItem, ShippingAddress


@pytest.fixture
def db():
    client = mongomock.MongoClient()
    test_db = client["storefront_test"]
    database.ensure_indexes(test_db)
    return test_db


@pytest.fixture
def client(db):
    app.dependency_overrides[database.get_db] = lambda: db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def user_headers():
    return {"Authorization": f"Bearer {create_token('user-1', email='user@example.com')}"}


@pytest.fixture
def other_user_headers():
    return {"Authorization": f"Bearer {create_token('user-2')}"}


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {create_token('admin-1', is_admin=True)}"}


@pytest.fixture
def make_product(db):
    def _make(price=100.0, stock=10, name="Linen Shirt", **extra):
        doc = {"name": name, "price": price, "stock": stock}
        doc.update(extra)
        return str(db[database.PRODUCT].insert_one(doc).inserted_id)
    return _make


@pytest.fixture
def make_coupon(db):
    def _make(code="SAVE10", discount_type="percentage", discount_value=10, expiry_date=None,
              min_purchase_amount=None, usage_limit=None, usage_count=0, is_active=True):
        now = datetime.utcnow().replace(microsecond=0)
        doc = {
            "code": code,
            "discount_type": discount_type,
            "discount_value": discount_value,
            "expiry_date": expiry_date or now + timedelta(days=30),
            "min_purchase_amount": min_purchase_amount,
            "usage_limit": usage_limit,
            "usage_count": usage_count,
            "is_active": is_active,
            "created_at": now,
            "updated_at": now,
        }
        return str(db[database.COUPON].insert_one(doc).inserted_id)
    return _make


@pytest.fixture
def address():
    return ShippingAddress(
        full_name="Nadia Rahman",
        phone="01700000000",
        street_address="12 Lake Road",
        city="Dhaka",
        postal_code="1205",
        country="Bangladesh",
    )


@pytest.fixture
def order_item():
    def _make(product_id="p-1", price=100.0, quantity=1, **extra):
        return OrderItem(product_id=product_id, name="Linen Shirt", price=price, quantity=quantity, **extra)
    return _make
