"""Pytest fixtures for ComptaMatch tests."""

from datetime import datetime

import mongomock
import pytest
from fastapi.testclient import TestClient

from analytics import RateLimiter
from config import Settings, get_settings
from database import ensure_indexes, get_db

ADMIN_TOKEN = "test-admin-token"

NOW = datetime(2024, 6, 15, 12, 0, 0)


@pytest.fixture
def db():
    """In-memory MongoDB database."""
    client = mongomock.MongoClient()
    database = client["comptamatch_test"]
    ensure_indexes(database)
    yield database
    client.close()


@pytest.fixture
def settings():
    # no DATABASE_URL: routes get the in-memory database through get_db
    return Settings(admin_api_token=ADMIN_TOKEN)


@pytest.fixture
def client(db, settings):
    """Test client wired to the in-memory database."""
    from main import app

    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_settings] = lambda: settings
    app.state.rate_limiter = RateLimiter()
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers():
    return {"X-Admin-Token": ADMIN_TOKEN}


@pytest.fixture
def add_product(db):
    def _add(name="Compta Pro", price_cents=1000, category_id=None, is_active=True):
        result = db["product"].insert_one(
            {
                "name": name,
                "price_cents": price_cents,
                "category_id": category_id,
                "is_active": is_active,
                "created_at": NOW,
            }
        )
        return str(result.inserted_id)

    return _add


@pytest.fixture
def add_promo(db):
    def _add(code="PROMO10", **overrides):
        doc = {
            "code": code,
            "is_active": True,
            "target_type": "ALL",
            "product_category_id": None,
            "discount_type": "PERCENT",
            "discount_value": 10,
            "starts_at": None,
            "ends_at": None,
            "max_uses": None,
            "current_uses": 0,
            "created_at": NOW,
        }
        doc.update(overrides)
        return str(db["promocode"].insert_one(doc).inserted_id)

    return _add


@pytest.fixture
def add_user(db):
    def _add(email="client@comptamatch.fr", created_at=NOW, is_test_account=False):
        result = db["user"].insert_one(
            {
                "name": email.split("@")[0],
                "email": email,
                "password_hash": "x",
                "is_active": True,
                "is_test_account": is_test_account,
                "created_at": created_at,
            }
        )
        return str(result.inserted_id)

    return _add


@pytest.fixture
def add_order(db):
    def _add(
        total_paid=1000,
        paid_at=NOW,
        created_at=NOW,
        status="PAID",
        user_id=None,
        product_ids=(),
        stripe_fee_amount=None,
        promo_code_id=None,
        discount_amount=0,
    ):
        doc = {
            "user_id": user_id,
            "status": status,
            "created_at": created_at,
            "total_paid": total_paid,
            "discount_amount": discount_amount,
            "promo_code_id": promo_code_id,
            "stripe_fee_amount": stripe_fee_amount,
            "currency": "eur",
            "items": [
                {
                    "product_id": pid,
                    "product_name_snapshot": "Produit",
                    "unit_price_cents": total_paid,
                    "quantity": 1,
                    "line_total": total_paid,
                }
                for pid in product_ids
            ],
        }
        if paid_at is not None:
            doc["paid_at"] = paid_at
        return str(db["order"].insert_one(doc).inserted_id)

    return _add


@pytest.fixture
def add_event(db):
    def _add(product_id, type="view", created_at=NOW, user_id=None):
        db["analyticsevent"].insert_one(
            {
                "type": type,
                "product_id": product_id,
                "session_id": "s1",
                "user_id": user_id,
                "created_at": created_at,
            }
        )

    return _add
