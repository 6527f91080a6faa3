"""
Pytest fixtures for PharmaPOS backend tests.

Provides a fresh in-memory database per test, a test client, and small
factories for users, medicines and batches.
"""

from datetime import datetime, timezone

import pytest
from pharmapos import create_app
from pharmapos.extensions import db
from pharmapos.services import auth_service, batch_service, catalog_service


DEFAULT_PASSWORD = "Password123"


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture(scope='function')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
        'BUSINESS_TIMEZONE': 'UTC',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def owner(app):
    """First account, so it becomes the owner."""
    return auth_service.create_user("owner", DEFAULT_PASSWORD, "Store Owner")


@pytest.fixture(scope='function')
def cashier(app, owner):
    return auth_service.create_user("cashier", DEFAULT_PASSWORD, "Counter Cashier", role="cashier")


@pytest.fixture(scope='function')
def make_medicine(app):
    def _make(name="Paracetamol 500mg", **overrides):
        payload = {"name": name, "generic_name": "Paracetamol", "reorder_level": 10}
        payload.update(overrides)
        return catalog_service.create_medicine(payload)
    return _make


@pytest.fixture(scope='function')
def make_batch(app):
    def _make(medicine_id, batch_number, expiry_date, quantity, selling_price="10.00", gst_percent="12.00", **overrides):
        payload = {
            "medicine_id": medicine_id,
            "batch_number": batch_number,
            "expiry_date": expiry_date,
            "purchase_price": "5.00",
            "mrp": "100.00",
            "selling_price": selling_price,
            "gst_percent": gst_percent,
            "quantity": quantity,
        }
        payload.update(overrides)
        return batch_service.create_batch(payload)
    return _make


def get_auth_token(client, username: str, password: str = DEFAULT_PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
