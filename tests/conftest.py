"""
Shared pytest fixtures for the QuoteLedger test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - admin, salesperson, other_salesperson: User rows
    - customer, location, contact: Customer master data
    - auth_headers: Bearer header factory
"""
from datetime import date

import pytest
from flask_jwt_extended import create_access_token

from app import create_app
from app.models import User, Customer, CustomerLocation, CustomerContact
from app.utils import security
from config.config import TestingConfig
from config.database import db as _db


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app(TestingConfig)


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        security._rate_limit_store.clear()
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Master data ──────────────────────────────────────────────────────────


def make_user(name, email, role="user", password="Secret123!", phone=None):
    user = User(name=name, email=email, username=email.split("@")[0], role=role, phone=phone)
    user.set_password(password)
    _db.session.add(user)
    _db.session.commit()
    return user


@pytest.fixture()
def admin():
    return make_user("Priya Raman", "priya@example.com", role="admin")


@pytest.fixture()
def salesperson():
    return make_user("Anita Bhat", "anita@example.com", phone="+91 98450 00001")


@pytest.fixture()
def other_salesperson():
    return make_user("Ravi Kumar", "ravi@example.com")


@pytest.fixture()
def customer():
    c = Customer(company_name="Shakti Pumps Pvt Ltd", gstin="29ABCDE1234F1Z5")
    _db.session.add(c)
    _db.session.commit()
    return c


@pytest.fixture()
def location(customer):
    loc = CustomerLocation(
        customer_id=customer.id, location_name="Peenya Plant",
        address="Plot 12, Peenya Industrial Area", city="Bengaluru", state="Karnataka",
    )
    _db.session.add(loc)
    _db.session.commit()
    return loc


@pytest.fixture()
def contact(location):
    ct = CustomerContact(
        location_id=location.id, contact_name="Suresh Rao",
        phone="+91 98860 12345", email="suresh@shakti.example", is_primary=True,
    )
    _db.session.add(ct)
    _db.session.commit()
    return ct


@pytest.fixture()
def payload(customer, location, contact):
    """Factory for a valid create payload."""
    def _make(**overrides):
        data = {
            "customer_id": customer.id,
            "customer_location_id": location.id,
            "customer_contact_id": contact.id,
            "quotation_date": date(2025, 4, 10).isoformat(),
            "validity_days": 30,
            "items": [
                {"description": "Centrifugal pump 5HP", "qty": 2, "unit_price": 1000,
                 "discount_percent": 10, "tax_rate": 18},
                {"description": "Installation", "qty": 1, "unit_price": 500, "tax_rate": 18},
            ],
            "terms": "50% advance",
        }
        data.update(overrides)
        return data
    return _make


@pytest.fixture()
def auth_headers():
    """Factory: ``auth_headers(user)`` -> Authorization header dict."""
    def _make(user):
        token = create_access_token(identity=str(user.id), additional_claims={"role": user.role})
        return {"Authorization": f"Bearer {token}"}
    return _make
