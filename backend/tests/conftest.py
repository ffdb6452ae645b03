"""
Pytest fixtures for the petty cash backend tests.

Provides a fresh in-memory database per test, users for every role, an
authenticated header helper and a category/balance setup for expense tests.

Side channels run inline (OUTBOUND_MODE=inline) and mail goes to an
in-process outbox (MAIL_BACKEND=memory), so audit rows and OTP codes are
observable as soon as the call returns.
"""

import re

import pytest

from pettycash import create_app
from pettycash.extensions import db
from pettycash.models import Category, User
from pettycash.models.expenses import ACCOUNT_BANK, ACCOUNT_PHYSICAL
from pettycash.services import ledger_service, session_service
from pettycash.services.auth_service import hash_password


TEST_PASSWORD = "Password123!"


def make_config(tmp_path, **overrides) -> dict:
    config = {
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite://",
        "OUTBOUND_MODE": "inline",
        "MAIL_BACKEND": "memory",
        "UPLOAD_FOLDER": str(tmp_path / "uploads"),
        "ADMIN_ALERT_EMAILS": [],
        "LOG_LEVEL": "WARNING",
    }
    config.update(overrides)
    return config


@pytest.fixture(scope='session')
def password_hash():
    """bcrypt at cost 12 is slow; hash the shared test password once."""
    return hash_password(TEST_PASSWORD)


@pytest.fixture(scope='function')
def app(tmp_path):
    """Create application with a fresh schema for each test."""
    app = create_app(make_config(tmp_path))

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
def db_session(app):
    yield db.session
    db.session.rollback()


@pytest.fixture(scope='function')
def outbox(app):
    """Messages sent through the memory mail backend."""
    return app.extensions.setdefault("outbox", [])


@pytest.fixture(scope='function')
def make_user(db_session, password_hash):
    """Factory: make_user(role, email=None, approval_limit_cents=None, password=True, ...)."""
    counter = {"n": 0}

    def _make(role, email=None, *, approval_limit_cents=None, password=True, **fields):
        counter["n"] += 1
        user = User(
            name=fields.pop("name", f"{role.title()} {counter['n']}"),
            email=email or f"{role}{counter['n']}@pettycash.test",
            role=role,
            password_hash=password_hash if password else None,
            approval_limit_cents=approval_limit_cents,
            is_active=True,
            **fields,
        )
        db_session.add(user)
        db_session.commit()
        return user

    return _make


@pytest.fixture(scope='function')
def admin(make_user):
    return make_user("admin", "admin@pettycash.test", name="Admin User")


@pytest.fixture(scope='function')
def manager(make_user):
    return make_user("manager", "manager@pettycash.test", approval_limit_cents=10000000)


@pytest.fixture(scope='function')
def approver(make_user):
    """Approver with a 50,000.00 limit."""
    return make_user("approver", "approver@pettycash.test", approval_limit_cents=5000000)


@pytest.fixture(scope='function')
def employee(make_user):
    return make_user("employee", "employee@pettycash.test", name="Jane Employee")


@pytest.fixture(scope='function')
def auditor(make_user):
    return make_user("auditor", "auditor@pettycash.test")


@pytest.fixture(scope='function')
def category(db_session):
    cat = Category(name="Office Supplies", code="SUPPLY", budget_limit_cents=0)
    db_session.add(cat)
    db_session.commit()
    return cat


@pytest.fixture(scope='function')
def funded(db_session, admin):
    """Seed 10,000.00 into each account."""
    ledger_service.add_funds(ACCOUNT_PHYSICAL, 1000000, admin.id)
    ledger_service.add_funds(ACCOUNT_BANK, 1000000, admin.id)
    db_session.commit()
    return {ACCOUNT_PHYSICAL: 1000000, ACCOUNT_BANK: 1000000}


def token_for(user) -> str:
    _, token = session_service.create_session(user.id, login_method="password")
    return token


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


def headers_for(user) -> dict:
    return auth_headers(token_for(user))


def latest_otp(outbox: list, email: str) -> str:
    """Pull the most recent 6-digit code mailed to email."""
    for message in reversed(outbox):
        if email in message["to"]:
            match = re.search(r"\b(\d{6})\b", message["body"])
            if match:
                return match.group(1)
    raise AssertionError(f"No OTP mailed to {email}")


@pytest.fixture(scope='function')
def headers(app):
    """Factory: headers(user) -> Authorization header for a fresh session."""
    return headers_for


@pytest.fixture(scope='function')
def otp_code(outbox):
    """Factory: otp_code(email) -> most recent code mailed to that address."""
    return lambda email: latest_otp(outbox, email)
