"""
Pytest configuration.

Builds a fresh app per test on an in-memory SQLite database with a pinned
clock, and puts the project root on sys.path so the flat modules import.
"""

import sys
from datetime import datetime, timedelta
from pathlib import Path

import pytest

project_root = Path(__file__).parent.parent.absolute()
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from werkzeug.security import generate_password_hash  # noqa: E402

from app import create_app  # noqa: E402
from engine import get_engine  # noqa: E402
from extensions import db  # noqa: E402
from incentive_config import IncentiveConfig  # noqa: E402
from models_users import ROLE_EMPLOYEE, User  # noqa: E402

PASSWORD = "correct horse"
_PASSWORD_HASH = generate_password_hash(PASSWORD, method="pbkdf2:sha256:1000")


class FakeClock:
    """Callable clock whose time only moves when a test moves it."""

    def __init__(self, current: datetime):
        self.current = current

    def __call__(self) -> datetime:
        return self.current

    def set(self, current: datetime):
        self.current = current

    def advance(self, **kwargs):
        self.current = self.current + timedelta(**kwargs)


@pytest.fixture
def clock():
    # Wednesday
    return FakeClock(datetime(2025, 3, 12, 10, 0))


@pytest.fixture
def config():
    return IncentiveConfig()


@pytest.fixture
def app(config, clock):
    app = create_app(
        overrides={
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": "sqlite://",
            "SQLALCHEMY_ENGINE_OPTIONS": {},
            "RATELIMIT_ENABLED": False,
            "ADMIN_API_KEY": "test-admin-key",
        },
        config=config,
        clock=clock,
    )
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def engine(app):
    return get_engine()


@pytest.fixture
def ledger(engine):
    return engine.ledger


@pytest.fixture
def make_user(app, clock):
    def _make(email, display_name=None, verified=True, role=ROLE_EMPLOYEE, created_at=None, token=None):
        user = User(
            email=email.lower(),
            display_name=display_name or email.split("@")[0],
            role=role,
            password_hash=_PASSWORD_HASH,
            email_verified_at=clock() - timedelta(days=30) if verified else None,
            exclusive_token=token,
            created_at=created_at or clock() - timedelta(days=30),
        )
        db.session.add(user)
        db.session.commit()
        return user

    return _make


def login(client, user):
    with client.session_transaction() as s:
        s["user_id"] = user.id


def login_admin(client):
    with client.session_transaction() as s:
        s["admin"] = True
