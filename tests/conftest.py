from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from app import create_app
from config import TestingConfig
from models import db
from models.user import User
from security.password import hash_password


class FakeClock:
    """Naive-UTC clock the tests move by hand."""

    def __init__(self, start: datetime) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 1, 12, 0, 0))


@pytest.fixture
def app(clock):
    app = create_app(TestingConfig, clock=clock)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def tracker(app):
    return app.extensions["lockout"]


@pytest.fixture
def make_user(app):
    def _make(email="alice@example.com", password="correct-horse", name="Alice", role="user"):
        user = User(email=email, name=name, role=role, password_hash=hash_password(password))
        db.session.add(user)
        db.session.commit()
        return user

    return _make
