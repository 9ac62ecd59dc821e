"""Tests for the SQL lockout store against a file-backed SQLite database."""
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest

from app import create_app
from config import TestingConfig
from models import db
from models.db import engine_options
from models.login_attempt import LoginAttempt
from models.login_attempt_history import LoginAttemptHistory
from security.lockout import IdentifierType


@pytest.fixture
def file_app(tmp_path):
    class FileConfig(TestingConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'lockout.db'}"
        STORE_TIMEOUT_MS = 15000

    app = create_app(FileConfig)
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.drop_all()
        db.engine.dispose()


@pytest.mark.parametrize("extra", [0, 3, 11])
def test_concurrent_failures_are_not_lost(file_app, extra):
    tracker = file_app.extensions["lockout"]
    total = tracker.max_attempts + extra

    def fail_once():
        with file_app.app_context():
            return tracker.record_failure("burst@example.com", IdentifierType.EMAIL)

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = [f.result() for f in [pool.submit(fail_once) for _ in range(total)]]

    # every worker saw a distinct count
    assert sorted(r.failed_attempts for r in results) == list(range(1, total + 1))

    with file_app.app_context():
        rows = LoginAttempt.query.filter_by(identifier="burst@example.com").all()
        assert len(rows) == 1
        assert rows[0].failed_attempts == total
        assert rows[0].locked_until is not None
        assert rows[0].locked_until > rows[0].last_attempt
        assert LoginAttemptHistory.query.count() == min(total, 10)

        decision = tracker.check_allowed("burst@example.com", IdentifierType.EMAIL)
        assert decision.allowed is False


def test_unlimited_history(app, clock):
    store = app.extensions["lockout"].store
    store.history_limit = 0
    for _ in range(15):
        app.extensions["lockout"].record_failure("1.2.3.4", IdentifierType.IP)

    record = store.get("1.2.3.4", "ip", with_history=True)
    assert len(record.attempt_history) == 15
    assert store.get("1.2.3.4", "ip").attempt_history == ()


def test_reset_reports_missing_record(app):
    store = app.extensions["lockout"].store
    assert store.reset("ghost@example.com", "email") is False


def test_record_to_dict(tracker, clock):
    record = tracker.record_failure("1.2.3.4", IdentifierType.IP)
    data = record.to_dict()
    assert data["identifier"] == "1.2.3.4"
    assert data["type"] == "ip"
    assert data["failed_attempts"] == 1
    assert data["locked_until"] is None
    assert data["attempt_history"] == [clock().isoformat()]


def test_engine_options_for_sqlite():
    options = engine_options("sqlite:///tmp.db", 2000)
    assert options["connect_args"]["timeout"] == 2.0
    assert options["connect_args"]["check_same_thread"] is False
    assert "pool_timeout" not in options


def test_engine_options_for_postgres():
    options = engine_options("postgresql://u:p@db/fit", 2500)
    assert options["pool_timeout"] == 2.5
    assert options["connect_args"]["options"] == "-c statement_timeout=2500"
    assert options["connect_args"]["connect_timeout"] == 2
