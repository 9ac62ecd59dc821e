"""
SQL persistence for login lockout records.

All state lives in the login_attempts / login_attempt_history tables.
Failure counting is a single INSERT ... ON CONFLICT DO UPDATE so concurrent
failures for the same identifier cannot lose an increment.
"""
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError

from models.login_attempt import LoginAttempt
from models.login_attempt_history import LoginAttemptHistory
from security.errors import StoreUnavailable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LockoutRecord:
    identifier: str
    type: str
    failed_attempts: int
    last_attempt: datetime
    locked_until: Optional[datetime] = None
    attempt_history: tuple = field(default_factory=tuple)

    def to_dict(self) -> dict:
        return {
            "identifier": self.identifier,
            "type": self.type,
            "failed_attempts": self.failed_attempts,
            "last_attempt": self.last_attempt.isoformat(),
            "locked_until": self.locked_until.isoformat() if self.locked_until else None,
            "attempt_history": [ts.isoformat() for ts in self.attempt_history],
        }


class SqlLockoutStore:
    """Lockout store on top of a SQLAlchemy session (db.session in the app)."""

    def __init__(self, session, history_limit: int = 10):
        self.session = session
        self.history_limit = history_limit

    @contextmanager
    def _store_call(self, operation: str):
        try:
            yield
        except SQLAlchemyError as exc:
            try:
                self.session.rollback()
            except SQLAlchemyError:
                logger.exception("Rollback after failed %s also failed", operation)
            logger.error("Lockout store %s failed: %s", operation, exc)
            raise StoreUnavailable(f"Lockout store {operation} failed", cause=exc) from exc

    def _insert(self):
        dialect = self.session.get_bind().dialect.name
        if dialect == "sqlite":
            return sqlite.insert
        if dialect == "postgresql":
            return postgresql.insert
        raise StoreUnavailable(f"Atomic upsert not supported on {dialect}")

    def _history(self, attempt_id: int) -> tuple:
        rows = self.session.execute(
            sa.select(LoginAttemptHistory.attempted_at)
            .where(LoginAttemptHistory.attempt_id == attempt_id)
            .order_by(LoginAttemptHistory.id)
        ).scalars().all()
        return tuple(rows)

    def get(self, identifier: str, type: str, with_history: bool = False) -> Optional[LockoutRecord]:
        with self._store_call("get"):
            row = self.session.execute(
                sa.select(LoginAttempt)
                .where(LoginAttempt.identifier == identifier, LoginAttempt.type == type)
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
            if row is None:
                return None
            history = self._history(row.id) if with_history else ()

        return LockoutRecord(
            identifier=row.identifier,
            type=row.type,
            failed_attempts=row.failed_attempts,
            last_attempt=row.last_attempt,
            locked_until=row.locked_until,
            attempt_history=history,
        )

    def increment_failure(
        self,
        identifier: str,
        type: str,
        *,
        now: datetime,
        max_attempts: int,
        lock_until: datetime,
        stale_before: datetime,
    ) -> LockoutRecord:
        """
        Count one failure and lock the record once the count reaches max_attempts.
        Rows last touched before stale_before start counting again from 1.
        """
        table = LoginAttempt.__table__
        current = table.c
        lock_value = sa.literal(lock_until, sa.DateTime)

        is_stale = current.last_attempt < stale_before
        new_count = sa.case((is_stale, 1), else_=current.failed_attempts + 1)
        new_lock = sa.case(
            (new_count >= max_attempts, lock_value),
            (is_stale, sa.null()),
            else_=current.locked_until,
        )

        with self._store_call("increment_failure"):
            insert = self._insert()
            stmt = (
                insert(table)
                .values(
                    identifier=identifier,
                    type=type,
                    failed_attempts=1,
                    last_attempt=now,
                    locked_until=lock_until if max_attempts <= 1 else None,
                    created_at=now,
                    updated_at=now,
                )
                .on_conflict_do_update(
                    index_elements=[current.identifier, current.type],
                    set_={
                        "failed_attempts": new_count,
                        "last_attempt": now,
                        "locked_until": new_lock,
                        "updated_at": now,
                    },
                )
                .returning(current.id, current.failed_attempts, current.last_attempt, current.locked_until)
            )
            row = self.session.execute(stmt).one()

            self.session.add(LoginAttemptHistory(attempt_id=row.id, attempted_at=now))
            self.session.flush()
            self._prune_history(row.id)
            history = self._history(row.id)

            self.session.commit()

        return LockoutRecord(
            identifier=identifier,
            type=type,
            failed_attempts=row.failed_attempts,
            last_attempt=row.last_attempt,
            locked_until=row.locked_until,
            attempt_history=history,
        )

    def _prune_history(self, attempt_id: int) -> None:
        if not self.history_limit or self.history_limit <= 0:
            return
        keep = (
            sa.select(LoginAttemptHistory.id)
            .where(LoginAttemptHistory.attempt_id == attempt_id)
            .order_by(LoginAttemptHistory.id.desc())
            .limit(self.history_limit)
        )
        self.session.execute(
            sa.delete(LoginAttemptHistory)
            .where(
                LoginAttemptHistory.attempt_id == attempt_id,
                LoginAttemptHistory.id.not_in(keep),
            )
        )

    def reset(self, identifier: str, type: str, now: Optional[datetime] = None) -> bool:
        """Zero the counter and lift the lock. Returns False when there is no record."""
        values = {"failed_attempts": 0, "locked_until": None}
        if now is not None:
            values["last_attempt"] = now
            values["updated_at"] = now

        with self._store_call("reset"):
            result = self.session.execute(
                sa.update(LoginAttempt)
                .where(LoginAttempt.identifier == identifier, LoginAttempt.type == type)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            self.session.commit()
        return result.rowcount > 0

    def delete(self, identifier: str, type: str) -> bool:
        ids = sa.select(LoginAttempt.id).where(
            LoginAttempt.identifier == identifier, LoginAttempt.type == type
        )
        return self._delete_where(ids, "delete") > 0

    def delete_older_than(self, cutoff: datetime) -> int:
        ids = sa.select(LoginAttempt.id).where(LoginAttempt.last_attempt < cutoff)
        return self._delete_where(ids, "delete_older_than")

    def _delete_where(self, ids, operation: str) -> int:
        with self._store_call(operation):
            self.session.execute(
                sa.delete(LoginAttemptHistory)
                .where(LoginAttemptHistory.attempt_id.in_(ids))
                .execution_options(synchronize_session=False)
            )
            result = self.session.execute(
                sa.delete(LoginAttempt)
                .where(LoginAttempt.id.in_(ids))
                .execution_options(synchronize_session=False)
            )
            self.session.commit()
        return result.rowcount

    def ping(self) -> None:
        with self._store_call("ping"):
            self.session.execute(sa.text("SELECT 1"))
