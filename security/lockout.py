"""
Login lockout tracking.

Every (identifier, type) pair moves between three states:

    CLEAN    no record, or no failures and no lock
    WARNING  0 < failed_attempts, not currently locked
    LOCKED   locked_until is in the future

A lock that has expired leaves the counter where it was, so the record reads
as WARNING even with failed_attempts >= max_attempts. The next failure locks
it again; only a success or an administrative clear brings it back to CLEAN.

Lock expiry is evaluated lazily when a record is read or written, nothing
runs in the background. The tracker keeps no state of its own, everything
goes through the store it was given.
"""
import ipaddress
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Optional, Sequence

from security.errors import InvalidIdentifier, StoreUnavailable
from security.lockout_store import LockoutRecord

logger = logging.getLogger(__name__)


class IdentifierType(str, Enum):
    EMAIL = "email"
    IP = "ip"


class LockoutState(str, Enum):
    CLEAN = "CLEAN"
    WARNING = "WARNING"
    LOCKED = "LOCKED"


@dataclass(frozen=True)
class Decision:
    allowed: bool
    retry_after: Optional[timedelta] = None
    remaining_attempts: Optional[int] = None

    @property
    def retry_after_seconds(self) -> int:
        if self.retry_after is None:
            return 0
        return max(int(self.retry_after.total_seconds()), 1)


def state_of(record: Optional[LockoutRecord], now: datetime) -> LockoutState:
    if record is None:
        return LockoutState.CLEAN
    if record.locked_until and record.locked_until > now:
        return LockoutState.LOCKED
    if record.failed_attempts > 0:
        return LockoutState.WARNING
    return LockoutState.CLEAN


def normalize_identifier(identifier: str, type) -> tuple:
    """
    Returns (identifier, IdentifierType) in the form stored in the database.
    Raises InvalidIdentifier for anything that cannot be tracked.
    """
    try:
        id_type = IdentifierType(type.lower() if isinstance(type, str) else type)
    except ValueError:
        raise InvalidIdentifier(f"Unknown identifier type: {type!r}") from None

    if not isinstance(identifier, str) or not identifier.strip():
        raise InvalidIdentifier("Identifier must be a non-empty string")

    value = identifier.strip()
    if id_type is IdentifierType.EMAIL:
        value = value.lower()
        if "@" not in value or len(value) > 255:
            raise InvalidIdentifier("Invalid email identifier")
        return value, id_type

    try:
        return str(ipaddress.ip_address(value)), id_type
    except ValueError:
        raise InvalidIdentifier("Invalid IP identifier") from None


class LockoutTracker:
    def __init__(
        self,
        store,
        *,
        max_attempts: int = 5,
        lock_duration: timedelta = timedelta(minutes=15),
        retention: timedelta = timedelta(hours=24),
        fail_open_on_store_error: bool = False,
        progressive_delays: Sequence[int] = (),
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if lock_duration <= timedelta(0):
            raise ValueError("lock_duration must be positive")

        self.store = store
        self.max_attempts = max_attempts
        self.lock_duration = lock_duration
        self.retention = retention
        self.fail_open_on_store_error = fail_open_on_store_error
        self.progressive_delays = tuple(progressive_delays or ())
        self._clock = clock

    @classmethod
    def from_config(cls, config, store, clock: Callable[[], datetime] = datetime.utcnow):
        return cls(
            store,
            max_attempts=config.get("MAX_LOGIN_ATTEMPTS", 5),
            lock_duration=timedelta(minutes=config.get("LOCKOUT_MINUTES", 15)),
            retention=timedelta(hours=config.get("LOCKOUT_RETENTION_HOURS", 24)),
            fail_open_on_store_error=config.get("FAIL_OPEN_ON_STORE_ERROR", False),
            progressive_delays=config.get("LOGIN_PROGRESSIVE_DELAYS", ()),
            clock=clock,
        )

    def now(self) -> datetime:
        return self._clock()

    def _is_stale(self, record: LockoutRecord, now: datetime) -> bool:
        return record.last_attempt < now - self.retention

    def check_allowed(self, identifier: str, type) -> Decision:
        """Read-only. Store failures resolve to the configured fail-open/closed policy."""
        identifier, id_type = normalize_identifier(identifier, type)
        now = self.now()

        try:
            record = self.store.get(identifier, id_type.value)
        except StoreUnavailable:
            logger.error(
                "Lockout store unavailable during check for %s; failing %s",
                id_type.value,
                "open" if self.fail_open_on_store_error else "closed",
            )
            return Decision(allowed=self.fail_open_on_store_error)

        if record is None or self._is_stale(record, now):
            return Decision(allowed=True, remaining_attempts=self.max_attempts)

        if state_of(record, now) is LockoutState.LOCKED:
            return Decision(
                allowed=False,
                retry_after=record.locked_until - now,
                remaining_attempts=0,
            )

        remaining = max(0, self.max_attempts - record.failed_attempts)

        delays = self.progressive_delays
        if delays and 1 <= record.failed_attempts <= len(delays):
            next_allowed = record.last_attempt + timedelta(seconds=delays[record.failed_attempts - 1])
            if next_allowed > now:
                return Decision(
                    allowed=False,
                    retry_after=next_allowed - now,
                    remaining_attempts=remaining,
                )

        return Decision(allowed=True, remaining_attempts=remaining)

    def record_failure(self, identifier: str, type) -> LockoutRecord:
        identifier, id_type = normalize_identifier(identifier, type)
        now = self.now()

        record = self.store.increment_failure(
            identifier,
            id_type.value,
            now=now,
            max_attempts=self.max_attempts,
            lock_until=now + self.lock_duration,
            stale_before=now - self.retention,
        )
        if record.failed_attempts == self.max_attempts:
            logger.warning(
                "Locked %s identifier after %d failed attempts until %s",
                id_type.value,
                record.failed_attempts,
                record.locked_until.isoformat(),
            )
        return record

    def record_success(self, identifier: str, type) -> None:
        identifier, id_type = normalize_identifier(identifier, type)
        self.store.reset(identifier, id_type.value, now=self.now())

    def clear_lockout(self, identifier: str, type, purge: bool = False) -> bool:
        """
        Administrative override: lift any lock and zero the counter.
        With purge=True the record and its history are removed instead.
        Returns False when there was nothing to clear.
        """
        identifier, id_type = normalize_identifier(identifier, type)
        if purge:
            cleared = self.store.delete(identifier, id_type.value)
        else:
            cleared = self.store.reset(identifier, id_type.value)
        logger.info("Cleared lockout for %s identifier (purge=%s, found=%s)", id_type.value, purge, cleared)
        return cleared

    def status(self, identifier: str, type) -> Optional[LockoutRecord]:
        identifier, id_type = normalize_identifier(identifier, type)
        return self.store.get(identifier, id_type.value, with_history=True)

    def state(self, identifier: str, type) -> LockoutState:
        record = self.status(identifier, type)
        now = self.now()
        if record is not None and self._is_stale(record, now):
            return LockoutState.CLEAN
        return state_of(record, now)

    def purge_expired(self) -> int:
        """Delete records not touched within the retention window."""
        removed = self.store.delete_older_than(self.now() - self.retention)
        if removed:
            logger.info("Purged %d expired lockout records", removed)
        return removed
