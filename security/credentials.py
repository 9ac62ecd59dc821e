"""
Credential validation gated by the lockout tracker.

Both the email and the client IP are checked before the password is looked
at, so a locked identifier never reveals whether the account exists.
"""
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.user import User
from security.errors import InvalidIdentifier, StoreUnavailable
from security.lockout import IdentifierType, LockoutTracker, normalize_identifier
from security.password import dummy_verify, verify_password
from utils.audit import log_event

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CredentialResult:
    user: Optional[User] = None
    locked: bool = False
    retry_after: Optional[timedelta] = None

    @property
    def ok(self) -> bool:
        return self.user is not None

    @property
    def retry_after_seconds(self) -> int:
        if self.retry_after is None:
            return 0
        return max(int(self.retry_after.total_seconds()), 1)


def current_tracker() -> LockoutTracker:
    return current_app.extensions["lockout"]


def _identifiers(email: str, ip: Optional[str]) -> list:
    keys = [normalize_identifier(email, IdentifierType.EMAIL)]
    if ip:
        try:
            keys.append(normalize_identifier(ip, IdentifierType.IP))
        except InvalidIdentifier:
            logger.warning("Ignoring unparseable client address for lockout tracking")
    return keys


def validate_credentials(
    email: str,
    password: str,
    ip: Optional[str] = None,
    tracker: Optional[LockoutTracker] = None,
) -> CredentialResult:
    """
    Raises InvalidIdentifier for a malformed email and StoreUnavailable when
    an attempt could not be recorded.
    """
    tracker = tracker or current_tracker()
    keys = _identifiers(email, ip)
    email = keys[0][0]

    denied = [d for d in (tracker.check_allowed(i, t) for i, t in keys) if not d.allowed]
    if denied:
        retry_after = max((d.retry_after for d in denied if d.retry_after), default=None)
        _audit("LOGIN_LOCKED", entity="login_attempt", entity_id=email,
               metadata={"retry_after": retry_after.total_seconds() if retry_after else None})
        return CredentialResult(locked=True, retry_after=retry_after)

    try:
        user = User.query.filter_by(email=email).first()
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise StoreUnavailable("user lookup failed", cause=exc) from exc

    if user and user.password_hash:
        valid = verify_password(password, user.password_hash)
    else:
        valid = dummy_verify(password)

    if not valid:
        records = _record(tracker.record_failure, keys)
        locked_until = [r.locked_until for r in records if r.failed_attempts >= tracker.max_attempts]
        _audit(
            "LOGIN_FAIL",
            user_id=user.id if user else None,
            entity="login_attempt",
            entity_id=email,
            metadata={r.type: r.failed_attempts for r in records},
        )
        if locked_until:
            return CredentialResult(locked=True, retry_after=max(locked_until) - tracker.now())
        return CredentialResult()

    _record(tracker.record_success, keys)
    _audit("LOGIN_SUCCESS", user_id=user.id, entity="user", entity_id=user.id)
    return CredentialResult(user=user)


def _record(operation, keys) -> list:
    """Applies operation to every key, then raises the first store error, if any."""
    results, errors = [], []
    for identifier, id_type in keys:
        try:
            results.append(operation(identifier, id_type))
        except StoreUnavailable as exc:
            logger.error("Could not record login attempt for %s identifier", id_type.value, exc_info=True)
            errors.append(exc)
    if errors:
        raise errors[0]
    return results


def _audit(action: str, **kwargs) -> None:
    # The audit table lives in the lockout store's database.
    try:
        log_event(action, **kwargs)
    except SQLAlchemyError:
        db.session.rollback()
        logger.error("Could not write %s audit event", action, exc_info=True)
