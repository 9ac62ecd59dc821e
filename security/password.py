import bcrypt
from flask import current_app, has_app_context

DEFAULT_ROUNDS = 12


def _rounds() -> int:
    if has_app_context():
        return current_app.config.get("BCRYPT_ROUNDS", DEFAULT_ROUNDS)
    return DEFAULT_ROUNDS


def hash_password(plain_password: str, rounds: int = None) -> str:
    if not isinstance(plain_password, str) or not plain_password:
        raise ValueError("Password must be a non-empty string")

    salt = bcrypt.gensalt(rounds=rounds or _rounds())
    return bcrypt.hashpw(plain_password.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain_password: str, password_hash: str) -> bool:
    """False for empty input, accounts without a password and malformed hashes."""
    if not isinstance(plain_password, str) or not plain_password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


_dummy_hashes = {}


def dummy_verify(plain_password: str) -> bool:
    """
    Spends one bcrypt check on a throwaway hash at the configured cost and
    returns False. Used when there is no stored hash to compare against, so
    unknown accounts answer as slowly as known ones.
    """
    rounds = _rounds()
    if rounds not in _dummy_hashes:
        _dummy_hashes[rounds] = bcrypt.hashpw(b"not-a-real-password", bcrypt.gensalt(rounds=rounds))
    candidate = plain_password.encode("utf-8") if isinstance(plain_password, str) else b""
    bcrypt.checkpw(candidate, _dummy_hashes[rounds])
    return False
