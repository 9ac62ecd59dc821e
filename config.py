import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))


def _int_list(value: str) -> tuple:
    return tuple(int(v) for v in value.split(",") if v.strip())


class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # SQLite database file stored next to the app as fittrack.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "fittrack.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Upper bound for a single store call before it fails with StoreUnavailable
    STORE_TIMEOUT_MS = int(os.getenv("STORE_TIMEOUT_MS", "2000"))

    # Brute-force protection
    MAX_LOGIN_ATTEMPTS = int(os.getenv("MAX_LOGIN_ATTEMPTS", "5"))
    LOCKOUT_MINUTES = int(os.getenv("LOCKOUT_MINUTES", "15"))

    # Lockout records untouched for this long are purged
    LOCKOUT_RETENTION_HOURS = int(os.getenv("LOCKOUT_RETENTION_HOURS", "24"))

    # Deny logins when the lockout store is down (fail closed)
    FAIL_OPEN_ON_STORE_ERROR = os.getenv("FAIL_OPEN_ON_STORE_ERROR", "false").lower() == "true"

    # Failed attempt timestamps kept per record (0 keeps everything)
    ATTEMPT_HISTORY_LIMIT = int(os.getenv("ATTEMPT_HISTORY_LIMIT", "10"))

    # Optional wait after the n-th failure, in seconds, e.g. "1,2,4,8,16"
    LOGIN_PROGRESSIVE_DELAYS = _int_list(os.getenv("LOGIN_PROGRESSIVE_DELAYS", ""))

    # bcrypt cost factor for new password hashes
    BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))

    # Logging
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

    # Basic app settings
    DEBUG = False


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    BCRYPT_ROUNDS = 4
    LOGIN_PROGRESSIVE_DELAYS = ()
    FAIL_OPEN_ON_STORE_ERROR = False
