from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def engine_options(database_uri: str, timeout_ms: int) -> dict:
    """
    Engine options that bound every store call by timeout_ms.
    SQLite waits on its busy lock, PostgreSQL on connect and per statement.
    """
    timeout_seconds = max(timeout_ms, 1) / 1000.0
    options = {
        "pool_pre_ping": True,
    }

    if database_uri.startswith("sqlite"):
        options["connect_args"] = {
            "timeout": timeout_seconds,
            "check_same_thread": False,
        }
        return options

    options["pool_timeout"] = timeout_seconds
    if database_uri.startswith("postgresql"):
        options["connect_args"] = {
            "connect_timeout": max(int(timeout_seconds), 1),
            "options": f"-c statement_timeout={timeout_ms}",
        }
    return options
