import logging

from flask import Flask
from config import Config
from routes import health_bp, auth_bp

from models import db
from models.db import engine_options
from flask_migrate import Migrate
from security.lockout import LockoutTracker
from security.lockout_store import SqlLockoutStore


def create_app(config_object=None, clock=None):
    app = Flask(__name__)
    app.config.from_object(config_object or Config)

    logging.basicConfig(
        level=app.config.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    app.config.setdefault(
        "SQLALCHEMY_ENGINE_OPTIONS",
        engine_options(app.config["SQLALCHEMY_DATABASE_URI"], app.config.get("STORE_TIMEOUT_MS", 2000)),
    )

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(auth_bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    # Lockout tracker, backed by the app's database session
    store = SqlLockoutStore(db.session, history_limit=app.config.get("ATTEMPT_HISTORY_LIMIT", 10))
    tracker_kwargs = {"clock": clock} if clock else {}
    app.extensions["lockout"] = LockoutTracker.from_config(app.config, store, **tracker_kwargs)

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        return resp


    register_cli(app)


    return app

#-------------------------
import click
from models.user import User, USER_ROLES
from security.errors import LockoutError
from security.lockout import IdentifierType
from security.password import hash_password
from utils.audit import log_event

IDENTIFIER_TYPES = click.Choice([t.value for t in IdentifierType], case_sensitive=False)


def register_cli(app):
    tracker = app.extensions["lockout"]

    @app.cli.command("create-user")
    @click.argument("email")
    @click.option("--name", required=True)
    @click.option("--role", type=click.Choice(USER_ROLES), default="user", show_default=True)
    @click.password_option()
    def create_user(email, name, role, password):
        """Create a user that can sign in with email + password."""
        email = email.strip().lower()
        if User.query.filter_by(email=email).first():
            raise click.ClickException(f"{email} already exists")

        user = User(email=email, name=name, role=role, password_hash=hash_password(password))
        db.session.add(user)
        db.session.commit()
        click.echo(f"Created {role} {email}")

    @app.cli.command("lockout-status")
    @click.argument("identifier")
    @click.option("--type", "id_type", type=IDENTIFIER_TYPES, default="email", show_default=True)
    def lockout_status(identifier, id_type):
        """Show the lockout record for an email or IP."""
        try:
            record = tracker.status(identifier, id_type)
            state = tracker.state(identifier, id_type)
        except LockoutError as exc:
            raise click.ClickException(str(exc))

        click.echo(f"state: {state.value}")
        if record is None:
            return
        click.echo(f"failed_attempts: {record.failed_attempts}")
        click.echo(f"last_attempt: {record.last_attempt.isoformat()}")
        click.echo(f"locked_until: {record.locked_until.isoformat() if record.locked_until else '-'}")
        for ts in record.attempt_history:
            click.echo(f"  failed at {ts.isoformat()}")

    @app.cli.command("clear-lockout")
    @click.argument("identifier")
    @click.option("--type", "id_type", type=IDENTIFIER_TYPES, default="email", show_default=True)
    @click.option("--purge", is_flag=True, help="Delete the record and its history.")
    def clear_lockout(identifier, id_type, purge):
        """Lift a lockout and reset the failure counter (admin override)."""
        try:
            cleared = tracker.clear_lockout(identifier, id_type, purge=purge)
        except LockoutError as exc:
            raise click.ClickException(str(exc))

        if not cleared:
            click.echo("No lockout record found")
            return
        log_event("LOCKOUT_CLEARED", entity="login_attempt", entity_id=identifier,
                  metadata={"type": id_type, "purge": purge})
        click.echo(f"Cleared lockout for {id_type} {identifier}")

    @app.cli.command("purge-lockouts")
    def purge_lockouts():
        """Delete lockout records older than the retention window (run from cron)."""
        try:
            removed = tracker.purge_expired()
        except LockoutError as exc:
            raise click.ClickException(str(exc))
        if removed:
            log_event("LOCKOUTS_PURGED", entity="login_attempt", metadata={"removed": removed})
        click.echo(f"Removed {removed} expired lockout records")

#-------------------------




if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)
