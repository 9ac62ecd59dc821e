from datetime import datetime
from models.db import db

class LoginAttempt(db.Model):
    __tablename__ = "login_attempts"

    id = db.Column(db.Integer, primary_key=True)

    # Email and IP are tracked as separate rows, "type" keeps the namespaces apart
    identifier = db.Column(db.String(255), nullable=False, index=True)
    type = db.Column(db.String(10), nullable=False)

    failed_attempts = db.Column(db.Integer, default=0, nullable=False)
    last_attempt = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)
    locked_until = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    history = db.relationship(
        "LoginAttemptHistory",
        order_by="LoginAttemptHistory.id",
        lazy=True,
        back_populates="attempt",
    )

    __table_args__ = (
        db.UniqueConstraint("identifier", "type", name="uq_login_attempts_identifier_type"),
    )
