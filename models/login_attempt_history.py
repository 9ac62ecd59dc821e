from datetime import datetime
from models.db import db


class LoginAttemptHistory(db.Model):
    __tablename__ = "login_attempt_history"

    id = db.Column(db.Integer, primary_key=True)
    attempt_id = db.Column(db.Integer, db.ForeignKey("login_attempts.id"), nullable=False, index=True)
    attempted_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    attempt = db.relationship("LoginAttempt", back_populates="history")
