import time
from datetime import datetime

from flask import Blueprint, jsonify

from security.credentials import current_tracker
from security.errors import StoreUnavailable

health_bp = Blueprint("health", __name__)


@health_bp.get("/health")
def health():
    return jsonify(status="ok", timestamp=datetime.utcnow().isoformat() + "Z"), 200


@health_bp.get("/health/db")
def health_db():
    started = time.monotonic()
    try:
        current_tracker().store.ping()
        healthy = True
    except StoreUnavailable:
        healthy = False
    elapsed_ms = int((time.monotonic() - started) * 1000)

    return jsonify(
        status="healthy" if healthy else "unhealthy",
        timestamp=datetime.utcnow().isoformat() + "Z",
        database={"connected": healthy},
        performance={"response_time_ms": elapsed_ms},
    ), 200 if healthy else 503
