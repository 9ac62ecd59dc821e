from flask import Blueprint, request, jsonify, current_app

from security.credentials import validate_credentials
from security.errors import InvalidIdentifier, StoreUnavailable
from utils.client_ip import client_ip


auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


@auth_bp.post("/validate-credentials")
def validate():
    data = request.get_json(silent=True) or {}
    email = data.get("email") or ""
    password = data.get("password") or ""

    if not isinstance(email, str) or not isinstance(password, str) or not email or not password:
        return jsonify(error="Email and password are required"), 400

    try:
        result = validate_credentials(email, password, client_ip())
    except InvalidIdentifier:
        return jsonify(error="Invalid email"), 400
    except StoreUnavailable:
        current_app.logger.error("Credential validation aborted: lockout store unavailable")
        return jsonify(error="Internal server error"), 500

    if result.locked:
        return jsonify(
            error="Too many failed attempts. Try again later.",
            retry_after_seconds=result.retry_after_seconds,
        ), 429

    if not result.ok:
        return jsonify(error="Invalid credentials"), 401

    return jsonify(result.user.to_public_dict()), 200
