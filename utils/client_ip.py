from flask import request


def client_ip() -> str:
    # First hop of X-Forwarded-For is the original client
    forwarded = request.headers.get("X-Forwarded-For", "")
    first = forwarded.split(",")[0].strip()
    return first or request.remote_addr or ""
