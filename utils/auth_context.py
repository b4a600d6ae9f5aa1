from dataclasses import dataclass
from functools import wraps
from flask import g, jsonify, request
from security.tokens import decode_token


@dataclass(frozen=True)
class AuthUser:
    id: int
    role: str


def load_current_user():
    g.user = None
    g.auth_error = None

    header = request.headers.get("Authorization", "")
    if not header.startswith("Bearer "):
        g.auth_error = "Missing token"
        return

    claims = decode_token(header[len("Bearer "):].strip())
    if not claims:
        g.auth_error = "Invalid token"
        return

    try:
        g.user = AuthUser(id=int(claims["sub"]), role=claims.get("role"))
    except (TypeError, ValueError):
        g.auth_error = "Invalid token"


def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if getattr(g, "user", None) is None:
            return jsonify(error=getattr(g, "auth_error", None) or "Authentication required"), 401
        return fn(*args, **kwargs)
    return wrapper
