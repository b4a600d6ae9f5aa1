import hashlib
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from flask import current_app

logger = logging.getLogger(__name__)


def sign_token(user_id, role: str) -> str:
    """Signed session token carrying the account id (``sub``) and role."""
    now = datetime.now(timezone.utc)
    payload: Dict[str, Any] = {"sub": str(user_id), "role": role, "iat": now}

    expires_seconds = current_app.config.get("JWT_EXPIRES_SECONDS")
    if expires_seconds:
        payload["exp"] = now + timedelta(seconds=int(expires_seconds))

    return jwt.encode(
        payload,
        current_app.config["JWT_SECRET"],
        algorithm=current_app.config.get("JWT_ALGORITHM", "HS256"),
    )


def decode_token(token: str) -> Optional[Dict[str, Any]]:
    """Returns the claims, or None when the token is invalid or expired."""
    if not token:
        return None
    try:
        return jwt.decode(
            token,
            current_app.config["JWT_SECRET"],
            algorithms=[current_app.config.get("JWT_ALGORITHM", "HS256")],
            options={"require": ["sub", "iat"]},
        )
    except jwt.ExpiredSignatureError:
        logger.info("Token rejected: expired")
        return None
    except jwt.InvalidTokenError as exc:
        logger.info("Token rejected: %s", exc)
        return None


def new_raw_token() -> str:
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    # SHA-256 is fine for hashing random one-time tokens
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def generate_otp() -> str:
    return str(secrets.randbelow(900000) + 100000)
