"""Signed session tokens (HS256 JWT)."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt

from clientdesk.config import settings

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
SESSION_COOKIE = "clientdesk_session"

# Claims computed per request; never persisted into the token.
_TRANSIENT_CLAIMS = ("exp", "iat", "picture", "image")


def encode_session_token(claims: dict[str, Any], now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    payload = {k: v for k, v in claims.items() if k not in _TRANSIENT_CLAIMS}
    payload["iat"] = int(now.timestamp())
    payload["exp"] = int((now + timedelta(days=settings.session_days)).timestamp())
    return jwt.encode(payload, settings.secret_key, algorithm=ALGORITHM)


def decode_session_token(token: str) -> dict[str, Any] | None:
    """Return the token's claims, or None if it is invalid or expired."""
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        logger.debug("Session token expired")
    except jwt.InvalidTokenError as exc:
        logger.debug("Rejected session token: %s", exc)
    return None
