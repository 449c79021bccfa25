"""
Session token creation and verification.

Tokens are base64-encoded JSON payloads signed with HMAC-SHA256, keyed by
``JWT_SECRET``.  The same token travels as a Bearer header for API calls and
as the session cookie for browser redirects such as the OAuth callback.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import time
from base64 import b64decode, b64encode
from typing import Optional

from fastapi import HTTPException, status

from config.settings import get_settings

logger = logging.getLogger(__name__)


def _sign(raw: bytes) -> str:
    return hmac.new(get_settings().jwt_secret.encode(), raw, hashlib.sha256).hexdigest()


def create_token(user_id: str, *, now: Optional[float] = None) -> str:
    """Create a signed token containing ``user_id`` and expiry."""
    issued = time.time() if now is None else now
    payload = {
        "user_id": user_id,
        "exp": int(issued) + get_settings().jwt_expiry_seconds,
    }
    raw = json.dumps(payload).encode()
    return b64encode(raw).decode() + "." + _sign(raw)


def _decode(token: str) -> str:
    parts = token.split(".", 1)
    if len(parts) != 2:
        raise ValueError("bad format")
    raw = b64decode(parts[0])
    if not hmac.compare_digest(parts[1], _sign(raw)):
        raise ValueError("bad signature")
    payload = json.loads(raw)
    if payload.get("exp", 0) < time.time():
        raise ValueError("token expired")
    return payload["user_id"]


def decode_token(token: Optional[str]) -> Optional[str]:
    """Return the ``user_id`` of a valid token, or None."""
    if not token:
        return None
    try:
        return _decode(token)
    except (ValueError, TypeError, KeyError, AttributeError) as exc:
        logger.debug("Rejected session token: %s", exc)
        return None


def verify_token(token: str) -> str:
    """
    Verify token and return ``user_id``.

    Raises ``HTTPException(401)`` on invalid or expired tokens.
    """
    try:
        return _decode(token)
    except (ValueError, TypeError, KeyError, AttributeError) as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid or expired token: {exc}",
        )
