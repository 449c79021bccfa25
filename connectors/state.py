"""
OAuth round-trip state.

The ``state`` query parameter carries what the callback needs to finish an
agent assignment (model, application, display metadata).  It is visible to
anyone who sees the redirect, so it never holds secrets, and it is signed,
bound to the user who started the flow and short-lived.  A state lifted
from someone else's redirect is rejected at the callback.

Wire form::

    base64url(json envelope) + "." + hex HMAC-SHA256(envelope)

where the envelope is the versioned ``AuthorizationState`` plus ``sub``
(initiating user id) and ``exp`` (unix expiry).
"""

from __future__ import annotations

import hashlib
import hmac
import json
import time
from base64 import urlsafe_b64decode, urlsafe_b64encode
from typing import Literal, NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field

from config.settings import get_settings
from connectors.errors import InvalidStateError

STATE_VERSION = 1


class AuthorizationState(BaseModel):
    """Continuation payload for the agent assignment after the redirect."""

    model_config = ConfigDict(extra="forbid", protected_namespaces=())

    v: Literal[1] = STATE_VERSION
    model_id: int
    app_id: int
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    instruction: Optional[str] = None


class SignedState(NamedTuple):
    state: AuthorizationState
    user_id: str


def _sign(raw: bytes, secret: str) -> str:
    return hmac.new(secret.encode(), raw, hashlib.sha256).hexdigest()


def build_state(
    state: AuthorizationState,
    user_id: str,
    *,
    secret: Optional[str] = None,
    ttl: Optional[int] = None,
    now: Optional[float] = None,
) -> str:
    """Serialise and sign ``state`` for the user starting the flow."""
    settings = get_settings()
    secret = secret or settings.oauth_state_secret
    ttl = ttl if ttl is not None else settings.oauth_state_ttl_seconds
    issued = time.time() if now is None else now

    payload = state.model_dump()
    payload["sub"] = str(user_id)
    payload["exp"] = int(issued) + ttl
    raw = json.dumps(payload, separators=(",", ":"), sort_keys=True).encode()
    return urlsafe_b64encode(raw).decode().rstrip("=") + "." + _sign(raw, secret)


def parse_state(
    token: str,
    *,
    secret: Optional[str] = None,
    now: Optional[float] = None,
) -> SignedState:
    """
    Verify and decode a state token.

    Raises ``InvalidStateError`` for a bad format, signature, expiry or
    payload shape (unknown or missing fields, wrong version).
    """
    secret = secret or get_settings().oauth_state_secret
    current = time.time() if now is None else now
    try:
        encoded, sig = token.split(".", 1)
        raw = urlsafe_b64decode(encoded + "=" * (-len(encoded) % 4))
        if not hmac.compare_digest(sig, _sign(raw, secret)):
            raise ValueError("bad signature")

        payload = json.loads(raw)
        if not isinstance(payload, dict):
            raise ValueError("state payload is not an object")
        exp = payload.pop("exp", None)
        sub = payload.pop("sub", None)
        if not isinstance(exp, int) or exp < current:
            raise ValueError("state expired")
        if not isinstance(sub, str) or not sub:
            raise ValueError("state has no subject")

        return SignedState(AuthorizationState.model_validate(payload), sub)
    except (ValueError, TypeError) as exc:
        # binascii, JSON, unicode and pydantic errors derive from ValueError;
        # compare_digest raises TypeError for non-ASCII signatures
        raise InvalidStateError(f"Invalid OAuth state: {exc}") from exc
