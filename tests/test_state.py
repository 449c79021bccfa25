"""
Tests for the signed OAuth round-trip state.
"""

import json
import time
from base64 import urlsafe_b64encode

import pytest

from connectors.errors import InvalidStateError
from connectors.state import AuthorizationState, _sign, build_state, parse_state

from tests.conftest import OTHER_USER_ID, USER_ID

SECRET = "test-state-secret"


def _state() -> AuthorizationState:
    return AuthorizationState(
        model_id=7,
        app_id=3,
        name="Sheets analyst",
        description="Reads the sales sheet",
        instruction="Be concise",
    )


def _forge(payload: dict, secret: str = SECRET) -> str:
    raw = json.dumps(payload).encode()
    return urlsafe_b64encode(raw).decode().rstrip("=") + "." + _sign(raw, secret)


class TestStateRoundTrip:
    def test_parse_returns_state_and_user(self):
        token = build_state(_state(), USER_ID)
        signed = parse_state(token)
        assert signed.user_id == USER_ID
        assert signed.state == _state()
        assert signed.state.v == 1

    def test_token_is_url_safe(self):
        token = build_state(_state(), USER_ID)
        assert "+" not in token and "/" not in token and "=" not in token

    def test_optional_fields_may_be_absent(self):
        minimal = AuthorizationState(model_id=1, app_id=2, name="Agent")
        assert parse_state(build_state(minimal, USER_ID)).state.description is None


class TestStateRejection:
    def test_tampered_payload(self):
        _, sig = build_state(_state(), USER_ID).split(".", 1)
        forged = _forge({"v": 1, "model_id": 99, "app_id": 3, "name": "x",
                         "sub": USER_ID, "exp": int(time.time()) + 60}, secret="other")
        with pytest.raises(InvalidStateError):
            parse_state(forged.split(".")[0] + "." + sig)

    def test_wrong_secret(self):
        token = build_state(_state(), USER_ID, secret="another-secret")
        with pytest.raises(InvalidStateError, match="signature"):
            parse_state(token)

    def test_expired(self):
        token = build_state(_state(), USER_ID, ttl=60, now=time.time() - 120)
        with pytest.raises(InvalidStateError, match="expired"):
            parse_state(token)

    def test_unknown_field_rejected(self):
        token = _forge({"v": 1, "model_id": 7, "app_id": 3, "name": "x", "is_admin": True,
                        "sub": USER_ID, "exp": int(time.time()) + 60})
        with pytest.raises(InvalidStateError):
            parse_state(token)

    def test_missing_required_field_rejected(self):
        token = _forge({"v": 1, "app_id": 3, "name": "x",
                        "sub": USER_ID, "exp": int(time.time()) + 60})
        with pytest.raises(InvalidStateError):
            parse_state(token)

    def test_unknown_version_rejected(self):
        token = _forge({"v": 2, "model_id": 7, "app_id": 3, "name": "x",
                        "sub": OTHER_USER_ID, "exp": int(time.time()) + 60})
        with pytest.raises(InvalidStateError):
            parse_state(token)

    @pytest.mark.parametrize(
        "token",
        [
            '{"modelId":"7","modelData":{"appId":3}}',
            "not-a-state",
            "abc.def",
            "abc.é",
            "",
        ],
    )
    def test_garbage(self, token):
        with pytest.raises(InvalidStateError):
            parse_state(token)
