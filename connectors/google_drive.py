"""
GoogleDriveConnector — OAuth2 web flow for Google Drive and Sheets.

Every authorization forces ``access_type=offline`` and ``prompt=consent`` so
Google returns a refresh token even for users who consented before.
Calls are single-attempt: a failure surfaces immediately and the user
re-initiates.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import httpx
from pydantic import ValidationError as SchemaError

from config.settings import Settings, get_settings
from connectors.base import BaseConnector, TokenPair
from connectors.errors import ExchangeError, RefreshError

logger = logging.getLogger(__name__)

# Google OAuth2 endpoints
_GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
_GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"

_SCOPES = [
    "https://www.googleapis.com/auth/drive.file",
    "https://www.googleapis.com/auth/drive.appdata",
    "https://www.googleapis.com/auth/userinfo.profile",
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/drive.readonly",
    "https://www.googleapis.com/auth/drive.metadata.readonly",
    "https://www.googleapis.com/auth/drive",
    "https://www.googleapis.com/auth/spreadsheets",
]


class GoogleDriveConnector(BaseConnector):
    """OAuth2 connector for Google Drive / Sheets."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._settings = settings
        self._transport = transport

    @property
    def settings(self) -> Settings:
        return self._settings or get_settings()

    @property
    def provider_name(self) -> str:
        return "google_drive"

    @property
    def display_name(self) -> str:
        return "Google Drive"

    @property
    def scopes(self) -> List[str]:
        return list(_SCOPES)

    def is_configured(self) -> bool:
        return bool(
            self.settings.google_oauth_client_id and self.settings.google_oauth_client_secret
        )

    def _redirect_uri(self) -> str:
        return self.settings.oauth_redirect_uri

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.settings.oauth_http_timeout,
            transport=self._transport,
        )

    def get_auth_url(self, state: str) -> str:
        params = {
            "client_id": self.settings.google_oauth_client_id,
            "redirect_uri": self._redirect_uri(),
            "response_type": "code",
            "scope": " ".join(self.scopes),
            "access_type": "offline",       # gets refresh_token
            "prompt": "consent",            # force consent to always get refresh_token
            "state": state,
        }
        return f"{_GOOGLE_AUTH_URL}?{urlencode(params)}"

    async def _post_token(self, data: Dict[str, str]) -> Dict[str, Any]:
        """POST to the token endpoint; raises ``httpx.HTTPError`` / ``ValueError``."""
        async with self._client() as client:
            resp = await client.post(_GOOGLE_TOKEN_URL, data=data)
            resp.raise_for_status()
            body = resp.json()
        if not isinstance(body, dict):
            raise ValueError("token response is not a JSON object")
        return body

    async def exchange_code(self, code: str, redirect_uri: Optional[str] = None) -> TokenPair:
        """Exchange auth code for tokens."""
        try:
            data = await self._post_token(
                {
                    "code": code,
                    "client_id": self.settings.google_oauth_client_id,
                    "client_secret": self.settings.google_oauth_client_secret,
                    "redirect_uri": redirect_uri or self._redirect_uri(),
                    "grant_type": "authorization_code",
                }
            )
            return TokenPair.model_validate(data)
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "Google code exchange rejected (%s): %s",
                exc.response.status_code, exc.response.text[:200],
            )
            raise ExchangeError("Authorization code exchange was rejected") from exc
        except httpx.HTTPError as exc:
            logger.warning("Google code exchange failed: %s", exc)
            raise ExchangeError("Could not reach the authorization server") from exc
        except (ValueError, SchemaError) as exc:
            logger.warning("Google code exchange returned a malformed body: %s", exc)
            raise ExchangeError("Malformed token response") from exc

    async def refresh_access_token(self, refresh_token: str) -> TokenPair:
        """Use refresh token to get a new access token."""
        if not refresh_token:
            raise RefreshError("No refresh token available")
        try:
            data = await self._post_token(
                {
                    "client_id": self.settings.google_oauth_client_id,
                    "client_secret": self.settings.google_oauth_client_secret,
                    "refresh_token": refresh_token,
                    "grant_type": "refresh_token",
                }
            )
            return TokenPair.model_validate(data)
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "Google token refresh rejected (%s): %s",
                exc.response.status_code, exc.response.text[:200],
            )
            raise RefreshError("Refresh token was rejected") from exc
        except httpx.HTTPError as exc:
            logger.warning("Google token refresh failed: %s", exc)
            raise RefreshError("Could not reach the authorization server") from exc
        except (ValueError, SchemaError) as exc:
            logger.warning("Google token refresh returned a malformed body: %s", exc)
            raise RefreshError("Malformed token response") from exc
