"""
BaseConnector — abstract interface for OAuth2 authorization-code providers.

A connector owns every call to its provider's OAuth endpoints: building the
consent URL, trading the one-time code for tokens, and refreshing.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional

from pydantic import BaseModel, Field


class TokenPair(BaseModel):
    """Provider token response.  ``refresh_token`` is often omitted on refresh."""

    access_token: str = Field(..., min_length=1)
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    token_type: str = "Bearer"
    scope: Optional[str] = None


class BaseConnector(ABC):
    """Abstract base for all OAuth2 connectors."""

    # ── Identity ────────────────────────────────────────────────────────
    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Unique slug, e.g. 'google_drive'."""
        ...

    @property
    @abstractmethod
    def display_name(self) -> str:
        """Human-readable name, also used as the default connection name."""
        ...

    @property
    @abstractmethod
    def scopes(self) -> List[str]:
        """OAuth scopes requested on every authorization."""
        ...

    # ── OAuth flow ──────────────────────────────────────────────────────

    @abstractmethod
    def get_auth_url(self, state: str) -> str:
        """
        Build the provider's OAuth2 authorization URL.

        Parameters
        ----------
        state : str
            Opaque round-trip state, echoed back verbatim to the callback.

        Returns
        -------
        The full URL to redirect the user to.
        """
        ...

    @abstractmethod
    async def exchange_code(self, code: str, redirect_uri: Optional[str] = None) -> TokenPair:
        """
        Exchange the authorization code for tokens.

        Raises ``ExchangeError`` on network failure, a non-2xx response or a
        malformed body.
        """
        ...

    @abstractmethod
    async def refresh_access_token(self, refresh_token: str) -> TokenPair:
        """
        Trade a refresh token for a new access token.

        Raises ``RefreshError`` on any failure.
        """
        ...

    # ── Helpers ─────────────────────────────────────────────────────────

    def is_configured(self) -> bool:
        """
        Return True if this connector has all required config
        (client id and secret).
        """
        return True
