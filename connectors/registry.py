"""
ConnectorRegistry — discovers and provides access to all connectors.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from connectors.base import BaseConnector
from connectors.google_drive import GoogleDriveConnector

logger = logging.getLogger(__name__)

GOOGLE_DRIVE = "google_drive"


def _default_connectors() -> List[BaseConnector]:
    return [GoogleDriveConnector()]


class ConnectorRegistry:
    """Singleton registry for all OAuth connectors."""

    _instance: Optional["ConnectorRegistry"] = None

    def __new__(cls) -> "ConnectorRegistry":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._connectors = {}
            cls._instance._discovered = False
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        cls._instance = None

    def register(self, connector: BaseConnector) -> None:
        self._connectors[connector.provider_name] = connector

    def discover(self) -> None:
        """Register all configured connectors."""
        if self._discovered:
            return
        for conn in _default_connectors():
            if conn.is_configured():
                self._connectors.setdefault(conn.provider_name, conn)
                logger.info(
                    "Connector registered: %s (%s)",
                    conn.display_name,
                    conn.provider_name,
                )
            else:
                logger.warning(
                    "Connector %s skipped — not configured (missing client_id/secret)",
                    conn.provider_name,
                )
        self._discovered = True

    def get(self, provider: str) -> Optional[BaseConnector]:
        """Get a connector by provider name."""
        self.discover()
        return self._connectors.get(provider)

    def list_providers(self) -> List[Dict[str, str]]:
        """Return info about all registered connectors."""
        self.discover()
        return [
            {
                "provider": c.provider_name,
                "display_name": c.display_name,
            }
            for c in self._connectors.values()
        ]
