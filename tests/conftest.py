"""
Shared test setup.

Required settings are seeded before any application module is imported,
since several modules read configuration at import time.
"""

import os

os.environ.setdefault("GOOGLE_OAUTH_CLIENT_ID", "test-client-id")
os.environ.setdefault("GOOGLE_OAUTH_CLIENT_SECRET", "test-client-secret")
os.environ.setdefault("SITE_URL", "https://app.example.com")
os.environ.setdefault("ADMIN_EMAILS", "admin@example.com")
os.environ.setdefault("OAUTH_STATE_SECRET", "test-state-secret")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret")

import uuid
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from connectors.registry import ConnectorRegistry

USER_ID = "33d22033-1caa-474e-a9ad-c8e2a208bf4b"
OTHER_USER_ID = "9b1deb4d-3b7d-4bad-9bdd-2b0d7b3dcb6d"
CONNECTION_ID = uuid.UUID("6f1c2d3e-4a5b-4c6d-8e7f-901234567890")


class FakeResult:
    """Just enough of SQLAlchemy's ``Result`` for the store."""

    def __init__(self, rows=None, rowcount=1):
        self._rows = list(rows or [])
        self.rowcount = rowcount

    def one_or_none(self):
        return self._rows[0] if self._rows else None

    def first(self):
        return self._rows[0] if self._rows else None

    def all(self):
        return list(self._rows)

    def scalar_one_or_none(self):
        return self._rows[0] if self._rows else None


def key_row(connection_key, version=1):
    """Row returned by the store's ``(connection_key, version)`` select."""
    return SimpleNamespace(connection_key=connection_key, version=version)


def make_session(*results):
    """AsyncSession stand-in whose ``execute`` returns ``results`` in order."""
    session = MagicMock()
    session.execute = AsyncMock(side_effect=list(results))
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.get = AsyncMock(return_value=None)
    session.add = MagicMock()
    return session


@pytest.fixture(autouse=True)
def _fresh_registry():
    ConnectorRegistry.reset()
    yield
    ConnectorRegistry.reset()
