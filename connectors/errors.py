"""
Error taxonomy for the connection subsystem.

Routes translate these into HTTP responses; nothing below the route layer
raises ``HTTPException``.
"""

from __future__ import annotations


class ConnectorError(Exception):
    """Base class for connection subsystem errors."""


class ValidationError(ConnectorError):
    """Caller-supplied input is missing or malformed."""


class ExchangeError(ConnectorError):
    """The authorization-code exchange did not produce a usable token."""


class RefreshError(ConnectorError):
    """The stored credential could not be refreshed; the user must reconnect."""


class StoreError(ConnectorError):
    """
    Persistence failure.  The message is safe to show to end users; the
    underlying database error is only logged.
    """


class ConnectionNotFound(StoreError):
    def __init__(self, connection_id: object) -> None:
        super().__init__(f"Connection {connection_id} not found")
        self.connection_id = connection_id


class InvalidStateError(ConnectorError):
    """The OAuth round-trip state is malformed, forged, expired or foreign."""
