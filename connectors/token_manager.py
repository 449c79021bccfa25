"""
Token manager — persist a fresh token pair and refresh stored credentials.

The refresh path runs only when asked; expiry is not scheduled or tracked
here.  A refresh response that omits ``refresh_token`` keeps the one already
stored.
"""

from __future__ import annotations

import logging
import uuid
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from connectors.base import BaseConnector, TokenPair
from connectors.codec import KeyPair, encode, set_pair, to_mapping, validate_credential
from connectors.errors import RefreshError
from connectors.registry import GOOGLE_DRIVE, ConnectorRegistry
from connectors.store import create_connection, get_connection, rewrite_connection_key
from utils.schemas import ConnectionRecord

logger = logging.getLogger(__name__)

DEFAULT_CONNECTION_NAME = "Google Drive"


def token_pairs(token: TokenPair) -> List[KeyPair]:
    """Credential pairs for a new connection, in storage order."""
    pairs = [KeyPair("access_token", token.access_token)]
    if token.refresh_token:
        pairs.append(KeyPair("refresh_token", token.refresh_token))
    if token.expires_in:
        pairs.append(KeyPair("expires_in", str(token.expires_in)))
    return pairs


def apply_refresh(pairs: List[KeyPair], token: TokenPair) -> List[KeyPair]:
    """
    Merge a refresh response into stored pairs: ``access_token`` always,
    ``expires_in`` and ``refresh_token`` only when the provider returned them.
    Everything else (``sheet_tab`` and friends) is kept as is.
    """
    merged = set_pair(pairs, "access_token", token.access_token)
    if token.expires_in:
        merged = set_pair(merged, "expires_in", str(token.expires_in))
    if token.refresh_token:
        merged = set_pair(merged, "refresh_token", token.refresh_token)
    return merged


async def store_tokens(
    user_id: str | uuid.UUID,
    app_id: int,
    token: TokenPair,
    *,
    connection_name: str = DEFAULT_CONNECTION_NAME,
    db_session: Optional[AsyncSession] = None,
) -> ConnectionRecord:
    """Create the connection for a successful code exchange."""
    pairs = token_pairs(token)
    validate_credential(pairs)
    record = await create_connection(
        user_id, app_id, connection_name, encode(pairs), db_session=db_session,
    )
    logger.info(
        "Stored OAuth tokens as connection %s for user %s (refresh token: %s)",
        record.connection_id, user_id, "yes" if token.refresh_token else "no",
    )
    return record


async def refresh_connection(
    connection_id: str | uuid.UUID,
    *,
    refresh_token: Optional[str] = None,
    user_id: Optional[str | uuid.UUID] = None,
    connector: Optional[BaseConnector] = None,
    db_session: Optional[AsyncSession] = None,
) -> str:
    """
    Refresh a stored connection and return the new access token.

    The stored refresh token is preferred; ``refresh_token`` is used only
    when the connection has none.  With ``user_id`` the connection must be
    owned by that user (``ConnectionNotFound`` otherwise).

    Raises ``RefreshError`` when no refresh token is available or the
    provider rejects it, ``StoreError`` when the update cannot be saved.
    """
    record = await get_connection(connection_id, user_id=user_id, db_session=db_session)
    stored = record.key_mapping().get("refresh_token")
    token_to_use = stored or refresh_token
    if not token_to_use:
        raise RefreshError(f"Connection {connection_id} has no refresh token")

    connector = connector or ConnectorRegistry().get(GOOGLE_DRIVE)
    if connector is None:
        raise RefreshError("Google Drive connector is not configured")

    refreshed = await connector.refresh_access_token(token_to_use)

    def _merge(pairs: List[KeyPair]) -> List[KeyPair]:
        merged = apply_refresh(pairs, refreshed)
        # The refresh token we used may have come from the request
        if not to_mapping(merged).get("refresh_token"):
            merged.append(KeyPair("refresh_token", token_to_use))
        return merged

    await rewrite_connection_key(record.connection_id, _merge, db_session=db_session)
    logger.info(
        "Refreshed access token for connection %s (refresh token rotated: %s)",
        record.connection_id, "yes" if refreshed.refresh_token else "no",
    )
    return refreshed.access_token
