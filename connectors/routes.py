"""
Connector API routes.

``router`` (prefix /api/v1):
  • GET    /connectors/providers
  • POST   /oauth/authorize
  • GET    /connections              POST /connections
  • PATCH  /connections/{id}         PUT  /connections/{id}/keys
  • DELETE /connections/{id}
  • GET    /admin/users/{user_id}/connections

``oauth_router`` (no prefix, paths the browser and older clients hit):
  • GET  /auth/oauth/callback
  • POST /api/refresh-token
  • POST /api/update-sheet-tab
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.responses import Response

from auth.dependencies import (
    db_session,
    get_current_user_id,
    get_optional_user_id,
    require_admin,
)
from config.settings import get_settings
from connectors.base import BaseConnector
from connectors.callback import complete_authorization
from connectors.codec import parse_key_lines
from connectors.errors import (
    ConnectionNotFound,
    ConnectorError,
    RefreshError,
    StoreError,
    ValidationError,
)
from connectors.registry import GOOGLE_DRIVE, ConnectorRegistry
from connectors.state import AuthorizationState, build_state
from connectors.store import (
    create_connection,
    delete_connection,
    edit_connection_values,
    get_connection,
    list_connections,
    update_connection,
)
from connectors.token_manager import refresh_connection
from utils.schemas import (
    AuthorizeRequest,
    ConnectionRecord,
    ConnectionUpdate,
    CreateConnectionRequest,
    EditKeysRequest,
    RefreshTokenRequest,
    UpdateConnectionRequest,
    UpdateSheetTabRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["connectors"])
oauth_router = APIRouter(tags=["oauth"])


# ── Helpers ────────────────────────────────────────────────────────────


def get_oauth_connector() -> BaseConnector:
    """The Google Drive connector, or 503 when it is not configured."""
    connector = ConnectorRegistry().get(GOOGLE_DRIVE)
    if connector is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Google Drive connector is not configured",
        )
    return connector


def _http_error(exc: ConnectorError) -> HTTPException:
    if isinstance(exc, ConnectionNotFound):
        return HTTPException(status.HTTP_404_NOT_FOUND, "Connection not found")
    if isinstance(exc, ValidationError):
        return HTTPException(status.HTTP_400_BAD_REQUEST, str(exc))
    if isinstance(exc, StoreError):
        return HTTPException(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))
    return HTTPException(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")


def _connection_key(raw: Any) -> Any:
    """Accept user-typed newline-separated keys alongside the stored forms."""
    if isinstance(raw, str) and "\n" in raw.strip():
        return parse_key_lines(raw)
    return raw


# ── Providers & authorization ─────────────────────────────────────────


@router.get("/connectors/providers")
async def list_providers() -> List[Dict[str, str]]:
    """List configured OAuth providers."""
    return ConnectorRegistry().list_providers()


@router.post("/oauth/authorize")
async def authorize(
    req: AuthorizeRequest,
    user_id: str = Depends(get_current_user_id),
    connector: BaseConnector = Depends(get_oauth_connector),
) -> Dict[str, str]:
    """
    Build the Google consent URL for assigning ``modelId`` to the caller.
    The frontend navigates the browser to ``auth_url``.
    """
    state = build_state(
        AuthorizationState(
            model_id=req.model_id,
            app_id=req.app_id,
            name=req.name,
            description=req.description,
            instruction=req.instruction,
        ),
        user_id,
    )
    logger.info("OAuth authorization started: user=%s model=%s", user_id, req.model_id)
    return {"auth_url": connector.get_auth_url(state), "provider": connector.provider_name}


# ── Connections ────────────────────────────────────────────────────────


@router.get("/connections", response_model=List[ConnectionRecord])
async def get_connections(
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(db_session),
) -> List[ConnectionRecord]:
    """List the caller's connections, newest first."""
    try:
        return await list_connections(user_id, db_session=session)
    except ConnectorError as exc:
        raise _http_error(exc)


@router.post("/connections", response_model=ConnectionRecord, status_code=status.HTTP_201_CREATED)
async def add_connection(
    req: CreateConnectionRequest,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(db_session),
) -> ConnectionRecord:
    """Create a connection from manually entered keys."""
    try:
        record = await create_connection(
            user_id,
            req.app_id,
            req.connection_name,
            _connection_key(req.connection_key),
            db_session=session,
        )
        await session.commit()
    except ConnectorError as exc:
        raise _http_error(exc)
    return record


@router.patch("/connections/{connection_id}", response_model=ConnectionRecord)
async def patch_connection(
    connection_id: uuid.UUID,
    req: UpdateConnectionRequest,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(db_session),
) -> ConnectionRecord:
    """Partially update one of the caller's connections."""
    key = _connection_key(req.connection_key) if req.connection_key is not None else None
    changes = ConnectionUpdate(
        key=key,
        name=req.connection_name,
        sheet_id=req.sheet_id,
        sheet_name=req.sheet_name,
        sheet_tab=req.sheet_tab,
    )
    try:
        await get_connection(connection_id, user_id=user_id, db_session=session)
        record = await update_connection(connection_id, changes, db_session=session)
        await session.commit()
    except ConnectorError as exc:
        raise _http_error(exc)
    return record


@router.put("/connections/{connection_id}/keys", response_model=ConnectionRecord)
async def put_connection_keys(
    connection_id: uuid.UUID,
    req: EditKeysRequest,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(db_session),
) -> ConnectionRecord:
    """Edit the values of existing keys."""
    try:
        await get_connection(connection_id, user_id=user_id, db_session=session)
        record = await edit_connection_values(connection_id, req.values, db_session=session)
        await session.commit()
    except ConnectorError as exc:
        raise _http_error(exc)
    return record


@router.delete("/connections/{connection_id}")
async def remove_connection(
    connection_id: uuid.UUID,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(db_session),
) -> Dict[str, Any]:
    """Delete one of the caller's connections.  Deleting twice is not an error."""
    try:
        deleted = await delete_connection(connection_id, user_id=user_id, db_session=session)
        await session.commit()
    except ConnectorError as exc:
        raise _http_error(exc)
    return {"status": "deleted", "connection_id": str(connection_id), "deleted": deleted}


@router.get("/admin/users/{target_user_id}/connections", response_model=List[ConnectionRecord])
async def admin_user_connections(
    target_user_id: uuid.UUID,
    admin_id: str = Depends(require_admin),
    session: AsyncSession = Depends(db_session),
) -> List[ConnectionRecord]:
    """Admin view of another user's connections."""
    logger.info("Admin %s listed connections of user %s", admin_id, target_user_id)
    try:
        return await list_connections(target_user_id, db_session=session)
    except ConnectorError as exc:
        raise _http_error(exc)


# ── OAuth callback & token endpoints ──────────────────────────────────


@oauth_router.get(get_settings().oauth_callback_path)
async def oauth_callback(
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    user_id: Optional[str] = Depends(get_optional_user_id),
    session: AsyncSession = Depends(db_session),
    connector: BaseConnector = Depends(get_oauth_connector),
) -> Response:
    """Google redirects here after the consent screen."""
    return await complete_authorization(
        code=code,
        state=state,
        user_id=user_id,
        session=session,
        connector=connector,
    )


@oauth_router.post("/api/refresh-token")
async def refresh_token(
    req: RefreshTokenRequest,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(db_session),
    connector: BaseConnector = Depends(get_oauth_connector),
) -> Any:
    """Refresh a stored connection's access token and return the new one."""
    try:
        access_token = await refresh_connection(
            req.connection_id,
            refresh_token=req.refresh_token,
            user_id=user_id,
            connector=connector,
            db_session=session,
        )
        await session.commit()
    except ConnectionNotFound:
        return JSONResponse({"error": "Connection not found"}, status_code=404)
    except RefreshError as exc:
        logger.warning("Refresh failed for connection %s: %s", req.connection_id, exc)
        return JSONResponse(
            {"error": "Internal server error", "reconnect": True}, status_code=500,
        )
    except ConnectorError as exc:
        logger.error("Refresh could not be saved for connection %s: %s", req.connection_id, exc)
        return JSONResponse({"error": "Internal server error"}, status_code=500)

    return {"message": "Access token refreshed", "result": access_token}


@oauth_router.post("/api/update-sheet-tab")
async def update_sheet_tab(
    req: UpdateSheetTabRequest,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(db_session),
) -> Any:
    """Record which spreadsheet tab an agent should use for a connection."""
    if req.connection_id is None or not (req.sheet_tab or "").strip():
        return JSONResponse({"error": "Missing required fields"}, status_code=400)

    try:
        await get_connection(req.connection_id, user_id=user_id, db_session=session)
        await update_connection(
            req.connection_id, ConnectionUpdate(sheet_tab=req.sheet_tab), db_session=session,
        )
        await session.commit()
    except ConnectionNotFound:
        return JSONResponse({"error": "Connection not found"}, status_code=404)
    except ValidationError as exc:
        return JSONResponse({"error": str(exc)}, status_code=400)
    except ConnectorError as exc:
        logger.error("Error updating sheet tab for %s: %s", req.connection_id, exc)
        return JSONResponse({"error": "Failed to update sheet tab"}, status_code=500)

    return {"success": True}
