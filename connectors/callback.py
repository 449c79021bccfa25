"""
OAuth callback orchestration.

One request walks these steps, stopping at the first failure::

    code present → state valid → user signed in → code exchanged
        → connection stored + agent assigned → redirect

Failures before the exchange end the flow (a 400 or the auth error page).
Once Google has issued tokens the user is always sent back to the normal
destination.  A bookkeeping failure only flips ``oauth_success`` to false and
attaches a message, because making the user redo the consent screen is worse
than reporting a scoped error.
"""

from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import urlencode

from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.responses import Response

from config.settings import Settings, get_settings
from connectors.base import BaseConnector
from connectors.errors import ConnectorError, ExchangeError, InvalidStateError
from connectors.state import SignedState, parse_state
from connectors.token_manager import store_tokens
from database.helpers import assign_model_to_user

logger = logging.getLogger(__name__)

_ASSIGNMENT_FAILED = "Could not finish connecting the agent, please try again"


def _error_page(settings: Settings) -> RedirectResponse:
    return RedirectResponse(f"{settings.site_url}{settings.oauth_error_path}")


def _bad_request(message: str) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=400)


def destination_url(
    settings: Settings,
    *,
    model_id: Optional[int],
    success: bool,
    error: Optional[str] = None,
) -> str:
    """The in-app page the callback returns the user to."""
    params = {}
    if model_id is not None:
        params["model"] = str(model_id)
    params["oauth_success"] = "true" if success else "false"
    if not success and error:
        params["oauth_error"] = error
    return f"{settings.site_url}{settings.oauth_success_path}?{urlencode(params)}"


async def complete_authorization(
    *,
    code: Optional[str],
    state: Optional[str],
    user_id: Optional[str],
    session: AsyncSession,
    connector: BaseConnector,
    settings: Optional[Settings] = None,
) -> Response:
    settings = settings or get_settings()

    if not code:
        logger.warning("OAuth callback without a code")
        return _bad_request("No code provided")

    # Absent state is a plain re-authorization with nothing to assign
    signed: Optional[SignedState] = None
    if state:
        try:
            signed = parse_state(state)
        except InvalidStateError as exc:
            logger.warning("OAuth callback rejected: %s", exc)
            return _bad_request("Invalid state parameter")

    if not user_id:
        logger.warning("OAuth callback without a signed-in user")
        return _error_page(settings)

    if signed is not None and signed.user_id != str(user_id):
        logger.warning(
            "OAuth state issued to user %s presented by user %s", signed.user_id, user_id,
        )
        return _bad_request("Invalid state parameter")

    try:
        token = await connector.exchange_code(code, settings.oauth_redirect_uri)
    except ExchangeError as exc:
        logger.error("OAuth code exchange failed for user %s: %s", user_id, exc)
        return _error_page(settings)

    if signed is None:
        logger.info("OAuth re-authorization completed for user %s", user_id)
        return RedirectResponse(destination_url(settings, model_id=None, success=True))

    target = signed.state
    try:
        # The assignment references the connection, so it is stored first
        record = await store_tokens(
            user_id,
            target.app_id,
            token,
            connection_name=connector.display_name,
            db_session=session,
        )
        await assign_model_to_user(
            session,
            user_id=user_id,
            app_id=target.app_id,
            name=target.name,
            model_id=target.model_id,
            description=target.description,
            instruction=target.instruction,
            connection_id=record.connection_id,
        )
        await session.commit()
    except (ConnectorError, SQLAlchemyError) as exc:
        await session.rollback()
        logger.error(
            "OAuth bookkeeping failed for user %s, model %s: %s",
            user_id, target.model_id, exc,
        )
        message = str(exc) if isinstance(exc, ConnectorError) else _ASSIGNMENT_FAILED
        return RedirectResponse(
            destination_url(settings, model_id=target.model_id, success=False, error=message)
        )

    logger.info(
        "OAuth connected: user=%s model=%s connection=%s",
        user_id, target.model_id, record.connection_id,
    )
    return RedirectResponse(destination_url(settings, model_id=target.model_id, success=True))
