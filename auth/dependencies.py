"""
FastAPI dependencies for authentication.

Provides ``db_session``, ``get_current_user_id`` (Bearer required),
``get_optional_user_id`` (Bearer or session cookie, None when absent) and
``require_admin`` (admin allow-list).
"""

from __future__ import annotations

from typing import AsyncGenerator, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from auth.jwt import decode_token, verify_token
from config.settings import get_settings
from database.helpers import get_user_email
from database.session import get_db_session

_bearer_scheme = HTTPBearer()
_optional_bearer = HTTPBearer(auto_error=False)


async def db_session(
    session: AsyncSession = Depends(get_db_session),
) -> AsyncGenerator[AsyncSession, None]:
    """Yield a DB session for route handlers."""
    yield session


async def get_current_user_id(
    credentials: HTTPAuthorizationCredentials = Depends(_bearer_scheme),
) -> str:
    """
    Extract and verify the Bearer token, returning the authenticated
    ``user_id`` (UUID string).
    """
    return verify_token(credentials.credentials)


async def get_optional_user_id(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_optional_bearer),
) -> Optional[str]:
    """
    Resolve the signed-in user for browser redirects, where only the
    session cookie is available.  Returns None instead of raising.
    """
    if credentials is not None:
        user_id = decode_token(credentials.credentials)
        if user_id:
            return user_id
    return decode_token(request.cookies.get(get_settings().session_cookie_name))


async def require_admin(
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(db_session),
) -> str:
    """Allow only users whose email is on the ``ADMIN_EMAILS`` allow-list."""
    email = await get_user_email(session, user_id)
    if not email or email.lower() not in get_settings().admin_email_set:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return user_id
