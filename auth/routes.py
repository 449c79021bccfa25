"""
Auth API routes — register, login, logout.

This is the boundary to the application's own user accounts: just enough to
issue the session token the connection routes and the OAuth callback read.

Route prefix: /api/v1/auth
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from auth.dependencies import db_session
from auth.jwt import create_token
from auth.password import hash_password, verify_password
from config.settings import get_settings
from database.models import User

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])


# ── Request / response schemas ─────────────────────────────────────────


class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=2, max_length=64)
    email: str = Field(..., min_length=5, max_length=255)
    password: str = Field(..., min_length=8, max_length=128)


class LoginRequest(BaseModel):
    email: str
    password: str


class AuthResponse(BaseModel):
    user_id: str
    display_name: str
    email: str
    token: str


def _set_session_cookie(response: Response, token: str) -> None:
    settings = get_settings()
    response.set_cookie(
        settings.session_cookie_name,
        token,
        max_age=settings.jwt_expiry_seconds,
        path="/",
        secure=settings.site_url.startswith("https://"),
        samesite="lax",   # sent on the top-level redirect back from Google
        httponly=True,
    )


def _auth_payload(user: User, token: str) -> Dict[str, Any]:
    return {
        "user_id": str(user.user_id),
        "display_name": user.display_name,
        "email": user.email,
        "token": token,
    }


# ── Endpoints ──────────────────────────────────────────────────────────


@router.post("/register", response_model=AuthResponse)
async def register(
    req: RegisterRequest,
    response: Response,
    session: AsyncSession = Depends(db_session),
) -> Dict[str, Any]:
    """Register a new user and start a session."""
    email = req.email.strip().lower()
    result = await session.execute(
        select(User).where(User.email == email)
    )
    if result.scalar_one_or_none() is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Email already registered",
        )

    user = User(
        user_id=uuid.uuid4(),
        email=email,
        display_name=req.username,
        password_hash=hash_password(req.password),
    )
    session.add(user)
    await session.flush()

    token = create_token(str(user.user_id))
    _set_session_cookie(response, token)
    logger.info("Registered user %s (%s)", req.username, user.user_id)
    return _auth_payload(user, token)


@router.post("/login", response_model=AuthResponse)
async def login(
    req: LoginRequest,
    response: Response,
    session: AsyncSession = Depends(db_session),
) -> Dict[str, Any]:
    """Login with email + password."""
    result = await session.execute(
        select(User).where(User.email == req.email.strip().lower())
    )
    user = result.scalar_one_or_none()

    if user is None or not verify_password(req.password, user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )

    token = create_token(str(user.user_id))
    _set_session_cookie(response, token)
    logger.info("Login: %s (%s)", user.display_name, user.user_id)
    return _auth_payload(user, token)


@router.post("/logout")
async def logout(response: Response) -> Dict[str, str]:
    """Drop the session cookie."""
    response.delete_cookie(get_settings().session_cookie_name, path="/")
    return {"status": "logged_out"}
