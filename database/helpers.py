"""
Database helper functions for collaborators outside the connection store:
agent assignment and user lookups.
"""

from __future__ import annotations

import logging
import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import AssignedAssistant, User

logger = logging.getLogger(__name__)


def _to_uuid(value: str | uuid.UUID) -> uuid.UUID:
    return uuid.UUID(value) if isinstance(value, str) else value


async def assign_model_to_user(
    session: AsyncSession,
    *,
    user_id: str | uuid.UUID,
    app_id: int,
    name: str,
    model_id: int,
    description: Optional[str] = None,
    instruction: Optional[str] = None,
    connection_id: Optional[str | uuid.UUID] = None,
) -> int:
    """
    Bind catalog model ``model_id`` to the user, referencing the connection
    that authorizes it.  Flushes but does not commit; returns the new
    assignment id.
    """
    assignment = AssignedAssistant(
        user_id=_to_uuid(user_id),
        app_id=app_id,
        assistant_id=model_id,
        name=name,
        description=description,
        instruction=instruction,
        user_connection_id=_to_uuid(connection_id) if connection_id is not None else None,
    )
    session.add(assignment)
    await session.flush()
    logger.info(
        "Assigned model %s to user %s (connection %s)",
        model_id, user_id, connection_id,
    )
    return assignment.id


async def get_user_email(session: AsyncSession, user_id: str | uuid.UUID) -> Optional[str]:
    """Return the user's email, or None if the user does not exist."""
    result = await session.execute(
        select(User.email).where(User.user_id == _to_uuid(user_id))
    )
    return result.scalar_one_or_none()
