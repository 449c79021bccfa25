"""
Connection store — the only code that reads or writes ``user_connections``.

Every record handed back to callers carries freshly decoded key pairs; the
raw ``connection_key`` text never leaves this module.  Key rewrites go
through a row-version guard so a refresh racing a manual edit cannot
silently drop either change.
"""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Callable, Dict, List, Mapping, Optional, Sequence

from sqlalchemy import delete as sa_delete
from sqlalchemy import select
from sqlalchemy import update as sa_update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from connectors.codec import KeyPair, check_encodable, decode, encode, replace_values, set_pair
from connectors.errors import ConnectionNotFound, StoreError, ValidationError
from database.models import Application, UserConnection
from database.session import async_session_factory
from utils.schemas import (
    ApplicationSummary,
    ConnectionKeyPair,
    ConnectionRecord,
    ConnectionUpdate,
)

logger = logging.getLogger(__name__)

_MAX_UPDATE_ATTEMPTS = 3

KeyTransform = Callable[[List[KeyPair]], Sequence[KeyPair]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_uuid(value: str | uuid.UUID, field: str = "connection_id") -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise ValidationError(f"Invalid {field}: {value!r}") from None


def _is_blank(value: object) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple)):
        return len(value) == 0
    return False


@asynccontextmanager
async def _session_scope(
    db_session: Optional[AsyncSession], action: str
) -> AsyncIterator[AsyncSession]:
    """
    Yield a session.  A session we opened ourselves is committed / rolled
    back here; a caller's session is only flushed and stays theirs.
    Database errors are logged and re-raised as an opaque ``StoreError``.
    """
    own_session = db_session is None
    session = db_session or async_session_factory()
    try:
        yield session
        if own_session:
            await session.commit()
        else:
            await session.flush()
    except SQLAlchemyError as exc:
        logger.error("Connection store failed to %s: %s", action, exc)
        if own_session:
            await session.rollback()
        raise StoreError(f"Could not {action}") from exc
    except Exception:
        if own_session:
            await session.rollback()
        raise
    finally:
        if own_session:
            await session.close()


def _record(conn: UserConnection, app: Optional[Application]) -> ConnectionRecord:
    return ConnectionRecord(
        connection_id=conn.connection_id,
        user_id=conn.user_id,
        app_id=conn.app_id,
        connection_name=conn.connection_name,
        connection_keys=[
            ConnectionKeyPair(key=pair.key, value=pair.value)
            for pair in decode(conn.connection_key)
        ],
        sheet_id=conn.sheet_id,
        sheet_name=conn.sheet_name,
        created_at=conn.created_at,
        updated_at=conn.updated_at,
        application=(
            ApplicationSummary(
                app_id=app.app_id,
                name=app.name,
                description=app.description,
                logo=app.logo,
                provider=app.provider,
            )
            if app is not None
            else None
        ),
    )


def _select_records():
    return (
        select(UserConnection, Application)
        .outerjoin(Application, UserConnection.app_id == Application.app_id)
        .execution_options(populate_existing=True)
    )


async def _load_record(
    session: AsyncSession,
    connection_id: uuid.UUID,
    user_id: Optional[uuid.UUID] = None,
) -> ConnectionRecord:
    stmt = _select_records().where(UserConnection.connection_id == connection_id)
    if user_id is not None:
        stmt = stmt.where(UserConnection.user_id == user_id)
    row = (await session.execute(stmt)).first()
    if row is None:
        raise ConnectionNotFound(connection_id)
    conn, app = row
    return _record(conn, app)


async def _versioned_write(
    session: AsyncSession,
    connection_id: uuid.UUID,
    values: Mapping[str, object],
    transform: Optional[KeyTransform] = None,
) -> None:
    """
    Apply ``values`` (and ``transform`` to the decoded key pairs) with an
    optimistic ``version`` check, re-reading and retrying on conflict.
    """
    for attempt in range(1, _MAX_UPDATE_ATTEMPTS + 1):
        current = (
            await session.execute(
                select(UserConnection.connection_key, UserConnection.version).where(
                    UserConnection.connection_id == connection_id
                )
            )
        ).one_or_none()
        if current is None:
            raise ConnectionNotFound(connection_id)

        changes: Dict[str, object] = dict(values)
        if transform is not None:
            pairs = list(transform(decode(current.connection_key)))
            if not pairs:
                raise ValidationError("Connection key cannot be empty")
            changes["connection_key"] = encode(pairs)
        changes["version"] = current.version + 1
        changes["updated_at"] = _utcnow()

        result = await session.execute(
            sa_update(UserConnection)
            .where(
                UserConnection.connection_id == connection_id,
                UserConnection.version == current.version,
            )
            .values(**changes)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            return
        logger.info(
            "Connection %s changed concurrently; retrying update (%d/%d)",
            connection_id, attempt, _MAX_UPDATE_ATTEMPTS,
        )

    raise StoreError("Connection is being modified elsewhere, please try again")


def merge_connection_key(
    current: List[KeyPair],
    key: Optional[object] = None,
    sheet_tab: Optional[str] = None,
) -> List[KeyPair]:
    """
    Resolve the pairs an update writes: an explicit ``key`` replaces the
    stored pairs first, then ``sheet_tab`` is merged into the result.
    """
    pairs = decode(key) if key is not None else list(current)
    if sheet_tab is not None:
        check_encodable("sheet_tab", sheet_tab)
        pairs = set_pair(pairs, "sheet_tab", sheet_tab)
    return pairs


# ── Public API ──────────────────────────────────────────────────────────────


async def list_connections(
    user_id: str | uuid.UUID,
    *,
    db_session: Optional[AsyncSession] = None,
) -> List[ConnectionRecord]:
    """All connections owned by ``user_id``, newest first."""
    uid = _to_uuid(user_id, "user_id")
    async with _session_scope(db_session, "load connections") as session:
        result = await session.execute(
            _select_records()
            .where(UserConnection.user_id == uid)
            .order_by(UserConnection.created_at.desc())
        )
        return [_record(conn, app) for conn, app in result.all()]


async def get_connection(
    connection_id: str | uuid.UUID,
    *,
    user_id: Optional[str | uuid.UUID] = None,
    db_session: Optional[AsyncSession] = None,
) -> ConnectionRecord:
    """
    Fetch one connection.  With ``user_id`` the lookup is owner-scoped, so a
    foreign connection is indistinguishable from a missing one.
    """
    cid = _to_uuid(connection_id)
    uid = _to_uuid(user_id, "user_id") if user_id is not None else None
    async with _session_scope(db_session, "load connection") as session:
        return await _load_record(session, cid, uid)


async def create_connection(
    user_id: str | uuid.UUID,
    app_id: int,
    connection_name: str,
    connection_key: object,
    *,
    db_session: Optional[AsyncSession] = None,
) -> ConnectionRecord:
    """
    Insert a connection.  ``connection_key`` may be in any readable form;
    it is stored re-encoded in the canonical set-literal form.
    """
    missing = [
        field
        for field, value in (
            ("user_id", user_id),
            ("app_id", app_id),
            ("connection_name", connection_name),
            ("connection_key", connection_key),
        )
        if _is_blank(value)
    ]
    if missing:
        raise ValidationError(f"Missing required field(s): {', '.join(missing)}")

    pairs = decode(connection_key)
    if not pairs:
        raise ValidationError("Connection key has no valid key=value pairs")

    now = _utcnow()
    conn = UserConnection(
        connection_id=uuid.uuid4(),
        user_id=_to_uuid(user_id, "user_id"),
        app_id=app_id,
        connection_name=connection_name.strip(),
        connection_key=encode(pairs),
        version=1,
        created_at=now,
        updated_at=now,
    )
    async with _session_scope(db_session, "save connection") as session:
        session.add(conn)
        await session.flush()
        app = await session.get(Application, app_id)

    logger.info(
        "Created connection %s (app %s) for user %s",
        conn.connection_id, app_id, conn.user_id,
    )
    return _record(conn, app)


async def update_connection(
    connection_id: str | uuid.UUID,
    changes: ConnectionUpdate,
    *,
    db_session: Optional[AsyncSession] = None,
) -> ConnectionRecord:
    """
    Partial update.  Supplied fields replace the stored ones; ``sheet_tab``
    is merged into the key pairs after any explicit key replacement.
    """
    if changes.is_empty():
        raise ValidationError("Nothing to update")

    cid = _to_uuid(connection_id)
    values: Dict[str, object] = {}
    if changes.name is not None:
        if not changes.name.strip():
            raise ValidationError("connection_name cannot be empty")
        values["connection_name"] = changes.name.strip()
    if changes.sheet_id is not None:
        values["sheet_id"] = changes.sheet_id
    if changes.sheet_name is not None:
        values["sheet_name"] = changes.sheet_name

    transform: Optional[KeyTransform] = None
    if changes.key is not None or changes.sheet_tab is not None:
        if changes.key is not None and not decode(changes.key):
            raise ValidationError("Connection key has no valid key=value pairs")
        sheet_tab = changes.sheet_tab.strip() if changes.sheet_tab is not None else None
        if sheet_tab is not None and not sheet_tab:
            raise ValidationError("sheet_tab cannot be empty")
        if sheet_tab is not None:
            check_encodable("sheet_tab", sheet_tab)

        def _merge(current: List[KeyPair]) -> List[KeyPair]:
            return merge_connection_key(current, changes.key, sheet_tab)

        transform = _merge

    async with _session_scope(db_session, "update connection") as session:
        await _versioned_write(session, cid, values, transform)
        record = await _load_record(session, cid)

    logger.info("Updated connection %s (%s)", cid, ", ".join(sorted(changes.model_dump(exclude_none=True))))
    return record


async def rewrite_connection_key(
    connection_id: str | uuid.UUID,
    transform: KeyTransform,
    *,
    db_session: Optional[AsyncSession] = None,
) -> ConnectionRecord:
    """Read-modify-write the decoded key pairs under the version guard."""
    cid = _to_uuid(connection_id)
    async with _session_scope(db_session, "update connection") as session:
        await _versioned_write(session, cid, {}, transform)
        return await _load_record(session, cid)


async def edit_connection_values(
    connection_id: str | uuid.UUID,
    values: Mapping[str, str],
    *,
    db_session: Optional[AsyncSession] = None,
) -> ConnectionRecord:
    """Change the values of existing keys; keys are never renamed or added."""
    if not values:
        raise ValidationError("Nothing to update")
    return await rewrite_connection_key(
        connection_id,
        lambda pairs: replace_values(pairs, values),
        db_session=db_session,
    )


async def delete_connection(
    connection_id: str | uuid.UUID,
    *,
    user_id: Optional[str | uuid.UUID] = None,
    db_session: Optional[AsyncSession] = None,
) -> bool:
    """Delete a connection.  Idempotent: returns False when nothing matched."""
    cid = _to_uuid(connection_id)
    stmt = sa_delete(UserConnection).where(UserConnection.connection_id == cid)
    if user_id is not None:
        stmt = stmt.where(UserConnection.user_id == _to_uuid(user_id, "user_id"))

    async with _session_scope(db_session, "delete connection") as session:
        result = await session.execute(stmt)
        deleted = result.rowcount > 0

    if deleted:
        logger.info("Deleted connection %s", cid)
    return deleted
