"""
SQLAlchemy ORM models for users, provider applications, connections and
agent assignments.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import DeclarativeBase, relationship


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class User(Base):
    __tablename__ = "users"

    user_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String(255), unique=True, nullable=False)
    display_name = Column(String(128))
    password_hash = Column(String(255), nullable=False, default="")
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    connections = relationship("UserConnection", back_populates="user", cascade="all, delete-orphan")
    assigned_assistants = relationship("AssignedAssistant", back_populates="user", cascade="all, delete-orphan")


class Application(Base):
    """An external provider / application a connection can be made to."""

    __tablename__ = "applications"

    app_id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(128), nullable=False)
    description = Column(Text)
    logo = Column(Text)
    provider = Column(String(32))
    o_auth = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)


class UserConnection(Base):
    __tablename__ = "user_connections"

    connection_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False)
    app_id = Column(Integer, ForeignKey("applications.app_id"), nullable=False)
    connection_name = Column(String(128), nullable=False)
    # Canonical set-literal text, see connectors.codec
    connection_key = Column(Text, nullable=False)
    sheet_id = Column(String(256))
    sheet_name = Column(String(256))
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow)

    user = relationship("User", back_populates="connections")
    application = relationship("Application")

    __table_args__ = (
        Index("ix_user_connections_user_created", "user_id", "created_at"),
    )


class AssignedAssistant(Base):
    __tablename__ = "user_assigned_assistants"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False)
    app_id = Column(Integer, ForeignKey("applications.app_id"), nullable=False)
    assistant_id = Column(Integer, nullable=False)
    name = Column(String(128), nullable=False)
    description = Column(Text)
    instruction = Column(Text)
    user_connection_id = Column(
        UUID(as_uuid=True),
        ForeignKey("user_connections.connection_id", ondelete="SET NULL"),
        nullable=True,
    )
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    user = relationship("User", back_populates="assigned_assistants")
    connection = relationship("UserConnection")
