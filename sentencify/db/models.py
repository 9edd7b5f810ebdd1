"""SQLAlchemy models for persisted chat conversations."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, String, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


class ChatHistory(Base):
    """One row per conversation; ``messages`` holds the serialized entries."""

    __tablename__ = "chat_histories"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    conversation_id = Column(String(512), nullable=False, unique=True, index=True)
    messages = Column(JSON().with_variant(JSONB, "postgresql"), nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))
