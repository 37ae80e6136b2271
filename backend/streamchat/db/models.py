"""
SQLAlchemy ORM models.

A conversation is stored document-style: its ordered history lives in a
JSON column and is only ever appended to.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import uuid4

from sqlalchemy import JSON, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from streamchat.db.base import Base, TimestampMixin, utcnow


def generate_uuid() -> str:
    """Generate a UUID string for primary keys."""
    return str(uuid4())


class Chat(Base, TimestampMixin):
    """A conversation owned by one user."""

    __tablename__ = "chats"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    title: Mapped[str] = mapped_column(String(64), nullable=False, default="New Chat")
    history: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    model: Mapped[str] = mapped_column(String(32), nullable=False)
    is_custom_chatbot: Mapped[bool] = mapped_column(nullable=False, default=False)

    commits: Mapped[list[ChatCommit]] = relationship(
        back_populates="chat", cascade="all, delete-orphan"
    )

    __table_args__ = (Index("ix_chats_user_id", "user_id"),)


class ChatCommit(Base):
    """Idempotency keys of turns already appended to a chat, with a hash of the appended body."""

    __tablename__ = "chat_commits"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    chat_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("chats.id", ondelete="CASCADE"), nullable=False
    )
    idempotency_key: Mapped[str] = mapped_column(String(128), nullable=False)
    body_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    chat: Mapped[Chat] = relationship(back_populates="commits")

    __table_args__ = (
        UniqueConstraint("chat_id", "idempotency_key", name="uq_chat_commits_key"),
    )
