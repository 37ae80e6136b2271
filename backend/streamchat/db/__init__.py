"""Database models, engine, and session management."""

from streamchat.db.base import Base, TimestampMixin
from streamchat.db.engine import (
    create_db_engine,
    create_session_factory,
    init_db,
    verify_database_connection,
)
from streamchat.db.models import Chat, ChatCommit
from streamchat.db.session import get_db

__all__ = [
    "Base",
    "Chat",
    "ChatCommit",
    "TimestampMixin",
    "create_db_engine",
    "create_session_factory",
    "get_db",
    "init_db",
    "verify_database_connection",
]
