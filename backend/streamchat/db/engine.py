"""
Database engine for the chats store.

SQLite (the default, a file under ``backend/data``) and PostgreSQL are
supported. Tables are created on startup; the schema is two tables.
"""

from pathlib import Path
from typing import Any

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker

from streamchat.config import Settings
from streamchat.core import get_logger
from streamchat.db.base import Base

logger = get_logger(__name__)


def _engine_options(settings: Settings) -> dict[str, Any]:
    options: dict[str, Any] = {"echo": settings.debug, "pool_pre_ping": True}
    if settings.is_sqlite:
        # Sessions are used from FastAPI's threadpool.
        options["connect_args"] = {"check_same_thread": False}
    else:
        options.update(pool_size=5, max_overflow=10)
    return options


def _ensure_sqlite_directory(database_url: str) -> None:
    database = make_url(database_url).database
    if not database or database == ":memory:":
        return
    directory = Path(database).parent
    if not directory.exists():
        directory.mkdir(parents=True, exist_ok=True)
        logger.info("Created database directory", data={"path": str(directory)})


def _enable_sqlite_foreign_keys(dbapi_connection: Any, _record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_engine(settings: Settings) -> Engine:
    if settings.is_sqlite:
        _ensure_sqlite_directory(settings.database_url)

    engine = create_engine(settings.database_url, **_engine_options(settings))
    if settings.is_sqlite:
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)

    logger.info("Database engine created", data={"dialect": engine.dialect.name})
    return engine


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    """Create missing tables."""
    Base.metadata.create_all(engine)


def verify_database_connection(engine: Engine) -> bool:
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
    except Exception as exc:
        logger.error("Database connection failed", data={"error": str(exc)})
        return False
    return True
