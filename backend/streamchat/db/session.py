"""FastAPI dependency providing a database session."""

from collections.abc import Generator

from fastapi import Request
from sqlalchemy.orm import Session


def get_db(request: Request) -> Generator[Session, None, None]:
    """
    Yield a session from the application's session factory and close it
    after the request.
    """
    session = request.app.state.session_factory()
    try:
        yield session
    finally:
        session.close()
