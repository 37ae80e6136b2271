"""
streamchat chats API.

FastAPI application serving the persistence endpoints the turn orchestrator
commits to, with structured logging and error envelopes.

Run with ``uvicorn streamchat.main:create_app --factory``.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from streamchat.api import chats_router
from streamchat.config import Settings, get_settings
from streamchat.core import get_logger, metrics, setup_logging
from streamchat.core.middleware import RequestContextMiddleware, setup_exception_handlers
from streamchat.db import (
    create_db_engine,
    create_session_factory,
    init_db,
    verify_database_connection,
)

logger = get_logger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the application; ``settings`` defaults to the environment's."""
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        setup_logging(
            level=settings.log_level,
            json_output=not settings.debug,
            log_file=settings.log_file or None,
        )
        engine = create_db_engine(settings)
        init_db(engine)
        app.state.session_factory = create_session_factory(engine)
        if verify_database_connection(engine):
            logger.info("Database connection verified")
        logger.info(
            "Starting streamchat API",
            data={"environment": settings.environment, "debug": settings.debug},
        )

        yield

        engine.dispose()
        logger.info("Shutting down streamchat API")

    app = FastAPI(title="streamchat", lifespan=lifespan)
    app.state.settings = settings

    app.add_middleware(RequestContextMiddleware)
    setup_exception_handlers(app)
    app.include_router(chats_router)

    @app.get("/health", tags=["health"])
    def health() -> dict:
        return {"status": "ok", "metrics": metrics.snapshot()}

    return app
