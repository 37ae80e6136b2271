"""
Request context and error envelopes for the chats API.

Every response carries ``X-Request-ID``; every error is rendered as
``{error: {code, message, request_id?, details?}}``.
"""

import time
import uuid
from collections.abc import Callable

from fastapi import FastAPI, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from streamchat.core.errors import AppError, ErrorCode, ErrorResponse
from streamchat.core.logging import get_logger, request_id_ctx, turn_id_ctx

logger = get_logger(__name__)

_HTTP_STATUS_CODES = {
    401: ErrorCode.UNAUTHORIZED,
    403: ErrorCode.FORBIDDEN,
    404: ErrorCode.NOT_FOUND,
    405: ErrorCode.METHOD_NOT_ALLOWED,
    429: ErrorCode.RATE_LIMITED,
}


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Bind the request id, and the commit's idempotency key when present, to
    the logging context for the duration of the request.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request_token = request_id_ctx.set(request_id)
        turn_token = turn_id_ctx.set(request.headers.get("Idempotency-Key"))
        started = time.perf_counter()
        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            logger.info(
                f"{request.method} {request.url.path} -> {response.status_code}",
                data={"duration_ms": round((time.perf_counter() - started) * 1000, 2)},
            )
            return response
        finally:
            turn_id_ctx.reset(turn_token)
            request_id_ctx.reset(request_token)


def _render(status_code: int, code: ErrorCode, message: str, details: dict | None = None) -> JSONResponse:
    request_id = request_id_ctx.get()
    body = ErrorResponse(code=code, message=message, request_id=request_id, details=details)
    return JSONResponse(
        status_code=status_code,
        content=body.to_dict(),
        headers={"X-Request-ID": request_id} if request_id else None,
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register the error-envelope handlers on ``app``."""

    @app.exception_handler(AppError)
    async def app_error_handler(_request: Request, exc: AppError) -> JSONResponse:
        logger.warning(exc.message, data={"code": exc.code.value, "details": exc.details})
        return _render(exc.status_code, exc.code, exc.message, exc.details)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        _request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = jsonable_encoder(exc.errors())
        return _render(422, ErrorCode.VALIDATION_ERROR, "Validation error", {"errors": errors})

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        _request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        code = _HTTP_STATUS_CODES.get(exc.status_code, ErrorCode.INTERNAL_ERROR)
        return _render(exc.status_code, code, str(exc.detail or "HTTP error"))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "Unhandled exception",
            exc_info=exc,
            data={"method": request.method, "path": request.url.path},
        )
        return _render(500, ErrorCode.INTERNAL_ERROR, "An unexpected error occurred")
