"""Core module with logging, metrics, and the error taxonomy."""

from streamchat.core.errors import (
    AppError,
    AttachmentUnsupportedWarning,
    AttachmentUploadError,
    ErrorCode,
    ErrorResponse,
    IdempotencyConflictError,
    MappingError,
    ModelNotFoundError,
    NotFoundError,
    PersistenceError,
    ProviderAuthError,
    ProviderBadResponseError,
    ProviderError,
    ProviderStreamError,
    ProviderUnavailableError,
    RateLimitError,
    StreamTimeoutError,
    TurnInProgressError,
    UnauthorizedError,
    UnsupportedModelError,
    ValidationError,
)
from streamchat.core.logging import get_logger, request_id_ctx, setup_logging, turn_id_ctx
from streamchat.core.metrics import metrics

__all__ = [
    "AppError",
    "AttachmentUnsupportedWarning",
    "AttachmentUploadError",
    "ErrorCode",
    "ErrorResponse",
    "IdempotencyConflictError",
    "MappingError",
    "ModelNotFoundError",
    "NotFoundError",
    "PersistenceError",
    "ProviderAuthError",
    "ProviderBadResponseError",
    "ProviderError",
    "ProviderStreamError",
    "ProviderUnavailableError",
    "RateLimitError",
    "StreamTimeoutError",
    "TurnInProgressError",
    "UnauthorizedError",
    "UnsupportedModelError",
    "ValidationError",
    "get_logger",
    "metrics",
    "request_id_ctx",
    "setup_logging",
    "turn_id_ctx",
]
