"""
Structured error handling with stable error codes.

Every failure the orchestrator or the chats API can surface is an AppError
carrying a stable code, so views and HTTP clients can branch on the code
instead of parsing messages. Subclasses declare their code, HTTP status and
default message as class attributes.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Stable error codes."""

    # Request and turn errors (1xxx)
    INTERNAL_ERROR = "E1000"
    VALIDATION_ERROR = "E1001"
    NOT_FOUND = "E1002"
    METHOD_NOT_ALLOWED = "E1003"
    RATE_LIMITED = "E1005"
    MAPPING_ERROR = "E1010"
    ATTACHMENT_UPLOAD_ERROR = "E1011"
    TURN_IN_PROGRESS = "E1012"

    # Identity (2xxx / 3xxx)
    UNAUTHORIZED = "E2000"
    FORBIDDEN = "E3000"

    # Providers (4xxx)
    PROVIDER_UNAVAILABLE = "E4000"
    PROVIDER_ERROR = "E4001"
    MODEL_NOT_FOUND = "E4002"
    STREAMING_ERROR = "E4003"
    PROVIDER_BAD_RESPONSE = "E4004"
    PROVIDER_AUTH_FAILED = "E4005"
    UNSUPPORTED_MODEL = "E4006"
    STREAM_TIMEOUT = "E4007"

    # Persistence (5xxx)
    PERSISTENCE_FAILED = "E5003"
    IDEMPOTENCY_CONFLICT = "E5004"


@dataclass(frozen=True)
class ErrorResponse:
    """Wire shape ``{error: {code, message, request_id?, details?}}``."""

    code: ErrorCode
    message: str
    request_id: str | None = None
    details: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        error: dict[str, Any] = {"code": self.code.value, "message": self.message}
        if self.request_id:
            error["request_id"] = self.request_id
        if self.details:
            error["details"] = self.details
        return {"error": error}


class AppError(Exception):
    """Base application error."""

    code: ErrorCode = ErrorCode.INTERNAL_ERROR
    status_code: int = 500
    message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: str | None = None,
        details: dict[str, Any] | None = None,
        *,
        status_code: int | None = None,
    ):
        if message:
            self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details
        super().__init__(self.message)

    def to_response(self, request_id: str | None = None) -> ErrorResponse:
        return ErrorResponse(
            code=self.code,
            message=self.message,
            request_id=request_id,
            details=self.details,
        )


class ValidationError(AppError):
    code = ErrorCode.VALIDATION_ERROR
    status_code = 400
    message = "Validation error"


class NotFoundError(AppError):
    code = ErrorCode.NOT_FOUND
    status_code = 404
    message = "Resource not found"


class UnauthorizedError(AppError):
    code = ErrorCode.UNAUTHORIZED
    status_code = 401
    message = "Authentication required"


class MappingError(AppError):
    """History cannot be turned into a provider request."""

    code = ErrorCode.MAPPING_ERROR
    status_code = 422
    message = "Conversation history is malformed"


class UnsupportedModelError(AppError):
    """Model identifier outside the supported set."""

    code = ErrorCode.UNSUPPORTED_MODEL
    status_code = 400

    def __init__(self, model: str):
        super().__init__(f"Unsupported model: {model}", {"model": model})
        self.model = model


class AttachmentUploadError(AppError):
    code = ErrorCode.ATTACHMENT_UPLOAD_ERROR
    status_code = 409
    message = "Attachment is not ready"


class TurnInProgressError(AppError):
    code = ErrorCode.TURN_IN_PROGRESS
    status_code = 409
    message = "A response is still being generated"


class PersistenceError(AppError):
    """Saving the finished turn failed. ``details`` holds the API's payload."""

    code = ErrorCode.PERSISTENCE_FAILED
    status_code = 502
    message = "Failed to save chat"


class IdempotencyConflictError(AppError):
    """An idempotency key already applied with a different body."""

    code = ErrorCode.IDEMPOTENCY_CONFLICT
    status_code = 409
    message = "Idempotency key was already used for a different turn"


class ProviderStreamError(AppError):
    """Base for failures talking to a model provider, before or mid-stream."""

    code = ErrorCode.STREAMING_ERROR
    status_code = 502
    message = "Provider stream failed"


class ProviderError(ProviderStreamError):
    code = ErrorCode.PROVIDER_ERROR
    message = "Provider error"


class ProviderUnavailableError(ProviderStreamError):
    code = ErrorCode.PROVIDER_UNAVAILABLE
    status_code = 503
    message = "Provider unavailable"


class ProviderBadResponseError(ProviderStreamError):
    code = ErrorCode.PROVIDER_BAD_RESPONSE
    message = "Provider returned invalid response"


class ProviderAuthError(ProviderStreamError):
    """Rejected credentials; ``status_code`` mirrors the provider's 401 or 403."""

    code = ErrorCode.PROVIDER_AUTH_FAILED
    status_code = 401
    message = "Provider authentication failed"


class RateLimitError(ProviderStreamError):
    code = ErrorCode.RATE_LIMITED
    status_code = 429
    message = "Rate limit exceeded"


class ModelNotFoundError(ProviderStreamError):
    code = ErrorCode.MODEL_NOT_FOUND
    status_code = 404
    message = "Model not found"


class StreamTimeoutError(ProviderStreamError):
    """No delta arrived within the inactivity timeout."""

    code = ErrorCode.STREAM_TIMEOUT
    status_code = 504

    def __init__(self, timeout_seconds: float | None):
        super().__init__("Provider stream timed out", {"timeout_seconds": timeout_seconds})


class AttachmentUnsupportedWarning(UserWarning):
    """The selected provider cannot take the pending attachment; it was not sent."""
