"""
Structured logging for streamchat.

Records carry an optional ``data`` payload and are stamped with the current
request id (chats API) or turn id (orchestrator), so a whole turn, from
provider stream to commit, can be followed in the logs.
"""

import json
import logging
import sys
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)
turn_id_ctx: ContextVar[str | None] = ContextVar("turn_id", default=None)

NOISY_LOGGERS = ("uvicorn.access", "httpx", "httpcore")


def current_scope() -> dict[str, str]:
    """Identifiers of the request and turn the current task is serving."""
    scope: dict[str, str] = {}
    request_id = request_id_ctx.get()
    if request_id:
        scope["request_id"] = request_id
    turn_id = turn_id_ctx.get()
    if turn_id:
        scope["turn_id"] = turn_id
    return scope


class StructuredFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **current_scope(),
        }
        data = getattr(record, "data", None)
        if data:
            entry["data"] = data
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """Colourised single-line output for local development."""

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelname, "")
        when = datetime.fromtimestamp(record.created, UTC).strftime("%H:%M:%S.%f")[:-3]
        scope = current_scope()
        tag = scope.get("turn_id") or scope.get("request_id", "-")[:8]

        line = f"{when} {color}{record.levelname:<8}{self.RESET} [{tag}] {record.name}: {record.getMessage()}"
        data = getattr(record, "data", None)
        if data:
            line += " " + " ".join(f"{key}={value!r}" for key, value in data.items())
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class ContextLogger(logging.LoggerAdapter):
    """
    Adapter accepting a ``data`` keyword for structured fields.

    ``logger.info("Turn saved", data={"conversation_id": cid})``
    """

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        data = kwargs.pop("data", None)
        if data is not None:
            kwargs["extra"] = {**kwargs.get("extra", {}), "data": data}
        return msg, kwargs


def get_logger(name: str) -> ContextLogger:
    return ContextLogger(logging.getLogger(name), {})


def setup_logging(
    level: str = "INFO",
    json_output: bool = False,
    log_file: str | None = None,
) -> None:
    """Install stdout (and optional JSON file) handlers on the root logger."""
    root = logging.getLogger()
    root.setLevel(level.upper())
    for handler in list(root.handlers):
        root.removeHandler(handler)

    stdout = logging.StreamHandler(sys.stdout)
    stdout.setFormatter(StructuredFormatter() if json_output else ConsoleFormatter())
    root.addHandler(stdout)

    if log_file:
        to_file = logging.FileHandler(log_file)
        to_file.setFormatter(StructuredFormatter())
        root.addHandler(to_file)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
