"""Pending image attachment for the next turn."""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from streamchat.core import AttachmentUploadError, ValidationError


class UploadState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    ERROR = "error"


@dataclass(frozen=True)
class UploadResult:
    """What the asset-upload service returned."""

    file_path: str
    file_id: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> UploadResult:
        file_path = payload.get("filePath")
        if not file_path:
            raise ValidationError("Upload response is missing filePath", details={"body": payload})
        return cls(file_path=file_path, file_id=payload.get("fileId"), raw=dict(payload))


@dataclass
class PendingAttachment:
    """
    An image the user attached to the turn they are composing.

    The artifact has two representations that are always set and cleared
    together: ``file_path`` is the stored reference written into the saved
    history, ``provider_part`` is the inline payload sent to providers that
    accept images.
    """

    upload_state: UploadState = UploadState.IDLE
    error: str = ""
    file_path: str | None = None
    provider_part: dict[str, Any] | None = None

    @property
    def is_ready(self) -> bool:
        return (
            self.upload_state is UploadState.IDLE
            and self.file_path is not None
            and self.provider_part is not None
        )

    @property
    def is_empty(self) -> bool:
        return self.upload_state is UploadState.IDLE and self.file_path is None

    def begin_upload(self) -> None:
        self.upload_state = UploadState.LOADING
        self.error = ""
        self.file_path = None
        self.provider_part = None

    def complete(self, result: UploadResult, data: bytes, mime_type: str) -> None:
        """Record a finished upload together with the bytes that were uploaded."""
        if not mime_type.startswith("image/"):
            self.fail(f"Unsupported attachment type: {mime_type}")
            return
        self.upload_state = UploadState.IDLE
        self.error = ""
        self.file_path = result.file_path
        self.provider_part = {
            "inlineData": {
                "data": base64.b64encode(data).decode("ascii"),
                "mimeType": mime_type,
            }
        }

    def fail(self, message: str) -> None:
        self.upload_state = UploadState.ERROR
        self.error = message
        self.file_path = None
        self.provider_part = None

    def clear(self) -> None:
        self.upload_state = UploadState.IDLE
        self.error = ""
        self.file_path = None
        self.provider_part = None

    def ensure_submittable(self) -> None:
        """Raise AttachmentUploadError unless the attachment is empty or ready."""
        if self.upload_state is UploadState.LOADING:
            raise AttachmentUploadError("Attachment is still uploading")
        if self.upload_state is UploadState.ERROR:
            raise AttachmentUploadError(
                "Attachment upload failed; remove it or try again",
                details={"reason": self.error},
            )
