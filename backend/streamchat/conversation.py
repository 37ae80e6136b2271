"""
Canonical conversation shape shared by the orchestrator and the chats API.

This is the provider-agnostic history every adapter request is mapped from.
Field aliases follow the chats API's JSON (``_id``, ``userId``, ...).
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Role(str, Enum):
    """Roles a persisted turn may carry. ``model`` is stored for assistant replies."""

    USER = "user"
    MODEL = "model"
    SYSTEM = "system"
    ASSISTANT = "assistant"


class TextPart(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str


class ConversationTurn(BaseModel):
    """One persisted history entry."""

    model_config = ConfigDict(frozen=True)

    role: Role
    parts: tuple[TextPart, ...] = ()
    img: str | None = None

    @property
    def first_text(self) -> str | None:
        return self.parts[0].text if self.parts else None


class Conversation(BaseModel):
    """A chat session owned by one user."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(alias="_id")
    user_id: str = Field(alias="userId")
    history: list[ConversationTurn] = Field(default_factory=list)
    # Kept as a plain string: unknown identifiers are rejected by the provider
    # registry, not at parse time.
    model: str
    is_custom_chatbot: bool = Field(default=False, alias="isCustomChatbot")
    created_at: datetime | None = Field(default=None, alias="createdAt")
    updated_at: datetime | None = Field(default=None, alias="updatedAt")

    @property
    def turn_count(self) -> int:
        return len(self.history)
