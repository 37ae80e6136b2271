"""
Base provider interface.

Defines the contract both provider variants implement: a canonical request in,
an async iterator of text deltas out.
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from streamchat.services.attachments import PendingAttachment


class ModelId(str, Enum):
    """Closed set of model identifiers a conversation may select."""

    GPT_4O = "gpt-4o"
    GEMINI_FLASH = "gemini-flash-1.5"


class ProviderType(str, Enum):
    """Supported provider variants."""

    OPENAI_COMPAT = "openai_compat"
    GEMINI = "gemini"


class RoleVocabulary(str, Enum):
    """Role names a provider expects for model replies."""

    ASSISTANT = "assistant"  # system / user / assistant
    NATIVE = "native"  # user / model, system prompt sent out of band


@dataclass
class ProviderCapabilities:
    """Capabilities of a provider."""

    streaming: bool = True
    vision: bool = False


@dataclass(frozen=True)
class ProviderMessage:
    """A single mapped message."""

    role: str
    content: str


@dataclass
class ProviderRequest:
    """Canonical request handed to an adapter.

    ``messages`` is the full ordered conversation, final user message
    included; adapters that take the latest message separately split it off.
    """

    model: ModelId
    system_prompt: str
    messages: list[ProviderMessage] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)


class BaseProvider(ABC):
    """
    Abstract base class for model providers.

    Both variants expose the same consumption contract: an ordered, finite,
    cancellable async iterator of string fragments. Fragments may be empty.
    """

    provider_type: ProviderType
    vocabulary: RoleVocabulary

    async def aclose(self) -> None:
        """Close any underlying resources (optional)."""
        return None

    @abstractmethod
    async def healthcheck(self) -> bool:
        """
        Check if the provider is reachable with the configured credentials.

        Returns:
            True if provider is healthy, False otherwise
        """
        ...

    @abstractmethod
    def capabilities(self) -> ProviderCapabilities:
        ...

    @abstractmethod
    def stream(
        self,
        request: ProviderRequest,
        attachment: "PendingAttachment | None" = None,
    ) -> AsyncIterator[str]:
        """
        Send a request and stream the generated text.

        Args:
            request: Mapped request for this provider
            attachment: Optional image to send with the final user message

        Yields:
            Text fragments in arrival order

        Raises:
            ProviderStreamError: If the provider fails before or mid-stream
        """
        ...
