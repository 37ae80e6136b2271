"""Model provider interfaces and implementations."""

from streamchat.providers.base import (
    BaseProvider,
    ModelId,
    ProviderCapabilities,
    ProviderMessage,
    ProviderRequest,
    ProviderType,
    RoleVocabulary,
)
from streamchat.providers.gemini import GeminiProvider
from streamchat.providers.openai_compat import OpenAICompatProvider
from streamchat.providers.registry import ProviderRegistry

__all__ = [
    "BaseProvider",
    "GeminiProvider",
    "ModelId",
    "OpenAICompatProvider",
    "ProviderCapabilities",
    "ProviderMessage",
    "ProviderRegistry",
    "ProviderRequest",
    "ProviderType",
    "RoleVocabulary",
]
