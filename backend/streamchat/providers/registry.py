"""Provider registry: one adapter per supported model identifier."""

from __future__ import annotations

from typing import Any

import httpx

from streamchat.config import Settings
from streamchat.core import UnsupportedModelError, get_logger
from streamchat.providers.base import BaseProvider, ModelId
from streamchat.providers.gemini import GeminiProvider
from streamchat.providers.openai_compat import OpenAICompatProvider

logger = get_logger(__name__)


class ProviderRegistry:
    """Instantiate the adapters and resolve model identifiers to them."""

    def __init__(
        self,
        settings: Settings,
        transport_overrides: dict[ModelId, httpx.AsyncBaseTransport] | None = None,
    ):
        self.settings = settings
        self.providers: dict[ModelId, BaseProvider] = {}
        self._transport_overrides = transport_overrides or {}
        self._initialize()

    def _transport(self, model_id: ModelId) -> httpx.AsyncBaseTransport | None:
        return self._transport_overrides.get(model_id)

    def _initialize(self) -> None:
        self.providers[ModelId.GPT_4O] = OpenAICompatProvider(
            base_url=self.settings.openai_base_url,
            model=self.settings.openai_model,
            api_key=self.settings.openai_api_key or None,
            timeout=self.settings.provider_timeout_seconds,
            max_retries=self.settings.provider_max_retries,
            transport=self._transport(ModelId.GPT_4O),
        )
        self.providers[ModelId.GEMINI_FLASH] = GeminiProvider(
            base_url=self.settings.gemini_base_url,
            model=self.settings.gemini_model,
            api_key=self.settings.gemini_api_key or None,
            timeout=self.settings.provider_timeout_seconds,
            max_retries=self.settings.provider_max_retries,
            transport=self._transport(ModelId.GEMINI_FLASH),
        )
        for model_id, provider in self.providers.items():
            if not self._has_credentials(model_id):
                logger.warning(
                    "Provider API key not set; requests will likely be rejected",
                    data={"model": model_id.value, "provider": provider.provider_type.value},
                )
        logger.info(
            "Provider registry initialized",
            data={"models": [model_id.value for model_id in self.providers]},
        )

    def _has_credentials(self, model_id: ModelId) -> bool:
        if model_id is ModelId.GPT_4O:
            return bool(self.settings.openai_api_key)
        return bool(self.settings.gemini_api_key)

    @staticmethod
    def resolve_model(model: str) -> ModelId:
        """Parse a model identifier or raise UnsupportedModelError."""
        try:
            return ModelId(model)
        except ValueError:
            raise UnsupportedModelError(model) from None

    def get(self, model: str) -> BaseProvider:
        """Resolve the adapter for a model identifier. Never touches the network."""
        model_id = self.resolve_model(model)
        provider = self.providers.get(model_id)
        if provider is None:
            raise UnsupportedModelError(model)
        return provider

    async def health(self) -> dict[str, Any]:
        """Return health check results keyed by model identifier."""
        results: dict[str, Any] = {}
        for model_id, provider in self.providers.items():
            results[model_id.value] = {
                "provider": provider.provider_type.value,
                "ok": await provider.healthcheck(),
            }
        return results

    async def aclose(self) -> None:
        """Close all provider clients."""
        for provider in self.providers.values():
            try:
                await provider.aclose()
            except Exception:  # pragma: no cover
                logger.warning(
                    "Error closing provider client", data={"provider": provider.provider_type.value}
                )
