"""Map persisted conversation history onto a provider request."""

from __future__ import annotations

from collections.abc import Sequence

from streamchat.conversation import ConversationTurn, Role
from streamchat.core import MappingError
from streamchat.providers.base import ModelId, ProviderMessage, ProviderRequest, RoleVocabulary
from streamchat.providers.registry import ProviderRegistry

DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant."

MODEL_VOCABULARY: dict[ModelId, RoleVocabulary] = {
    ModelId.GPT_4O: RoleVocabulary.ASSISTANT,
    ModelId.GEMINI_FLASH: RoleVocabulary.NATIVE,
}

_ASSISTANT_ROLES = {
    Role.USER: "user",
    Role.MODEL: "assistant",
    Role.ASSISTANT: "assistant",
    Role.SYSTEM: "system",
}
# The native vocabulary has no system role; a system turn after the first is
# passed as user content.
_NATIVE_ROLES = {
    Role.USER: "user",
    Role.MODEL: "model",
    Role.ASSISTANT: "model",
    Role.SYSTEM: "user",
}


class HistoryMapper:
    """
    Builds a ProviderRequest from canonical history.

    Only the first text part of each turn is used; further parts are not
    sent. A leading ``system`` turn supplies the system prompt and is not
    repeated as a message.
    """

    def __init__(self, default_system_prompt: str = DEFAULT_SYSTEM_PROMPT):
        self.default_system_prompt = default_system_prompt

    def to_provider_request(
        self,
        history: Sequence[ConversationTurn],
        new_user_text: str | None,
        selected_model: str,
    ) -> ProviderRequest:
        model_id = ProviderRegistry.resolve_model(selected_model)
        vocabulary = MODEL_VOCABULARY[model_id]

        for index, turn in enumerate(history):
            if not turn.parts:
                raise MappingError(
                    "Conversation turn has no content",
                    details={"turn_index": index, "role": turn.role.value},
                )

        system_prompt = self.default_system_prompt
        turns = list(history)
        if turns and turns[0].role is Role.SYSTEM:
            system_prompt = turns[0].first_text or self.default_system_prompt
            turns = turns[1:]

        roles = _ASSISTANT_ROLES if vocabulary is RoleVocabulary.ASSISTANT else _NATIVE_ROLES
        messages = [
            ProviderMessage(role=roles[turn.role], content=turn.first_text or "")
            for turn in turns
        ]
        if new_user_text:
            messages.append(ProviderMessage(role="user", content=new_user_text))

        if not messages:
            raise MappingError("Nothing to send: history is empty and no message was given")

        return ProviderRequest(
            model=model_id,
            system_prompt=system_prompt,
            messages=messages,
            metadata={
                "history_turns": len(history),
                # Persisted images are referenced only; they are not re-sent.
                "history_images": [turn.img for turn in turns if turn.img],
            },
        )
