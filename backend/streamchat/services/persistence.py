"""Save each finished turn once."""

from __future__ import annotations

from dataclasses import dataclass

from streamchat.core import PersistenceError, get_logger, metrics
from streamchat.services.chat_api import ChatApiClient, ConversationCache
from streamchat.services.stream_state import StreamState

logger = get_logger(__name__)


@dataclass(frozen=True)
class CompletedTurn:
    """
    A turn ready to be appended to its conversation.

    ``sequence`` is the history length the turn was generated against, so a
    retried commit of the same turn carries the same idempotency key.
    """

    conversation_id: str
    sequence: int
    answer: str
    question: str | None = None
    attachment_ref: str | None = None

    @property
    def idempotency_key(self) -> str:
        return f"{self.conversation_id}:{self.sequence}"


@dataclass(frozen=True)
class CommitAck:
    conversation_id: str
    idempotency_key: str
    deduplicated: bool = False


class PersistenceGate:
    """
    Commits completed turns and refreshes cached views on success.

    Acknowledged keys are remembered so a repeated commit of the same turn
    returns the earlier acknowledgement without another request. The backend
    de-duplicates on the same key for retries that do reach it.
    """

    def __init__(self, api: ChatApiClient, cache: ConversationCache):
        self.api = api
        self.cache = cache
        self._acked: dict[str, CommitAck] = {}

    async def commit(self, turn: CompletedTurn, state: StreamState) -> CommitAck:
        key = turn.idempotency_key
        previous = self._acked.get(key)
        if previous is not None:
            metrics.increment("commits_deduplicated")
            logger.info("Turn already saved; skipping commit", data={"idempotency_key": key})
            return CommitAck(previous.conversation_id, key, deduplicated=True)

        try:
            conversation_id = await self.api.append_turn(
                turn.conversation_id,
                question=turn.question,
                answer=turn.answer,
                img=turn.attachment_ref,
                idempotency_key=key,
            )
        except PersistenceError as exc:
            metrics.increment("commit_failures")
            logger.warning(
                "Saving turn failed",
                data={"idempotency_key": key, "code": exc.code.value, "details": exc.details},
            )
            # Keep question and answer on screen so nothing is lost.
            state.is_streaming = False
            state.error = exc.message
            raise

        ack = CommitAck(conversation_id=conversation_id, idempotency_key=key)
        self._acked[key] = ack
        metrics.increment("commits_total")
        self.cache.invalidate(turn.conversation_id)
        state.reset()
        logger.info(
            "Turn saved",
            data={"conversation_id": conversation_id, "idempotency_key": key},
        )
        return ack
