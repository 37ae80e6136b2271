"""Turn orchestration: submission, streaming, persistence, and bootstrap auto-send."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from streamchat.config import Settings, get_settings
from streamchat.conversation import Conversation, ConversationTurn, Role, TextPart
from streamchat.core import (
    AppError,
    MappingError,
    PersistenceError,
    TurnInProgressError,
    UnsupportedModelError,
    get_logger,
    metrics,
    turn_id_ctx,
)
from streamchat.providers import ProviderRegistry
from streamchat.services.accumulator import StreamAccumulator
from streamchat.services.attachments import PendingAttachment
from streamchat.services.chat_api import ChatApiClient, ConversationCache
from streamchat.services.history_mapper import HistoryMapper
from streamchat.services.persistence import CommitAck, CompletedTurn, PersistenceGate
from streamchat.services.scroll_anchor import ScrollAnchor, ViewPort
from streamchat.services.stream_state import StreamSnapshot, StreamState, TurnPhase

logger = get_logger(__name__)


class TurnStatus(str, Enum):
    SAVED = "saved"
    STREAM_FAILED = "stream_failed"
    SAVE_FAILED = "save_failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class TurnResult:
    status: TurnStatus
    answer: str
    ack: CommitAck | None = None
    error: AppError | None = None


class ChatTurnController:
    """
    Drives one conversation's turns: idle -> submitting -> streaming ->
    persisting -> idle.

    Errors detected before a stream starts (unknown model, malformed history,
    busy controller, attachment not ready) are raised to the caller. Failures
    once streaming has begun are logged, shown through ``StreamState.error``
    and reported in the returned TurnResult; the partial answer stays visible.
    """

    def __init__(
        self,
        conversation: Conversation,
        registry: ProviderRegistry,
        gate: PersistenceGate,
        anchor: ScrollAnchor,
        *,
        settings: Settings | None = None,
        mapper: HistoryMapper | None = None,
        on_change: Callable[[StreamSnapshot], None] | None = None,
    ):
        settings = settings or get_settings()
        self.conversation = conversation
        self.registry = registry
        self.gate = gate
        self.anchor = anchor
        self.mapper = mapper or HistoryMapper(settings.default_system_prompt)
        self.inactivity_timeout = settings.stream_inactivity_timeout_seconds
        self.persist_partial_answers = settings.persist_partial_answers
        self.on_change = on_change

        self.state = StreamState()
        self.phase = TurnPhase.IDLE
        self.has_bootstrapped = False
        self.torn_down = False
        self._task: asyncio.Task[str] | None = None
        self._unsaved_turn: CompletedTurn | None = None
        # Never handed out twice: a failed save may still have been applied
        # remotely under its key.
        self._next_sequence = conversation.turn_count

    @classmethod
    def for_conversation(
        cls,
        conversation: Conversation,
        viewport: ViewPort,
        registry: ProviderRegistry,
        api: ChatApiClient,
        cache: ConversationCache,
        *,
        settings: Settings | None = None,
        on_change: Callable[[StreamSnapshot], None] | None = None,
    ) -> ChatTurnController:
        """Wire a controller for one open conversation view."""
        settings = settings or get_settings()
        anchor = ScrollAnchor(viewport, threshold=settings.scroll_anchor_threshold)
        return cls(
            conversation,
            registry,
            PersistenceGate(api, cache),
            anchor,
            settings=settings,
            on_change=on_change,
        )

    @property
    def can_submit(self) -> bool:
        return self.phase is TurnPhase.IDLE and not self.torn_down

    @property
    def has_unsaved_turn(self) -> bool:
        return self._unsaved_turn is not None

    def snapshot(self) -> StreamSnapshot:
        return self.state.snapshot(self.phase)

    def update_conversation(self, conversation: Conversation) -> None:
        """Swap in a freshly fetched copy of the conversation between turns."""
        if self.phase is not TurnPhase.IDLE:
            raise TurnInProgressError()
        self.conversation = conversation

    def on_user_scroll(self) -> None:
        if self.torn_down:
            return
        self.anchor.on_user_scroll()
        self.state.has_user_manually_scrolled = self.anchor.user_scrolled_away
        self._emit()

    async def submit(
        self, text: str, attachment: PendingAttachment | None = None
    ) -> TurnResult | None:
        """Send a user message. Empty text is ignored and returns None."""
        if not text:
            return None
        return await self._run_turn(text, attachment, replay=False)

    async def bootstrap(self) -> TurnResult | None:
        """
        Auto-send the opening message of a freshly created conversation.

        Runs at most once per controller, however many times it is called.
        """
        if self.has_bootstrapped:
            return None
        self.has_bootstrapped = True
        if self.conversation.turn_count != 1:
            return None
        text = self.conversation.history[0].first_text
        if not text:
            return None
        logger.info("Bootstrapping conversation", data={"conversation_id": self.conversation.id})
        return await self._run_turn(text, None, replay=True)

    async def retry_commit(self) -> TurnResult | None:
        """Re-attempt saving the last turn whose commit failed."""
        turn = self._unsaved_turn
        if turn is None:
            return None
        if self.phase is not TurnPhase.IDLE:
            raise TurnInProgressError()
        self.phase = TurnPhase.PERSISTING
        self.state.error = None
        try:
            self._emit()
            return await self._commit(turn)
        except BaseException as exc:
            self._return_to_idle(exc)
            raise

    async def teardown(self) -> None:
        """Stop the in-flight stream, if any; no state changes after this."""
        self.torn_down = True
        task = self._task
        if task is not None and not task.done():
            task.cancel()
            await asyncio.wait({task})

    async def _run_turn(
        self, text: str, attachment: PendingAttachment | None, *, replay: bool
    ) -> TurnResult | None:
        if self.torn_down:
            return None
        if self.phase is not TurnPhase.IDLE:
            raise TurnInProgressError()
        if attachment is not None:
            attachment.ensure_submittable()

        sequence = max(self._next_sequence, self.conversation.turn_count)
        self._next_sequence = sequence + 1
        if self._unsaved_turn is not None:
            logger.warning(
                "Unsaved turn abandoned by a new submission",
                data={"idempotency_key": self._unsaved_turn.idempotency_key},
            )
            self._unsaved_turn = None

        token = turn_id_ctx.set(f"{self.conversation.id}:{sequence}")
        try:
            return await self._stream_turn(text, attachment, sequence, replay=replay)
        except BaseException as exc:
            self._return_to_idle(exc)
            raise
        finally:
            turn_id_ctx.reset(token)

    async def _stream_turn(
        self,
        text: str,
        attachment: PendingAttachment | None,
        sequence: int,
        *,
        replay: bool,
    ) -> TurnResult:
        self.phase = TurnPhase.SUBMITTING
        try:
            provider = self.registry.get(self.conversation.model)
            request = self.mapper.to_provider_request(
                self.conversation.history,
                None if replay else text,
                self.conversation.model,
            )
        except UnsupportedModelError as exc:
            self._abort_submission(notice=exc.message)
            raise
        except MappingError as exc:
            self._abort_submission(error=exc.message)
            raise

        image = attachment if attachment is not None and attachment.is_ready else None
        self.state.reset()
        self.anchor.reset()
        self.state.pending_question_text = "" if replay else text
        self.state.image_path = image.file_path if image else None
        if image and not provider.capabilities().vision:
            self.state.notice = (
                f"{provider.display_name} cannot read images; the attachment was not sent"
            )
        self.state.is_streaming = True
        self.phase = TurnPhase.STREAMING
        self._emit()

        accumulator = StreamAccumulator(self.inactivity_timeout)
        stream_error: AppError | None = None
        self._task = asyncio.create_task(
            accumulator.consume(provider.stream(request, image), self._on_buffer)
        )
        try:
            answer = await self._task
        except AppError as exc:
            answer = accumulator.buffer
            stream_error = exc
            metrics.increment("stream_errors")
            logger.warning(
                "Provider stream failed",
                data={"code": exc.code.value, "chars": len(answer), "details": exc.details},
            )
        except asyncio.CancelledError:
            if not self.torn_down:
                raise
            logger.info("Stream cancelled by teardown", data={"chars": len(accumulator.buffer)})
            return TurnResult(TurnStatus.CANCELLED, accumulator.buffer)
        finally:
            self._task = None

        if self.torn_down:
            return TurnResult(TurnStatus.CANCELLED, answer, error=stream_error)

        if stream_error is not None:
            self.state.error = stream_error.message
            if not (self.persist_partial_answers and answer):
                self.state.is_streaming = False
                self.phase = TurnPhase.IDLE
                self._emit()
                return TurnResult(TurnStatus.STREAM_FAILED, answer, error=stream_error)

        self.phase = TurnPhase.PERSISTING
        self._emit()
        turn = CompletedTurn(
            conversation_id=self.conversation.id,
            sequence=sequence,
            answer=answer,
            question=None if replay else text,
            attachment_ref=image.file_path if image else None,
        )
        result = await self._commit(turn)
        if result.status is TurnStatus.SAVED:
            if attachment is not None:
                attachment.clear()
            if stream_error is not None:
                return TurnResult(TurnStatus.STREAM_FAILED, answer, ack=result.ack, error=stream_error)
        return result

    async def _commit(self, turn: CompletedTurn) -> TurnResult:
        try:
            ack = await self.gate.commit(turn, self.state)
        except PersistenceError as exc:
            self._unsaved_turn = turn
            self.phase = TurnPhase.IDLE
            self._emit()
            return TurnResult(TurnStatus.SAVE_FAILED, turn.answer, error=exc)

        self._unsaved_turn = None
        self._record_saved_turn(turn)
        metrics.increment("turns_completed")
        self.phase = TurnPhase.IDLE
        self._emit()
        return TurnResult(TurnStatus.SAVED, turn.answer, ack=ack)

    def _record_saved_turn(self, turn: CompletedTurn) -> None:
        """Mirror the append the chats API performed so the next turn maps the full history."""
        history = list(self.conversation.history)
        if turn.question:
            history.append(
                ConversationTurn(
                    role=Role.USER,
                    parts=(TextPart(text=turn.question),),
                    img=turn.attachment_ref,
                )
            )
        history.append(ConversationTurn(role=Role.MODEL, parts=(TextPart(text=turn.answer),)))
        self.conversation = self.conversation.model_copy(update={"history": history})

    def _on_buffer(self, buffer: str, final: bool) -> None:
        if self.torn_down:
            return
        self.state.accumulated_answer_text = buffer
        self.anchor.on_buffer_update()
        self._emit()

    def _abort_submission(self, *, notice: str | None = None, error: str | None = None) -> None:
        self.phase = TurnPhase.IDLE
        self.state.is_streaming = False
        if notice is not None:
            self.state.notice = notice
        if error is not None:
            self.state.error = error
        self._emit()

    def _return_to_idle(self, exc: BaseException) -> None:
        """Leave whatever phase a failed or cancelled turn was in."""
        if self.phase is TurnPhase.IDLE and not self.state.is_streaming:
            return
        self.phase = TurnPhase.IDLE
        self.state.is_streaming = False
        if isinstance(exc, asyncio.CancelledError):
            logger.info("Turn cancelled", data={"chars": len(self.state.accumulated_answer_text)})
        else:
            logger.error("Turn failed", exc_info=exc)
            self.state.error = exc.message if isinstance(exc, AppError) else AppError.message
        try:
            self._emit()
        except Exception:
            logger.exception("State listener failed while resetting the turn")

    def _emit(self) -> None:
        if self.on_change is not None and not self.torn_down:
            self.on_change(self.snapshot())
