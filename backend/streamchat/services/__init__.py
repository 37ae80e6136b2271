"""
Turn orchestration services.

Map history to provider requests, accumulate streamed deltas, anchor the
viewport, and persist finished turns.
"""

from streamchat.services.accumulator import StreamAccumulator
from streamchat.services.attachments import PendingAttachment, UploadResult, UploadState
from streamchat.services.chat_api import ChatApiClient, ConversationCache, InMemoryConversationCache
from streamchat.services.chat_turn import ChatTurnController, TurnResult, TurnStatus
from streamchat.services.history_mapper import DEFAULT_SYSTEM_PROMPT, HistoryMapper
from streamchat.services.persistence import CommitAck, CompletedTurn, PersistenceGate
from streamchat.services.scroll_anchor import AnchorState, ScrollAnchor, ViewPort, ViewportMetrics
from streamchat.services.stream_state import StreamSnapshot, StreamState, TurnPhase

__all__ = [
    "DEFAULT_SYSTEM_PROMPT",
    "AnchorState",
    "ChatApiClient",
    "ChatTurnController",
    "CommitAck",
    "CompletedTurn",
    "ConversationCache",
    "HistoryMapper",
    "InMemoryConversationCache",
    "PendingAttachment",
    "PersistenceGate",
    "ScrollAnchor",
    "StreamAccumulator",
    "StreamSnapshot",
    "StreamState",
    "TurnPhase",
    "TurnResult",
    "TurnStatus",
    "UploadResult",
    "UploadState",
    "ViewPort",
    "ViewportMetrics",
]
