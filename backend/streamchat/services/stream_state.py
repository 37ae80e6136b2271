"""Ephemeral per-turn UI state and the read-only snapshots handed to views."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class TurnPhase(str, Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    STREAMING = "streaming"
    PERSISTING = "persisting"


@dataclass(frozen=True)
class StreamSnapshot:
    phase: TurnPhase
    pending_question_text: str
    accumulated_answer_text: str
    is_streaming: bool
    has_user_manually_scrolled: bool
    image_path: str | None
    error: str | None
    notice: str | None

    @property
    def input_enabled(self) -> bool:
        return self.phase is TurnPhase.IDLE


@dataclass
class StreamState:
    """
    Mutable state of the turn being produced.

    Only the turn controller and the components it delegates to write here;
    rendering code reads ``snapshot()`` results.
    """

    pending_question_text: str = ""
    accumulated_answer_text: str = ""
    is_streaming: bool = False
    has_user_manually_scrolled: bool = False
    image_path: str | None = None
    error: str | None = None
    notice: str | None = None

    def reset(self) -> None:
        self.pending_question_text = ""
        self.accumulated_answer_text = ""
        self.is_streaming = False
        self.has_user_manually_scrolled = False
        self.image_path = None
        self.error = None
        self.notice = None

    def snapshot(self, phase: TurnPhase) -> StreamSnapshot:
        return StreamSnapshot(
            phase=phase,
            pending_question_text=self.pending_question_text,
            accumulated_answer_text=self.accumulated_answer_text,
            is_streaming=self.is_streaming,
            has_user_manually_scrolled=self.has_user_manually_scrolled,
            image_path=self.image_path,
            error=self.error,
            notice=self.notice,
        )
