"""Auto-scroll decisions while an answer streams in."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

DEFAULT_THRESHOLD = 200.0


@dataclass(frozen=True)
class ViewportMetrics:
    """Positions in the scroll container's coordinate space."""

    content_bottom: float
    viewport_bottom: float

    @property
    def distance_to_bottom(self) -> float:
        return self.content_bottom - self.viewport_bottom


class ViewPort(Protocol):
    """Scroll capability supplied by the rendering layer."""

    def get_metrics(self) -> ViewportMetrics: ...

    def scroll_into_view(self, target: Any) -> None: ...


class AnchorState(str, Enum):
    PINNED_TO_BOTTOM = "pinned_to_bottom"
    SCROLLED_AWAY = "scrolled_away"


class ScrollAnchor:
    """
    Follows the bottom of the transcript until the user scrolls away.

    ``on_user_scroll`` must be wired to the container's scroll events. Each
    auto-scroll this class triggers may produce one such event; the first
    scroll event after an auto-scroll is swallowed rather than read as the
    user leaving the bottom.
    """

    def __init__(
        self,
        viewport: ViewPort,
        threshold: float = DEFAULT_THRESHOLD,
        target: Any = "end",
    ):
        self.viewport = viewport
        self.threshold = threshold
        self.target = target
        self.state = AnchorState.PINNED_TO_BOTTOM
        self.auto_scroll_count = 0
        self._expect_echo = False

    @property
    def user_scrolled_away(self) -> bool:
        return self.state is AnchorState.SCROLLED_AWAY

    def reset(self) -> None:
        """New submission: follow the bottom again."""
        self.state = AnchorState.PINNED_TO_BOTTOM
        self._expect_echo = False

    def on_user_scroll(self) -> None:
        if self._expect_echo:
            self._expect_echo = False
            return
        self.state = AnchorState.SCROLLED_AWAY

    def on_buffer_update(self) -> bool:
        """Returns True when an auto-scroll was triggered."""
        if self.state is AnchorState.SCROLLED_AWAY:
            return False
        if self.viewport.get_metrics().distance_to_bottom >= self.threshold:
            return False
        self._expect_echo = True
        self.auto_scroll_count += 1
        self.viewport.scroll_into_view(self.target)
        return True
