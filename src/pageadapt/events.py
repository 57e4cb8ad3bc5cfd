# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Adaptation events and a best-effort, in-process event bus.

Listeners are called synchronously in subscription order. A listener that
raises is logged and skipped; delivery to the remaining listeners continues.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import asdict, dataclass
from typing import Any, ClassVar

logger = logging.getLogger("pageadapt.events")

CONTENT_ADAPTATION = "content_adaptation"
CONTENT_SWAP_COMPLETE = "content_swap_complete"


@dataclass(frozen=True, slots=True)
class ContentAdaptationEvent:
    """A content swap was accepted and its transition has started."""

    type: ClassVar[str] = CONTENT_ADAPTATION

    page_id: str
    website_id: str
    session_id: str
    persona_id: str | None
    from_variant: str
    to_variant: str
    adapted_sections: tuple[str, ...]
    confidence: float
    reason: str
    transition_duration: int  # ms
    timestamp: str

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["type"] = self.type
        d["adapted_sections"] = list(self.adapted_sections)
        d["reason"] = str(self.reason)
        return d


@dataclass(frozen=True, slots=True)
class ContentSwapCompleteEvent:
    """The transition window of a swap closed."""

    type: ClassVar[str] = CONTENT_SWAP_COMPLETE

    page_id: str
    session_id: str
    active_variant: str
    swap_duration: int  # ms, measured from transition start
    timestamp: str

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["type"] = self.type
        return d


AdaptationEvent = ContentAdaptationEvent | ContentSwapCompleteEvent
Listener = Callable[[AdaptationEvent], None]


class EventBus:
    """Ordered listener set with per-listener error isolation."""

    def __init__(self) -> None:
        self._listeners: dict[Listener, None] = {}

    def __len__(self) -> int:
        return len(self._listeners)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Add a listener. Returns a callable that removes it again."""
        self._listeners[listener] = None
        return lambda: self.unsubscribe(listener)

    def unsubscribe(self, listener: Listener) -> None:
        self._listeners.pop(listener, None)

    def emit(self, event: AdaptationEvent) -> int:
        """Deliver ``event`` to a snapshot of the listeners. Returns the failure count."""
        failures = 0
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                failures += 1
                logger.exception("Adaptation event listener failed (%s)", event.type)
        return failures

    def clear(self) -> None:
        self._listeners.clear()
