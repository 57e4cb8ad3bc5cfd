# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Bridge from engine adaptation events to telemetry records."""

from __future__ import annotations

from ..events import AdaptationEvent, ContentAdaptationEvent, ContentSwapCompleteEvent
from . import emit
from . import events as tel


class TelemetryListener:
    """Engine event listener forwarding to ``pageadapt.telemetry.emit``.

    Subscribe with ``engine.add_event_listener(TelemetryListener())``.
    """

    __slots__ = ("trace_id",)

    def __init__(self, trace_id: str = "") -> None:
        self.trace_id = trace_id

    def __call__(self, event: AdaptationEvent) -> None:
        if isinstance(event, ContentAdaptationEvent):
            payload = tel.adaptation_applied(
                page_id=event.page_id,
                website_id=event.website_id,
                session_id=event.session_id,
                persona_id=event.persona_id,
                from_variant=event.from_variant,
                to_variant=event.to_variant,
                adapted_sections=event.adapted_sections,
                confidence=event.confidence,
                reason=event.reason,
                transition_duration_ms=event.transition_duration,
            )
            emit(tel.ADAPTATION_APPLIED, dict(payload), trace_id=self.trace_id)
        elif isinstance(event, ContentSwapCompleteEvent):
            payload = tel.adaptation_swap_complete(
                page_id=event.page_id,
                session_id=event.session_id,
                active_variant=event.active_variant,
                swap_duration_ms=event.swap_duration,
            )
            emit(tel.ADAPTATION_SWAP_COMPLETE, dict(payload), trace_id=self.trace_id)
