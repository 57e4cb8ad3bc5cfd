# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Adaptation orchestrator: Idle -> Transitioning -> Idle.

One ``AdaptationEngine`` per page view. A persona match goes through the
content selector; an accepted swap opens a transition window, emits
``content_adaptation``, swaps the content map, waits out the configured
animation, closes the window and emits ``content_swap_complete``.

Detections and forced variants are serialized by a per-engine lock. A
detection arriving while another is in flight is coalesced: once the lock
frees, only the newest queued match is evaluated and every waiting caller
receives that result.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime

from . import DEFAULT_VARIANT, PersonaMatch
from .config import AnimationConfig, SelectionConfig
from .errors import SectionValidationError
from .events import ContentAdaptationEvent, ContentSwapCompleteEvent, EventBus, Listener
from .selector import (
    ContentSelectionResult,
    ContentSelector,
    RuntimeSection,
    SectionContent,
    SelectionReason,
    build_content_map,
    changed_sections,
    is_section_visible,
)

logger = logging.getLogger("pageadapt.orchestrator")


# ---------------------------------------------------------------------------
# State
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class TransitionState:
    is_active: bool = False
    transitioning_sections: tuple[str, ...] = ()
    start_time: float = 0.0  # epoch ms
    duration: int = 0  # ms


_IDLE = TransitionState()


@dataclass(frozen=True, slots=True)
class RuntimeState:
    """Externally observable engine snapshot. Replaced, never mutated."""

    page_id: str = ""
    website_id: str = ""
    session_id: str | None = None
    visitor_id: str | None = None
    is_initialized: bool = False
    is_loading: bool = True
    active_variant: str = DEFAULT_VARIANT
    current_persona: PersonaMatch | None = None
    previous_persona: PersonaMatch | None = None
    is_transitioning: bool = False
    last_adaptation_at: str | None = None
    error: str | None = None


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class AdaptationEngine:
    """Content adaptation state machine for one page view."""

    def __init__(
        self,
        page_id: str,
        website_id: str,
        sections: Sequence[RuntimeSection],
        *,
        selection: SelectionConfig | None = None,
        animation: AnimationConfig | None = None,
    ) -> None:
        seen: set[str] = set()
        for section in sections:
            if section.section_id in seen:
                raise SectionValidationError(
                    f"duplicate section id {section.section_id!r}", section_id=section.section_id
                )
            seen.add(section.section_id)

        self._sections: tuple[RuntimeSection, ...] = tuple(sections)
        self._selector = ContentSelector(selection)
        self._animation = animation or AnimationConfig()
        self._state = RuntimeState(page_id=page_id, website_id=website_id)
        self._transition = _IDLE
        self._bus = EventBus()
        self._content_map = build_content_map(self._sections, DEFAULT_VARIANT)

        self._lock = asyncio.Lock()
        self._seq = 0
        self._processed_seq = 0
        self._latest: PersonaMatch | None = None
        self._last_result: ContentSelectionResult | None = None

    @property
    def sections(self) -> tuple[RuntimeSection, ...]:
        return self._sections

    def initialize(self, session_id: str, visitor_id: str) -> None:
        """Bind the tracking session; marks the engine initialized."""
        self._state = dataclasses.replace(
            self._state,
            session_id=session_id,
            visitor_id=visitor_id,
            is_initialized=True,
            is_loading=False,
        )

    # -- detection ----------------------------------------------------------

    async def process_persona_detection(self, persona_match: PersonaMatch | None) -> ContentSelectionResult:
        """Select and, if the variant changes, apply content for ``persona_match``.

        Callers coalesced into an earlier pass receive that pass's result,
        unless a forced variant was applied in between; then the newest queued
        match is evaluated again against the forced state.
        """
        self._seq += 1
        seq = self._seq
        self._latest = persona_match

        async with self._lock:
            if seq <= self._processed_seq and self._last_result is not None:
                logger.debug("Detection %d coalesced into %d", seq, self._processed_seq)
                return self._last_result

            newest = self._seq
            result = await self._process(self._latest)
            self._processed_seq = newest
            self._last_result = result
            return result

    async def _process(self, persona_match: PersonaMatch | None) -> ContentSelectionResult:
        previous_variant = self._state.active_variant
        previous_persona = self._state.current_persona

        result = self._selector.select_content(self._sections, persona_match, previous_variant)
        self._state = dataclasses.replace(
            self._state,
            current_persona=persona_match,
            previous_persona=previous_persona,
        )
        if result.was_swapped:
            await self._run_adaptation(result)
        return result

    async def force_variant(self, variant_id: str) -> ContentSelectionResult:
        """Manual override: swap to ``variant_id`` regardless of confidence.

        Forcing the already-active variant is a no-op (``was_swapped=False``).
        """
        async with self._lock:
            previous = self._state.active_variant
            if previous == variant_id:
                return ContentSelectionResult(
                    variant_id=variant_id,
                    was_swapped=False,
                    reason=SelectionReason.MANUAL_OVERRIDE,
                    confidence=1.0,
                )

            self._last_result = None
            result = ContentSelectionResult(
                variant_id=variant_id,
                was_swapped=True,
                reason=SelectionReason.MANUAL_OVERRIDE,
                confidence=1.0,
                changed_sections=changed_sections(self._sections, previous, variant_id, full=True),
                previous_variant=previous,
            )
            self._selector.mark_forced(variant_id)
            await self._run_adaptation(result)
            return result

    # -- transition lifecycle -----------------------------------------------

    async def _run_adaptation(self, result: ContentSelectionResult) -> None:
        self._start_transition(result.changed_sections)
        started = time.monotonic()
        persona = self._state.current_persona
        logger.info(
            "Adapting page %s: %s -> %s (%s, %d sections)",
            self._state.page_id,
            result.previous_variant or DEFAULT_VARIANT,
            result.variant_id,
            result.reason,
            len(result.changed_sections),
        )
        try:
            self._bus.emit(
                ContentAdaptationEvent(
                    page_id=self._state.page_id,
                    website_id=self._state.website_id,
                    session_id=self._state.session_id or "",
                    persona_id=persona.persona_id if persona else None,
                    from_variant=result.previous_variant or DEFAULT_VARIANT,
                    to_variant=result.variant_id,
                    adapted_sections=result.changed_sections,
                    confidence=result.confidence,
                    reason=result.reason,
                    transition_duration=self._animation.transition_duration,
                    timestamp=_now_iso(),
                )
            )
            self._content_map = build_content_map(self._sections, result.variant_id)
            self._state = dataclasses.replace(
                self._state,
                active_variant=result.variant_id,
                last_adaptation_at=_now_iso(),
            )
            if self._animation.waits:
                await asyncio.sleep(self._animation.transition_duration / 1000)
        finally:
            swap_ms = int((time.monotonic() - started) * 1000)
            self._end_transition()

        self._bus.emit(
            ContentSwapCompleteEvent(
                page_id=self._state.page_id,
                session_id=self._state.session_id or "",
                active_variant=result.variant_id,
                swap_duration=swap_ms,
                timestamp=_now_iso(),
            )
        )

    def _start_transition(self, section_ids: Sequence[str]) -> None:
        self._transition = TransitionState(
            is_active=True,
            transitioning_sections=tuple(section_ids),
            start_time=time.time() * 1000,
            duration=self._animation.transition_duration,
        )
        self._state = dataclasses.replace(self._state, is_transitioning=True)

    def _end_transition(self) -> None:
        self._transition = _IDLE
        self._state = dataclasses.replace(self._state, is_transitioning=False)

    # -- events ---------------------------------------------------------------

    def add_event_listener(self, listener: Listener) -> Callable[[], None]:
        """Subscribe to adaptation events. Returns an unsubscribe callable."""
        return self._bus.subscribe(listener)

    def remove_event_listener(self, listener: Listener) -> None:
        self._bus.unsubscribe(listener)

    # -- pull API -------------------------------------------------------------

    def get_state(self) -> RuntimeState:
        return self._state

    def get_content_map(self) -> dict[str, SectionContent]:
        return dict(self._content_map)

    def get_section_content(self, section_id: str) -> SectionContent | None:
        return self._content_map.get(section_id)

    def get_active_variant(self) -> str:
        return self._state.active_variant

    def is_transitioning(self) -> bool:
        return self._state.is_transitioning

    def get_transition_state(self) -> TransitionState:
        return self._transition

    def is_section_transitioning(self, section_id: str) -> bool:
        return section_id in self._transition.transitioning_sections

    def is_section_visible(self, section_id: str) -> bool:
        """Unknown section ids are not visible."""
        for section in self._sections:
            if section.section_id == section_id:
                return is_section_visible(section, self._state.active_variant)
        return False

    def get_visible_sections(self) -> list[RuntimeSection]:
        variant = self._state.active_variant
        return [s for s in self._sections if is_section_visible(s, variant)]

    def get_animation_config(self) -> AnimationConfig:
        return self._animation

    # -- host errors / reset --------------------------------------------------

    def set_error(self, error: str) -> None:
        """Record a host-level error. Detection and selection keep working."""
        logger.warning("Page %s error: %s", self._state.page_id, error)
        self._state = dataclasses.replace(self._state, error=error, is_loading=False)

    def clear_error(self) -> None:
        if self._state.error is not None:
            logger.info("Page %s error cleared", self._state.page_id)
        self._state = dataclasses.replace(self._state, error=None)

    def reset(self) -> None:
        """Back to default content with selector memory cleared. Listeners are kept."""
        self._state = RuntimeState(page_id=self._state.page_id, website_id=self._state.website_id)
        self._selector.reset()
        self._content_map = build_content_map(self._sections, DEFAULT_VARIANT)
        self._last_result = None
