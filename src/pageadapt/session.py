# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Per-page-view facade: persona detector + adaptation engine + trigger policy.

Usage:
    session = AdaptiveSession("page-1", "site-1", sections, personas, session_id="s-1")
    await session.start()
    result = await session.observe(behavior)  # None when detection is not due
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from datetime import UTC, datetime

from . import Persona, PersonaMatch, UserBehavior
from . import telemetry as _telemetry
from .config import EngineConfig
from .logging_config import bound_session
from .orchestrator import AdaptationEngine
from .scorer import PersonaDetector
from .selector import ContentSelectionResult, RuntimeSection
from .telemetry import events as tel
from .telemetry.listener import TelemetryListener
from .telemetry.privacy import hash_identifier
from .trigger import should_trigger_detection

logger = logging.getLogger("pageadapt.session")


def time_spent_seconds(behavior: UserBehavior) -> float:
    """Total dwell time across sections; non-numeric entries are ignored."""
    total = 0.0
    for value in (behavior.time_on_sections or {}).values():
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            total += value
    return total


class AdaptiveSession:
    """Wires detection to content adaptation for one visitor on one page.

    With ``forced_persona_id`` set (preview mode) the forced variant is
    applied on ``start()`` and behavior-based detection is skipped.
    """

    def __init__(
        self,
        page_id: str,
        website_id: str,
        sections: Sequence[RuntimeSection],
        personas: Iterable[Persona],
        *,
        config: EngineConfig | None = None,
        session_id: str = "",
        visitor_id: str = "",
        forced_persona_id: str | None = None,
        telemetry: bool = True,
    ) -> None:
        self.config = config or EngineConfig()
        self.detector = PersonaDetector(personas, self.config.detection)
        self.engine = AdaptationEngine(
            page_id,
            website_id,
            sections,
            selection=self.config.selection,
            animation=self.config.animation,
        )
        self.forced_persona_id = forced_persona_id
        self.last_detection_at: datetime | None = None
        self.last_match: PersonaMatch | None = None

        if telemetry:
            self.engine.add_event_listener(TelemetryListener(trace_id=hash_identifier(session_id) if session_id else ""))
        if session_id:
            self.engine.initialize(session_id, visitor_id)

    @property
    def page_id(self) -> str:
        return self.engine.get_state().page_id

    async def start(self) -> ContentSelectionResult | None:
        """Apply the forced variant in preview mode; otherwise nothing to do."""
        if self.forced_persona_id:
            logger.info("Preview mode: forcing variant %s", self.forced_persona_id)
            return await self.engine.force_variant(self.forced_persona_id)
        return None

    def should_detect(self, behavior: UserBehavior, *, now: datetime | None = None) -> bool:
        if self.forced_persona_id:
            return False
        return should_trigger_detection(
            len(behavior.click_history or ()),
            len(behavior.navigation_path or ()),
            time_spent_seconds(behavior),
            self.last_detection_at,
            now=now,
        )

    async def observe(
        self,
        behavior: UserBehavior,
        *,
        force: bool = False,
        now: datetime | None = None,
    ) -> ContentSelectionResult | None:
        """Detect and adapt when the trigger policy allows it (or ``force``)."""
        if self.forced_persona_id:
            return None
        if not force and not self.should_detect(behavior, now=now):
            return None
        return await self.detect(behavior, now=now)

    async def detect(self, behavior: UserBehavior, *, now: datetime | None = None) -> ContentSelectionResult:
        """Unconditional detection pass followed by content adaptation."""
        if self.forced_persona_id:
            return await self.engine.force_variant(self.forced_persona_id)

        state = self.engine.get_state()
        with bound_session(session_id=behavior.session_id or state.session_id, page_id=state.page_id):
            match = self.detector.detect_persona(behavior)
            self.last_detection_at = now or datetime.now(UTC)
            self.last_match = match

            if match is None:
                logger.info("No persona detected")
            else:
                logger.info("Detected persona %s (confidence %.3f)", match.persona_id, match.confidence)
            _telemetry.emit(
                tel.PERSONA_DETECTED,
                dict(
                    tel.detection_completed(
                        session_id=behavior.session_id or state.session_id or "",
                        persona_id=match.persona_id if match else None,
                        confidence=match.confidence if match else 0.0,
                        matched_rules=len(match.matched_rules) if match else 0,
                        alternatives=len(match.alternative_matches) if match else 0,
                    )
                ),
            )
            return await self.engine.process_persona_detection(match)

    def update_personas(self, personas: Iterable[Persona]) -> None:
        self.detector.update_personas(personas)
