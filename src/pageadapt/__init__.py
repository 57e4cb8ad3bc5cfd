# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""PageAdapt: persona-adaptive content selection for generated web pages.

Decides, for a single visitor session, which persona the visitor most likely
represents and which content variant of each page section to display:
- signals: behavior snapshot -> typed, weighted behavior signals
- scorer: weighted detection rules -> ranked persona confidence
- selector: confidence threshold + hysteresis -> per-section content
- orchestrator: transition state machine + adaptation events
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

DEFAULT_VARIANT = "default"


class RuleType(StrEnum):
    """Detection rule / behavior signal types."""

    CLICK_PATTERN = "click_pattern"
    SCROLL_BEHAVIOR = "scroll_behavior"
    TIME_ON_PAGE = "time_on_page"
    REFERRER = "referrer"
    UTM_PARAMETER = "utm_parameter"
    CONTENT_INTERACTION = "content_interaction"
    FORM_FIELD = "form_field"
    PAGE_SEQUENCE = "page_sequence"
    DEVICE_TYPE = "device_type"
    SEARCH_QUERY = "search_query"


# ---------------------------------------------------------------------------
# Personas (owned by the host, read-only here)
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class DetectionRule:
    """A weighted keyword condition contributing evidence toward a persona."""

    id: str
    type: RuleType
    condition: str
    value: str | None = None  # threshold or keyword list, interpreted per type
    weight: float = 0.0  # 0.0-1.0
    description: str = ""


@dataclass(frozen=True, slots=True)
class Persona:
    """Visitor archetype as consumed by the detector."""

    id: str
    detection_rules: tuple[DetectionRule, ...] = ()
    confidence_score: float = 0.5  # prior / trust multiplier, 0.0-1.0
    is_active: bool = True
    name: str = ""


# ---------------------------------------------------------------------------
# Behavior snapshot (supplied by the tracking layer)
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class ClickEvent:
    element_type: str = ""
    element_id: str | None = None
    section_id: str | None = None
    timestamp: str = ""


@dataclass(slots=True)
class ScrollRecord:
    page_id: str = ""
    max_depth: float | None = None  # percent, 0-100
    duration: float | None = None  # seconds


@dataclass(slots=True)
class SectionDwell:
    section_id: str
    duration: float | None  # seconds


@dataclass(slots=True)
class FormInteraction:
    form_id: str = ""
    fields_interacted: list[str] = field(default_factory=list)
    completed: bool = False


@dataclass(slots=True)
class ReferrerData:
    url: str | None = None
    source: str | None = None
    medium: str | None = None
    campaign: str | None = None


@dataclass(slots=True)
class UserBehavior:
    """In-memory behavior snapshot for one visitor session."""

    session_id: str = ""
    visitor_id: str = ""
    click_history: list[ClickEvent] = field(default_factory=list)
    scroll_behavior: list[ScrollRecord] = field(default_factory=list)
    time_on_sections: dict[str, float] = field(default_factory=dict)
    navigation_path: list[str] = field(default_factory=list)
    referrer: ReferrerData = field(default_factory=ReferrerData)
    search_queries: list[str] = field(default_factory=list)
    form_interactions: list[FormInteraction] = field(default_factory=list)
    device_type: str = "desktop"  # desktop, tablet, mobile


# ---------------------------------------------------------------------------
# Derived signals and match results
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class BehaviorSignal:
    """A typed, weighted observation derived from one behavior snapshot.

    ``id`` is the signal's position in the extracted list; rule evaluation
    reports contributing signals by id instead of mutating them.
    """

    id: int
    type: RuleType
    value: Any
    timestamp: str
    weight: float  # intrinsic reliability of the signal class
    contributed: bool = False


@dataclass(frozen=True, slots=True)
class MatchedRule:
    rule_id: str
    rule_type: RuleType
    contribution: float


@dataclass(frozen=True, slots=True)
class AlternativeMatch:
    persona_id: str
    confidence: float


@dataclass(frozen=True, slots=True)
class PersonaMatch:
    """Best persona for a behavior snapshot."""

    persona_id: str
    confidence: float  # 0.0-1.0
    matched_rules: tuple[MatchedRule, ...] = ()
    signals: tuple[BehaviorSignal, ...] = ()  # contributing signals, contributed=True
    alternative_matches: tuple[AlternativeMatch, ...] = ()
