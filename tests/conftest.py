# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Shared test configuration and fixtures."""

try:
    import pageadapt  # noqa: F401
except ImportError:
    raise ImportError("pageadapt is not installed. Run: pip install -e '.[dev]'") from None

import pytest

from pageadapt import (
    ClickEvent,
    DetectionRule,
    Persona,
    PersonaMatch,
    RuleType,
    UserBehavior,
)
from pageadapt.config import AnimationConfig
from pageadapt.selector import RuntimeSection, SectionVisibility


@pytest.fixture(autouse=True)
def _reset_telemetry():
    """Telemetry singleton is module state; isolate every test."""
    from pageadapt import telemetry

    telemetry._reset_for_testing()
    yield
    telemetry._reset_for_testing()


@pytest.fixture
def make_match():
    def _make(persona_id: str, confidence: float) -> PersonaMatch:
        return PersonaMatch(persona_id=persona_id, confidence=confidence)

    return _make


@pytest.fixture
def pricing_clicks():
    def _make(n: int = 4) -> list[ClickEvent]:
        return [
            ClickEvent(element_type="button", section_id="pricing-table", timestamp=f"2026-01-01T00:00:0{i}Z")
            for i in range(n)
        ]

    return _make


@pytest.fixture
def pricing_persona() -> Persona:
    return Persona(
        id="buyer",
        detection_rules=(DetectionRule(id="r-pricing", type=RuleType.CLICK_PATTERN, condition="pricing", weight=0.8),),
        confidence_score=0.9,
    )


@pytest.fixture
def cto_persona() -> Persona:
    return Persona(
        id="cto",
        detection_rules=(
            DetectionRule(id="r-docs", type=RuleType.CLICK_PATTERN, condition="technical_docs", weight=0.6),
            DetectionRule(id="r-search", type=RuleType.SEARCH_QUERY, condition="api, sdk", weight=0.4),
        ),
        confidence_score=1.0,
    )


@pytest.fixture
def buyer_behavior(pricing_clicks) -> UserBehavior:
    return UserBehavior(session_id="s-1", visitor_id="v-1", click_history=pricing_clicks(4))


@pytest.fixture
def sections() -> list[RuntimeSection]:
    return [
        RuntimeSection(
            section_id="hero",
            default_content={"headline": "Welcome", "primaryCTA": {"text": "Start"}},
            persona_variants={
                "cto": {"headline": "Ship faster", "primaryCTA": {"text": "Read the docs"}},
                "buyer": {"headline": "Simple pricing", "primaryCTA": {"text": "See plans"}},
            },
        ),
        RuntimeSection(
            section_id="features",
            default_content={"headline": "Features", "features": [{"title": "Fast"}]},
            persona_variants={"cto": {"headline": "Features", "features": [{"title": "Typed API"}]}},
        ),
        RuntimeSection(
            section_id="footer",
            default_content={"headline": "Contact us"},
            visibility=SectionVisibility(hide_for_personas=("buyer",)),
        ),
    ]


@pytest.fixture
def no_wait() -> AnimationConfig:
    return AnimationConfig(enabled=False)
