# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Content variant selection: confidence threshold + hysteresis.

Decides which content variant (``"default"`` or a persona id) a page should
show for a persona match, and resolves per-section content for it.

Decision order:
1. no match            -> default (initial_load) or fallback variant (fallback_used)
2. below threshold     -> fallback variant, or keep previous if fallback disabled
3. no section variant  -> default (no_variant_available)
4. hysteresis          -> keep a different non-default persona unless the new
                          confidence beats the last accepted one by the margin
5. accept              -> persona_detected / persona_changed / initial_load
"""

from __future__ import annotations

import dataclasses
import json
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from . import DEFAULT_VARIANT, PersonaMatch
from .config import SelectionConfig
from .errors import ConfigError

logger = logging.getLogger("pageadapt.selector")

SectionContent = Mapping[str, Any]


class SelectionReason(StrEnum):
    PERSONA_DETECTED = "persona_detected"
    PERSONA_CHANGED = "persona_changed"
    CONFIDENCE_INCREASED = "confidence_increased"
    FALLBACK_USED = "fallback_used"
    INITIAL_LOAD = "initial_load"
    MANUAL_OVERRIDE = "manual_override"
    NO_VARIANT_AVAILABLE = "no_variant_available"


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SectionVisibility:
    """Allow/deny lists deciding whether a section renders for a variant."""

    default_visible: bool = True
    hide_for_personas: tuple[str, ...] = ()
    show_only_for_personas: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class RuntimeSection:
    """A page section with default content and per-persona variants."""

    section_id: str
    default_content: SectionContent
    persona_variants: Mapping[str, SectionContent] = field(default_factory=dict)
    visibility: SectionVisibility | None = None
    component_id: str = ""
    order: int = 0
    narrative_role: str = ""
    variant_fields: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class ContentSelectionResult:
    variant_id: str
    was_swapped: bool
    reason: SelectionReason
    confidence: float
    changed_sections: tuple[str, ...] = ()
    previous_variant: str | None = None  # set only when was_swapped

    def to_dict(self) -> dict[str, Any]:
        return {
            "variant_id": self.variant_id,
            "was_swapped": self.was_swapped,
            "previous_variant": self.previous_variant,
            "reason": str(self.reason),
            "confidence": round(self.confidence, 4),
            "changed_sections": list(self.changed_sections),
        }


# ---------------------------------------------------------------------------
# Section helpers
# ---------------------------------------------------------------------------


def get_section_content(section: RuntimeSection, variant_id: str) -> SectionContent:
    """Variant content when the section defines one, else the default content."""
    variants = section.persona_variants or {}
    if variant_id in variants:
        return variants[variant_id]
    return section.default_content


def is_section_visible(section: RuntimeSection, variant_id: str) -> bool:
    vis = section.visibility
    if vis is None:
        return True
    if variant_id in vis.hide_for_personas:
        return False
    if vis.show_only_for_personas:
        return variant_id in vis.show_only_for_personas or variant_id == DEFAULT_VARIANT
    return vis.default_visible


def build_content_map(sections: Sequence[RuntimeSection], variant_id: str) -> dict[str, SectionContent]:
    return {s.section_id: get_section_content(s, variant_id) for s in sections}


def _pick(content: SectionContent, *keys: str) -> Any:
    for key in keys:
        if key in content:
            return content[key]
    return None


def _serialized(value: Any) -> str:
    return json.dumps(value, sort_keys=True, default=str)


def has_content_changed(before: SectionContent, after: SectionContent) -> bool:
    """Shallow check of the headline fields, then serialized feature/bullet lists."""
    for keys in (("headline",), ("subheadline",), ("description",)):
        if _pick(before, *keys) != _pick(after, *keys):
            return True

    cta_before = _pick(before, "primaryCTA", "primary_cta")
    cta_after = _pick(after, "primaryCTA", "primary_cta")
    text_before = cta_before.get("text") if isinstance(cta_before, Mapping) else None
    text_after = cta_after.get("text") if isinstance(cta_after, Mapping) else None
    if text_before != text_after:
        return True

    for key in ("features", "bullets"):
        if _serialized(before.get(key)) != _serialized(after.get(key)):
            return True
    return False


def changed_sections(
    sections: Sequence[RuntimeSection],
    from_variant: str,
    to_variant: str,
    *,
    full: bool = False,
) -> tuple[str, ...]:
    """Ids of sections whose resolved content differs between two variants.

    ``full=True`` compares the whole serialized content instead of the
    headline/feature fields.
    """
    if from_variant == to_variant:
        return ()
    out: list[str] = []
    for section in sections:
        before = get_section_content(section, from_variant)
        after = get_section_content(section, to_variant)
        differs = _serialized(before) != _serialized(after) if full else has_content_changed(before, after)
        if differs:
            out.append(section.section_id)
    return tuple(out)


# ---------------------------------------------------------------------------
# Selector
# ---------------------------------------------------------------------------


class ContentSelector:
    """Stateful variant selector for one page view.

    Remembers the current variant and the confidence of the last accepted
    persona variant (the hysteresis baseline).
    """

    def __init__(self, config: SelectionConfig | None = None) -> None:
        self._config = config or SelectionConfig()
        self._current_variant = DEFAULT_VARIANT
        self._last_confidence = 0.0

    @property
    def last_confidence(self) -> float:
        return self._last_confidence

    def select_content(
        self,
        sections: Sequence[RuntimeSection],
        persona_match: PersonaMatch | None,
        previous_variant: str | None = None,
    ) -> ContentSelectionResult:
        """Decide the variant for ``persona_match`` given the previously shown one.

        ``previous_variant`` defaults to the selector's current variant.
        """
        previous = self._current_variant if previous_variant is None else previous_variant
        variant_id, reason, confidence = self._determine_variant(sections, persona_match, previous)

        if persona_match is not None and variant_id == persona_match.persona_id and reason not in (
            SelectionReason.CONFIDENCE_INCREASED,
            SelectionReason.FALLBACK_USED,
        ):
            self._last_confidence = confidence
        elif variant_id in (DEFAULT_VARIANT, self._config.fallback_variant):
            self._last_confidence = 0.0

        was_swapped = variant_id != previous
        self._current_variant = variant_id

        if was_swapped:
            logger.info("Variant %s -> %s (%s, confidence %.3f)", previous, variant_id, reason, confidence)
        return ContentSelectionResult(
            variant_id=variant_id,
            was_swapped=was_swapped,
            reason=reason,
            confidence=confidence,
            changed_sections=changed_sections(sections, previous, variant_id),
            previous_variant=previous if was_swapped else None,
        )

    def _determine_variant(
        self,
        sections: Sequence[RuntimeSection],
        persona_match: PersonaMatch | None,
        previous: str,
    ) -> tuple[str, SelectionReason, float]:
        cfg = self._config

        if persona_match is None:
            if previous == DEFAULT_VARIANT:
                return DEFAULT_VARIANT, SelectionReason.INITIAL_LOAD, 0.0
            return cfg.fallback_variant, SelectionReason.FALLBACK_USED, 0.0

        persona_id = persona_match.persona_id
        confidence = persona_match.confidence

        if confidence < cfg.confidence_threshold:
            variant = cfg.fallback_variant if cfg.use_fallback else previous
            return variant, SelectionReason.FALLBACK_USED, confidence

        if not any(persona_id in (s.persona_variants or {}) for s in sections):
            return DEFAULT_VARIANT, SelectionReason.NO_VARIANT_AVAILABLE, confidence

        if previous not in (DEFAULT_VARIANT, persona_id):
            if confidence - self._last_confidence < cfg.confidence_hysteresis:
                logger.debug(
                    "Holding %s: %s at %.3f does not beat %.3f by %.2f",
                    previous,
                    persona_id,
                    confidence,
                    self._last_confidence,
                    cfg.confidence_hysteresis,
                )
                return previous, SelectionReason.CONFIDENCE_INCREASED, confidence

        if previous == DEFAULT_VARIANT:
            reason = SelectionReason.PERSONA_DETECTED
        elif previous != persona_id:
            reason = SelectionReason.PERSONA_CHANGED
        else:
            reason = SelectionReason.INITIAL_LOAD
        return persona_id, reason, confidence

    def mark_forced(self, variant_id: str) -> None:
        """Record a manually forced variant without touching the hysteresis baseline."""
        self._current_variant = variant_id

    def get_content_map(self, sections: Sequence[RuntimeSection], variant_id: str) -> dict[str, SectionContent]:
        return build_content_map(sections, variant_id)

    def get_current_variant(self) -> str:
        return self._current_variant

    def get_config(self) -> SelectionConfig:
        return self._config

    def update_config(self, **changes: Any) -> SelectionConfig:
        """Replace individual settings. Invalid values raise ConfigError."""
        try:
            self._config = dataclasses.replace(self._config, **changes)
        except TypeError as e:
            raise ConfigError(f"invalid selection option: {e}") from e
        return self._config

    def reset(self) -> None:
        self._current_variant = DEFAULT_VARIANT
        self._last_confidence = 0.0


def select_content_variant(
    sections: Sequence[RuntimeSection],
    persona_match: PersonaMatch | None,
    config: SelectionConfig | None = None,
) -> ContentSelectionResult:
    """One-shot selection from the default variant."""
    return ContentSelector(config).select_content(sections, persona_match, DEFAULT_VARIANT)


def get_best_content(section: RuntimeSection, persona_id: str | None) -> SectionContent:
    """Persona variant when one is defined and non-empty, else default content."""
    if not persona_id:
        return section.default_content
    return (section.persona_variants or {}).get(persona_id) or section.default_content
