# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Host rows / files -> persona, section and behavior records.

Rows may use camelCase (as stored by the product) or snake_case keys.
Persona and section rows are validated here, at the host boundary;
behavior rows come from tracking and are converted leniently.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from . import (
    ClickEvent,
    DetectionRule,
    FormInteraction,
    Persona,
    ReferrerData,
    RuleType,
    ScrollRecord,
    UserBehavior,
)
from .errors import PageAdaptError, PersonaValidationError, SectionValidationError
from .selector import RuntimeSection, SectionVisibility

logger = logging.getLogger("pageadapt.loader")

DEFAULT_CONFIDENCE_SCORE = 0.5


def _get(row: Mapping[str, Any], snake: str, camel: str | None = None, default: Any = None) -> Any:
    if snake in row:
        return row[snake]
    if camel is not None and camel in row:
        return row[camel]
    return default


def _unit(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and 0.0 <= value <= 1.0


def _str_list(value: Any) -> tuple[str, ...]:
    if not isinstance(value, (list, tuple)):
        return ()
    return tuple(str(v) for v in value)


# ---------------------------------------------------------------------------
# Personas
# ---------------------------------------------------------------------------


def rule_from_row(row: Mapping[str, Any], *, persona_id: str = "") -> DetectionRule:
    rule_id = row.get("id")
    if not rule_id:
        raise PersonaValidationError("detection rule without id", persona_id=persona_id)
    rule_id = str(rule_id)

    try:
        rtype = RuleType(row.get("type"))
    except ValueError:
        raise PersonaValidationError(
            f"rule {rule_id}: unknown type {row.get('type')!r}", persona_id=persona_id, rule_id=rule_id
        ) from None

    weight = row.get("weight")
    if not _unit(weight):
        raise PersonaValidationError(
            f"rule {rule_id}: weight must be within [0, 1], got {weight!r}", persona_id=persona_id, rule_id=rule_id
        )

    value = row.get("value")
    return DetectionRule(
        id=rule_id,
        type=rtype,
        condition=str(row.get("condition") or ""),
        value=None if value is None else str(value),
        weight=float(weight),
        description=str(row.get("description") or ""),
    )


def persona_from_row(row: Mapping[str, Any]) -> Persona:
    """Validate a persona row.

    Raises:
        PersonaValidationError: missing id, bad confidence, or an invalid rule.
    """
    if not isinstance(row, Mapping):
        raise PersonaValidationError(f"persona row must be a mapping, got {type(row).__name__}")
    persona_id = row.get("id")
    if not persona_id:
        raise PersonaValidationError("persona without id")
    persona_id = str(persona_id)

    confidence = _get(row, "confidence_score", "confidenceScore")
    if confidence is None:
        confidence = DEFAULT_CONFIDENCE_SCORE
    if not _unit(confidence):
        raise PersonaValidationError(
            f"persona {persona_id}: confidence_score must be within [0, 1], got {confidence!r}", persona_id=persona_id
        )

    rules_raw = _get(row, "detection_rules", "detectionRules") or []
    if not isinstance(rules_raw, (list, tuple)):
        raise PersonaValidationError(f"persona {persona_id}: detection rules must be a list", persona_id=persona_id)

    return Persona(
        id=persona_id,
        detection_rules=tuple(rule_from_row(r, persona_id=persona_id) for r in rules_raw),
        confidence_score=float(confidence),
        is_active=bool(_get(row, "is_active", "isActive", True)),
        name=str(row.get("name") or ""),
    )


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------


def _visibility_from_row(row: Any) -> SectionVisibility | None:
    if not isinstance(row, Mapping):
        return None
    return SectionVisibility(
        default_visible=bool(_get(row, "default_visible", "defaultVisible", True)),
        hide_for_personas=_str_list(_get(row, "hide_for_personas", "hideForPersonas")),
        show_only_for_personas=_str_list(_get(row, "show_only_for_personas", "showOnlyForPersonas")),
    )


def section_from_row(row: Mapping[str, Any]) -> RuntimeSection:
    """Validate a runtime section row.

    Raises:
        SectionValidationError: missing id or default content, or malformed variants.
    """
    if not isinstance(row, Mapping):
        raise SectionValidationError(f"section row must be a mapping, got {type(row).__name__}")
    section_id = _get(row, "section_id", "sectionId") or row.get("id")
    if not section_id:
        raise SectionValidationError("section without id")
    section_id = str(section_id)

    default_content = _get(row, "default_content", "defaultContent")
    if not isinstance(default_content, Mapping):
        raise SectionValidationError(f"section {section_id}: default content must be a mapping", section_id=section_id)

    variants = _get(row, "persona_variants", "personaVariants") or {}
    if not isinstance(variants, Mapping) or not all(isinstance(v, Mapping) for v in variants.values()):
        raise SectionValidationError(
            f"section {section_id}: persona variants must map persona ids to content", section_id=section_id
        )

    order = row.get("order", 0)
    return RuntimeSection(
        section_id=section_id,
        default_content=dict(default_content),
        persona_variants={str(k): dict(v) for k, v in variants.items()},
        visibility=_visibility_from_row(row.get("visibility")),
        component_id=str(_get(row, "component_id", "componentId") or ""),
        order=order if isinstance(order, int) else 0,
        narrative_role=str(_get(row, "narrative_role", "narrativeRole") or ""),
        variant_fields=_str_list(_get(row, "variant_fields", "variantFields")),
    )


# ---------------------------------------------------------------------------
# Behavior
# ---------------------------------------------------------------------------


def _mappings(value: Any) -> list[Mapping[str, Any]]:
    if not isinstance(value, (list, tuple)):
        return []
    return [v for v in value if isinstance(v, Mapping)]


def _number(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value


def behavior_from_row(row: Mapping[str, Any]) -> UserBehavior:
    """Convert a tracking snapshot. Malformed entries are dropped, never raised."""
    if not isinstance(row, Mapping):
        logger.debug("Behavior row is not a mapping (%s); using empty snapshot", type(row).__name__)
        return UserBehavior()

    clicks = [
        ClickEvent(
            element_type=str(_get(c, "element_type", "elementType") or ""),
            element_id=_get(c, "element_id", "elementId"),
            section_id=_get(c, "section_id", "sectionId"),
            timestamp=str(c.get("timestamp") or ""),
        )
        for c in _mappings(_get(row, "click_history", "clickHistory"))
    ]
    scrolls = [
        ScrollRecord(
            page_id=str(_get(s, "page_id", "pageId") or ""),
            max_depth=_number(_get(s, "max_depth", "maxDepth")),
            duration=_number(s.get("duration")),
        )
        for s in _mappings(_get(row, "scroll_behavior", "scrollBehavior"))
    ]
    forms = [
        FormInteraction(
            form_id=str(_get(f, "form_id", "formId") or ""),
            fields_interacted=list(_str_list(_get(f, "fields_interacted", "fieldsInteracted"))),
            completed=f.get("completed") is True,
        )
        for f in _mappings(_get(row, "form_interactions", "formInteractions"))
    ]

    dwell_raw = _get(row, "time_on_sections", "timeOnSections")
    dwell = {str(k): v for k, v in dwell_raw.items()} if isinstance(dwell_raw, Mapping) else {}

    ref_raw = row.get("referrer")
    if isinstance(ref_raw, Mapping):
        referrer = ReferrerData(
            url=ref_raw.get("url"),
            source=ref_raw.get("source"),
            medium=ref_raw.get("medium"),
            campaign=ref_raw.get("campaign"),
        )
    elif isinstance(ref_raw, str) and ref_raw:
        referrer = ReferrerData(url=ref_raw)
    else:
        referrer = ReferrerData()

    return UserBehavior(
        session_id=str(_get(row, "session_id", "sessionId") or ""),
        visitor_id=str(_get(row, "visitor_id", "visitorId") or ""),
        click_history=clicks,
        scroll_behavior=scrolls,
        time_on_sections=dwell,
        navigation_path=list(_str_list(_get(row, "navigation_path", "navigationPath"))),
        referrer=referrer,
        search_queries=list(_str_list(_get(row, "search_queries", "searchQueries"))),
        form_interactions=forms,
        device_type=str(_get(row, "device_type", "deviceType") or "desktop"),
    )


# ---------------------------------------------------------------------------
# Files
# ---------------------------------------------------------------------------


def read_document(path: str | Path) -> Any:
    """Parse a JSON (``.json``) or YAML (anything else) document.

    Raises:
        PageAdaptError: unreadable or unparseable file.
    """
    p = Path(path)
    try:
        text = p.read_text(encoding="utf-8")
        if p.suffix.lower() == ".json":
            return json.loads(text)
        return yaml.safe_load(text)
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise PageAdaptError(f"cannot read {p}: {e}") from e


def _items(doc: Any, key: str) -> list[Any]:
    if isinstance(doc, Mapping):
        doc = doc.get(key, [])
    if doc is None:
        return []
    if not isinstance(doc, list):
        raise PageAdaptError(f"expected a list of {key}")
    return doc


def load_personas(path: str | Path) -> list[Persona]:
    """Personas from a file holding a list or a ``personas:`` key."""
    personas = [persona_from_row(r) for r in _items(read_document(path), "personas")]
    logger.debug("Loaded %d personas from %s", len(personas), path)
    return personas


def load_sections(path: str | Path) -> list[RuntimeSection]:
    """Sections from a file holding a list or a ``sections:`` key, ordered by ``order``."""
    sections = [section_from_row(r) for r in _items(read_document(path), "sections")]
    seen: set[str] = set()
    for s in sections:
        if s.section_id in seen:
            raise SectionValidationError(f"duplicate section id {s.section_id!r}", section_id=s.section_id)
        seen.add(s.section_id)
    sections.sort(key=lambda s: s.order)
    logger.debug("Loaded %d sections from %s", len(sections), path)
    return sections


def load_behavior(path: str | Path) -> UserBehavior:
    """Behavior snapshot from a file holding the snapshot or a ``behavior:`` key."""
    doc = read_document(path)
    if isinstance(doc, Mapping) and isinstance(doc.get("behavior"), Mapping):
        doc = doc["behavior"]
    return behavior_from_row(doc)
