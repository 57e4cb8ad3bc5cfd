# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for pageadapt.loader — host rows and files to engine records."""

from __future__ import annotations

import json

import pytest

from pageadapt import RuleType
from pageadapt.errors import PageAdaptError, PersonaValidationError, SectionValidationError
from pageadapt.loader import (
    behavior_from_row,
    load_behavior,
    load_personas,
    load_sections,
    persona_from_row,
    section_from_row,
)

PERSONA_ROW = {
    "id": "cto",
    "name": "Technical buyer",
    "confidenceScore": 0.8,
    "isActive": True,
    "detectionRules": [
        {"id": "r1", "type": "click_pattern", "condition": "technical_docs", "weight": 0.6},
        {"id": "r2", "type": "search_query", "condition": "dev", "value": "api,sdk", "weight": 0.4},
    ],
}


class TestPersonaRows:
    def test_camel_case_row(self):
        persona = persona_from_row(PERSONA_ROW)
        assert persona.id == "cto"
        assert persona.confidence_score == 0.8
        assert [r.type for r in persona.detection_rules] == [RuleType.CLICK_PATTERN, RuleType.SEARCH_QUERY]
        assert persona.detection_rules[1].value == "api,sdk"

    def test_snake_case_and_defaults(self):
        persona = persona_from_row({"id": "p", "detection_rules": []})
        assert persona.confidence_score == 0.5
        assert persona.is_active
        assert persona.detection_rules == ()

    def test_null_confidence_uses_default(self):
        assert persona_from_row({"id": "p", "confidence_score": None}).confidence_score == 0.5

    def test_numeric_value_becomes_text(self):
        row = {"id": "p", "detection_rules": [{"id": "r", "type": "scroll_behavior", "condition": "s", "value": 60, "weight": 1}]}
        assert persona_from_row(row).detection_rules[0].value == "60"

    @pytest.mark.parametrize(
        "row",
        [
            {"name": "no id"},
            {"id": "p", "confidence_score": 1.5},
            {"id": "p", "confidence_score": "high"},
            {"id": "p", "detection_rules": {"id": "r"}},
            {"id": "p", "detection_rules": [{"type": "referrer", "condition": "x", "weight": 0.5}]},
            {"id": "p", "detection_rules": [{"id": "r", "type": "telepathy", "condition": "x", "weight": 0.5}]},
            {"id": "p", "detection_rules": [{"id": "r", "type": "referrer", "condition": "x", "weight": 2}]},
            {"id": "p", "detection_rules": [{"id": "r", "type": "referrer", "condition": "x"}]},
        ],
    )
    def test_invalid_rows(self, row):
        with pytest.raises(PersonaValidationError):
            persona_from_row(row)

    def test_error_carries_ids(self):
        row = {"id": "p", "detection_rules": [{"id": "r", "type": "nope", "weight": 0.5}]}
        with pytest.raises(PersonaValidationError) as exc_info:
            persona_from_row(row)
        assert (exc_info.value.persona_id, exc_info.value.rule_id) == ("p", "r")

    def test_non_mapping(self):
        with pytest.raises(PersonaValidationError):
            persona_from_row(["cto"])


class TestSectionRows:
    def test_full_row(self):
        section = section_from_row(
            {
                "sectionId": "hero",
                "componentId": "HeroBlock",
                "order": 2,
                "defaultContent": {"headline": "Welcome"},
                "personaVariants": {"cto": {"headline": "Ship faster"}},
                "visibility": {"hideForPersonas": ["buyer"]},
                "variantFields": ["headline"],
            }
        )
        assert section.section_id == "hero"
        assert section.component_id == "HeroBlock"
        assert section.order == 2
        assert section.persona_variants["cto"]["headline"] == "Ship faster"
        assert section.visibility.hide_for_personas == ("buyer",)
        assert section.visibility.default_visible
        assert section.variant_fields == ("headline",)

    def test_plain_id_and_defaults(self):
        section = section_from_row({"id": "s", "default_content": {}, "order": "first"})
        assert section.section_id == "s"
        assert section.persona_variants == {}
        assert section.visibility is None
        assert section.order == 0

    @pytest.mark.parametrize(
        "row",
        [
            {"default_content": {}},
            {"id": "s"},
            {"id": "s", "default_content": "text"},
            {"id": "s", "default_content": {}, "persona_variants": ["cto"]},
            {"id": "s", "default_content": {}, "persona_variants": {"cto": "text"}},
        ],
    )
    def test_invalid_rows(self, row):
        with pytest.raises(SectionValidationError):
            section_from_row(row)


class TestBehaviorRows:
    def test_camel_case_snapshot(self):
        behavior = behavior_from_row(
            {
                "sessionId": "s",
                "clickHistory": [{"elementType": "link", "sectionId": "docs"}, "garbage"],
                "scrollBehavior": [{"maxDepth": 90, "duration": "slow"}],
                "timeOnSections": {"hero": 12},
                "navigationPath": ["/", "/pricing"],
                "referrer": {"url": "https://linkedin.com", "campaign": "q1"},
                "formInteractions": [{"fieldsInteracted": ["email"], "completed": "yes"}],
                "deviceType": "mobile",
            }
        )
        assert behavior.session_id == "s"
        assert len(behavior.click_history) == 1
        assert behavior.click_history[0].section_id == "docs"
        assert behavior.scroll_behavior[0].max_depth == 90
        assert behavior.scroll_behavior[0].duration is None
        assert behavior.referrer.campaign == "q1"
        assert not behavior.form_interactions[0].completed
        assert behavior.device_type == "mobile"

    def test_string_referrer(self):
        assert behavior_from_row({"referrer": "https://x.com"}).referrer.url == "https://x.com"

    def test_non_mapping_is_empty(self):
        behavior = behavior_from_row(None)
        assert behavior.click_history == []
        assert behavior.device_type == "desktop"


class TestFiles:
    def test_personas_from_yaml(self, tmp_path):
        path = tmp_path / "personas.yaml"
        path.write_text(
            "personas:\n"
            "  - id: buyer\n"
            "    confidence_score: 0.9\n"
            "    detection_rules:\n"
            "      - {id: r1, type: click_pattern, condition: pricing, weight: 0.8}\n"
        )
        personas = load_personas(path)
        assert [p.id for p in personas] == ["buyer"]
        assert personas[0].detection_rules[0].weight == 0.8

    def test_personas_from_json_list(self, tmp_path):
        path = tmp_path / "personas.json"
        path.write_text(json.dumps([PERSONA_ROW]))
        assert load_personas(path)[0].id == "cto"

    def test_sections_sorted_by_order(self, tmp_path):
        path = tmp_path / "sections.json"
        path.write_text(
            json.dumps(
                {
                    "sections": [
                        {"id": "footer", "order": 9, "default_content": {}},
                        {"id": "hero", "order": 1, "default_content": {}},
                    ]
                }
            )
        )
        assert [s.section_id for s in load_sections(path)] == ["hero", "footer"]

    def test_duplicate_section_ids(self, tmp_path):
        path = tmp_path / "sections.yaml"
        path.write_text("- {id: a, default_content: {}}\n- {id: a, default_content: {}}\n")
        with pytest.raises(SectionValidationError):
            load_sections(path)

    def test_behavior_key_unwrapped(self, tmp_path):
        path = tmp_path / "behavior.yaml"
        path.write_text("behavior:\n  session_id: s-9\n  search_queries: [pricing]\n")
        behavior = load_behavior(path)
        assert behavior.session_id == "s-9"
        assert behavior.search_queries == ["pricing"]

    def test_empty_file(self, tmp_path):
        path = tmp_path / "personas.yaml"
        path.write_text("")
        assert load_personas(path) == []

    def test_missing_file(self, tmp_path):
        with pytest.raises(PageAdaptError):
            load_personas(tmp_path / "missing.yaml")

    def test_bad_json(self, tmp_path):
        path = tmp_path / "personas.json"
        path.write_text("{not json")
        with pytest.raises(PageAdaptError):
            load_personas(path)

    def test_scalar_document(self, tmp_path):
        path = tmp_path / "personas.yaml"
        path.write_text("42\n")
        with pytest.raises(PageAdaptError):
            load_personas(path)
