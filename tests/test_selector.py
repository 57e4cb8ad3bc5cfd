# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for pageadapt.selector — threshold/hysteresis policy and section resolution."""

from __future__ import annotations

import pytest

from pageadapt.config import SelectionConfig
from pageadapt.errors import ConfigError
from pageadapt.selector import (
    ContentSelector,
    RuntimeSection,
    SectionVisibility,
    SelectionReason,
    changed_sections,
    get_best_content,
    get_section_content,
    has_content_changed,
    is_section_visible,
    select_content_variant,
)


class TestDecisionPolicy:
    def test_no_match_from_default_is_initial_load(self, sections):
        result = ContentSelector().select_content(sections, None, "default")
        assert result.variant_id == "default"
        assert result.reason is SelectionReason.INITIAL_LOAD
        assert result.confidence == 0
        assert not result.was_swapped

    def test_no_match_from_persona_uses_fallback(self, sections):
        selector = ContentSelector(SelectionConfig(fallback_variant="buyer"))
        result = selector.select_content(sections, None, "cto")
        assert result.variant_id == "buyer"
        assert result.reason is SelectionReason.FALLBACK_USED
        assert result.was_swapped
        assert result.previous_variant == "cto"

    def test_low_confidence_falls_back_to_default(self, sections, make_match):
        result = ContentSelector().select_content(sections, make_match("cto", 0.3), "default")
        assert result.variant_id == "default"
        assert result.reason is SelectionReason.FALLBACK_USED

    def test_low_confidence_without_fallback_keeps_previous(self, sections, make_match):
        selector = ContentSelector(SelectionConfig(use_fallback=False))
        result = selector.select_content(sections, make_match("buyer", 0.3), "cto")
        assert result.variant_id == "cto"
        assert result.reason is SelectionReason.FALLBACK_USED
        assert not result.was_swapped

    def test_no_variant_available(self, sections, make_match):
        result = ContentSelector().select_content(sections, make_match("cfo", 0.9), "default")
        assert result.variant_id == "default"
        assert result.reason is SelectionReason.NO_VARIANT_AVAILABLE

    def test_persona_detected(self, sections, make_match):
        result = ContentSelector().select_content(sections, make_match("cto", 0.7), "default")
        assert result.variant_id == "cto"
        assert result.reason is SelectionReason.PERSONA_DETECTED
        assert result.was_swapped
        assert result.previous_variant == "default"

    def test_same_persona_again_is_initial_load(self, sections, make_match):
        selector = ContentSelector()
        selector.select_content(sections, make_match("cto", 0.7), "default")
        result = selector.select_content(sections, make_match("cto", 0.7), "cto")
        assert result.reason is SelectionReason.INITIAL_LOAD
        assert not result.was_swapped
        assert result.previous_variant is None
        assert result.changed_sections == ()


class TestHysteresis:
    def test_small_gain_keeps_previous(self, sections, make_match):
        selector = ContentSelector()
        selector.select_content(sections, make_match("cto", 0.6), "default")
        result = selector.select_content(sections, make_match("buyer", 0.62), "cto")
        assert result.variant_id == "cto"
        assert result.reason is SelectionReason.CONFIDENCE_INCREASED
        assert not result.was_swapped

    def test_large_gain_switches(self, sections, make_match):
        selector = ContentSelector()
        selector.select_content(sections, make_match("cto", 0.6), "default")
        result = selector.select_content(sections, make_match("buyer", 0.66), "cto")
        assert result.variant_id == "buyer"
        assert result.reason is SelectionReason.PERSONA_CHANGED

    def test_held_decision_does_not_move_baseline(self, sections, make_match):
        selector = ContentSelector()
        selector.select_content(sections, make_match("cto", 0.6), "default")
        for conf in (0.61, 0.62, 0.63, 0.64):
            assert selector.select_content(sections, make_match("buyer", conf), "cto").variant_id == "cto"
        assert selector.last_confidence == 0.6
        assert selector.select_content(sections, make_match("buyer", 0.65), "cto").variant_id == "buyer"

    def test_default_resets_baseline(self, sections, make_match):
        selector = ContentSelector()
        selector.select_content(sections, make_match("cto", 0.9), "default")
        selector.select_content(sections, make_match("cto", 0.2), "cto")
        assert selector.get_current_variant() == "default"
        assert selector.last_confidence == 0
        result = selector.select_content(sections, make_match("buyer", 0.55), "default")
        assert result.variant_id == "buyer"

    def test_custom_fallback_resets_baseline(self, sections, make_match):
        selector = ContentSelector(SelectionConfig(fallback_variant="generic"))
        selector.select_content(sections, make_match("cto", 0.9))
        fallback = selector.select_content(sections, make_match("cto", 0.3))
        assert fallback.variant_id == "generic"
        assert selector.last_confidence == 0

        result = selector.select_content(sections, make_match("buyer", 0.7))
        assert result.variant_id == "buyer"
        assert result.reason is SelectionReason.PERSONA_CHANGED
        assert result.previous_variant == "generic"


class TestIdempotence:
    def test_repeat_with_same_inputs(self, sections, make_match):
        selector = ContentSelector()
        first = selector.select_content(sections, make_match("cto", 0.8), "cto")
        second = selector.select_content(sections, make_match("cto", 0.8), "cto")
        assert first == second
        assert not second.was_swapped

    def test_default_previous_from_selector_state(self, sections, make_match):
        selector = ContentSelector()
        selector.select_content(sections, make_match("cto", 0.8))
        assert selector.get_current_variant() == "cto"
        assert not selector.select_content(sections, make_match("cto", 0.8)).was_swapped


class TestChangedSections:
    def test_only_sections_with_different_content(self, sections, make_match):
        result = ContentSelector().select_content(sections, make_match("cto", 0.8), "default")
        assert result.changed_sections == ("hero", "features")

    def test_feature_lists_compared_by_value(self):
        before = {"headline": "A", "features": [{"title": "x", "icon": "y"}]}
        after = {"headline": "A", "features": [{"icon": "y", "title": "x"}]}
        assert not has_content_changed(before, after)
        assert has_content_changed(before, {"headline": "A", "features": [{"title": "z"}]})

    def test_cta_text_camel_or_snake(self):
        assert not has_content_changed({"primaryCTA": {"text": "Go"}}, {"primary_cta": {"text": "Go"}})
        assert has_content_changed({"primaryCTA": {"text": "Go"}}, {"primaryCTA": {"text": "Stop"}})

    def test_untracked_fields_ignored_unless_full(self):
        section = RuntimeSection("s", {"headline": "A", "image": "a.png"}, {"p": {"headline": "A", "image": "b.png"}})
        assert changed_sections([section], "default", "p") == ()
        assert changed_sections([section], "default", "p", full=True) == ("s",)


class TestSectionResolution:
    def test_variant_or_default(self, sections):
        hero = sections[0]
        assert get_section_content(hero, "cto")["headline"] == "Ship faster"
        assert get_section_content(hero, "nobody") is hero.default_content
        assert get_section_content(sections[2], "cto") is sections[2].default_content

    def test_best_content(self, sections):
        hero = sections[0]
        assert get_best_content(hero, None) is hero.default_content
        assert get_best_content(hero, "buyer")["headline"] == "Simple pricing"
        empty = RuntimeSection("e", {"headline": "D"}, {"p": {}})
        assert get_best_content(empty, "p") == {"headline": "D"}

    def test_content_map(self, sections):
        content = ContentSelector().get_content_map(sections, "buyer")
        assert list(content) == ["hero", "features", "footer"]
        assert content["hero"]["headline"] == "Simple pricing"
        assert content["features"]["headline"] == "Features"


class TestVisibility:
    def test_no_rule_is_visible(self, sections):
        assert is_section_visible(sections[0], "anyone")

    def test_hidden_for_persona(self, sections):
        assert not is_section_visible(sections[2], "buyer")
        assert is_section_visible(sections[2], "cto")

    def test_show_only(self):
        section = RuntimeSection("s", {}, visibility=SectionVisibility(show_only_for_personas=("cto",)))
        assert is_section_visible(section, "cto")
        assert is_section_visible(section, "default")
        assert not is_section_visible(section, "buyer")

    def test_default_visible_flag(self):
        section = RuntimeSection("s", {}, visibility=SectionVisibility(default_visible=False))
        assert not is_section_visible(section, "default")

    def test_hide_wins_over_show_only(self):
        vis = SectionVisibility(hide_for_personas=("cto",), show_only_for_personas=("cto",))
        assert not is_section_visible(RuntimeSection("s", {}, visibility=vis), "cto")


class TestSelectorUtilities:
    def test_update_config(self, sections, make_match):
        selector = ContentSelector()
        selector.update_config(confidence_threshold=0.9)
        assert selector.get_config().confidence_threshold == 0.9
        assert selector.select_content(sections, make_match("cto", 0.8)).variant_id == "default"

    def test_update_config_rejects_bad_values(self):
        selector = ContentSelector()
        with pytest.raises(ConfigError):
            selector.update_config(confidence_threshold=1.5)
        with pytest.raises(ConfigError):
            selector.update_config(nonsense=True)

    def test_reset(self, sections, make_match):
        selector = ContentSelector()
        selector.select_content(sections, make_match("cto", 0.8))
        selector.reset()
        assert selector.get_current_variant() == "default"
        assert selector.last_confidence == 0

    def test_one_shot_helper(self, sections, make_match):
        result = select_content_variant(sections, make_match("buyer", 0.7))
        assert result.variant_id == "buyer"
        assert result.reason is SelectionReason.PERSONA_DETECTED

    def test_result_to_dict(self, sections, make_match):
        d = select_content_variant(sections, make_match("buyer", 0.7)).to_dict()
        assert d["reason"] == "persona_detected"
        assert d["changed_sections"] == ["hero"]
