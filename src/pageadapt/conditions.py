# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Detection rule conditions: keyword micro-language -> parsed variants.

A rule's free-text ``condition`` is interpreted per rule type by keyword
substring search (not a grammar). Each rule is parsed once into a
``Condition`` when personas are loaded; evaluation is a pure function that
returns whether the rule matched and which signals satisfied it.

Keywords checked per type (first hit wins, in this order):
  click_pattern        technical_docs, pricing, case_studies, else click count >= value (3)
  scroll_behavior      quick_scan, deep_read, else max depth >= value (50)
  time_on_page         specs|technical restricts to spec/tech sections; dwell >= value (30s)
  referrer             linkedin, google, twitter|x.com, else condition minus from_/_site
  utm_parameter        source, medium, campaign field contains value
  content_interaction  comparison, demo|video
  form_field           completed, company_size, else any field touched
  page_sequence        educational, pricing_first, features_first
  device_type          device equals value (or condition)
  search_query         any comma-separated keyword of value (or condition)

Malformed input never raises: unparseable numeric values and missing
signal fields evaluate to "not matched".
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass
from enum import StrEnum

from . import BehaviorSignal, DetectionRule, RuleType, UserBehavior

logger = logging.getLogger("pageadapt.conditions")


class ConditionKind(StrEnum):
    CLICK_TECHNICAL_DOCS = "click_technical_docs"
    CLICK_PRICING = "click_pricing"
    CLICK_CASE_STUDIES = "click_case_studies"
    CLICK_COUNT = "click_count"
    SCROLL_QUICK_SCAN = "scroll_quick_scan"
    SCROLL_DEEP_READ = "scroll_deep_read"
    SCROLL_MIN_DEPTH = "scroll_min_depth"
    DWELL_TECHNICAL = "dwell_technical"
    DWELL_ANY = "dwell_any"
    REFERRER_LINKEDIN = "referrer_linkedin"
    REFERRER_GOOGLE = "referrer_google"
    REFERRER_TWITTER = "referrer_twitter"
    REFERRER_CONTAINS = "referrer_contains"
    UTM_FIELDS = "utm_fields"
    CONTENT_COMPARISON = "content_comparison"
    CONTENT_DEMO = "content_demo"
    FORM_COMPLETED = "form_completed"
    FORM_COMPANY_SIZE = "form_company_size"
    FORM_ANY_FIELD = "form_any_field"
    PATH_EDUCATIONAL = "path_educational"
    PATH_PRICING_FIRST = "path_pricing_first"
    PATH_FEATURES_FIRST = "path_features_first"
    DEVICE_IS = "device_is"
    SEARCH_KEYWORDS = "search_keywords"
    NEVER = "never"  # recognised type, unrecognised keyword


@dataclass(frozen=True, slots=True)
class Condition:
    """Parsed form of a rule condition."""

    kind: ConditionKind
    threshold: int | None = None  # None when the rule value is not a number
    keywords: tuple[str, ...] = ()  # substrings / exact device / utm needle
    fields: tuple[str, ...] = ()  # utm fields named by the condition, in check order


@dataclass(frozen=True, slots=True)
class CompiledRule:
    rule: DetectionRule
    condition: Condition


@dataclass(frozen=True, slots=True)
class RuleEvaluation:
    matched: bool
    signal_ids: tuple[int, ...] = ()  # signals that satisfied the condition


_NO_MATCH = RuleEvaluation(matched=False)

_LEADING_INT_RE = re.compile(r"\s*([+-]?\d+)")

_DEFAULT_CLICK_COUNT = 3
_DEFAULT_SCROLL_DEPTH = 50
_DEFAULT_DWELL_SECONDS = 30

_UTM_FIELDS = ("source", "medium", "campaign")


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def parse_int(text: str | None, default: int) -> int | None:
    """Leading-integer parse: ``"45s"`` -> 45, ``""``/None -> default, ``"abc"`` -> None."""
    if not text:
        return default
    m = _LEADING_INT_RE.match(text)
    return int(m.group(1)) if m else None


def parse_condition(rule: DetectionRule) -> Condition:
    """Parse a rule's condition once, according to its type."""
    cond = (rule.condition or "").lower()
    value = rule.value
    try:
        rtype = RuleType(rule.type)
    except ValueError:
        return Condition(ConditionKind.NEVER)

    if rtype is RuleType.CLICK_PATTERN:
        if "technical_docs" in cond:
            return Condition(ConditionKind.CLICK_TECHNICAL_DOCS)
        if "pricing" in cond:
            return Condition(ConditionKind.CLICK_PRICING)
        if "case_studies" in cond:
            return Condition(ConditionKind.CLICK_CASE_STUDIES)
        return Condition(ConditionKind.CLICK_COUNT, threshold=_threshold(rule, _DEFAULT_CLICK_COUNT))

    if rtype is RuleType.SCROLL_BEHAVIOR:
        if "quick_scan" in cond:
            return Condition(ConditionKind.SCROLL_QUICK_SCAN)
        if "deep_read" in cond:
            return Condition(ConditionKind.SCROLL_DEEP_READ)
        return Condition(ConditionKind.SCROLL_MIN_DEPTH, threshold=_threshold(rule, _DEFAULT_SCROLL_DEPTH))

    if rtype is RuleType.TIME_ON_PAGE:
        threshold = _threshold(rule, _DEFAULT_DWELL_SECONDS)
        if "specs" in cond or "technical" in cond:
            return Condition(ConditionKind.DWELL_TECHNICAL, threshold=threshold)
        return Condition(ConditionKind.DWELL_ANY, threshold=threshold)

    if rtype is RuleType.REFERRER:
        if "linkedin" in cond:
            return Condition(ConditionKind.REFERRER_LINKEDIN, keywords=("linkedin",))
        if "google" in cond:
            return Condition(ConditionKind.REFERRER_GOOGLE, keywords=("google",))
        if "twitter" in cond or "x.com" in cond:
            return Condition(ConditionKind.REFERRER_TWITTER, keywords=("twitter", "x.com"))
        needle = cond.replace("from_", "", 1).replace("_site", "", 1)
        return Condition(ConditionKind.REFERRER_CONTAINS, keywords=(needle,))

    if rtype is RuleType.UTM_PARAMETER:
        fields = tuple(f for f in _UTM_FIELDS if f in cond)
        return Condition(ConditionKind.UTM_FIELDS, keywords=((value or "").lower(),), fields=fields)

    if rtype is RuleType.CONTENT_INTERACTION:
        if "comparison" in cond:
            return Condition(ConditionKind.CONTENT_COMPARISON)
        if "demo" in cond or "video" in cond:
            return Condition(ConditionKind.CONTENT_DEMO)
        return Condition(ConditionKind.NEVER)

    if rtype is RuleType.FORM_FIELD:
        if "completed" in cond:
            return Condition(ConditionKind.FORM_COMPLETED)
        if "company_size" in cond:
            return Condition(ConditionKind.FORM_COMPANY_SIZE)
        return Condition(ConditionKind.FORM_ANY_FIELD)

    if rtype is RuleType.PAGE_SEQUENCE:
        if "educational" in cond:
            return Condition(ConditionKind.PATH_EDUCATIONAL, keywords=("blog", "guide", "learn"))
        if "pricing_first" in cond:
            return Condition(ConditionKind.PATH_PRICING_FIRST, keywords=("pricing",))
        if "features_first" in cond:
            return Condition(ConditionKind.PATH_FEATURES_FIRST, keywords=("features",))
        return Condition(ConditionKind.NEVER)

    if rtype is RuleType.DEVICE_TYPE:
        return Condition(ConditionKind.DEVICE_IS, keywords=((value or rule.condition or "").lower(),))

    # search_query
    keywords = tuple(k.strip() for k in (value or rule.condition or "").lower().split(","))
    return Condition(ConditionKind.SEARCH_KEYWORDS, keywords=keywords)


def compile_rule(rule: DetectionRule) -> CompiledRule:
    return CompiledRule(rule=rule, condition=parse_condition(rule))


def _threshold(rule: DetectionRule, default: int) -> int | None:
    threshold = parse_int(rule.value, default)
    if threshold is None:
        logger.debug("Rule %s: value %r is not a number, rule can never match", rule.id, rule.value)
    return threshold


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------


def evaluate_rule(
    compiled: CompiledRule,
    signals: Sequence[BehaviorSignal],
    behavior: UserBehavior,
) -> RuleEvaluation:
    """Evaluate one compiled rule against the signals of its type."""
    c = compiled.condition
    relevant = [s for s in signals if s.type == compiled.rule.type]
    kind = c.kind

    if kind is ConditionKind.NEVER:
        return _NO_MATCH

    if kind is ConditionKind.CLICK_COUNT:
        if c.threshold is None or len(behavior.click_history or ()) < c.threshold:
            return _NO_MATCH
        return RuleEvaluation(matched=True, signal_ids=tuple(s.id for s in relevant))

    if kind is ConditionKind.CONTENT_COMPARISON:
        hit = any(_contains(_attr(c_, "section_id"), "comparison", "versus") for c_ in behavior.click_history or ())
        return RuleEvaluation(matched=hit)

    if kind is ConditionKind.CONTENT_DEMO:
        hit = any(
            _attr(c_, "element_type") == "video" or _contains(_attr(c_, "section_id"), "demo")
            for c_ in behavior.click_history or ()
        )
        return RuleEvaluation(matched=hit)

    if kind is ConditionKind.DEVICE_IS:
        return RuleEvaluation(matched=(behavior.device_type or "").lower() == c.keywords[0])

    predicate = _SIGNAL_PREDICATES[kind]
    ids = tuple(s.id for s in relevant if predicate(c, s.value))
    return RuleEvaluation(matched=bool(ids), signal_ids=ids)


def _attr(obj: object, name: str) -> object:
    return getattr(obj, name, None)


def _contains(text: object, *needles: str) -> bool:
    return isinstance(text, str) and any(n in text for n in needles)


def _num(value: object) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def _click_technical_docs(c: Condition, v: object) -> bool:
    return _attr(v, "element_type") == "link" and _contains(_attr(v, "section_id"), "docs", "technical")


def _click_pricing(c: Condition, v: object) -> bool:
    return _contains(_attr(v, "section_id"), "pricing")


def _click_case_studies(c: Condition, v: object) -> bool:
    return _contains(_attr(v, "section_id"), "case", "testimonial")


def _scroll_quick_scan(c: Condition, v: object) -> bool:
    depth, duration = _num(_attr(v, "max_depth")), _num(_attr(v, "duration"))
    return bool(depth) and bool(duration) and depth > 70 and duration < 30


def _scroll_deep_read(c: Condition, v: object) -> bool:
    depth, duration = _num(_attr(v, "max_depth")), _num(_attr(v, "duration"))
    return bool(depth) and bool(duration) and depth > 80 and duration > 120


def _scroll_min_depth(c: Condition, v: object) -> bool:
    depth = _num(_attr(v, "max_depth"))
    return c.threshold is not None and bool(depth) and depth >= c.threshold


def _dwell(c: Condition, v: object) -> bool:
    if c.threshold is None:
        return False
    if c.kind is ConditionKind.DWELL_TECHNICAL and not _contains(_attr(v, "section_id"), "spec", "tech"):
        return False
    duration = _num(_attr(v, "duration"))
    return duration is not None and duration >= c.threshold


def _referrer(c: Condition, v: object) -> bool:
    referrer = str(_attr(v, "url") or _attr(v, "source") or "").lower()
    return any(k in referrer for k in c.keywords)


def _utm(c: Condition, v: object) -> bool:
    for name in c.fields:
        field_value = _attr(v, name)
        if field_value:
            return c.keywords[0] in str(field_value).lower()
    return False


def _form_completed(c: Condition, v: object) -> bool:
    return _attr(v, "completed") is True


def _form_company_size(c: Condition, v: object) -> bool:
    fields = _attr(v, "fields_interacted") or ()
    return any(_contains(f, "company", "size") for f in fields)


def _form_any_field(c: Condition, v: object) -> bool:
    return len(_attr(v, "fields_interacted") or ()) > 0


def _path_starts(c: Condition, v: object) -> bool:
    if not isinstance(v, (list, tuple)) or not v:
        return False
    return _contains(v[0], *c.keywords)


def _search(c: Condition, v: object) -> bool:
    return isinstance(v, str) and any(k in v.lower() for k in c.keywords)


_SIGNAL_PREDICATES = {
    ConditionKind.CLICK_TECHNICAL_DOCS: _click_technical_docs,
    ConditionKind.CLICK_PRICING: _click_pricing,
    ConditionKind.CLICK_CASE_STUDIES: _click_case_studies,
    ConditionKind.SCROLL_QUICK_SCAN: _scroll_quick_scan,
    ConditionKind.SCROLL_DEEP_READ: _scroll_deep_read,
    ConditionKind.SCROLL_MIN_DEPTH: _scroll_min_depth,
    ConditionKind.DWELL_TECHNICAL: _dwell,
    ConditionKind.DWELL_ANY: _dwell,
    ConditionKind.REFERRER_LINKEDIN: _referrer,
    ConditionKind.REFERRER_GOOGLE: _referrer,
    ConditionKind.REFERRER_TWITTER: _referrer,
    ConditionKind.REFERRER_CONTAINS: _referrer,
    ConditionKind.UTM_FIELDS: _utm,
    ConditionKind.FORM_COMPLETED: _form_completed,
    ConditionKind.FORM_COMPANY_SIZE: _form_company_size,
    ConditionKind.FORM_ANY_FIELD: _form_any_field,
    ConditionKind.PATH_EDUCATIONAL: _path_starts,
    ConditionKind.PATH_PRICING_FIRST: _path_starts,
    ConditionKind.PATH_FEATURES_FIRST: _path_starts,
    ConditionKind.SEARCH_KEYWORDS: _search,
}
