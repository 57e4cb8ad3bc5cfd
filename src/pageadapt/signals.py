# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Behavior snapshot -> flat list of typed, weighted behavior signals.

Pure function, no failure modes: missing collections degrade to no signals.
Signal weights reflect how reliable each signal class is and are part of the
observable contract.
"""

from __future__ import annotations

from datetime import UTC, datetime

from . import BehaviorSignal, ReferrerData, RuleType, SectionDwell, UserBehavior

# Intrinsic signal strength per class
SIGNAL_WEIGHTS: dict[str, float] = {
    "click_pattern": 0.8,
    "scroll_behavior": 0.5,
    "time_on_page": 0.6,
    "referrer": 0.4,
    "utm_parameter": 0.5,
    "form_field_completed": 0.9,
    "form_field_incomplete": 0.4,
    "page_sequence": 0.6,
    "device_type": 0.2,
    "search_query": 0.7,
}


def extract_signals(behavior: UserBehavior, *, now: str | None = None) -> list[BehaviorSignal]:
    """Convert a behavior snapshot into behavior signals.

    One signal per click, scroll record, section dwell entry, form interaction
    and search query; one for the referrer (if it has a url), one UTM bundle
    (if source or campaign is set), one navigation path (if longer than one
    page) and one device type (always).
    """
    ts = now or datetime.now(UTC).isoformat()
    signals: list[BehaviorSignal] = []

    def add(rtype: RuleType, value: object, weight: float, timestamp: str = ts) -> None:
        signals.append(BehaviorSignal(id=len(signals), type=rtype, value=value, timestamp=timestamp, weight=weight))

    for click in behavior.click_history or ():
        add(RuleType.CLICK_PATTERN, click, SIGNAL_WEIGHTS["click_pattern"], getattr(click, "timestamp", "") or ts)

    for scroll in behavior.scroll_behavior or ():
        add(RuleType.SCROLL_BEHAVIOR, scroll, SIGNAL_WEIGHTS["scroll_behavior"])

    for section_id, duration in (behavior.time_on_sections or {}).items():
        add(RuleType.TIME_ON_PAGE, SectionDwell(section_id=section_id, duration=duration), SIGNAL_WEIGHTS["time_on_page"])

    referrer = behavior.referrer or ReferrerData()
    if referrer.url:
        add(RuleType.REFERRER, referrer, SIGNAL_WEIGHTS["referrer"])

    if referrer.source or referrer.campaign:
        utm = ReferrerData(source=referrer.source, medium=referrer.medium, campaign=referrer.campaign)
        add(RuleType.UTM_PARAMETER, utm, SIGNAL_WEIGHTS["utm_parameter"])

    for form in behavior.form_interactions or ():
        key = "form_field_completed" if getattr(form, "completed", False) else "form_field_incomplete"
        add(RuleType.FORM_FIELD, form, SIGNAL_WEIGHTS[key])

    path = behavior.navigation_path or []
    if len(path) > 1:
        add(RuleType.PAGE_SEQUENCE, tuple(path), SIGNAL_WEIGHTS["page_sequence"])

    add(RuleType.DEVICE_TYPE, behavior.device_type or "", SIGNAL_WEIGHTS["device_type"])

    for query in behavior.search_queries or ():
        add(RuleType.SEARCH_QUERY, query, SIGNAL_WEIGHTS["search_query"])

    return signals
