# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Telemetry event types, TypedDict payload definitions, and builder functions."""

from __future__ import annotations

from typing import TypedDict

# ── Event type constants (OTel naming) ───────────────────────────

ADAPTATION_APPLIED = "pageadapt.adaptation.applied"
ADAPTATION_SWAP_COMPLETE = "pageadapt.adaptation.swap_complete"
PERSONA_DETECTED = "pageadapt.detection.completed"


# ── TypedDict payload definitions ────────────────────────────────


class AdaptationAppliedPayload(TypedDict):
    page_id: str
    website_id: str
    session_id: str
    persona_id: str
    from_variant: str
    to_variant: str
    adapted_sections: list[str]
    confidence: float
    reason: str
    transition_duration_ms: int


class AdaptationSwapCompletePayload(TypedDict):
    page_id: str
    session_id: str
    active_variant: str
    swap_duration_ms: int


class DetectionCompletedPayload(TypedDict):
    session_id: str
    persona_id: str
    confidence: float
    matched_rules: int
    alternatives: int


# ── Payload builder functions ────────────────────────────────────


def adaptation_applied(
    *,
    page_id: str,
    website_id: str,
    session_id: str,
    persona_id: str | None,
    from_variant: str,
    to_variant: str,
    adapted_sections: list[str] | tuple[str, ...],
    confidence: float,
    reason: str,
    transition_duration_ms: int,
) -> AdaptationAppliedPayload:
    return AdaptationAppliedPayload(
        page_id=page_id,
        website_id=website_id,
        session_id=session_id,
        persona_id=persona_id or "",
        from_variant=from_variant,
        to_variant=to_variant,
        adapted_sections=list(adapted_sections),
        confidence=round(confidence, 4),
        reason=str(reason),
        transition_duration_ms=transition_duration_ms,
    )


def adaptation_swap_complete(
    *, page_id: str, session_id: str, active_variant: str, swap_duration_ms: int
) -> AdaptationSwapCompletePayload:
    return AdaptationSwapCompletePayload(
        page_id=page_id,
        session_id=session_id,
        active_variant=active_variant,
        swap_duration_ms=swap_duration_ms,
    )


def detection_completed(
    *, session_id: str, persona_id: str | None, confidence: float, matched_rules: int, alternatives: int
) -> DetectionCompletedPayload:
    return DetectionCompletedPayload(
        session_id=session_id,
        persona_id=persona_id or "",
        confidence=round(confidence, 4),
        matched_rules=matched_rules,
        alternatives=alternatives,
    )
