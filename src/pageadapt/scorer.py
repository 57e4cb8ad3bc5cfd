# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Weighted-rule persona scoring and ranking.

Each persona's detection rules are evaluated against the behavior signals.
A rule either matches or it does not (no partial credit). The persona's
score is the matched share of its total rule weight, scaled by the persona's
own confidence prior:

    score = (sum of matched rule weights / sum of all rule weights) * confidence_score

Personas with no rules (or zero total weight) score 0. The best persona is
accepted only at ``min_confidence`` or above; runners-up at
``min_confidence * 0.7`` or above are reported as alternatives.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from . import (
    AlternativeMatch,
    BehaviorSignal,
    MatchedRule,
    Persona,
    PersonaMatch,
    RuleType,
    UserBehavior,
)
from .conditions import CompiledRule, ConditionKind, compile_rule, evaluate_rule
from .config import DetectionOptions
from .signals import extract_signals

logger = logging.getLogger("pageadapt.scorer")

ALTERNATIVE_FLOOR_RATIO = 0.7


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class CompiledPersona:
    """Persona with its rule conditions parsed once."""

    persona: Persona
    rules: tuple[CompiledRule, ...]

    @property
    def id(self) -> str:
        return self.persona.id

    @property
    def total_weight(self) -> float:
        return sum(r.rule.weight for r in self.rules)


@dataclass(frozen=True, slots=True)
class RuleOutcome:
    """Per-rule audit record."""

    rule_id: str
    rule_type: RuleType
    condition_kind: ConditionKind
    matched: bool
    contribution: float  # rule weight when matched, else 0
    signal_ids: tuple[int, ...] = ()


@dataclass(frozen=True, slots=True)
class PersonaScore:
    persona_id: str
    score: float  # 0.0-1.0
    matched_rules: tuple[MatchedRule, ...]
    contributing_signals: tuple[BehaviorSignal, ...]
    outcomes: tuple[RuleOutcome, ...] = ()


def compile_persona(persona: Persona | CompiledPersona) -> CompiledPersona:
    """Parse a persona's rules once. Rules with a negative weight are dropped."""
    if isinstance(persona, CompiledPersona):
        return persona
    rules = []
    for rule in persona.detection_rules:
        if rule.weight < 0:
            logger.debug("Persona %s: ignoring rule %s with negative weight %r", persona.id, rule.id, rule.weight)
            continue
        rules.append(compile_rule(rule))
    return CompiledPersona(persona=persona, rules=tuple(rules))


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------


def score_persona(
    persona: Persona | CompiledPersona,
    signals: Sequence[BehaviorSignal],
    behavior: UserBehavior,
) -> PersonaScore:
    """Score one persona against already-extracted signals. Never raises on bad input."""
    compiled = compile_persona(persona)
    outcomes: list[RuleOutcome] = []
    contributing: dict[int, BehaviorSignal] = {}
    by_id = {s.id: s for s in signals}

    for crule in compiled.rules:
        rule = crule.rule
        evaluation = evaluate_rule(crule, signals, behavior)
        outcomes.append(
            RuleOutcome(
                rule_id=rule.id,
                rule_type=rule.type,
                condition_kind=crule.condition.kind,
                matched=evaluation.matched,
                contribution=rule.weight if evaluation.matched else 0.0,
                signal_ids=evaluation.signal_ids,
            )
        )
        if evaluation.matched:
            for sid in evaluation.signal_ids:
                if sid not in contributing and sid in by_id:
                    contributing[sid] = dataclasses.replace(by_id[sid], contributed=True)

    total_weight = compiled.total_weight
    matched_weight = sum(o.contribution for o in outcomes)
    raw = matched_weight / total_weight if total_weight > 0 else 0.0
    score = min(1.0, max(0.0, raw * compiled.persona.confidence_score))

    return PersonaScore(
        persona_id=compiled.id,
        score=score,
        matched_rules=tuple(
            MatchedRule(rule_id=o.rule_id, rule_type=o.rule_type, contribution=o.contribution)
            for o in outcomes
            if o.matched
        ),
        contributing_signals=tuple(contributing[k] for k in sorted(contributing)),
        outcomes=tuple(outcomes),
    )


# ---------------------------------------------------------------------------
# Detector
# ---------------------------------------------------------------------------


class PersonaDetector:
    """Ranks active personas for a behavior snapshot.

    Conditions are parsed when personas are set, not per detection.
    """

    def __init__(self, personas: Iterable[Persona], options: DetectionOptions | None = None) -> None:
        self.options = options or DetectionOptions()
        self._personas: tuple[CompiledPersona, ...] = ()
        self.update_personas(personas)

    @property
    def personas(self) -> tuple[Persona, ...]:
        return tuple(p.persona for p in self._personas)

    def update_personas(self, personas: Iterable[Persona]) -> None:
        """Replace the persona set. Inactive personas are dropped."""
        self._personas = tuple(compile_persona(p) for p in personas if p.is_active)
        logger.debug("Detector loaded %d active personas", len(self._personas))

    def rank(self, behavior: UserBehavior) -> list[PersonaScore]:
        """Score every active persona, best first (stable on ties)."""
        signals = extract_signals(behavior)
        scores = [score_persona(p, signals, behavior) for p in self._personas]
        return sorted(scores, key=lambda s: s.score, reverse=True)

    def detect_persona(self, behavior: UserBehavior) -> PersonaMatch | None:
        """Return the best persona match, or None when nothing clears ``min_confidence``."""
        if not self._personas:
            return None

        ranked = self.rank(behavior)
        best = ranked[0]
        floor = self.options.min_confidence
        if best.score < floor:
            logger.debug("No persona cleared %.2f (best %s at %.3f)", floor, best.persona_id, best.score)
            return None

        alternatives = [s for s in ranked[1:] if s.score >= floor * ALTERNATIVE_FLOOR_RATIO]
        alternatives = alternatives[: self.options.max_alternatives]

        logger.debug(
            "Persona %s detected at %.3f (%d rules matched, %d alternatives)",
            best.persona_id,
            best.score,
            len(best.matched_rules),
            len(alternatives),
        )
        return PersonaMatch(
            persona_id=best.persona_id,
            confidence=best.score,
            matched_rules=best.matched_rules,
            signals=best.contributing_signals,
            alternative_matches=tuple(AlternativeMatch(persona_id=s.persona_id, confidence=s.score) for s in alternatives),
        )

    def explain(self, behavior: UserBehavior) -> list[PersonaScore]:
        """Audit view: every active persona's score with per-rule outcomes."""
        return self.rank(behavior)


def detect_persona(
    behavior: UserBehavior,
    personas: Iterable[Persona],
    options: DetectionOptions | None = None,
) -> PersonaMatch | None:
    """One-shot detection without keeping a detector around."""
    return PersonaDetector(personas, options).detect_persona(behavior)
