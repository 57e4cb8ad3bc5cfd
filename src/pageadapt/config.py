# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Engine configuration: detection, content selection, animation.

All values are optional with the documented defaults. Sources, lowest to
highest precedence: dataclass defaults, YAML file, ``PAGEADAPT_*`` env vars.
"""

from __future__ import annotations

import dataclasses
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from . import DEFAULT_VARIANT
from .errors import ConfigError

logger = logging.getLogger("pageadapt.config")

SWAP_ANIMATIONS = frozenset({"fade", "slide", "crossfade", "none"})
ENTRANCE_ANIMATIONS = frozenset({"fade-up", "fade-in", "slide-in", "none"})


@dataclass(frozen=True, slots=True)
class DetectionOptions:
    min_confidence: float = 0.5
    max_alternatives: int = 2
    use_historical_data: bool = True  # accepted for host compatibility; scoring is per snapshot
    decay_factor: float = 0.9

    def __post_init__(self) -> None:
        _check_unit("min_confidence", self.min_confidence)
        _check_unit("decay_factor", self.decay_factor)
        if self.max_alternatives < 0:
            raise ConfigError("max_alternatives must be >= 0", key="max_alternatives")


@dataclass(frozen=True, slots=True)
class SelectionConfig:
    confidence_threshold: float = 0.5
    confidence_hysteresis: float = 0.05
    use_fallback: bool = True
    fallback_variant: str = DEFAULT_VARIANT
    track_selections: bool = True

    def __post_init__(self) -> None:
        _check_unit("confidence_threshold", self.confidence_threshold)
        _check_unit("confidence_hysteresis", self.confidence_hysteresis)
        if not self.fallback_variant:
            raise ConfigError("fallback_variant must not be empty", key="fallback_variant")


@dataclass(frozen=True, slots=True)
class AnimationConfig:
    enabled: bool = True
    transition_duration: int = 300  # ms
    swap_animation: str = "crossfade"
    entrance_animation: str = "fade-up"
    stagger_delay: int = 100  # ms

    def __post_init__(self) -> None:
        if self.transition_duration < 0:
            raise ConfigError("transition_duration must be >= 0", key="transition_duration")
        if self.stagger_delay < 0:
            raise ConfigError("stagger_delay must be >= 0", key="stagger_delay")
        if self.swap_animation not in SWAP_ANIMATIONS:
            raise ConfigError(f"unknown swap_animation: {self.swap_animation!r}", key="swap_animation")
        if self.entrance_animation not in ENTRANCE_ANIMATIONS:
            raise ConfigError(f"unknown entrance_animation: {self.entrance_animation!r}", key="entrance_animation")

    @property
    def waits(self) -> bool:
        """Whether a swap holds the transition window open."""
        return self.enabled and self.swap_animation != "none" and self.transition_duration > 0


@dataclass(frozen=True, slots=True)
class EngineConfig:
    detection: DetectionOptions = field(default_factory=DetectionOptions)
    selection: SelectionConfig = field(default_factory=SelectionConfig)
    animation: AnimationConfig = field(default_factory=AnimationConfig)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> EngineConfig:
        """Build from a nested mapping; keys may be snake_case or camelCase."""
        data = data or {}
        if not isinstance(data, Mapping):
            raise ConfigError("configuration root must be a mapping")
        return cls(
            detection=_build(DetectionOptions, data.get("detection")),
            selection=_build(SelectionConfig, data.get("selection")),
            animation=_build(AnimationConfig, data.get("animation")),
        )


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

# env var -> (section, field, parser)
_ENV_OVERRIDES: dict[str, tuple[str, str, str]] = {
    "PAGEADAPT_MIN_CONFIDENCE": ("detection", "min_confidence", "float"),
    "PAGEADAPT_MAX_ALTERNATIVES": ("detection", "max_alternatives", "int"),
    "PAGEADAPT_CONFIDENCE_THRESHOLD": ("selection", "confidence_threshold", "float"),
    "PAGEADAPT_CONFIDENCE_HYSTERESIS": ("selection", "confidence_hysteresis", "float"),
    "PAGEADAPT_USE_FALLBACK": ("selection", "use_fallback", "bool"),
    "PAGEADAPT_FALLBACK_VARIANT": ("selection", "fallback_variant", "str"),
    "PAGEADAPT_ANIMATIONS": ("animation", "enabled", "bool"),
    "PAGEADAPT_TRANSITION_MS": ("animation", "transition_duration", "int"),
    "PAGEADAPT_SWAP_ANIMATION": ("animation", "swap_animation", "str"),
}

_TRUE = frozenset({"1", "true", "yes", "on"})
_FALSE = frozenset({"0", "false", "no", "off"})


def load_config(path: str | Path | None = None, env: Mapping[str, str] | None = None) -> EngineConfig:
    """Load configuration from an optional YAML file plus env overrides.

    Raises:
        ConfigError: unreadable file, non-mapping document, or invalid value.
    """
    raw: dict[str, Any] = {}
    if path is not None:
        p = Path(path)
        try:
            loaded = yaml.safe_load(p.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"cannot read config {p}: {e}") from e
        if loaded is not None and not isinstance(loaded, Mapping):
            raise ConfigError(f"config {p} must contain a mapping")
        raw = {k: dict(v) if isinstance(v, Mapping) else v for k, v in (loaded or {}).items()}

    env = os.environ if env is None else env
    for var, (section, key, kind) in _ENV_OVERRIDES.items():
        text = env.get(var, "").strip()
        if not text:
            continue
        section_data = raw.setdefault(section, {})
        if not isinstance(section_data, dict):
            raise ConfigError(f"config section {section!r} must be a mapping", key=section)
        section_data[key] = _parse_env(var, text, kind)
        logger.debug("Config override from %s", var)

    return EngineConfig.from_mapping(raw)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _check_unit(name: str, value: float) -> None:
    if not isinstance(value, (int, float)) or isinstance(value, bool) or not 0.0 <= value <= 1.0:
        raise ConfigError(f"{name} must be within [0, 1], got {value!r}", key=name)


def _snake(key: str) -> str:
    out = []
    for ch in key:
        if ch.isupper():
            out.append("_")
            out.append(ch.lower())
        else:
            out.append(ch)
    return "".join(out)


def _build(cls: type, data: Any) -> Any:
    if data is None:
        return cls()
    if not isinstance(data, Mapping):
        raise ConfigError(f"{cls.__name__} section must be a mapping")
    known = {f.name for f in dataclasses.fields(cls)}
    kwargs: dict[str, Any] = {}
    for key, value in data.items():
        name = _snake(str(key))
        if name not in known:
            raise ConfigError(f"unknown {cls.__name__} option: {key!r}", key=str(key))
        kwargs[name] = value
    try:
        return cls(**kwargs)
    except TypeError as e:
        raise ConfigError(f"invalid {cls.__name__}: {e}") from e


def _parse_env(var: str, text: str, kind: str) -> Any:
    try:
        if kind == "float":
            return float(text)
        if kind == "int":
            return int(text)
    except ValueError:
        raise ConfigError(f"{var} must be a number, got {text!r}", key=var) from None
    if kind == "bool":
        lowered = text.lower()
        if lowered in _TRUE:
            return True
        if lowered in _FALSE:
            return False
        raise ConfigError(f"{var} must be a boolean, got {text!r}", key=var)
    return text
