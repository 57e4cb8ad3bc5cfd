# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""PageAdapt exception hierarchy.

All PageAdapt-specific errors inherit from PageAdaptError. They are raised
only at the host boundary (loading personas, sections, configuration).
Scoring, selection and orchestration degrade to default content instead.
"""

from __future__ import annotations


class PageAdaptError(Exception):
    """Base exception for all PageAdapt errors."""


class PersonaValidationError(PageAdaptError):
    """Persona or detection rule row violates the data model."""

    def __init__(self, message: str, *, persona_id: str = "", rule_id: str = "") -> None:
        super().__init__(message)
        self.persona_id = persona_id
        self.rule_id = rule_id


class SectionValidationError(PageAdaptError):
    """Runtime section row is missing required data or duplicates an id."""

    def __init__(self, message: str, *, section_id: str = "") -> None:
        super().__init__(message)
        self.section_id = section_id


class ConfigError(PageAdaptError):
    """Invalid configuration value or unreadable configuration file."""

    def __init__(self, message: str, *, key: str = "") -> None:
        super().__init__(message)
        self.key = key
