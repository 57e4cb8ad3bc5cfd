# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Privacy utilities for telemetry data sanitization."""

from __future__ import annotations

import hashlib

# Page content must never leave the process through telemetry
_BLOCKED_FIELDS = frozenset(
    {
        "content",
        "default_content",
        "persona_variants",
        "headline",
        "subheadline",
        "description",
        "search_queries",
        "fields_interacted",
    }
)


def sanitize_payload(payload: dict) -> dict:
    """Remove blocked content fields from a payload dict (shallow + one level nested).

    Returns a new dict with blocked fields removed.
    """
    cleaned: dict = {}
    for key, value in payload.items():
        if key in _BLOCKED_FIELDS:
            continue
        if isinstance(value, dict):
            cleaned[key] = {k: v for k, v in value.items() if k not in _BLOCKED_FIELDS}
        else:
            cleaned[key] = value
    return cleaned


def hash_identifier(value: str) -> str:
    """Truncated SHA-256 of a session/visitor id. Stable across calls."""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()[:16]
