# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Detection trigger policy: when a session has enough behavior to score."""

from __future__ import annotations

import logging
from datetime import UTC, datetime

logger = logging.getLogger("pageadapt.trigger")

MIN_CLICKS = 3
MIN_PAGES = 2
MIN_TIME_SECONDS = 30
REDETECT_INTERVAL_SECONDS = 60


def _as_utc(value: datetime | str) -> datetime | None:
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            logger.debug("Ignoring unparseable last detection time %r", value)
            return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value


def should_trigger_detection(
    click_count: int,
    page_view_count: int,
    time_spent_seconds: float,
    last_detection_at: datetime | str | None = None,
    *,
    now: datetime | None = None,
) -> bool:
    """True when a detection pass is worth running.

    Requires at least ``MIN_CLICKS`` clicks or ``MIN_PAGES`` page views,
    ``MIN_TIME_SECONDS`` on site, and ``REDETECT_INTERVAL_SECONDS`` since the
    previous detection. An unparseable previous time counts as no previous
    detection.
    """
    if click_count < MIN_CLICKS and page_view_count < MIN_PAGES:
        return False
    if time_spent_seconds < MIN_TIME_SECONDS:
        return False

    if last_detection_at:
        last = _as_utc(last_detection_at)
        if last is not None:
            current = _as_utc(now) if now is not None else datetime.now(UTC)
            if (current - last).total_seconds() < REDETECT_INTERVAL_SECONDS:
                return False
    return True
