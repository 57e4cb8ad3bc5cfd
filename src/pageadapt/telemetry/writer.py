# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Telemetry writers: JsonlWriter (size-rotated JSONL), NullWriter, ListWriter."""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol

logger = logging.getLogger("pageadapt.telemetry.writer")

_MAX_SEQ = 999  # Upper bound for sequence numbers to prevent runaway loops


class Writer(Protocol):
    """Writer protocol for telemetry output."""

    def write_sync(self, batch: list[dict]) -> None: ...


class JsonlWriter:
    """Write telemetry envelopes as JSONL, one file per day, rotated by size.

    File naming: adaptations-YYYY-MM-DD-NNN.jsonl (NNN = 3-digit sequence).
    """

    def __init__(self, config: object) -> None:
        self._export_path = Path(getattr(config, "export_path", ""))
        self._max_file_size = getattr(config, "max_file_size_mb", 50) * 1024 * 1024
        self._current_file: Path | None = None
        self._current_date = ""
        self._current_seq = 0

    @property
    def current_file(self) -> Path | None:
        return self._current_file

    def write_sync(self, batch: list[dict]) -> None:
        """Append a batch of OTLP envelopes as JSONL lines."""
        if not batch:
            return

        try:
            self._export_path.mkdir(parents=True, exist_ok=True)
        except OSError:
            logger.debug("Cannot create telemetry dir %s", self._export_path)
            return

        today = datetime.now(UTC).strftime("%Y-%m-%d")
        if self._current_file is None or self._current_date != today:
            self._current_date = today
            self._current_seq = self._find_next_seq(today)
            self._current_file = self._make_path(today, self._current_seq)

        if self._current_file.exists() and self._current_file.stat().st_size >= self._max_file_size:
            self._current_seq = min(self._current_seq + 1, _MAX_SEQ)
            self._current_file = self._make_path(today, self._current_seq)

        try:
            with open(self._current_file, "a", encoding="utf-8") as f:
                for envelope in batch:
                    f.write(json.dumps(envelope, ensure_ascii=False, separators=(",", ":"), default=str))
                    f.write("\n")
        except OSError:
            logger.debug("Telemetry write to %s failed", self._current_file)

    def _make_path(self, date: str, seq: int) -> Path:
        return self._export_path / f"adaptations-{date}-{seq:03d}.jsonl"

    def _find_next_seq(self, date: str) -> int:
        """Last existing file for ``date`` if it has room, else the next sequence."""
        seq = 1
        while seq < _MAX_SEQ and self._make_path(date, seq + 1).exists():
            seq += 1
        path = self._make_path(date, seq)
        if path.exists() and path.stat().st_size >= self._max_file_size:
            return min(seq + 1, _MAX_SEQ)
        return seq


class NullWriter:
    """No-op writer for disabled telemetry."""

    def write_sync(self, batch: list[dict]) -> None:
        pass


class ListWriter:
    """In-memory writer for testing. Captures all written events."""

    def __init__(self) -> None:
        self.events: list[dict] = []

    def write_sync(self, batch: list[dict]) -> None:
        self.events.extend(batch)
