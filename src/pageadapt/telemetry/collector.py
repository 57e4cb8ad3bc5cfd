# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Telemetry queue: sanitize a payload, wrap it as an OTLP log record, batch it to a writer."""

from __future__ import annotations

import json
import logging
import platform
import queue
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

from .privacy import hash_identifier, sanitize_payload
from .writer import JsonlWriter, NullWriter, Writer

logger = logging.getLogger("pageadapt.telemetry")

_ID_FIELDS = ("session_id", "visitor_id")


def _package_version() -> str:
    try:
        return version("pageadapt")
    except PackageNotFoundError:
        return "unknown"


_RESOURCE = {
    "attributes": [
        {"key": "service.name", "value": {"stringValue": "pageadapt"}},
        {"key": "service.version", "value": {"stringValue": _package_version()}},
        {"key": "os.type", "value": {"stringValue": platform.system().lower()}},
    ]
}
_SCOPE = {"name": "pageadapt.telemetry", "version": "1"}


@dataclass(frozen=True, slots=True)
class TelemetryConfig:
    enabled: bool = False
    export_path: str | Path = field(default_factory=lambda: Path.home() / ".pageadapt" / "telemetry")
    max_queue_size: int = 10_000
    batch_size: int = 256  # pending records that trigger a flush from emit()
    max_file_size_mb: int = 50
    hash_ids: bool = True


def _any_value(value: object) -> dict:
    if isinstance(value, bool):
        return {"boolValue": value}
    if isinstance(value, int):
        return {"intValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, (list, tuple, dict)):
        return {"stringValue": json.dumps(value, ensure_ascii=False, default=str)}
    return {"stringValue": str(value)}


def envelope(
    event_type: str,
    payload: Mapping[str, object],
    *,
    trace_id: str = "",
    time_ns: int | None = None,
) -> dict:
    """One OTLP LogsData document holding a single INFO record named ``event_type``.

    ``None`` values are left out of the attributes. ``trace_id`` is
    zero-padded to 32 hex chars; the span id is its first 16.
    """
    trace = (trace_id + "0" * 32)[:32]
    record = {
        "timeUnixNano": str(time.time_ns() if time_ns is None else time_ns),
        "severityNumber": 9,
        "severityText": "INFO",
        "body": {"stringValue": event_type},
        "attributes": [{"key": k, "value": _any_value(v)} for k, v in payload.items() if v is not None],
        "traceId": trace,
        "spanId": trace[:16],
    }
    return {"resourceLogs": [{"resource": _RESOURCE, "scopeLogs": [{"scope": _SCOPE, "logRecords": [record]}]}]}


class TelemetryCollector:
    """Bounded, thread-safe queue of envelopes drained into a writer.

    Records beyond ``max_queue_size`` are counted in ``dropped`` and
    discarded. Reaching ``batch_size`` pending records flushes inline.
    """

    def __init__(self, config: TelemetryConfig, writer: Writer | None = None) -> None:
        self.config = config
        if writer is None:
            writer = JsonlWriter(config) if config.enabled else NullWriter()
        self.writer = writer
        self.dropped = 0
        self._pending: queue.Queue[dict] = queue.Queue(maxsize=config.max_queue_size)
        self._closed = False

    @property
    def pending(self) -> int:
        return self._pending.qsize()

    def emit(self, event_type: str, payload: Mapping[str, object], *, trace_id: str = "") -> None:
        if self._closed or not self.config.enabled:
            return

        attrs = sanitize_payload(dict(payload))
        if self.config.hash_ids:
            for key in _ID_FIELDS:
                value = attrs.get(key)
                if isinstance(value, str) and value:
                    attrs[key] = hash_identifier(value)

        try:
            self._pending.put_nowait(envelope(event_type, attrs, trace_id=trace_id))
        except queue.Full:
            self.dropped += 1
            return
        if self._pending.qsize() >= self.config.batch_size:
            self.flush()

    def flush(self) -> int:
        """Write everything pending as one batch. Returns the number of records handed over."""
        batch: list[dict] = []
        while True:
            try:
                batch.append(self._pending.get_nowait())
            except queue.Empty:
                break
        if not batch:
            return 0
        try:
            self.writer.write_sync(batch)
        except Exception:
            logger.debug("Telemetry writer failed, %d records lost", len(batch), exc_info=True)
            return 0
        return len(batch)

    def shutdown(self) -> None:
        """Stop accepting records and write what is left."""
        self._closed = True
        self.flush()
