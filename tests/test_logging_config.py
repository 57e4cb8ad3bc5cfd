# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for pageadapt.logging_config — what a detection pass looks like in the logs."""

from __future__ import annotations

import io
import json
import logging

import pytest
import structlog

from pageadapt import UserBehavior
from pageadapt.config import EngineConfig
from pageadapt.logging_config import bound_session, configure
from pageadapt.session import AdaptiveSession


@pytest.fixture(autouse=True)
def _restore_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers = handlers
    root.setLevel(level)
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()


@pytest.fixture
def stream() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def session(sections, pricing_persona, cto_persona, no_wait):
    return AdaptiveSession(
        "page-1",
        "site-1",
        sections,
        [pricing_persona, cto_persona],
        session_id="s-1",
        visitor_id="v-1",
        config=EngineConfig(animation=no_wait),
    )


def _json_lines(stream: io.StringIO) -> list[dict]:
    return [json.loads(line) for line in stream.getvalue().splitlines()]


def _find(lines: list[dict], prefix: str) -> dict:
    return next(line for line in lines if line["event"].startswith(prefix))


class TestDetectionLogs:
    @pytest.mark.asyncio
    async def test_detection_lines_carry_session_and_page(self, session, buyer_behavior, stream):
        configure(json_output=True, stream=stream)
        await session.detect(buyer_behavior)
        logging.getLogger("pageadapt.session").info("page closed")

        lines = _json_lines(stream)
        detected = _find(lines, "Detected persona buyer")
        assert detected["event"] == "Detected persona buyer (confidence 0.720)"
        assert (detected["session_id"], detected["page_id"]) == ("s-1", "page-1")
        assert detected["logger"] == "pageadapt.session"
        assert detected["level"] == "info"
        assert detected["timestamp"].endswith("Z")

        adapting = _find(lines, "Adapting page page-1")
        assert adapting["logger"] == "pageadapt.orchestrator"
        assert adapting["session_id"] == "s-1"

        closed = _find(lines, "page closed")
        assert "session_id" not in closed
        assert "page_id" not in closed

    @pytest.mark.asyncio
    async def test_engine_session_used_when_behavior_has_none(self, session, pricing_clicks, stream):
        configure(json_output=True, stream=stream)
        await session.detect(UserBehavior(click_history=pricing_clicks(4)))
        assert _find(_json_lines(stream), "Detected persona")["session_id"] == "s-1"

    @pytest.mark.asyncio
    async def test_no_match_logged(self, session, stream):
        configure(json_output=True, stream=stream)
        await session.detect(UserBehavior(session_id="s-2"))
        line = _find(_json_lines(stream), "No persona detected")
        assert line["session_id"] == "s-2"

    @pytest.mark.asyncio
    async def test_warning_level_hides_detection(self, session, buyer_behavior, stream):
        configure(json_output=True, level="warning", stream=stream)
        await session.detect(buyer_behavior)
        assert stream.getvalue() == ""

    @pytest.mark.asyncio
    async def test_console_output(self, session, buyer_behavior, stream):
        configure(stream=stream)
        await session.detect(buyer_behavior)
        text = stream.getvalue()
        assert "Detected persona buyer" in text
        assert "session_id=s-1" in text
        assert "\x1b[" not in text
        assert not text.lstrip().startswith("{")


class TestBoundSession:
    def test_empty_ids_skipped_and_outer_binding_restored(self, stream):
        configure(json_output=True, stream=stream)
        log = logging.getLogger("pageadapt.test")
        with bound_session(session_id="outer", page_id="p-1"):
            with bound_session(session_id="inner", page_id=""):
                log.info("inner")
            log.info("outer")

        inner, outer = _json_lines(stream)
        assert (inner["session_id"], inner["page_id"]) == ("inner", "p-1")
        assert (outer["session_id"], outer["page_id"]) == ("outer", "p-1")
        assert structlog.contextvars.get_contextvars() == {}


class TestConfigure:
    def test_reconfigure_replaces_only_own_handler(self, stream):
        host = logging.NullHandler()
        root = logging.getLogger()
        root.addHandler(host)

        first = configure(stream=stream)
        second = configure(json_output=True, stream=stream)

        assert host in root.handlers
        assert second in root.handlers
        assert first not in root.handlers

    @pytest.mark.parametrize(
        ("level", "expected"),
        [("DEBUG", logging.DEBUG), ("warning", logging.WARNING), (logging.ERROR, logging.ERROR), ("chatty", logging.INFO)],
    )
    def test_level(self, level, expected, stream):
        configure(level=level, stream=stream)
        assert logging.getLogger().level == expected
