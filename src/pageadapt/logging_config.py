# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Render the package's stdlib log records through structlog.

The engine modules log with plain ``logging.getLogger("pageadapt.*")``.
``configure`` installs one root handler that renders those records as
console text or JSON lines; ``bound_session`` adds the current session and
page ids to every record logged inside it.

Leaf module, no pageadapt imports.
"""

from __future__ import annotations

import contextlib
import logging
import sys
from collections.abc import Iterator
from typing import IO

import structlog

_HANDLER_NAME = "pageadapt"


def _pre_chain() -> list:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.format_exc_info,
    ]


def _resolve_level(level: str | int) -> int:
    if isinstance(level, int):
        return level
    return logging.getLevelNamesMapping().get(level.upper(), logging.INFO)


def configure(*, json_output: bool = False, level: str | int = "INFO", stream: IO[str] | None = None) -> logging.Handler:
    """Install the pageadapt handler on the root logger and return it.

    Calling again replaces the previous pageadapt handler; handlers added by
    the host are left alone. Unknown level names mean INFO.
    """
    out = stream if stream is not None else sys.stderr
    pre_chain = _pre_chain()

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    if json_output:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=out.isatty())

    handler = logging.StreamHandler(out)
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger()
    for old in [h for h in root.handlers if h.get_name() == _HANDLER_NAME]:
        root.removeHandler(old)
    root.addHandler(handler)
    root.setLevel(_resolve_level(level))
    return handler


@contextlib.contextmanager
def bound_session(*, session_id: str | None = None, page_id: str | None = None) -> Iterator[None]:
    """Attach ``session_id``/``page_id`` to records logged in the block.

    Empty ids are skipped. Outer bindings come back on exit.
    """
    ids = {k: v for k, v in (("session_id", session_id), ("page_id", page_id)) if v}
    tokens = structlog.contextvars.bind_contextvars(**ids)
    try:
        yield
    finally:
        structlog.contextvars.reset_contextvars(**tokens)
