# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""PageAdapt CLI: detect, explain, select, simulate commands.

Usage:
    pageadapt detect   --personas FILE --behavior FILE [--format json|table]
    pageadapt explain  --personas FILE --behavior FILE [--format json|table]
    pageadapt select   --personas FILE --behavior FILE --sections FILE [--previous VARIANT]
    pageadapt simulate --personas FILE --behavior FILE --sections FILE [--force-variant ID] [--telemetry DIR]

Persona, section and behavior files are JSON (``.json``) or YAML.
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
import sys
from typing import Any

logger = logging.getLogger("pageadapt.cli")


def _require_cli_deps() -> None:
    """Check that CLI optional dependencies are installed."""
    try:
        from tabulate import tabulate  # noqa: F401
    except ImportError as e:
        print(
            f"Missing CLI dependency: {e.name}\nInstall with: pip install pageadapt[cli]",
            file=sys.stderr,
        )
        sys.exit(1)


def _dump(data: Any) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


def _load_inputs(args: argparse.Namespace):
    from .config import load_config
    from .loader import load_behavior, load_personas

    config = load_config(args.config)
    return config, load_personas(args.personas), load_behavior(args.behavior)


def cmd_detect(args: argparse.Namespace) -> int:
    """Best persona match for a behavior snapshot."""
    from .scorer import PersonaDetector

    config, personas, behavior = _load_inputs(args)
    match = PersonaDetector(personas, config.detection).detect_persona(behavior)

    if args.format == "table":
        _require_cli_deps()
        from tabulate import tabulate

        if match is None:
            print("No persona cleared the confidence floor.")
            return 0
        rows = [[match.persona_id, f"{match.confidence:.3f}", "best"]]
        rows += [[a.persona_id, f"{a.confidence:.3f}", "alternative"] for a in match.alternative_matches]
        print(tabulate(rows, headers=["Persona", "Confidence", "Rank"], tablefmt="simple"))
        return 0

    _dump(dataclasses.asdict(match) if match else None)
    return 0


def cmd_explain(args: argparse.Namespace) -> int:
    """Every active persona's score with per-rule outcomes."""
    from .scorer import PersonaDetector

    config, personas, behavior = _load_inputs(args)
    scores = PersonaDetector(personas, config.detection).explain(behavior)

    if args.format == "table":
        _require_cli_deps()
        from tabulate import tabulate

        rows = []
        for s in scores:
            for o in s.outcomes:
                rows.append([s.persona_id, f"{s.score:.3f}", o.rule_id, o.rule_type, "yes" if o.matched else "no"])
            if not s.outcomes:
                rows.append([s.persona_id, f"{s.score:.3f}", "-", "-", "-"])
        print(tabulate(rows, headers=["Persona", "Score", "Rule", "Type", "Matched"], tablefmt="simple"))
        return 0

    _dump([dataclasses.asdict(s) for s in scores])
    return 0


def cmd_select(args: argparse.Namespace) -> int:
    """Variant decision for the detected persona against a section set."""
    from .loader import load_sections
    from .scorer import PersonaDetector
    from .selector import ContentSelector

    config, personas, behavior = _load_inputs(args)
    sections = load_sections(args.sections)
    match = PersonaDetector(personas, config.detection).detect_persona(behavior)
    result = ContentSelector(config.selection).select_content(sections, match, args.previous)
    _dump(result.to_dict())
    return 0


async def _simulate(args: argparse.Namespace) -> dict[str, Any]:
    from .loader import load_sections
    from .session import AdaptiveSession

    config, personas, behavior = _load_inputs(args)
    if args.no_animation:
        config = dataclasses.replace(config, animation=dataclasses.replace(config.animation, enabled=False))
    sections = load_sections(args.sections)

    session = AdaptiveSession(
        args.page_id,
        args.website_id,
        sections,
        personas,
        config=config,
        session_id=behavior.session_id,
        visitor_id=behavior.visitor_id,
        forced_persona_id=args.force_variant,
        telemetry=bool(args.telemetry),
    )
    events: list[dict[str, Any]] = []
    session.engine.add_event_listener(lambda e: events.append(e.to_dict()))

    result = await session.start() if args.force_variant else await session.detect(behavior)
    engine = session.engine
    return {
        "result": result.to_dict() if result else None,
        "events": events,
        "active_variant": engine.get_active_variant(),
        "visible_sections": [s.section_id for s in engine.get_visible_sections()],
        "content": engine.get_content_map(),
    }


def cmd_simulate(args: argparse.Namespace) -> int:
    """Full page-view run: detect, adapt, print events and the final content map."""
    from . import telemetry

    if args.telemetry:
        from .telemetry.collector import TelemetryConfig

        telemetry.configure(TelemetryConfig(enabled=True, export_path=args.telemetry))
    try:
        _dump(asyncio.run(_simulate(args)))
    finally:
        telemetry.shutdown()
    return 0


def _add_inputs(p: argparse.ArgumentParser, *, sections: bool = False) -> None:
    p.add_argument("--personas", required=True, metavar="FILE", help="Persona list (JSON or YAML)")
    p.add_argument("--behavior", required=True, metavar="FILE", help="Behavior snapshot (JSON or YAML)")
    if sections:
        p.add_argument("--sections", required=True, metavar="FILE", help="Runtime sections (JSON or YAML)")
    p.add_argument("--config", metavar="FILE", help="Engine config YAML (PAGEADAPT_* env vars override)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="PageAdapt CLI", prog="pageadapt")
    parser.add_argument("-v", "--verbose", action="store_true")
    parser.add_argument("--log-json", action="store_true", help="JSON log lines on stderr")
    subparsers = parser.add_subparsers(dest="command", required=True)

    p_detect = subparsers.add_parser("detect", help="Detect the best persona for a behavior snapshot")
    _add_inputs(p_detect)
    p_detect.add_argument("--format", choices=["json", "table"], default="json")

    p_explain = subparsers.add_parser("explain", help="Score every persona with per-rule outcomes")
    _add_inputs(p_explain)
    p_explain.add_argument("--format", choices=["json", "table"], default="json")

    p_select = subparsers.add_parser("select", help="Decide the content variant for a behavior snapshot")
    _add_inputs(p_select, sections=True)
    p_select.add_argument("--previous", default="default", metavar="VARIANT", help="Currently shown variant")

    p_sim = subparsers.add_parser(
        "simulate",
        help="Run one page view end to end",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""\
examples:
  %(prog)s --personas p.yaml --behavior b.json --sections s.yaml
  %(prog)s --personas p.yaml --behavior b.json --sections s.yaml --force-variant cto
  %(prog)s ... --telemetry ./telemetry     Write adaptation records as JSONL""",
    )
    _add_inputs(p_sim, sections=True)
    p_sim.add_argument("--page-id", default="page", help="Page id for events (default: page)")
    p_sim.add_argument("--website-id", default="website", help="Website id for events (default: website)")
    p_sim.add_argument("--force-variant", metavar="ID", help="Preview mode: force this variant")
    p_sim.add_argument("--no-animation", action="store_true", help="Skip the transition wait")
    p_sim.add_argument("--telemetry", metavar="DIR", help="Enable telemetry, writing JSONL to DIR")

    return parser


_COMMANDS = {
    "detect": cmd_detect,
    "explain": cmd_explain,
    "select": cmd_select,
    "simulate": cmd_simulate,
}


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    from .errors import PageAdaptError
    from .logging_config import configure

    args = build_parser().parse_args(argv)
    configure(json_output=args.log_json, level="DEBUG" if args.verbose else "WARNING")

    try:
        return _COMMANDS[args.command](args)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        return 130
    except PageAdaptError as e:
        print(f"error: {e}", file=sys.stderr)
        if args.verbose:
            logger.exception("Command %s failed", args.command)
        return 1


if __name__ == "__main__":
    sys.exit(main())
