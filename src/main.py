# src/main.py - v1
"""CLI entry point: run, advance, show and score commands.

Usage:
    gapflow run <url> [--company NAME]
    gapflow advance <run_id>
    gapflow show [run_id] [--json]
    gapflow score brand=70 seo=55 ... [--weights brand=0.3,...] [--supplied 62]
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from gapflow.version import __version__

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    try:
        _setup_logging(args.verbose)
        return asyncio.run(args.func(args))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as exc:
        logger.error("Fatal error: %s", exc, exc_info=args.verbose)
        return 1


def cli() -> None:
    """Console script wrapper."""
    sys.exit(main())


def _build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="gapflow",
        description=f"gapflow v{__version__} - staged marketing growth reports",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command")

    # --- run ---
    p_run = subparsers.add_parser(
        "run", help="Create a run and drive it to completion",
    )
    p_run.add_argument("url", help="Website to assess")
    p_run.add_argument("--company", default=None, help="Company name")
    p_run.add_argument(
        "--json", action="store_true",
        help="Print the final report as JSON",
    )
    p_run.set_defaults(func=_cmd_run)

    # --- advance ---
    p_advance = subparsers.add_parser(
        "advance", help="Execute the next step of a stored run",
    )
    p_advance.add_argument("run_id", help="Run ID")
    p_advance.set_defaults(func=_cmd_advance)

    # --- show ---
    p_show = subparsers.add_parser(
        "show", help="Show a stored run (or list run IDs)",
    )
    p_show.add_argument("run_id", nargs="?", default=None, help="Run ID")
    p_show.add_argument(
        "--json", action="store_true",
        help="Print the full run as JSON",
    )
    p_show.set_defaults(func=_cmd_show)

    # --- score ---
    p_score = subparsers.add_parser(
        "score", help="Aggregate dimension scores offline",
    )
    p_score.add_argument(
        "scores", nargs="+", metavar="DIMENSION=SCORE",
        help="Dimension scores, e.g. brand=70",
    )
    p_score.add_argument(
        "--weights", default=None,
        help="Comma-separated weights, e.g. brand=0.3,seo=0.2",
    )
    p_score.add_argument(
        "--supplied", type=float, default=None,
        help="Externally supplied overall score to check",
    )
    p_score.add_argument(
        "--tolerance", type=float, default=2.0,
        help="Allowed difference for --supplied (default: 2)",
    )
    p_score.set_defaults(func=_cmd_score)

    return parser


async def _cmd_run(args: argparse.Namespace) -> int:
    """Create a run and advance it until terminal."""
    from gapflow.api.facade import ReportService

    service = ReportService.from_settings(observer=_StderrProgress())
    inputs = {"url": args.url}
    if args.company:
        inputs["company_name"] = args.company

    result = await service.run_to_completion(inputs)
    run = result.run

    if args.json and run.has_field("report"):
        print(json.dumps(run.fields["report"], indent=2))
    else:
        _print_run_summary(run)
        print(f"  Advances:     {result.advances}")
        print(f"  Duration:     {result.duration_ms / 1000:.1f}s")
    return 0 if result.success else 1


async def _cmd_advance(args: argparse.Namespace) -> int:
    """Execute one step of a stored run."""
    from gapflow.api.facade import ReportService
    from gapflow.core.errors import RunNotFoundError

    service = ReportService.from_settings()
    try:
        run = await service.advance(args.run_id)
    except RunNotFoundError as exc:
        logger.error("%s", exc)
        return 1
    _print_run_summary(run)
    return 0 if run.status != "failed" else 1


async def _cmd_show(args: argparse.Namespace) -> int:
    """Display a stored run, or list stored run IDs."""
    from gapflow.config.settings import Settings
    from gapflow.storage.store_factory import create_run_store

    store = create_run_store(Settings())
    if args.run_id is None:
        ids = await store.list_ids()
        if not ids:
            print("No runs stored")
        for run_id in ids:
            print(run_id)
        return 0

    run = await store.get(args.run_id)
    if run is None:
        logger.error("Run not found: %s", args.run_id)
        return 1
    if args.json:
        print(run.model_dump_json(indent=2))
    else:
        _print_run_summary(run)
    return 0


async def _cmd_score(args: argparse.Namespace) -> int:
    """Aggregate dimension scores without running any step."""
    from gapflow.scoring.aggregator import aggregate, check_consistency

    try:
        scores = _parse_pairs(args.scores)
        weights = _parse_pairs(args.weights.split(",")) if args.weights else None
    except ValueError as exc:
        logger.error("%s", exc)
        return 2

    result = aggregate(scores, weights)
    print(f"\nScore:")
    print(f"  Overall:      {result.overall_score}/100")
    print(f"  Maturity:     {result.maturity_stage}")
    for dim, weight in result.weights.items():
        print(f"  {dim + ':':<18}{scores[dim]:>5g}  (weight {weight:.3f})")

    if args.supplied is not None:
        check = check_consistency(args.supplied, scores, weights, args.tolerance)
        verdict = "consistent" if check.consistent else "INCONSISTENT"
        print(f"  Supplied:     {check.supplied:g} ({verdict}, diff {check.difference:g})")
        return 0 if check.consistent else 1
    return 0


class _StderrProgress:
    """Progress observer printing one line per event."""

    def notify(self, event: object) -> None:
        step = f" {event.step_id}" if event.step_id else ""
        finding = f" - {event.finding}" if event.finding and event.kind == "started" else ""
        print(f"[{event.progress:3d}%] {event.kind}{step}{finding}", file=sys.stderr)


def _parse_pairs(items: list[str]) -> dict[str, float]:
    """Parse ["brand=70", ...] into {"brand": 70.0}."""
    parsed: dict[str, float] = {}
    for item in items:
        name, sep, value = item.partition("=")
        if not sep or not name.strip():
            raise ValueError(f"Expected NAME=VALUE, got {item!r}")
        try:
            parsed[name.strip()] = float(value)
        except ValueError:
            raise ValueError(f"Not a number in {item!r}") from None
    return parsed


def _print_run_summary(run: object) -> None:
    """Print a human-readable summary of a Run."""
    print(f"\nRun {run.id}:")
    print(f"  Status:       {run.status}")
    print(f"  Progress:     {run.progress}%")
    print(f"  Steps done:   {', '.join(run.completed_steps) or '-'}")
    if run.current_step:
        print(f"  Next step:    {run.current_step}")
    if run.degraded_steps:
        print(f"  Degraded:     {', '.join(run.degraded_steps)}")
    if run.error:
        print(f"  Error:        {run.error}")
    scorecard = run.fields.get("scorecard")
    if scorecard:
        print(
            f"  Score:        {scorecard['overall_score']}/100 "
            f"({scorecard['maturity_stage']})"
        )


def _setup_logging(verbose: bool) -> None:
    """Configure logging for CLI usage: text on stderr, LOG_FILE if set."""
    from gapflow.config.settings import load_settings
    from gapflow.logging.logger import setup_logging_from_settings

    setup_logging_from_settings(
        load_settings(),
        level="DEBUG" if verbose else "WARNING",
        log_format="text",
        stream=sys.stderr,
    )
    # Quiet noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


if __name__ == "__main__":
    sys.exit(main())
