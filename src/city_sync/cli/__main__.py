"""CLI entry point: python -m city_sync.cli <stage>

Each invocation runs exactly one stage and exits with 0 on success, or 1
when the stage raises or the delta gate fails.
"""

import argparse
import asyncio
import sys

import structlog

from city_sync.config.environment import resolve_environment
from city_sync.config.settings import Settings, get_settings
from city_sync.logging_config import bind_stage_context, configure_logging
from city_sync.runtime import open_stage_context
from city_sync.stages.audit import run_audit
from city_sync.stages.backfill import run_backfill
from city_sync.stages.delta_gate import run_delta_gate
from city_sync.stages.normalize import run_normalize
from city_sync.stages.reconcile import run_shadow_reconcile
from city_sync.stages.top_cities import run_export_top_cities

EXIT_OK = 0
EXIT_FAILED = 1


async def run_stage(args: argparse.Namespace, settings: Settings) -> int:
    """Open the store clients, run the selected stage, and return its exit code."""
    async with open_stage_context(settings) as ctx:
        if args.command == "audit":
            await run_audit(ctx)
        elif args.command == "backfill":
            await run_backfill(ctx)
        elif args.command == "normalize":
            await run_normalize(ctx)
        elif args.command == "reconcile":
            await run_shadow_reconcile(ctx, apply=args.apply)
        elif args.command == "delta-gate":
            report = await run_delta_gate(ctx)
            return EXIT_OK if report.passed else EXIT_FAILED
        elif args.command == "export-top-cities":
            await run_export_top_cities(ctx, limit=args.limit)
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="city_sync.cli",
        description="City reconciliation between the graph store and the canonical store",
    )
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("audit", help="Read-only parity audit of both stores")
    subparsers.add_parser("backfill", help="Resolve graph cities into the canonical store")
    subparsers.add_parser("normalize", help="Clean up and re-seed a non-production canonical store")

    reconcile_parser = subparsers.add_parser(
        "reconcile", help="Report country/region/timezone drift between the stores"
    )
    reconcile_parser.add_argument(
        "--apply",
        action="store_true",
        help="Write graph values into the canonical store for drifted fields",
    )

    subparsers.add_parser("delta-gate", help="Production promotion gate (exit 1 on fail)")

    export_parser = subparsers.add_parser(
        "export-top-cities", help="List the most referenced canonical cities"
    )
    export_parser.add_argument(
        "--limit",
        type=int,
        default=3,
        help="Number of cities to export (default: 3)",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(EXIT_FAILED)

    settings = get_settings()
    configure_logging(json_output=settings.log_json, log_level=settings.log_level)
    bind_stage_context(args.command, resolve_environment(settings.app_env, settings.node_env))
    log = structlog.get_logger()

    try:
        code = asyncio.run(run_stage(args, settings))
    except Exception as e:
        log.error("stage_failed", error=str(e), exc_info=True)
        print(f"[{args.command}] Failed: {e}", file=sys.stderr)
        code = EXIT_FAILED

    sys.exit(code)


if __name__ == "__main__":
    main()
