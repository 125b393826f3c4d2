"""repfinder: California representative lookup by postal code.

Pipeline: Validate -> Location -> Jurisdiction -> Level fan-out ->
Collision resolution -> Data quality -> Result

Usage:
    python -m repfinder.main --zip 95814                 # Resolve one postal code
    python -m repfinder.main --zip 95814 --zip 93241     # Resolve several
    python -m repfinder.main --zip 95814 --include-committees
    python -m repfinder.main --health-check              # Probe collaborators
    python -m repfinder.main --health-check --no-probe   # Config/breaker state only
    python -m repfinder.main --refresh county --zip 95814  # Resolve, then refresh a level
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from repfinder.config import GOVERNMENT_LEVELS, load_config
from repfinder.errors import InputValidationError
from repfinder.orchestrator import ResolutionFlags, build_orchestrator

logger = logging.getLogger(__name__)

EXIT_INVALID_INPUT = 2


async def run_lookup(
    config: dict,
    postal_codes: list[str],
    flags: ResolutionFlags,
    refresh_level: str | None = None,
) -> list[dict]:
    """Resolve each postal code and return JSON-ready results.

    Raises:
        InputValidationError: a postal code is malformed.
    """
    orchestrator = build_orchestrator(config)
    try:
        results = []
        for code in postal_codes:
            result = await orchestrator.resolve_representation(code, flags)
            results.append(result.model_dump(mode="json"))
        if refresh_level:
            summary = await orchestrator.refresh(refresh_level)
            logger.info("Refresh summary: %s", summary)
        return results
    finally:
        await orchestrator.close()


async def run_health_check(config: dict, probe: bool) -> str:
    from repfinder.health import HealthChecker, format_report

    orchestrator = build_orchestrator(config)
    checker = HealthChecker(orchestrator, config)
    results = await checker.check_all(probe=probe)
    return format_report(results, checker.cache_stats())


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="repfinder: federal, state, county and municipal representatives for a California ZIP code"
    )
    parser.add_argument("--zip", dest="zips", action="append", default=[],
                        help="Postal code to resolve (repeatable)")
    parser.add_argument("--include-committees", action="store_true",
                        help="Attach committee assignments to each representative")
    parser.add_argument("--force-refresh", action="store_true",
                        help="Bypass the cache and re-fetch every level")
    parser.add_argument("--refresh", choices=GOVERNMENT_LEVELS,
                        help="After resolving, refresh this level for every cached postal code")
    parser.add_argument("--health-check", action="store_true",
                        help="Check availability of every collaborator")
    parser.add_argument("--no-probe", action="store_true",
                        help="With --health-check, skip live HTTP probes")
    parser.add_argument("--config", type=Path, help="Resolver config file")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    args = parser.parse_args(argv)

    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    config = load_config(args.config)

    if args.health_check:
        print(asyncio.run(run_health_check(config, probe=not args.no_probe)))
        return

    if not args.zips:
        parser.error("at least one --zip is required")

    flags = ResolutionFlags(
        include_committees=args.include_committees,
        force_refresh=args.force_refresh,
    )
    try:
        results = asyncio.run(run_lookup(config, args.zips, flags, args.refresh))
    except InputValidationError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(EXIT_INVALID_INPUT)

    payload = results[0] if len(results) == 1 else results
    print(json.dumps(payload, indent=2))


if __name__ == "__main__":
    main()
