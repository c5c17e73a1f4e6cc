#!/usr/bin/env python3
"""Command-line trigger for the NFL feed sync pipeline.

This is the entry point an external scheduler (cron, a systemd timer, CI)
invokes. Each call builds its own client, store and ledger, runs the requested
resource syncs concurrently, and exits non-zero if any run did not succeed
cleanly.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from nfl_sync_pipeline.config import (
    BDL_API_KEY,
    BDL_BASE_URL,
    ENVIRONMENT,
    LOG_LEVEL,
    SyncSettings,
    get_database_path,
    get_ledger_path,
)
from nfl_sync_pipeline.derived import compute_advanced_metrics
from nfl_sync_pipeline.errors import LedgerReadError, StoreUnavailable
from nfl_sync_pipeline.feed import FeedClient, RateLimiter
from nfl_sync_pipeline.ledger import SyncLedger
from nfl_sync_pipeline.models import JobResult, JobState, SyncStatus
from nfl_sync_pipeline.normalize import RESOURCE_TYPES
from nfl_sync_pipeline.scheduler import SyncScheduler
from nfl_sync_pipeline.storage import UpsertStore

# Configure logging
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# Resources whose provider endpoint accepts a seasons[] filter
SEASON_FILTERED_RESOURCES = {"games", "stats"}


def parse_resource_selection(value: str) -> List[str]:
    """Parse a comma-separated resource list, preserving order.

    Raises:
        ValueError: If any resource is unknown
    """
    selected = [r.strip() for r in value.split(",") if r.strip()]
    invalid = [r for r in selected if r not in RESOURCE_TYPES]
    if invalid:
        raise ValueError(
            f"Invalid resource(s): {', '.join(invalid)}. "
            f"Available resources: {', '.join(RESOURCE_TYPES)}"
        )
    if not selected:
        raise ValueError("No resources selected")
    return list(dict.fromkeys(selected))


def build_params(resources: Sequence[str], seasons: Optional[Sequence[int]]) -> Dict[str, Dict[str, Any]]:
    """Provider filters per resource; seasons only apply where the endpoint supports them."""
    if not seasons:
        return {}
    return {
        resource: {"seasons[]": list(seasons)}
        for resource in resources
        if resource in SEASON_FILTERED_RESOURCES
    }


def run_succeeded(result: JobResult) -> bool:
    if result.ledger_error:
        return False
    if result.state in (JobState.FAILED, JobState.SKIPPED):
        return False
    return result.status != SyncStatus.ERROR


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="NFL data sync from the balldontlie feed into DuckDB",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Examples:
  # Sync every resource type concurrently
  python main.py --all

  # Sync games and stats for two seasons
  python main.py --resources games,stats --season 2024 --season 2023

  # Fetch and normalize without writing anything
  python main.py --resources players --dry-run

  # Recompute derived player metrics from stored stats
  python main.py --derive

  # Show the sync ledger
  python main.py --status

Available resources: {", ".join(RESOURCE_TYPES)}
        """,
    )

    parser.add_argument(
        "--db-path",
        type=str,
        default=str(get_database_path()),
        help=f"Path to DuckDB database file (default: {get_database_path()})",
    )
    parser.add_argument(
        "--ledger-path",
        type=str,
        default=str(get_ledger_path()),
        help=f"Path to the sync ledger JSON file (default: {get_ledger_path()})",
    )
    parser.add_argument("--per-page", type=int, default=None, help="Records per page (max 100)")
    parser.add_argument("--max-pages", type=int, default=None, help="Page ceiling per run")
    parser.add_argument(
        "--season",
        type=int,
        action="append",
        help="Season filter for games/stats; repeat for several seasons",
    )
    parser.add_argument(
        "--delay",
        type=float,
        default=0.2,
        help="Minimum delay between API calls in seconds (default: 0.2, max: 2.0)",
    )
    parser.add_argument("--workers", type=int, default=4, help="Concurrent resource syncs (default: 4)")
    parser.add_argument("--dry-run", action="store_true", help="Fetch and normalize only; write nothing")

    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--resources", type=str, help="Comma-separated resources to sync")
    group.add_argument("--all", action="store_true", help="Sync every resource type")
    group.add_argument("--derive", action="store_true", help="Recompute derived player metrics")
    group.add_argument("--status", action="store_true", help="Print the sync ledger and exit")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point; returns the process exit status."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logger.info(f"Environment: {ENVIRONMENT} | DB: {args.db_path} | Ledger: {args.ledger_path}")

    ledger = SyncLedger(args.ledger_path)

    if args.status:
        try:
            entries = ledger.read_all()
        except LedgerReadError as e:
            logger.error(f"❌ Could not read sync ledger: {e}")
            return 1
        print(json.dumps({k: v.to_document() for k, v in sorted(entries.items())}, indent=2))
        return 0

    if args.derive:
        try:
            with UpsertStore(Path(args.db_path)) as store:
                written = compute_advanced_metrics(store)
        except StoreUnavailable as e:
            logger.error(f"❌ Derived metrics failed: {e}")
            return 1
        logger.info(f"✅ Derived metrics written: {written}")
        return 0

    if args.all:
        resources = list(RESOURCE_TYPES)
    else:
        try:
            resources = parse_resource_selection(args.resources)
        except ValueError as e:
            parser.error(str(e))

    settings = SyncSettings.from_env(
        per_page=args.per_page,
        max_pages=args.max_pages,
        dry_run=args.dry_run,
    )
    client = FeedClient(BDL_BASE_URL, BDL_API_KEY, rate_limiter=RateLimiter(args.delay))

    try:
        with UpsertStore(Path(args.db_path)) as store:
            scheduler = SyncScheduler(client, store, ledger, settings=settings, max_workers=args.workers)
            results = scheduler.run_many(resources, build_params(resources, args.season))
    except StoreUnavailable as e:
        logger.error(f"❌ Could not open store: {e}")
        return 1
    except KeyboardInterrupt:
        # run_many has already cancelled and finalized the jobs
        logger.warning("Sync interrupted; cancelled jobs were recorded as partial")
        return 130

    failed = [r for r in results.values() if not run_succeeded(r)]
    for result in results.values():
        marker = "✅" if run_succeeded(result) else "❌"
        logger.info(f"{marker} {json.dumps(result.as_dict())}")

    if failed:
        logger.error(f"Sync failed for: {', '.join(r.resource_type for r in failed)}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
