"""Environment configuration for the NFL feed sync pipeline.

Values are read from the environment once at import, the same way the rest of
the pipeline expects plain module constants. `SyncSettings` bundles the
per-run tunables so a job can be given a different set in tests.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

# Environment (dev/prod)
ENVIRONMENT = os.environ.get("NFL_SYNC_ENV", "dev").lower()

# Local storage
DATA_DIR = Path(os.environ.get("NFL_SYNC_DATA_DIR", "data"))

# Provider
DEFAULT_BDL_BASE_URL = "https://api.balldontlie.io/nfl/v1"
BDL_BASE_URL = (
    os.environ.get("BALLDONTLIE_NFL_BASE_URL")
    or os.environ.get("BALLDONTLIE_BASE_URL")
    or DEFAULT_BDL_BASE_URL
)
BDL_API_KEY = os.environ.get("BDL_API_KEY", "")

# Pagination (balldontlie caps per_page at 100)
MAX_PER_PAGE = 100
DEFAULT_PER_PAGE = int(os.environ.get("SYNC_DEFAULT_PER_PAGE", "100"))
SYNC_MAX_PAGES = int(os.environ.get("SYNC_MAX_PAGES", "1000"))

# Retry/backoff for feed calls
FEED_MAX_ATTEMPTS = int(os.environ.get("FEED_MAX_ATTEMPTS", "4"))
FEED_BACKOFF_MULTIPLIER = float(os.environ.get("FEED_BACKOFF_MULTIPLIER", "1.0"))
FEED_BACKOFF_MAX = float(os.environ.get("FEED_BACKOFF_MAX", "30.0"))
FEED_TIMEOUT = float(os.environ.get("FEED_TIMEOUT", "15.0"))

# Early-abort failure budget
SYNC_MAX_FAILURES = int(os.environ.get("SYNC_MAX_FAILURES", "50"))
SYNC_MAX_FAILURE_RATIO = float(os.environ.get("SYNC_MAX_FAILURE_RATIO", "0.5"))
SYNC_MIN_FAILURE_SAMPLE = int(os.environ.get("SYNC_MIN_FAILURE_SAMPLE", "20"))

LOG_LEVEL = os.environ.get("NFL_SYNC_LOG_LEVEL", "INFO").upper()


def get_database_path() -> Path:
    """Get the DuckDB file for the current environment."""
    if ENVIRONMENT == "prod":
        return DATA_DIR / "nfl_sync_prod.duckdb"
    return DATA_DIR / "nfl_sync_dev.duckdb"  # Default to dev for safety


def get_ledger_path() -> Path:
    """Get the sync ledger JSON file for the current environment."""
    if ENVIRONMENT == "prod":
        return DATA_DIR / "lastSynced.prod.json"
    return DATA_DIR / "lastSynced.dev.json"


@dataclass(frozen=True)
class SyncSettings:
    """Per-run tunables for a ResourceSyncJob."""

    per_page: int = DEFAULT_PER_PAGE
    max_pages: int = SYNC_MAX_PAGES
    max_failures: int = SYNC_MAX_FAILURES
    max_failure_ratio: float = SYNC_MAX_FAILURE_RATIO
    min_failure_sample: int = SYNC_MIN_FAILURE_SAMPLE
    dry_run: bool = False

    @classmethod
    def from_env(cls, **overrides: object) -> "SyncSettings":
        """Build settings from the environment-backed defaults.

        Overrides set to None are ignored so CLI flags that were not given
        fall through to the environment.
        """
        values = {k: v for k, v in overrides.items() if v is not None}
        return cls(**values)  # type: ignore[arg-type]


__all__ = [
    "ENVIRONMENT",
    "BDL_BASE_URL",
    "BDL_API_KEY",
    "MAX_PER_PAGE",
    "DEFAULT_PER_PAGE",
    "SYNC_MAX_PAGES",
    "FEED_MAX_ATTEMPTS",
    "FEED_BACKOFF_MULTIPLIER",
    "FEED_BACKOFF_MAX",
    "FEED_TIMEOUT",
    "LOG_LEVEL",
    "SyncSettings",
    "get_database_path",
    "get_ledger_path",
]
