"""nfl_sync_pipeline package.

NFL feed ingestion: cursor-paginated fetch, normalization, idempotent upsert
into DuckDB, and a per-resource-type sync ledger.
"""

from .errors import FeedUnavailable, LedgerWriteError, StoreUnavailable
from .feed import FeedClient
from .ledger import SyncLedger
from .models import JobResult, JobState, SyncStatus
from .normalize import RESOURCE_TYPES, normalize
from .pipeline import ResourceSyncJob, run_sync
from .scheduler import SyncScheduler
from .storage import UpsertStore

__all__ = [
    "FeedClient",
    "FeedUnavailable",
    "JobResult",
    "JobState",
    "LedgerWriteError",
    "RESOURCE_TYPES",
    "ResourceSyncJob",
    "StoreUnavailable",
    "SyncLedger",
    "SyncScheduler",
    "SyncStatus",
    "UpsertStore",
    "normalize",
    "run_sync",
]
