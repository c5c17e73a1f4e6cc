"""One sync run for one resource type.

A ResourceSyncJob walks the provider feed page by page (page N+1 needs the
cursor from page N, so pages are strictly sequential), normalizes each record,
upserts it, and finally records the outcome in the sync ledger.

States: IDLE -> RUNNING -> COMPLETED | FAILED | CANCELLED. A job runs once;
the next trigger builds a fresh job and starts pagination from the beginning,
since cursors are never persisted.

Outcome -> ledger status:
- feed exhausted with no store failures                -> success
- feed exhausted with some store failures              -> partial
- page ceiling reached before the feed ended           -> partial
- failure budget exceeded (early abort, FAILED)        -> partial
- cancelled between pages (CANCELLED)                  -> partial
- feed unavailable / cursor stuck / unexpected error   -> error
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from .config import SyncSettings
from .errors import FeedUnavailable, LedgerWriteError, StoreUnavailable
from .feed import FeedClient
from .ledger import SyncLedger, utc_now_iso
from .models import JobResult, JobState, SkipSignal, SyncStatus
from .normalize import RESOURCE_TYPES, normalize
from .storage import UpsertStore

logger = logging.getLogger(__name__)


class ResourceSyncJob:
    """Sync one resource type from the feed into the store.

    Args:
        resource_type: One of RESOURCE_TYPES
        client: Feed client used for every page of this run
        store: Entity store
        ledger: Sync ledger to finalize
        settings: Page size, page ceiling, failure budget and dry-run flag
        params: Extra provider filters passed on every page
        cancel_event: Checked between pages; when set the run stops as partial
        clock: Returns the ISO-8601 timestamp used for the run
    """

    def __init__(
        self,
        resource_type: str,
        client: FeedClient,
        store: UpsertStore,
        ledger: SyncLedger,
        *,
        settings: Optional[SyncSettings] = None,
        params: Optional[Mapping[str, Any]] = None,
        cancel_event: Optional[threading.Event] = None,
        clock: Callable[[], str] = utc_now_iso,
    ) -> None:
        if resource_type not in RESOURCE_TYPES:
            raise ValueError(
                f"Unknown resource type: {resource_type}. "
                f"Available resources: {', '.join(RESOURCE_TYPES)}"
            )
        self.resource_type = resource_type
        self.client = client
        self.store = store
        self.ledger = ledger
        self.settings = settings or SyncSettings()
        self.params: Dict[str, Any] = dict(params or {})
        self.cancel_event = cancel_event or threading.Event()
        self._clock = clock
        self.state = JobState.IDLE

    def cancel(self) -> None:
        """Ask the job to stop before its next page."""
        self.cancel_event.set()

    def run(self) -> JobResult:
        """Run the sync to completion and return its summary.

        Per-record and per-page problems are counted in the result. Feed and
        ledger failures are reported in `error` / `ledger_error`; nothing is
        raised to the caller.

        Raises:
            RuntimeError: If this job instance has already been run
        """
        if self.state != JobState.IDLE:
            raise RuntimeError(f"Sync job for {self.resource_type} has already run ({self.state.value})")

        self.state = JobState.RUNNING
        result = JobResult(self.resource_type, JobState.RUNNING, started_at=self._clock())
        logger.info(
            f"Starting {self.resource_type} sync | per_page={self.settings.per_page} "
            f"dry_run={self.settings.dry_run} params={self.params}"
        )

        try:
            state, status = self._paginate(result)
        except Exception as e:
            logger.exception(f"{self.resource_type} sync crashed")
            state, status = JobState.FAILED, SyncStatus.ERROR
            result.error = f"{type(e).__name__}: {e}"

        self.state = state
        result.state = state
        result.status = status
        result.finished_at = self._clock()

        if self.settings.dry_run:
            logger.info(f"dry run: not recording {self.resource_type} in the sync ledger")
        else:
            try:
                self.ledger.record_sync(self.resource_type, status, result.finished_at)
            except LedgerWriteError as e:
                result.ledger_error = str(e)
                logger.error(f"Sync ledger not updated for {self.resource_type}: {e}")

        logger.info(
            f"{self.resource_type} sync {state.value} ({status.value}): pages={result.pages} "
            f"seen={result.records_seen} upserted={result.upserted} created={result.created} "
            f"skipped={result.skipped} failures={result.failures}"
        )
        return result

    def _paginate(self, result: JobResult) -> Tuple[JobState, SyncStatus]:
        cursor: Optional[Any] = None

        while True:
            if self.cancel_event.is_set():
                logger.warning(f"{self.resource_type} sync cancelled after {result.pages} pages")
                return JobState.CANCELLED, SyncStatus.PARTIAL

            if result.pages >= self.settings.max_pages:
                logger.warning(
                    f"Reached max_pages ({self.settings.max_pages}), stopping {self.resource_type} sync"
                )
                return JobState.COMPLETED, SyncStatus.PARTIAL

            try:
                page = self.client.fetch_page(
                    self.resource_type, cursor, self.settings.per_page, self.params
                )
            except FeedUnavailable as e:
                result.error = str(e)
                logger.error(f"{self.resource_type} sync failed on page {result.pages + 1}: {e}")
                return JobState.FAILED, SyncStatus.ERROR

            result.pages += 1
            logger.debug(
                f"{self.resource_type} page {result.pages}: {len(page.records)} records, "
                f"next cursor {page.next_cursor!r}"
            )
            self._process_records(page.records, result)
            result.records_seen += len(page.records)

            if self._over_failure_budget(result):
                result.error = (
                    f"Failure budget exceeded: {result.failures} failures "
                    f"in {result.records_seen} records"
                )
                logger.error(f"Aborting {self.resource_type} sync: {result.error}")
                return JobState.FAILED, SyncStatus.PARTIAL

            next_cursor = page.next_cursor
            if next_cursor is None:
                break
            if cursor is not None and str(next_cursor) == str(cursor):
                result.error = f"Cursor did not advance past {cursor!r}"
                logger.error(f"Stopping {self.resource_type} sync: {result.error}")
                return JobState.FAILED, SyncStatus.ERROR
            cursor = next_cursor

        if result.failures:
            return JobState.COMPLETED, SyncStatus.PARTIAL
        return JobState.COMPLETED, SyncStatus.SUCCESS

    def _process_records(self, records: List[Any], result: JobResult) -> None:
        for record in records:
            entity = normalize(record, self.resource_type)
            if isinstance(entity, SkipSignal):
                result.skipped += 1
                logger.info(f"Skipping {self.resource_type} record: {entity.reason}")
                continue

            if self.settings.dry_run:
                continue

            try:
                outcome = self.store.upsert(entity)
            except StoreUnavailable as e:
                result.failures += 1
                logger.warning(f"Store write failed for {entity.entity_type} {entity.external_id}: {e}")
                continue

            result.upserted += 1
            if outcome.created:
                result.created += 1

    def _over_failure_budget(self, result: JobResult) -> bool:
        settings = self.settings
        if result.failures > settings.max_failures:
            return True
        if result.records_seen > 0 and result.records_seen >= settings.min_failure_sample:
            return result.failures / result.records_seen > settings.max_failure_ratio
        return False


def run_sync(
    resource_type: str,
    client: FeedClient,
    store: UpsertStore,
    ledger: SyncLedger,
    **job_kwargs: Any,
) -> JobResult:
    """Run one fresh sync job for a resource type and return its result."""
    return ResourceSyncJob(resource_type, client, store, ledger, **job_kwargs).run()


__all__ = ["ResourceSyncJob", "run_sync"]
