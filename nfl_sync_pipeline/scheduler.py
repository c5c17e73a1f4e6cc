"""Boundary trigger for sync jobs.

The scheduler is what cron, the CLI or an admin endpoint calls. It builds a
fresh ResourceSyncJob per trigger, runs different resource types concurrently
on worker threads, and refuses to start a second run for a resource type that
is already in flight.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .config import SyncSettings
from .feed import FeedClient
from .ledger import SyncLedger
from .models import JobResult, JobState
from .normalize import RESOURCE_TYPES
from .pipeline import ResourceSyncJob
from .storage import UpsertStore

logger = logging.getLogger(__name__)


class SyncScheduler:
    """Start sync jobs with a shared client, store and ledger.

    Args:
        client: Feed client injected into every job
        store: Entity store shared by all jobs
        ledger: Sync ledger shared by all jobs
        settings: Default per-run settings
        max_workers: Upper bound on concurrently running jobs in run_many
    """

    def __init__(
        self,
        client: FeedClient,
        store: UpsertStore,
        ledger: SyncLedger,
        *,
        settings: Optional[SyncSettings] = None,
        max_workers: int = 4,
    ) -> None:
        self.client = client
        self.store = store
        self.ledger = ledger
        self.settings = settings or SyncSettings()
        self.max_workers = max(1, max_workers)
        self._running: Dict[str, threading.Event] = {}
        self._lock = threading.Lock()

    def running(self) -> List[str]:
        with self._lock:
            return sorted(self._running)

    def cancel_all(self) -> None:
        """Signal every running job to stop before its next page."""
        with self._lock:
            events = list(self._running.items())
        for resource_type, event in events:
            logger.warning(f"Cancelling {resource_type} sync")
            event.set()

    def run_sync(
        self,
        resource_type: str,
        params: Optional[Mapping[str, Any]] = None,
        cancel_event: Optional[threading.Event] = None,
        settings: Optional[SyncSettings] = None,
    ) -> JobResult:
        """Run one sync for a resource type and return its JobResult.

        Raises:
            ValueError: If the resource type is unknown
        """
        _validate(resource_type)
        event = cancel_event or threading.Event()

        with self._lock:
            if resource_type in self._running:
                logger.warning(f"{resource_type} sync already running, skipping")
                return JobResult(
                    resource_type,
                    JobState.SKIPPED,
                    error=f"A {resource_type} sync is already running",
                )
            self._running[resource_type] = event

        try:
            job = ResourceSyncJob(
                resource_type,
                self.client,
                self.store,
                self.ledger,
                settings=settings or self.settings,
                params=params,
                cancel_event=event,
            )
            result = job.run()
        finally:
            with self._lock:
                self._running.pop(resource_type, None)

        if result.ledger_error:
            # Ledger staleness breaks the next run's assumptions; surface it loudly.
            logger.error(f"ALERT: {resource_type} ledger entry is stale: {result.ledger_error}")
        return result

    def run_many(
        self,
        resource_types: Iterable[str],
        params_by_type: Optional[Mapping[str, Mapping[str, Any]]] = None,
    ) -> Dict[str, JobResult]:
        """Run one job per resource type concurrently.

        A KeyboardInterrupt while waiting cancels every job of the batch:
        queued jobs never start and running jobs stop before their next page.
        The interrupt is re-raised once the running jobs have finalized.

        Returns:
            Mapping of resource type to its JobResult, in request order
        """
        ordered = list(dict.fromkeys(resource_types))
        for resource_type in ordered:
            _validate(resource_type)
        if not ordered:
            return {}

        params_by_type = params_by_type or {}
        workers = min(self.max_workers, len(ordered))
        batch_cancel = threading.Event()
        logger.info(f"Running {len(ordered)} sync jobs on {workers} workers: {', '.join(ordered)}")

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="sync") as executor:
            futures = {
                resource_type: executor.submit(
                    self.run_sync, resource_type, params_by_type.get(resource_type), batch_cancel
                )
                for resource_type in ordered
            }
            # Must happen before the executor exits, since its shutdown waits on every job.
            try:
                wait(futures.values())
            except KeyboardInterrupt:
                logger.warning("Interrupted, cancelling sync jobs")
                batch_cancel.set()
                for future in futures.values():
                    future.cancel()
                self.cancel_all()
                raise
            return {resource_type: future.result() for resource_type, future in futures.items()}


def _validate(resource_type: str) -> None:
    if resource_type not in RESOURCE_TYPES:
        raise ValueError(
            f"Unknown resource type: {resource_type}. "
            f"Available resources: {', '.join(RESOURCE_TYPES)}"
        )


__all__ = ["SyncScheduler"]
