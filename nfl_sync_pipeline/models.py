"""Record types shared across the sync pipeline.

- CanonicalEntity: normalized entity with typed fields and the raw payload
- SkipSignal: a provider record that cannot be keyed and is skipped
- FeedPage: one page of provider records plus the cursor for the next page
- SyncLedgerEntry: last run outcome for one resource type
- JobResult: summary handed back to whoever triggered a sync
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class SyncStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    ERROR = "error"


class JobState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    SKIPPED = "skipped"  # another run for the same resource type was in flight


@dataclass(frozen=True)
class CanonicalEntity:
    """A normalized provider entity.

    `fields` holds the typed slots; a value of None means the provider did not
    send it. `raw` is the verbatim provider payload and is never interpreted
    by the pipeline.
    """

    entity_type: str
    external_id: str
    fields: Dict[str, Any]
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SkipSignal:
    resource_type: str
    reason: str


@dataclass(frozen=True)
class FeedPage:
    records: List[Dict[str, Any]]
    next_cursor: Optional[Any] = None


@dataclass(frozen=True)
class UpsertResult:
    created: bool
    updated: bool = False


@dataclass(frozen=True)
class SyncLedgerEntry:
    resource_type: str
    timestamp: str
    status: SyncStatus

    def to_document(self) -> Dict[str, str]:
        return {"timestamp": self.timestamp, "status": self.status.value}


@dataclass
class JobResult:
    """Outcome of one ResourceSyncJob run."""

    resource_type: str
    state: JobState
    status: Optional[SyncStatus] = None
    records_seen: int = 0
    upserted: int = 0
    created: int = 0
    skipped: int = 0
    failures: int = 0
    pages: int = 0
    started_at: Optional[str] = None
    finished_at: Optional[str] = None
    error: Optional[str] = None
    ledger_error: Optional[str] = None

    @property
    def ok(self) -> bool:
        """True when the run finished cleanly and its ledger entry was persisted."""
        return (
            self.state == JobState.COMPLETED
            and self.status == SyncStatus.SUCCESS
            and self.ledger_error is None
        )

    def as_dict(self) -> Dict[str, Any]:
        return {
            "resource_type": self.resource_type,
            "state": self.state.value,
            "status": self.status.value if self.status is not None else None,
            "records_seen": self.records_seen,
            "upserted": self.upserted,
            "created": self.created,
            "skipped": self.skipped,
            "failures": self.failures,
            "pages": self.pages,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "error": self.error,
            "ledger_error": self.ledger_error,
        }


__all__ = [
    "SyncStatus",
    "JobState",
    "CanonicalEntity",
    "SkipSignal",
    "FeedPage",
    "UpsertResult",
    "SyncLedgerEntry",
    "JobResult",
]
