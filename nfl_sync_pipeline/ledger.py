"""Durable per-resource-type sync ledger.

The ledger is a single JSON document:

    {"players": {"timestamp": "2024-10-01T12:00:00+00:00", "status": "success"}, ...}

Every write is a full read-merge-write. The document is re-read immediately
before the write, only the one resource type's entry is replaced, and the
whole document is written to a temp file in the same directory and swapped in
with os.replace. Readers see either the old or the new document, never a torn
one. A process-wide lock per ledger file serializes the read-merge-write so
concurrent jobs writing different resource types never drop each other's
entries.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional, Union

from .errors import LedgerReadError, LedgerWriteError
from .models import SyncLedgerEntry, SyncStatus

logger = logging.getLogger(__name__)

# One lock per resolved ledger path, shared by every SyncLedger in the process.
_PATH_LOCKS: Dict[str, threading.Lock] = {}
_PATH_LOCKS_GUARD = threading.Lock()


def _lock_for(path: Path) -> threading.Lock:
    key = str(path.resolve())
    with _PATH_LOCKS_GUARD:
        lock = _PATH_LOCKS.get(key)
        if lock is None:
            lock = threading.Lock()
            _PATH_LOCKS[key] = lock
        return lock


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class SyncLedger:
    """Map of resource type -> last sync timestamp and status, backed by a JSON file."""

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)
        self._lock = _lock_for(self.path)

    def _load_document(self) -> Dict[str, Dict[str, str]]:
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as e:
            raise LedgerReadError(f"Could not read ledger {self.path}: {e}") from e

        if not text.strip():
            return {}
        try:
            document = json.loads(text)
        except ValueError as e:
            raise LedgerReadError(f"Ledger {self.path} is not valid JSON: {e}") from e
        if not isinstance(document, dict):
            raise LedgerReadError(f"Ledger {self.path} is not a JSON object")
        return document

    def read_all(self) -> Dict[str, SyncLedgerEntry]:
        """Return every ledger entry; an absent or empty ledger is an empty mapping.

        Raises:
            LedgerReadError: If the ledger file exists but cannot be parsed
        """
        entries: Dict[str, SyncLedgerEntry] = {}
        for resource_type, doc in self._load_document().items():
            if not isinstance(doc, dict):
                logger.warning(f"Ignoring malformed ledger entry for {resource_type}: {doc!r}")
                continue
            try:
                status = SyncStatus(doc.get("status"))
            except ValueError:
                logger.warning(f"Ignoring ledger entry for {resource_type} with status {doc.get('status')!r}")
                continue
            entries[resource_type] = SyncLedgerEntry(
                resource_type=resource_type,
                timestamp=str(doc.get("timestamp")),
                status=status,
            )
        return entries

    def get(self, resource_type: str) -> Optional[SyncLedgerEntry]:
        return self.read_all().get(resource_type)

    def record_sync(
        self,
        resource_type: str,
        status: Union[SyncStatus, str],
        timestamp: Optional[str] = None,
    ) -> SyncLedgerEntry:
        """Replace the entry for one resource type, keeping every other entry.

        Args:
            resource_type: Resource whose run just finished
            status: success, partial or error
            timestamp: ISO-8601 time of the outcome (default: now, UTC)

        Returns:
            The entry that was written

        Raises:
            LedgerWriteError: If the ledger could not be read or written; the
                previously persisted document is left in place
        """
        entry = SyncLedgerEntry(
            resource_type=resource_type,
            timestamp=timestamp or utc_now_iso(),
            status=SyncStatus(status),
        )

        with self._lock:
            try:
                document = self._load_document()
            except LedgerReadError as e:
                raise LedgerWriteError(f"Not overwriting unreadable ledger: {e}") from e

            document[resource_type] = entry.to_document()
            self._write_atomic(document)

        logger.info(f"Updated last sync for {resource_type}: {entry.status.value}")
        return entry

    def _write_atomic(self, document: Dict[str, Dict[str, str]]) -> None:
        tmp_name: Optional[str] = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=str(self.path.parent)
            )
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(document, fh, indent=2, sort_keys=True)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, self.path)
            tmp_name = None
        except OSError as e:
            raise LedgerWriteError(f"Failed to write ledger {self.path}: {e}") from e
        finally:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)


__all__ = ["SyncLedger", "utc_now_iso"]
