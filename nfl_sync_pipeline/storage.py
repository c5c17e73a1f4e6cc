"""DuckDB upsert store for canonical entities.

Entities are matched on (entity_type, external_id) only; the table is chosen by
entity type and external_id is its primary key. An upsert:

- inserts when the external id is new (created=True)
- updates typed columns and raw when anything differs (updated=True)
- issues no write at all when the stored row already matches, so applying the
  same entity twice leaves the table byte-for-byte unchanged

created_at and every column the entity type does not own are never touched by
an update. Timestamps are stored as naive UTC.

One DuckDB connection is opened per store; each thread works through its own
cursor on it so concurrent jobs can share a store.
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, List, Optional, Sequence

import duckdb
import pandas as pd

from .errors import StoreUnavailable
from .models import CanonicalEntity, UpsertResult
from .schema import ENTITY_COLUMNS, init_schema, table_name

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _quoted(columns: Sequence[str]) -> str:
    return ", ".join(f'"{c}"' for c in columns)


class UpsertStore:
    """Persist canonical entities keyed by external id.

    Args:
        db_path: DuckDB file path, or ":memory:" for a throwaway store
    """

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        try:
            self._conn = duckdb.connect(database=self.db_path)
            init_schema(self._conn)
        except duckdb.Error as e:
            raise StoreUnavailable(f"Could not open store at {self.db_path}: {e}") from e

        self._local = threading.local()
        self._cursors: List[duckdb.DuckDBPyConnection] = []
        self._lock = threading.Lock()
        self._closed = False

    def __enter__(self) -> "UpsertStore":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            for cur in self._cursors:
                cur.close()
            self._cursors.clear()
            self._conn.close()

    def _cursor(self) -> duckdb.DuckDBPyConnection:
        if self._closed:
            raise StoreUnavailable(f"Store at {self.db_path} is closed")
        cur = getattr(self._local, "cursor", None)
        if cur is None:
            with self._lock:
                if self._closed:
                    raise StoreUnavailable(f"Store at {self.db_path} is closed")
                cur = self._conn.cursor()
                self._cursors.append(cur)
            self._local.cursor = cur
        return cur

    def upsert(self, entity: CanonicalEntity) -> UpsertResult:
        """Insert or update one entity.

        Returns:
            UpsertResult(created=True) for a new external id; otherwise
            created=False, with updated=True only when stored content changed

        Raises:
            StoreUnavailable: If the write could not be completed
            ValueError: If the entity type is unknown
        """
        table = table_name(entity.entity_type)
        columns = list(ENTITY_COLUMNS[entity.entity_type])
        values = [entity.fields.get(c) for c in columns]
        raw_json = json.dumps(entity.raw, sort_keys=True, default=str)

        cur = self._cursor()
        try:
            cur.begin()
            existing = cur.execute(
                f"SELECT {_quoted(columns)}, CAST(raw AS VARCHAR) FROM {table} WHERE external_id = ?",
                [entity.external_id],
            ).fetchone()

            if existing is None:
                now = _utcnow()
                placeholders = ", ".join("?" for _ in range(len(columns) + 4))
                cur.execute(
                    f"INSERT INTO {table} (external_id, {_quoted(columns)}, raw, created_at, updated_at) "
                    f"VALUES ({placeholders})",
                    [entity.external_id, *values, raw_json, now, now],
                )
                result = UpsertResult(created=True)
            elif _matches(existing, values, raw_json):
                result = UpsertResult(created=False, updated=False)
            else:
                assignments = ", ".join(f'"{c}" = ?' for c in columns)
                cur.execute(
                    f"UPDATE {table} SET {assignments}, raw = ?, updated_at = ? WHERE external_id = ?",
                    [*values, raw_json, _utcnow(), entity.external_id],
                )
                result = UpsertResult(created=False, updated=True)
            cur.commit()
        except duckdb.Error as e:
            self._rollback(cur)
            raise StoreUnavailable(
                f"Upsert failed for {entity.entity_type} {entity.external_id}: {e}"
            ) from e
        return result

    def _rollback(self, cur: duckdb.DuckDBPyConnection) -> None:
        try:
            cur.rollback()
        except duckdb.Error as e:
            # No open transaction to roll back.
            logger.debug(f"Rollback skipped: {e}")

    def query_frame(self, sql: str, params: Optional[Sequence[Any]] = None) -> pd.DataFrame:
        """Run a read query and return the result as a DataFrame.

        Raises:
            StoreUnavailable: If the query fails
        """
        cur = self._cursor()
        try:
            return cur.execute(sql, list(params or [])).df()
        except duckdb.Error as e:
            raise StoreUnavailable(f"Query failed: {e}") from e

    def count(self, entity_type: str) -> int:
        cur = self._cursor()
        try:
            row = cur.execute(f"SELECT COUNT(*) FROM {table_name(entity_type)}").fetchone()
        except duckdb.Error as e:
            raise StoreUnavailable(f"Count failed for {entity_type}: {e}") from e
        return int(row[0]) if row else 0


def _matches(existing: Sequence[Any], values: Sequence[Any], raw_json: str) -> bool:
    stored_values, stored_raw = list(existing[:-1]), existing[-1]
    if stored_values != list(values):
        return False
    if stored_raw is None:
        return False
    return json.loads(stored_raw) == json.loads(raw_json)


__all__ = ["UpsertStore"]
