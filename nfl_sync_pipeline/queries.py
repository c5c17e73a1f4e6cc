"""Read-only lookups over stored entities for the presentation layer."""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

import pandas as pd

from .schema import ENTITY_COLUMNS, table_name
from .storage import UpsertStore


def get_entity(store: UpsertStore, entity_type: str, external_id: Any) -> Optional[Dict[str, Any]]:
    """Return one entity by external id, with `raw` decoded, or None."""
    columns = ["external_id", *ENTITY_COLUMNS[entity_type], "raw", "created_at", "updated_at"]
    quoted = ", ".join(f'"{c}"' for c in columns)
    frame = store.query_frame(
        f"SELECT {quoted} FROM {table_name(entity_type)} WHERE external_id = ?",
        [str(external_id)],
    )
    if frame.empty:
        return None

    row = frame.astype(object).where(frame.notna(), None).iloc[0].to_dict()
    if isinstance(row.get("raw"), str):
        row["raw"] = json.loads(row["raw"])
    return row


def find_entities(
    store: UpsertStore,
    entity_type: str,
    *,
    team_id: Optional[int] = None,
    season: Optional[int] = None,
    week: Optional[int] = None,
) -> pd.DataFrame:
    """Filter an entity collection by team, season and week.

    For matchups `team_id` matches either the home or the visiting side.

    Raises:
        ValueError: If a filter is given for a column the entity type lacks
    """
    columns = ENTITY_COLUMNS[entity_type]
    clauses: List[str] = []
    params: List[Any] = []

    if team_id is not None:
        if entity_type == "matchup":
            clauses.append('("home_team_id" = ? OR "visitor_team_id" = ?)')
            params.extend([team_id, team_id])
        elif entity_type == "team":
            clauses.append("external_id = ?")
            params.append(str(team_id))
        elif "team_id" in columns:
            clauses.append('"team_id" = ?')
            params.append(team_id)
        else:
            raise ValueError(f"{entity_type} cannot be filtered by team")

    for name, value in (("season", season), ("week", week)):
        if value is None:
            continue
        if name not in columns:
            raise ValueError(f"{entity_type} cannot be filtered by {name}")
        clauses.append(f'"{name}" = ?')
        params.append(value)

    where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
    quoted = ", ".join(f'"{c}"' for c in ["external_id", *columns])
    return store.query_frame(
        f"SELECT {quoted} FROM {table_name(entity_type)}{where} ORDER BY external_id",
        params,
    )


__all__ = ["get_entity", "find_entities"]
