"""Storage schema for canonical NFL entities.

Each entity type gets its own table keyed by the provider's external id:

- external_id: stable provider identifier, the only identity used for upserts
- typed columns: the fields the normalizer extracts (NULL when absent)
- raw: the verbatim provider payload as JSON, so fields the provider adds
  later can be recovered without a migration
- created_at / updated_at: maintained by the store, never by the feed

Derived entity types (computed by a separate process from stored rows) live in
their own tables and are never written by a feed sync.
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict

import duckdb


# Typed columns per entity type, in table order.
ENTITY_COLUMNS: Dict[str, Dict[str, str]] = {
    "team": {
        "name": "VARCHAR",
        "abbreviation": "VARCHAR",
        "full_name": "VARCHAR",
        "location": "VARCHAR",
        "conference": "VARCHAR",
        "division": "VARCHAR",
    },
    "player": {
        "first_name": "VARCHAR",
        "last_name": "VARCHAR",
        "full_name": "VARCHAR",
        "position": "VARCHAR",
        "position_abbreviation": "VARCHAR",
        "jersey_number": "VARCHAR",
        "height": "VARCHAR",
        "weight": "VARCHAR",
        "college": "VARCHAR",
        "experience": "VARCHAR",
        "age": "INTEGER",
        "team_id": "BIGINT",
    },
    "player_stats": {
        "player_id": "BIGINT",
        "team_id": "BIGINT",
        "game_id": "BIGINT",
        "season": "INTEGER",
        "week": "INTEGER",
        "passing_completions": "INTEGER",
        "passing_attempts": "INTEGER",
        "passing_yards": "INTEGER",
        "passing_touchdowns": "INTEGER",
        "passing_interceptions": "INTEGER",
        "rushing_attempts": "INTEGER",
        "rushing_yards": "INTEGER",
        "rushing_touchdowns": "INTEGER",
        "receptions": "INTEGER",
        "receiving_yards": "INTEGER",
        "receiving_touchdowns": "INTEGER",
        "receiving_targets": "INTEGER",
        "total_tackles": "INTEGER",
        "defensive_sacks": "DOUBLE",
        "defensive_interceptions": "INTEGER",
    },
    "matchup": {
        "season": "INTEGER",
        "week": "INTEGER",
        "game_date": "VARCHAR",
        "status": "VARCHAR",
        "venue": "VARCHAR",
        "postseason": "BOOLEAN",
        "home_team_id": "BIGINT",
        "visitor_team_id": "BIGINT",
        "home_team_score": "INTEGER",
        "visitor_team_score": "INTEGER",
    },
    "player_advanced_metrics": {
        "player_id": "BIGINT",
        "season": "INTEGER",
        "games_played": "INTEGER",
        "scrimmage_yards": "INTEGER",
        "touches": "INTEGER",
        "efficiency_score": "DOUBLE",
        "total_touchdowns": "INTEGER",
        "boom_rate": "DOUBLE",
    },
}

def table_name(entity_type: str) -> str:
    """Return the table backing an entity type.

    Raises:
        ValueError: If the entity type is unknown.
    """
    if entity_type not in ENTITY_COLUMNS:
        raise ValueError(f"Unknown entity type: {entity_type}")
    return f"{entity_type}_entities"


def _schema_sql() -> str:
    """Return CREATE TABLE statements for every entity type."""
    statements = []
    for entity_type, columns in ENTITY_COLUMNS.items():
        typed = ",\n".join(f'            "{name}" {sql_type}' for name, sql_type in columns.items())
        statements.append(
            f"""
        CREATE TABLE IF NOT EXISTS {table_name(entity_type)} (
            external_id VARCHAR PRIMARY KEY,
{typed},
            raw JSON,
            created_at TIMESTAMP NOT NULL,
            updated_at TIMESTAMP NOT NULL
        );"""
        )
    return "\n".join(statements)


def init_schema(conn: duckdb.DuckDBPyConnection) -> None:
    """Create all entity tables on an open connection."""
    conn.execute(_schema_sql())


def init_db(db_path: str | Path) -> None:
    """Create the DuckDB file and all entity tables if they don't exist.

    Args:
        db_path: Path to DuckDB database file
    """
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = duckdb.connect(database=str(db_path))
    init_schema(conn)
    conn.close()


__all__ = [
    "ENTITY_COLUMNS",
    "table_name",
    "init_schema",
    "init_db",
]
