"""Derived player metrics computed from stored stat lines.

This is a separate writer from the feed sync. It reads `player_stats`, aggregates
per (player, season), and upserts `player_advanced_metrics` entities keyed by
"<player_id>-<season>". Stats syncs never write this entity type, so re-syncing
stats can't clobber what is computed here.
"""

from __future__ import annotations

import logging
from typing import Optional

import pandas as pd

from .models import CanonicalEntity
from .schema import table_name
from .storage import UpsertStore

logger = logging.getLogger(__name__)

BOOM_SCRIMMAGE_YARDS = 100
BOOM_TOUCHDOWNS = 2

_STAT_COLUMNS = [
    "rushing_attempts",
    "rushing_yards",
    "rushing_touchdowns",
    "receptions",
    "receiving_yards",
    "receiving_touchdowns",
]


def player_season_metrics(stats: pd.DataFrame) -> pd.DataFrame:
    """Aggregate stat lines into one row per player and season.

    Expected columns: external_id, player_id, season and the rushing/receiving
    counting stats. Missing counting stats count as zero in the totals.
    """
    columns = [
        "player_id",
        "season",
        "games_played",
        "scrimmage_yards",
        "touches",
        "efficiency_score",
        "total_touchdowns",
        "boom_rate",
    ]
    if stats.empty:
        return pd.DataFrame(columns=columns)

    df = stats.dropna(subset=["player_id", "season"]).copy()
    if df.empty:
        return pd.DataFrame(columns=columns)

    for c in _STAT_COLUMNS:
        if c not in df.columns:
            df[c] = 0
        df[c] = pd.to_numeric(df[c], errors="coerce").fillna(0)

    df["scrimmage_yards"] = df["rushing_yards"] + df["receiving_yards"]
    df["touches"] = df["rushing_attempts"] + df["receptions"]
    df["touchdowns"] = df["rushing_touchdowns"] + df["receiving_touchdowns"]
    df["boom"] = (df["scrimmage_yards"] >= BOOM_SCRIMMAGE_YARDS) | (df["touchdowns"] >= BOOM_TOUCHDOWNS)

    grouped = (
        df.groupby(["player_id", "season"])
        .agg(
            games_played=("external_id", "count"),
            scrimmage_yards=("scrimmage_yards", "sum"),
            touches=("touches", "sum"),
            total_touchdowns=("touchdowns", "sum"),
            booms=("boom", "sum"),
        )
        .reset_index()
    )
    grouped["efficiency_score"] = grouped.apply(
        lambda r: round(r["scrimmage_yards"] / r["touches"], 3) if r["touches"] > 0 else None,
        axis=1,
    )
    grouped["boom_rate"] = (grouped["booms"] / grouped["games_played"]).round(3)
    return grouped[columns]


def _maybe_float(value: object) -> Optional[float]:
    if value is None or pd.isna(value):
        return None
    return float(value)


def compute_advanced_metrics(store: UpsertStore) -> int:
    """Recompute player_advanced_metrics from stored player_stats.

    Returns:
        Number of metric rows created or updated
    """
    stats = store.query_frame(
        f"""
        SELECT external_id, player_id, season, {", ".join(_STAT_COLUMNS)}
        FROM {table_name("player_stats")}
        WHERE player_id IS NOT NULL AND season IS NOT NULL
        """
    )
    metrics = player_season_metrics(stats)
    if metrics.empty:
        logger.info("No player stats stored; nothing to derive")
        return 0

    written = 0
    for row in metrics.itertuples(index=False):
        player_id = int(row.player_id)
        season = int(row.season)
        fields = {
            "player_id": player_id,
            "season": season,
            "games_played": int(row.games_played),
            "scrimmage_yards": int(row.scrimmage_yards),
            "touches": int(row.touches),
            "efficiency_score": _maybe_float(row.efficiency_score),
            "total_touchdowns": int(row.total_touchdowns),
            "boom_rate": _maybe_float(row.boom_rate),
        }
        entity = CanonicalEntity(
            entity_type="player_advanced_metrics",
            external_id=f"{player_id}-{season}",
            fields=fields,
            raw={"source": "player_stats", **fields},
        )
        outcome = store.upsert(entity)
        if outcome.created or outcome.updated:
            written += 1

    logger.info(f"Derived advanced metrics for {len(metrics)} player seasons ({written} written)")
    return written


__all__ = ["compute_advanced_metrics", "player_season_metrics"]
