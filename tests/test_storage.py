"""Tests for the DuckDB upsert store."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import duckdb
import pytest

from nfl_sync_pipeline.errors import StoreUnavailable
from nfl_sync_pipeline.models import CanonicalEntity
from nfl_sync_pipeline.normalize import normalize
from nfl_sync_pipeline.schema import ENTITY_COLUMNS, init_db, table_name
from nfl_sync_pipeline.storage import UpsertStore


def _timestamps(store: UpsertStore, entity_type: str, external_id: str) -> tuple:
    frame = store.query_frame(
        f"SELECT created_at, updated_at FROM {table_name(entity_type)} WHERE external_id = ?",
        [external_id],
    )
    return frame.iloc[0]["created_at"], frame.iloc[0]["updated_at"]


class TestSchema:
    def test_init_db_creates_one_table_per_entity_type(self, temp_db_path: Path) -> None:
        init_db(temp_db_path)

        conn = duckdb.connect(str(temp_db_path))
        tables = {row[0] for row in conn.execute("SHOW TABLES").fetchall()}
        conn.close()

        assert tables == {table_name(t) for t in ENTITY_COLUMNS}

    def test_unknown_entity_type(self) -> None:
        with pytest.raises(ValueError):
            table_name("coach")


class TestUpsert:
    def test_insert_new_entity(self, store: UpsertStore, sample_team: dict[str, Any]) -> None:
        result = store.upsert(normalize(sample_team, "teams"))

        assert result.created is True
        assert store.count("team") == 1

    def test_same_entity_twice_writes_nothing(self, store: UpsertStore, sample_team: dict[str, Any]) -> None:
        entity = normalize(sample_team, "teams")
        store.upsert(entity)
        before = _timestamps(store, "team", "1")

        result = store.upsert(entity)

        assert result.created is False
        assert result.updated is False
        assert _timestamps(store, "team", "1") == before
        assert store.count("team") == 1

    def test_changed_entity_updates_in_place(self, store: UpsertStore, sample_game: dict[str, Any]) -> None:
        store.upsert(normalize(sample_game, "games"))
        created_at, _ = _timestamps(store, "matchup", "7001")

        sample_game["home_team_score"] = 37
        result = store.upsert(normalize(sample_game, "games"))

        assert result.created is False
        assert result.updated is True
        assert store.count("matchup") == 1
        frame = store.query_frame(
            f"SELECT home_team_score FROM {table_name('matchup')} WHERE external_id = '7001'"
        )
        assert frame.iloc[0]["home_team_score"] == 37
        assert _timestamps(store, "matchup", "7001")[0] == created_at

    def test_raw_only_change_is_an_update(self, store: UpsertStore, sample_team: dict[str, Any]) -> None:
        store.upsert(normalize(sample_team, "teams"))
        sample_team["primary_color"] = "#00338D"

        assert store.upsert(normalize(sample_team, "teams")).updated is True

    def test_identity_is_external_id_only(self, store: UpsertStore) -> None:
        fields = {"name": "Same"}
        store.upsert(CanonicalEntity("team", "1", fields, {"id": 1}))
        store.upsert(CanonicalEntity("team", "2", fields, {"id": 2}))

        assert store.count("team") == 2

    def test_missing_values_stored_as_null(self, store: UpsertStore, sample_stat: dict[str, Any]) -> None:
        store.upsert(normalize(sample_stat, "stats"))

        frame = store.query_frame(
            f"SELECT receptions, total_tackles FROM {table_name('player_stats')}"
        )
        assert frame.iloc[0]["receptions"] == 0
        assert frame["total_tackles"].isna().all()

    def test_feed_entities_never_touch_derived_table(
        self, store: UpsertStore, sample_stat: dict[str, Any]
    ) -> None:
        store.upsert(
            CanonicalEntity(
                "player_advanced_metrics",
                "33-2024",
                {"player_id": 33, "season": 2024, "games_played": 1},
                {"source": "player_stats"},
            )
        )
        store.upsert(normalize(sample_stat, "stats"))

        assert store.count("player_advanced_metrics") == 1
        assert store.count("player_stats") == 1

    def test_data_survives_reopen(self, temp_db_path: Path, sample_team: dict[str, Any]) -> None:
        with UpsertStore(temp_db_path) as s:
            s.upsert(normalize(sample_team, "teams"))

        with UpsertStore(temp_db_path) as s:
            assert s.count("team") == 1
            assert s.upsert(normalize(sample_team, "teams")).created is False


class TestStoreErrors:
    def test_closed_store_raises(self, temp_db_path: Path, sample_team: dict[str, Any]) -> None:
        s = UpsertStore(temp_db_path)
        s.close()

        with pytest.raises(StoreUnavailable):
            s.upsert(normalize(sample_team, "teams"))

    def test_bad_query_raises_store_unavailable(self, store: UpsertStore) -> None:
        with pytest.raises(StoreUnavailable):
            store.query_frame("SELECT * FROM no_such_table")

    def test_in_memory_store(self, sample_team: dict[str, Any]) -> None:
        with UpsertStore(":memory:") as s:
            assert s.upsert(normalize(sample_team, "teams")).created is True
