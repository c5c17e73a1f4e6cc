"""Test configuration and fixtures for the NFL sync pipeline."""

from __future__ import annotations

import copy
import tempfile
import threading
from pathlib import Path
from typing import Any, Callable, Dict, Generator, List, Optional, Union

import pytest

from nfl_sync_pipeline.ledger import SyncLedger
from nfl_sync_pipeline.models import FeedPage
from nfl_sync_pipeline.storage import UpsertStore


class FakeFeedClient:
    """Scripted stand-in for FeedClient.

    Each resource type gets a queue of FeedPage objects or exceptions, served
    in order. Once a queue runs dry it serves an empty final page.
    """

    def __init__(
        self,
        pages: Dict[str, List[Union[FeedPage, Exception]]],
        on_fetch: Optional[Callable[[str, Any], None]] = None,
    ) -> None:
        self.pages = {k: list(v) for k, v in pages.items()}
        self.calls: List[Dict[str, Any]] = []
        self.on_fetch = on_fetch
        self._lock = threading.Lock()

    def fetch_page(
        self,
        resource_type: str,
        cursor: Any = None,
        page_size: Optional[int] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> FeedPage:
        with self._lock:
            self.calls.append(
                {
                    "resource_type": resource_type,
                    "cursor": cursor,
                    "page_size": page_size,
                    "params": dict(params or {}),
                }
            )
            queue = self.pages.get(resource_type, [])
            item = queue.pop(0) if queue else FeedPage([], None)

        if self.on_fetch is not None:
            self.on_fetch(resource_type, cursor)
        if isinstance(item, Exception):
            raise item
        return item

    def cursors(self, resource_type: str) -> List[Any]:
        return [c["cursor"] for c in self.calls if c["resource_type"] == resource_type]


@pytest.fixture
def make_feed() -> Callable[..., FakeFeedClient]:
    """Factory for scripted feed clients."""
    return FakeFeedClient


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    with tempfile.TemporaryDirectory() as tmp_dir:
        yield Path(tmp_dir)


@pytest.fixture
def temp_db_path(temp_dir: Path) -> Path:
    """Provide a temporary database path for tests."""
    return temp_dir / "test_nfl.duckdb"


@pytest.fixture
def ledger_path(temp_dir: Path) -> Path:
    return temp_dir / "lastSynced.test.json"


@pytest.fixture
def store(temp_db_path: Path) -> Generator[UpsertStore, None, None]:
    s = UpsertStore(temp_db_path)
    yield s
    s.close()


@pytest.fixture
def ledger(ledger_path: Path) -> SyncLedger:
    return SyncLedger(ledger_path)


@pytest.fixture
def sample_team() -> dict[str, Any]:
    """Sample balldontlie NFL team record."""
    return {
        "id": 1,
        "conference": "AFC",
        "division": "EAST",
        "location": "Buffalo",
        "name": "Bills",
        "full_name": "Buffalo Bills",
        "abbreviation": "BUF",
    }


@pytest.fixture
def sample_player(sample_team: dict[str, Any]) -> dict[str, Any]:
    """Sample balldontlie NFL player record."""
    return {
        "id": 33,
        "first_name": "Josh",
        "last_name": "Allen",
        "position": "Quarterback",
        "position_abbreviation": "QB",
        "height": "6' 5\"",
        "weight": "237 lbs",
        "jersey_number": "17",
        "college": "Wyoming",
        "experience": "7th Season",
        "age": 28,
        "team": copy.deepcopy(sample_team),
    }


@pytest.fixture
def sample_game() -> dict[str, Any]:
    """Sample balldontlie NFL game record."""
    return {
        "id": 7001,
        "season": 2024,
        "week": 1,
        "date": "2024-09-08T17:00:00.000Z",
        "status": "Final",
        "venue": "Highmark Stadium",
        "postseason": False,
        "home_team": {"id": 1, "abbreviation": "BUF"},
        "visitor_team": {"id": 2, "abbreviation": "ARI"},
        "home_team_score": 34,
        "visitor_team_score": 28,
    }


@pytest.fixture
def sample_stat(sample_game: dict[str, Any]) -> dict[str, Any]:
    """Sample balldontlie NFL per-game stat line (no id of its own)."""
    return {
        "player": {"id": 33, "first_name": "Josh", "last_name": "Allen"},
        "team": {"id": 1},
        "game": copy.deepcopy(sample_game),
        "passing_completions": 18,
        "passing_attempts": 23,
        "passing_yards": 232,
        "passing_touchdowns": 2,
        "passing_interceptions": 0,
        "rushing_attempts": 9,
        "rushing_yards": 39,
        "rushing_touchdowns": 2,
        "receptions": 0,
        "receiving_yards": 0,
        "receiving_touchdowns": 0,
        "receiving_targets": 0,
    }
