"""Map raw provider records to canonical entities.

Normalization is a pure function of one record: no I/O, no defaults invented.
A field the provider did not send is None, never 0 or "", because 0 is a
perfectly valid stat line. The whole payload is kept on the entity as `raw`.

Records that cannot be keyed (no external id) come back as a SkipSignal so the
caller can log and move on without treating them as failures.
"""

from __future__ import annotations

import copy
from typing import Any, Callable, Dict, Optional, Tuple, Union

from .models import CanonicalEntity, SkipSignal


# Resource type -> entity type it produces
RESOURCE_ENTITY_TYPES: Dict[str, str] = {
    "teams": "team",
    "players": "player",
    "stats": "player_stats",
    "games": "matchup",
}

RESOURCE_TYPES = tuple(RESOURCE_ENTITY_TYPES)


def _as_int(value: Any) -> Optional[int]:
    """Coerce to int; None when missing or unparseable."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return int(text)
        except ValueError:
            try:
                number = float(text)
            except ValueError:
                return None
            return int(number) if number.is_integer() else None
    return None


def _as_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str) and value.strip():
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def _as_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        text = value.strip()
        return text or None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return None


def _as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "1", "yes"):
            return True
        if lowered in ("false", "0", "no"):
            return False
    return None


def _first_int(*values: Any) -> Optional[int]:
    """First value that coerces to an int; an explicit null falls through."""
    for value in values:
        number = _as_int(value)
        if number is not None:
            return number
    return None


def _nested_id(record: Dict[str, Any], key: str) -> Optional[int]:
    """Id of a nested provider object, falling back to a flat `<key>_id` field."""
    nested = record.get(key)
    if isinstance(nested, dict):
        found = _as_int(nested.get("id"))
        if found is not None:
            return found
    return _as_int(record.get(f"{key}_id"))


def _external_id(value: Any) -> Optional[str]:
    number = _as_int(value)
    if number is not None:
        return str(number)
    return _as_str(value)


def _map_team(r: Dict[str, Any]) -> Tuple[Optional[str], Dict[str, Any]]:
    return _external_id(r.get("id")), {
        "name": _as_str(r.get("name")),
        "abbreviation": _as_str(r.get("abbreviation")),
        "full_name": _as_str(r.get("full_name")),
        "location": _as_str(r.get("location") or r.get("city")),
        "conference": _as_str(r.get("conference")),
        "division": _as_str(r.get("division")),
    }


def _map_player(r: Dict[str, Any]) -> Tuple[Optional[str], Dict[str, Any]]:
    first = _as_str(r.get("first_name"))
    last = _as_str(r.get("last_name"))
    full_name = " ".join(part for part in (first, last) if part) or None
    return _external_id(r.get("id")), {
        "first_name": first,
        "last_name": last,
        "full_name": full_name,
        "position": _as_str(r.get("position")),
        "position_abbreviation": _as_str(r.get("position_abbreviation")),
        "jersey_number": _as_str(r.get("jersey_number")),
        "height": _as_str(r.get("height")),
        "weight": _as_str(r.get("weight")),
        "college": _as_str(r.get("college")),
        "experience": _as_str(r.get("experience")),
        "age": _as_int(r.get("age")),
        "team_id": _nested_id(r, "team"),
    }


def _map_player_stats(r: Dict[str, Any]) -> Tuple[Optional[str], Dict[str, Any]]:
    player_id = _nested_id(r, "player")
    game_id = _nested_id(r, "game")
    game = r.get("game") if isinstance(r.get("game"), dict) else {}

    # Stat rows carry no id of their own; a game/player pair is unique.
    external_id = _external_id(r.get("id"))
    if external_id is None and player_id is not None and game_id is not None:
        external_id = f"{game_id}-{player_id}"

    return external_id, {
        "player_id": player_id,
        "team_id": _nested_id(r, "team"),
        "game_id": game_id,
        "season": _first_int(r.get("season"), game.get("season")),
        "week": _first_int(r.get("week"), game.get("week")),
        "passing_completions": _as_int(r.get("passing_completions")),
        "passing_attempts": _as_int(r.get("passing_attempts")),
        "passing_yards": _as_int(r.get("passing_yards")),
        "passing_touchdowns": _as_int(r.get("passing_touchdowns")),
        "passing_interceptions": _as_int(r.get("passing_interceptions")),
        "rushing_attempts": _as_int(r.get("rushing_attempts")),
        "rushing_yards": _as_int(r.get("rushing_yards")),
        "rushing_touchdowns": _as_int(r.get("rushing_touchdowns")),
        "receptions": _as_int(r.get("receptions")),
        "receiving_yards": _as_int(r.get("receiving_yards")),
        "receiving_touchdowns": _as_int(r.get("receiving_touchdowns")),
        "receiving_targets": _as_int(r.get("receiving_targets")),
        "total_tackles": _as_int(r.get("total_tackles")),
        "defensive_sacks": _as_float(r.get("defensive_sacks")),
        "defensive_interceptions": _as_int(r.get("defensive_interceptions")),
    }


def _map_matchup(r: Dict[str, Any]) -> Tuple[Optional[str], Dict[str, Any]]:
    return _external_id(r.get("id")), {
        "season": _as_int(r.get("season")),
        "week": _as_int(r.get("week")),
        "game_date": _as_str(r.get("date")),
        "status": _as_str(r.get("status")),
        "venue": _as_str(r.get("venue")),
        "postseason": _as_bool(r.get("postseason")),
        "home_team_id": _nested_id(r, "home_team"),
        "visitor_team_id": _nested_id(r, "visitor_team"),
        "home_team_score": _as_int(r.get("home_team_score")),
        "visitor_team_score": _as_int(r.get("visitor_team_score")),
    }


_MAPPERS: Dict[str, Callable[[Dict[str, Any]], Tuple[Optional[str], Dict[str, Any]]]] = {
    "team": _map_team,
    "player": _map_player,
    "player_stats": _map_player_stats,
    "matchup": _map_matchup,
}


def normalize(record: Any, resource_type: str) -> Union[CanonicalEntity, SkipSignal]:
    """Normalize one provider record.

    Args:
        record: Raw provider payload for one entity
        resource_type: Resource the record was fetched from (see RESOURCE_TYPES)

    Returns:
        CanonicalEntity, or SkipSignal when the record has no external id

    Raises:
        ValueError: If the resource type is unknown
    """
    if resource_type not in RESOURCE_ENTITY_TYPES:
        raise ValueError(f"Unknown resource type: {resource_type}")
    entity_type = RESOURCE_ENTITY_TYPES[resource_type]

    if not isinstance(record, dict):
        return SkipSignal(resource_type, f"record is {type(record).__name__}, not an object")

    external_id, fields = _MAPPERS[entity_type](record)
    if external_id is None:
        return SkipSignal(resource_type, "record has no external id")

    return CanonicalEntity(
        entity_type=entity_type,
        external_id=external_id,
        fields=fields,
        raw=copy.deepcopy(record),
    )


__all__ = [
    "RESOURCE_ENTITY_TYPES",
    "RESOURCE_TYPES",
    "normalize",
]
