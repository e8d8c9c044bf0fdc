"""Dream record model and the coercion helpers shared by stats and storage.

Records travel through the project as plain dicts.  The helpers here read
them defensively so one malformed record never poisons a whole collection.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Any

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------
RATING_MIN = 1
RATING_MAX = 10
DEFAULT_RATING = 5

TAG_FIELDS = {
    "categories": "category_tags",
    "moods": "mood_tags",
}

RECORD_DEFAULTS: dict[str, Any] = {
    "owner_id": None,
    "title": "",
    "narrative": "",
    "raw_input": None,
    "media_url": "",
    "category_tags": [],
    "mood_tags": [],
    "rating": None,
    "interpretation": "",
}


def new_record_fields(**fields: Any) -> dict[str, Any]:
    """Build the field dict for a record about to be created.

    Unknown keys are dropped.  ``id`` and ``created_at`` are never taken
    from the caller; the store assigns them.

    Args:
        **fields: Any subset of the record keys in ``RECORD_DEFAULTS``.

    Returns:
        A new dict with every record key present.  Tag lists are copied and
        ``rating`` falls back to ``DEFAULT_RATING`` when absent.
    """
    result: dict[str, Any] = {}
    for key, default in RECORD_DEFAULTS.items():
        value = fields.get(key, default)
        if isinstance(default, list):
            value = list(value) if isinstance(value, (list, tuple)) else []
        result[key] = value
    if result["rating"] is None:
        result["rating"] = DEFAULT_RATING
    return result


def valid_rating(value: Any) -> int | None:
    """Return *value* as an int when it is a usable rating, else None.

    Bools, non-integral floats, strings and anything outside
    ``RATING_MIN``..``RATING_MAX`` count as absent.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if isinstance(value, float) and not value.is_integer():
        return None
    if not RATING_MIN <= value <= RATING_MAX:
        return None
    return int(value)


def record_tags(record: dict, field: str) -> list[str]:
    """Return the usable tags of *record* for ``"categories"`` or ``"moods"``.

    Args:
        record: A record dict.  May lack the tag key entirely.
        field: Either ``"categories"`` or ``"moods"``.

    Returns:
        The tags in their original order and casing, skipping non-string
        and blank entries.  Empty list when the key is missing or not a list.

    Raises:
        ValueError: If *field* is not a known tag field.
    """
    if field not in TAG_FIELDS:
        raise ValueError(f"Unknown tag field: {field!r}")
    tags = record.get(TAG_FIELDS[field]) if isinstance(record, dict) else None
    if not isinstance(tags, (list, tuple)):
        return []
    return [t.strip() for t in tags if isinstance(t, str) and t.strip()]


def tag_key(tag: str) -> str:
    """Case-insensitive merge key for a tag."""
    return tag.strip().casefold()


def local_datetime(value: Any) -> datetime | None:
    """Convert a stored timestamp into a naive datetime in local time.

    Accepts ISO-8601 strings (a trailing ``Z`` is read as UTC), datetime
    objects and Unix epoch numbers.  Aware values are shifted into the
    local zone; naive values are taken to be local already.

    Returns:
        The local datetime, or None if *value* cannot be interpreted.
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return None
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(float(value))
        except (ValueError, OSError, OverflowError):
            return None
    else:
        return None

    if dt.tzinfo is not None:
        dt = dt.astimezone().replace(tzinfo=None)
    return dt


def record_day(record: dict) -> date | None:
    """Calendar day (local zone) on which *record* was created."""
    if not isinstance(record, dict):
        return None
    dt = local_datetime(record.get("created_at"))
    return dt.date() if dt is not None else None


def coerce_date(value: date | datetime | str | None) -> date:
    """Normalise a reference date argument.

    Args:
        value: A date, a datetime (its local calendar day is used), an ISO
            date or datetime string, or None for today.

    Returns:
        The calendar date.

    Raises:
        ValueError: If *value* is a string that is not an ISO date.
    """
    if value is None:
        return date.today()
    if isinstance(value, datetime):
        return local_datetime(value).date()
    if isinstance(value, date):
        return value
    dt = local_datetime(value)
    if dt is None:
        raise ValueError(f"Invalid reference date: {value!r}")
    return dt.date()


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)
