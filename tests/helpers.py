"""Shared test helpers for the dream journal tests.

Regular functions (not fixtures) that can be imported by any test module.
Timestamps are naive ISO strings so they read as local time and day
bucketing does not depend on the machine's time zone.
"""

from __future__ import annotations

from datetime import date, timedelta

TURKISH_REPLY = (
    "BAŞLIK: Test Title\n"
    "SEMBOLLER: water, fire\n"
    "DUYGULAR: joy\n"
    "FAL: all will be well\n"
    "AÇIKLAMA: a long description"
)


def make_record(day: str | date, hour: int = 10, **fields) -> dict:
    """Build a record dict created on *day* at *hour* local time.

    Args:
        day: ISO date string or date.
        hour: Hour of creation.
        **fields: Overrides for any record key.

    Returns:
        A record dict shaped like the store's output.
    """
    if isinstance(day, date):
        day = day.isoformat()
    record = {
        "id": f"rec-{day}-{hour:02d}",
        "owner_id": None,
        "created_at": f"{day}T{hour:02d}:00:00",
        "title": "",
        "narrative": "",
        "raw_input": None,
        "media_url": "",
        "category_tags": [],
        "mood_tags": [],
        "rating": None,
        "interpretation": "",
    }
    record.update(fields)
    return record


def make_records_on_days(reference: str | date, offsets: list[int], **fields) -> list[dict]:
    """One record per offset, *offset* days before *reference*.

    Args:
        reference: The reference day.
        offsets: Days before the reference (0 = the reference day itself).
        **fields: Overrides applied to every record.
    """
    if isinstance(reference, str):
        reference = date.fromisoformat(reference)
    records = []
    for i, offset in enumerate(offsets):
        day = reference - timedelta(days=offset)
        records.append(make_record(day, hour=8 + i % 12, **fields))
    return records
