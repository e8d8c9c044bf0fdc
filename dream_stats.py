"""Derived statistics over a dream journal.

Computes the summary cards, tag histograms, daily series, streaks and
achievement badges shown by the journal.  Used by both the CLI
(dream_summary.py) and the web service (app.py).

Every function takes a fully materialised list of record dicts, never
mutates it and never performs I/O except the explicit CLI helpers at the
bottom.  Malformed records degrade to their field defaults instead of
being dropped.
"""

from __future__ import annotations

import csv
import json
import logging
import os
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from records import (
    TAG_FIELDS,
    coerce_date,
    local_datetime,
    record_day,
    record_tags,
    tag_key,
    valid_rating,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------
NO_TAG = "-"
LUCID_RATING_THRESHOLD = 8
LUCID_KEYWORD = "lucid"
HIGH_VIVIDNESS = 7
HISTOGRAM_TOP_CATEGORIES = 6
HISTOGRAM_TOP_MOODS = 5
TAG_FILTER_LIMIT = 8
STREAK_BADGE_DAYS = 7
LUCID_BADGE_COUNT = 5
DEEP_DREAMER_COUNT = 25

PERIOD_WINDOWS = {
    "week": 7,
    "month": 30,
    "year": 365,
}

DAY_LABELS = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]

_LEVELS = [
    (5, "Dream Explorer"),
    (15, "Mystic Dreamer"),
    (30, "Dream Master"),
    (50, "Lucid Legend"),
]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _round_half_up(value: float, digits: int = 0) -> float | int:
    """Round like a display would: halves go away from zero.

    Args:
        value: Number to round.
        digits: Decimal places to keep.  0 returns an int.

    Returns:
        The rounded value.
    """
    quantum = Decimal(1).scaleb(-digits)
    rounded = Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP)
    return int(rounded) if digits == 0 else float(rounded)


def _valid_ratings(records: list[dict]) -> list[int]:
    ratings = []
    for r in records:
        if not isinstance(r, dict):
            continue
        rating = valid_rating(r.get("rating"))
        if rating is not None:
            ratings.append(rating)
    return ratings


def _tag_counts(records: list[dict], fields: tuple[str, ...]) -> dict[str, list]:
    """Count tags case-insensitively across *records*.

    Args:
        records: Record dicts in input order.
        fields: Tag fields to read from each record, in order
            (``"categories"``, ``"moods"``).

    Returns:
        Dict mapping merge keys to ``[display_label, count]``.  Insertion
        order is first appearance, and the label keeps the casing of that
        first occurrence.
    """
    counts: dict[str, list] = {}
    for r in records:
        for field in fields:
            for tag in record_tags(r, field):
                key = tag_key(tag)
                if key not in counts:
                    counts[key] = [tag, 0]
                counts[key][1] += 1
    return counts


def _ranked(counts: dict[str, list]) -> list[tuple[str, int]]:
    """(label, count) pairs by descending count; sort stability keeps
    first appearance ahead on ties."""
    return sorted(
        ((label, count) for label, count in counts.values()),
        key=lambda item: item[1],
        reverse=True,
    )


def _check_tag_field(field: str) -> None:
    if field not in TAG_FIELDS:
        raise ValueError(f"Unknown tag field: {field!r} (expected one of {sorted(TAG_FIELDS)})")


# ---------------------------------------------------------------------------
# Core aggregates
# ---------------------------------------------------------------------------

def average_rating(records: list[dict], digits: int = 1) -> float | int:
    """Mean of the valid ratings in *records*.

    Args:
        records: Record dicts.  Missing or out-of-range ratings are skipped.
        digits: Decimal places of the result (half-up rounding).

    Returns:
        The rounded mean, or ``0`` when no record has a valid rating.
    """
    ratings = _valid_ratings(records)
    if not ratings:
        return 0
    return _round_half_up(sum(ratings) / len(ratings), digits)


def top_tag(records: list[dict], field: str) -> str:
    """Most frequent tag of *field*, first appearance winning ties.

    Returns ``NO_TAG`` when no record carries a tag.
    """
    _check_tag_field(field)
    ranked = _ranked(_tag_counts(records, (field,)))
    return ranked[0][0] if ranked else NO_TAG


def aggregate_summary(records: list[dict]) -> dict[str, Any]:
    """Compute the headline summary of a journal.

    Args:
        records: List of record dicts.

    Returns:
        Dict with keys:
            - count: number of records, malformed ones included.
            - average_rating: mean valid rating to one decimal, 0 if none.
            - top_category: most common category tag, or ``NO_TAG``.
            - top_mood: most common mood tag, or ``NO_TAG``.
    """
    return {
        "count": len(records),
        "average_rating": average_rating(records, digits=1),
        "top_category": top_tag(records, "categories"),
        "top_mood": top_tag(records, "moods"),
    }


def histogram(records: list[dict], field: str, top_n: int) -> list[dict]:
    """Rank the tags of *field* with their share of all tag occurrences.

    Args:
        records: List of record dicts.
        field: ``"categories"`` or ``"moods"``.
        top_n: Maximum number of entries to return.

    Returns:
        List of dicts (label, count, percentage) sorted by descending
        count, ties in first-appearance order.  ``percentage`` is relative
        to the occurrences of every tag, not only the returned ones.  Empty
        list when there are no tags at all.

    Raises:
        ValueError: If *field* is unknown or *top_n* is less than 1.
    """
    _check_tag_field(field)
    if top_n < 1:
        raise ValueError(f"top_n must be at least 1, got {top_n}")

    ranked = _ranked(_tag_counts(records, (field,)))
    total = sum(count for _, count in ranked)
    if total == 0:
        return []
    return [
        {
            "label": label,
            "count": count,
            "percentage": _round_half_up(100 * count / total),
        }
        for label, count in ranked[:top_n]
    ]


def _records_by_day(records: list[dict]) -> dict[date, list[dict]]:
    by_day: dict[date, list[dict]] = {}
    for r in records:
        day = record_day(r)
        if day is not None:
            by_day.setdefault(day, []).append(r)
    return by_day


def daily_series(
    records: list[dict],
    window_days: int,
    reference_date: date | datetime | str | None = None,
) -> list[dict]:
    """Per-day record counts and ratings for the window ending at the reference day.

    Args:
        records: List of record dicts.  Records whose ``created_at`` cannot
            be read fall on no day.
        window_days: Number of calendar days to cover.
        reference_date: Last day of the window (inclusive).  Defaults to
            today.

    Returns:
        Exactly *window_days* dicts, oldest first, with keys date (ISO
        string), day_label ("Mon".."Sun"), record_count and
        average_rating (the day's mean valid rating rounded to an integer,
        0 when none).

    Raises:
        ValueError: If *window_days* is not positive.
    """
    if window_days <= 0:
        raise ValueError(f"window_days must be positive, got {window_days}")

    ref = coerce_date(reference_date)
    by_day = _records_by_day(records)

    series = []
    for offset in range(window_days - 1, -1, -1):
        day = ref - timedelta(days=offset)
        day_records = by_day.get(day, [])
        series.append(
            {
                "date": day.isoformat(),
                "day_label": DAY_LABELS[day.weekday()],
                "record_count": len(day_records),
                "average_rating": average_rating(day_records, digits=0),
            }
        )
    return series


def current_streak(
    records: list[dict],
    reference_date: date | datetime | str | None = None,
) -> int:
    """Count consecutive days with at least one record, ending at the reference day.

    The walk starts on the reference day itself, so a day without records
    there means a streak of 0 whatever came before.

    Args:
        records: List of record dicts.
        reference_date: The day the streak must reach.  Defaults to today.

    Returns:
        The streak length in days.
    """
    ref = coerce_date(reference_date)
    active_days = set(_records_by_day(records))

    streak = 0
    day = ref
    while day in active_days:
        streak += 1
        day -= timedelta(days=1)
    return streak


# ---------------------------------------------------------------------------
# Journal extras
# ---------------------------------------------------------------------------

def is_lucid(
    record: dict,
    rating_threshold: int = LUCID_RATING_THRESHOLD,
    keyword: str = LUCID_KEYWORD,
) -> bool:
    """Heuristic lucid-dream check.

    A record counts as lucid when its valid rating reaches
    *rating_threshold*, when *keyword* occurs in its narrative, or when one
    of its category tags equals *keyword* (both case-insensitive).
    """
    if not isinstance(record, dict):
        return False
    rating = valid_rating(record.get("rating"))
    if rating is not None and rating >= rating_threshold:
        return True

    needle = tag_key(keyword)
    if not needle:
        return False
    narrative = record.get("narrative")
    if isinstance(narrative, str) and needle in narrative.casefold():
        return True
    return any(tag_key(t) == needle for t in record_tags(record, "categories"))


def count_lucid(
    records: list[dict],
    rating_threshold: int = LUCID_RATING_THRESHOLD,
    keyword: str = LUCID_KEYWORD,
) -> int:
    return sum(1 for r in records if is_lucid(r, rating_threshold, keyword))


def dreamer_level(total: int) -> str:
    """Level title for a journal with *total* records."""
    if total <= 0:
        return "Dream Novice"
    for limit, title in _LEVELS:
        if total < limit:
            return title
    return "Dream Oracle"


def compute_achievements(
    records: list[dict],
    reference_date: date | datetime | str | None = None,
) -> list[dict]:
    """Evaluate the journal badges.

    Args:
        records: List of record dicts.
        reference_date: Day the streak badge is measured against.

    Returns:
        List of badge dicts with keys id, title, description and earned
        (bool), in display order.
    """
    total = len(records)
    streak = current_streak(records, reference_date)
    lucid = count_lucid(records)
    return [
        {
            "id": "first_dream",
            "title": "First Dream",
            "description": "Recorded your first dream",
            "earned": total >= 1,
        },
        {
            "id": "dream_streak",
            "title": "Dream Streak",
            "description": f"{STREAK_BADGE_DAYS} days in a row",
            "earned": streak >= STREAK_BADGE_DAYS,
        },
        {
            "id": "lucid_master",
            "title": "Lucid Master",
            "description": f"{LUCID_BADGE_COUNT} lucid dreams",
            "earned": lucid >= LUCID_BADGE_COUNT,
        },
        {
            "id": "deep_dreamer",
            "title": "Deep Dreamer",
            "description": f"{DEEP_DREAMER_COUNT} dreams recorded",
            "earned": total >= DEEP_DREAMER_COUNT,
        },
    ]


def compute_month_stats(records: list[dict], year: int, month: int) -> dict[str, Any]:
    """Totals for one calendar month of the journal calendar.

    Returns:
        Dict with keys month ("YYYY-MM"), total and lucid.
    """
    month_records = []
    for r in records:
        day = record_day(r)
        if day is not None and day.year == year and day.month == month:
            month_records.append(r)
    return {
        "month": f"{year}-{month:02d}",
        "total": len(month_records),
        "lucid": count_lucid(month_records),
    }


def records_on_day(records: list[dict], day: date | datetime | str) -> list[dict]:
    """Records created on the given calendar day, in input order."""
    target = coerce_date(day)
    return [r for r in records if record_day(r) == target]


def compute_tag_filters(records: list[dict], limit: int = TAG_FILTER_LIMIT) -> list[dict]:
    """Build the gallery filter chips.

    Category and mood tags are pooled and merged case-insensitively.

    Args:
        records: List of record dicts.
        limit: Maximum number of tag chips after the "all" chip.

    Returns:
        List of dicts (id, label, count).  The first is always
        ``{"id": "all", "label": "All Dreams", "count": len(records)}``;
        the rest are tag chips sorted by descending count with
        first-appearance tie-break.  ``id`` is the lower-cased merge key.
    """
    counts = _tag_counts(records, ("categories", "moods"))
    chips = [{"id": "all", "label": "All Dreams", "count": len(records)}]
    ranked_keys = sorted(counts, key=lambda k: counts[k][1], reverse=True)
    for key in ranked_keys[: max(limit, 0)]:
        label, count = counts[key]
        chips.append({"id": key, "label": label, "count": count})
    return chips


def filter_records_by_tag(records: list[dict], tag: str) -> list[dict]:
    """Records carrying *tag* as a category or mood; ``"all"`` keeps everything."""
    key = tag_key(tag)
    if key == "all":
        return list(records)
    return [
        r for r in records
        if any(tag_key(t) == key for t in record_tags(r, "categories") + record_tags(r, "moods"))
    ]


def compute_insights(summary: dict[str, Any], mood_histogram: list[dict]) -> list[dict]:
    """Short textual observations for the analysis screen.

    Args:
        summary: Output of ``aggregate_summary``.
        mood_histogram: Output of ``histogram(records, "moods", ...)``.

    Returns:
        List of dicts with keys title and description; possibly empty.
    """
    insights = []
    if summary.get("average_rating", 0) >= HIGH_VIVIDNESS:
        insights.append(
            {
                "title": "High Vividness",
                "description": "Your dreams are vivid. Consider journaling right after waking to boost recall.",
            }
        )
    theme = summary.get("top_category", NO_TAG)
    if theme and theme != NO_TAG:
        insights.append(
            {
                "title": "Recurring Theme",
                "description": f"Frequent theme detected: {theme}. Reflect on its meaning for you.",
            }
        )
    if mood_histogram:
        insights.append(
            {
                "title": "Emotional Trend",
                "description": f"Dominant emotion appears to be {mood_histogram[0]['label']}.",
            }
        )
    return insights


def relative_day_label(
    created_at: Any,
    reference_date: date | datetime | str | None = None,
) -> str:
    """Human label for a record date: "Today", "Yesterday" or "N days ago"."""
    dt = local_datetime(created_at)
    if dt is None:
        return "Unknown date"
    days = (coerce_date(reference_date) - dt.date()).days
    if days <= 0:
        return "Today"
    if days == 1:
        return "Yesterday"
    return f"{days} days ago"


# ---------------------------------------------------------------------------
# Payload
# ---------------------------------------------------------------------------

def build_dashboard_payload(
    records: list[dict],
    period: str = "week",
    reference_date: date | datetime | str | None = None,
) -> dict[str, Any]:
    """One-call entry point: every derived view the dashboard needs.

    Args:
        records: Fully materialised list of record dicts.
        period: Key of ``PERIOD_WINDOWS`` selecting the daily series length.
        reference_date: "Today" for streak, series and month stats.
            Defaults to the actual current date.

    Returns:
        Dict with keys: generated_at, reference_date, period, summary,
        current_streak, lucid_count, level, achievements, badge_count,
        daily, categories, moods, tag_filters, month, insights.

    Raises:
        ValueError: If *period* is unknown.
    """
    if period not in PERIOD_WINDOWS:
        raise ValueError(f"Unknown period: {period!r} (expected one of {sorted(PERIOD_WINDOWS)})")

    ref = coerce_date(reference_date)
    undated = sum(1 for r in records if record_day(r) is None)
    if undated:
        logger.warning(
            "%d of %d records have no readable created_at; they are left out of day-based stats.",
            undated,
            len(records),
        )

    summary = aggregate_summary(records)
    moods = histogram(records, "moods", HISTOGRAM_TOP_MOODS)
    achievements = compute_achievements(records, ref)

    return {
        "generated_at": datetime.now().isoformat(),
        "reference_date": ref.isoformat(),
        "period": period,
        "summary": summary,
        "current_streak": current_streak(records, ref),
        "lucid_count": count_lucid(records),
        "level": dreamer_level(len(records)),
        "achievements": achievements,
        "badge_count": sum(1 for a in achievements if a["earned"]),
        "daily": daily_series(records, PERIOD_WINDOWS[period], ref),
        "categories": histogram(records, "categories", HISTOGRAM_TOP_CATEGORIES),
        "moods": moods,
        "tag_filters": compute_tag_filters(records),
        "month": compute_month_stats(records, ref.year, ref.month),
        "insights": compute_insights(summary, moods),
    }


# ---------------------------------------------------------------------------
# CLI helpers
# ---------------------------------------------------------------------------

def save_stats_files(payload: dict[str, Any], output_dir: str = "dream_stats") -> None:
    """Write the payload to JSON and its tables to CSV files.

    Creates *output_dir* if needed and writes dashboard.json,
    daily_series.csv, categories.csv and moods.csv.  The tag CSVs are
    skipped when the histogram is empty.

    Args:
        payload: Output of ``build_dashboard_payload``.
        output_dir: Destination directory.
    """
    os.makedirs(output_dir, exist_ok=True)

    with open(f"{output_dir}/dashboard.json", "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2, ensure_ascii=False)

    with open(f"{output_dir}/daily_series.csv", "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(
            f,
            fieldnames=["date", "day_label", "record_count", "average_rating"],
        )
        writer.writeheader()
        writer.writerows(payload["daily"])

    for name in ("categories", "moods"):
        rows = payload.get(name) or []
        if not rows:
            continue
        with open(f"{output_dir}/{name}.csv", "w", newline="", encoding="utf-8") as f:
            writer = csv.DictWriter(f, fieldnames=["label", "count", "percentage"])
            writer.writeheader()
            writer.writerows(rows)


def print_summary_report(payload: dict[str, Any]) -> None:
    """Print the CLI summary report to stdout.

    Args:
        payload: Output of ``build_dashboard_payload``.
    """
    summary = payload["summary"]
    print(f"\n{'=' * 60}")
    print("Dream Journal Summary")
    print(f"{'=' * 60}")
    print(f"Total Dreams: {summary['count']:,}")
    print(f"Average Vividness: {summary['average_rating']}")
    print(f"Most Common Theme: {summary['top_category']}")
    print(f"Top Emotion: {summary['top_mood']}")
    print(f"Current Streak: {payload['current_streak']} days")
    print(f"Lucid Dreams: {payload['lucid_count']}")
    print(f"Level: {payload['level']} ({payload['badge_count']} badges)")

    if payload["categories"]:
        print("\nTop Themes:")
        for row in payload["categories"]:
            print(f"  {row['label']:<20} {row['count']:>4}  {row['percentage']:>3}%")

    if payload["moods"]:
        print("\nEmotions:")
        for row in payload["moods"]:
            print(f"  {row['label']:<20} {row['count']:>4}  {row['percentage']:>3}%")

    print(f"\nLast {len(payload['daily'])} Days:")
    for day in payload["daily"]:
        print(f"  {day['date']} {day['day_label']}: {day['record_count']} dreams, vividness {day['average_rating']}")

    if payload["insights"]:
        print(f"\n{'=' * 60}")
        print("Insights")
        print(f"{'=' * 60}")
        for insight in payload["insights"]:
            print(f"- {insight['title']}: {insight['description']}")
    print(f"{'=' * 60}")
