"""
Export dream journal entries from a store file into a human-readable text
file: title, date, vividness, tags, interpretation and the full narrative
of each dream, newest first.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import re
import sys
from datetime import datetime

from dream_stats import filter_records_by_tag
from records import local_datetime, record_tags, valid_rating
from response_parser import sanitize
from store import StoreError, load_records

logger = logging.getLogger(__name__)

WIDTH = 100


def clean_text(text: str) -> str:
    """Strip markdown and collapse runs of blank lines.

    Args:
        text: Stored narrative or interpretation.  Non-strings become "".

    Returns:
        Cleaned text with at most one blank line between paragraphs.
    """
    text = sanitize(text)
    return re.sub(r"\n{3,}", "\n\n", text)


def format_timestamp(created_at: object) -> str:
    """Format a stored ``created_at`` as local 'YYYY-MM-DD HH:MM'.

    Returns 'Unknown time' when the value cannot be read.
    """
    dt = local_datetime(created_at)
    if dt is None:
        return "Unknown time"
    return dt.strftime("%Y-%m-%d %H:%M")


def preview_dream(record: dict, index: int) -> str:
    """One-line entry for the export's table of contents."""
    title = record.get("title") or "Untitled Dream"
    return f"[{index}] {title} ({format_timestamp(record.get('created_at'))})"


def _format_dream(record: dict, index: int) -> str:
    rating = valid_rating(record.get("rating"))
    lines = [
        "+" + "=" * (WIDTH - 2) + "+",
        f"|{' DREAM #' + str(index) + ': ' + (record.get('title') or 'Untitled Dream'):<{WIDTH - 2}}|",
        f"|{' Date: ' + format_timestamp(record.get('created_at')):<{WIDTH - 2}}|",
        "+" + "=" * (WIDTH - 2) + "+",
        "",
        f"Vividness: {rating if rating is not None else '-'}",
        f"Symbols:   {', '.join(record_tags(record, 'categories')) or '-'}",
        f"Emotions:  {', '.join(record_tags(record, 'moods')) or '-'}",
        "",
    ]
    interpretation = clean_text(record.get("interpretation") or "")
    if interpretation:
        lines += ["Interpretation:", f"    {interpretation}", ""]
    narrative = clean_text(record.get("narrative") or record.get("raw_input") or "")
    if narrative:
        lines.append("Dream:")
        lines += [f"    {line}" for line in narrative.split("\n")]
        lines.append("")
    if record.get("media_url"):
        lines += [f"Image: {record['media_url']}", ""]
    return "\n".join(lines)


def write_export_file(records: list[dict], output_file: str) -> None:
    """Write *records* to *output_file*.  Parent dirs are created automatically."""
    parent = os.path.dirname(output_file)
    if parent:
        os.makedirs(parent, exist_ok=True)

    with open(output_file, "w", encoding="utf-8") as f:
        f.write("DREAM JOURNAL EXPORT\n")
        f.write(f"Generated on: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}\n")
        f.write(f"Contains {len(records)} dreams\n")
        f.write("=" * WIDTH + "\n")
        for i, record in enumerate(records, 1):
            f.write(preview_dream(record, i) + "\n")
        f.write("=" * WIDTH + "\n\n")
        for i, record in enumerate(records, 1):
            f.write(_format_dream(record, i))
            f.write("\n" + "*" * WIDTH + "\n\n")


def export_dreams(
    json_file: str,
    output_file: str,
    owner_id: str | None = None,
    tag: str = "all",
) -> int:
    """Export the dreams of a store file.

    Args:
        json_file: Path to the dream store JSON file.
        output_file: Destination text file.
        owner_id: Only export this owner's dreams when given.
        tag: Only export dreams carrying this category or mood tag.

    Returns:
        The number of dreams written, 0 when nothing matched.

    Raises:
        FileNotFoundError: If *json_file* does not exist.
        json.JSONDecodeError: If *json_file* is not valid JSON.
    """
    records = load_records(json_file)
    if owner_id is not None:
        records = [r for r in records if r.get("owner_id") == owner_id]
    records = filter_records_by_tag(records, tag)

    if not records:
        logger.info("No dreams matched; nothing exported.")
        return 0

    write_export_file(records, output_file)
    logger.info("Exported %d dreams to %s", len(records), output_file)
    return len(records)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Export dream journal entries to a text file")
    parser.add_argument("json_file", nargs="?", default="dreams.json",
                        help="Path to the dream store JSON file (default: dreams.json)")
    parser.add_argument("output_file", nargs="?", default="dream_exports/dreams.txt",
                        help="Where to write the export (default: dream_exports/dreams.txt)")
    parser.add_argument("--owner", dest="owner_id", help="Only export this owner's dreams")
    parser.add_argument("--tag", default="all", help="Only export dreams with this symbol or emotion")
    args = parser.parse_args(argv)

    try:
        count = export_dreams(args.json_file, args.output_file, args.owner_id, args.tag)
    except FileNotFoundError:
        parser.error(f"File not found: {args.json_file}")
    except (json.JSONDecodeError, StoreError) as e:
        parser.error(f"'{args.json_file}' is not a valid dream store: {e}")

    print(f"Exported {count} dreams to {args.output_file}" if count else "No dreams found to export.")
    return count


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    main(sys.argv[1:])
