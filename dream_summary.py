"""dream_summary.py

Compute journal statistics from a dream store file, save them as JSON/CSV
and print a summary report.

Usage: python dream_summary.py [dreams.json] [--period week|month|year]
                               [--date YYYY-MM-DD] [--output-dir DIR]
"""

from __future__ import annotations

import argparse
import json
import logging
import sys

from dream_stats import (
    PERIOD_WINDOWS,
    build_dashboard_payload,
    print_summary_report,
    save_stats_files,
)
from store import StoreError, load_records

logger = logging.getLogger(__name__)


def main(
    path: str = "dreams.json",
    period: str = "week",
    reference_date: str | None = None,
    output_dir: str = "dream_stats",
) -> None:
    """Run the summary for one store file.

    Exits with status 1 when the file is missing or unreadable.
    """
    try:
        records = load_records(path)
    except FileNotFoundError:
        logger.error("File '%s' not found.", path)
        sys.exit(1)
    except (json.JSONDecodeError, StoreError) as e:
        logger.error("'%s' is not a valid dream store: %s", path, e)
        sys.exit(1)

    payload = build_dashboard_payload(records, period=period, reference_date=reference_date)
    save_stats_files(payload, output_dir)
    print_summary_report(payload)
    print(f"\nStatistics have been saved to the '{output_dir}' directory.")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Summarise a dream journal store")
    parser.add_argument("path", nargs="?", default="dreams.json",
                        help="Path to the dream store JSON file (default: dreams.json)")
    parser.add_argument("--period", "-p", choices=sorted(PERIOD_WINDOWS), default="week",
                        help="Length of the daily series (default: week)")
    parser.add_argument("--date", "-d", dest="reference_date",
                        help="Reference day as YYYY-MM-DD (default: today)")
    parser.add_argument("--output-dir", "-o", default="dream_stats",
                        help="Directory for the JSON/CSV files (default: dream_stats)")
    return parser.parse_args(argv)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    args = _parse_args()
    main(args.path, args.period, args.reference_date, args.output_dir)
