"""Render dream journal charts as PNG files.

Usage: python dream_viz.py [dreams.json] [--period week|month|year] [--output-dir DIR]
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt  # noqa: E402
import pandas as pd  # noqa: E402
import seaborn as sns  # noqa: E402

from dream_stats import PERIOD_WINDOWS, build_dashboard_payload  # noqa: E402
from store import StoreError, load_records  # noqa: E402

logger = logging.getLogger(__name__)


def daily_frame(daily: list[dict]) -> pd.DataFrame:
    """Daily series as a DataFrame with a 7-day rolling mean of record counts."""
    df = pd.DataFrame(daily, columns=["date", "day_label", "record_count", "average_rating"])
    df["date"] = pd.to_datetime(df["date"])
    df = df.sort_values("date")
    df["count_7_day_avg"] = df["record_count"].rolling(window=7, min_periods=1).mean()
    return df


def plot_daily_activity(df: pd.DataFrame, out_path: str) -> None:
    fig, ax = plt.subplots(figsize=(15, 8))
    ax.bar(df["date"], df["record_count"], alpha=0.5, color="mediumpurple", label="Dreams per Day")
    ax.plot(df["date"], df["count_7_day_avg"], color="red", linewidth=2, label="7-day Average")
    ax2 = ax.twinx()
    ax2.plot(df["date"], df["average_rating"], color="goldenrod", linewidth=2, marker="o",
             label="Average Vividness")
    ax2.set_ylim(0, 10)
    ax2.set_ylabel("Vividness", fontsize=12)
    ax.set_title("Daily Dreams and Vividness", fontsize=14, pad=20)
    ax.set_xlabel("Date", fontsize=12)
    ax.set_ylabel("Number of Dreams", fontsize=12)
    ax.grid(True, alpha=0.3)
    ax.legend(loc="upper left")
    ax2.legend(loc="upper right")
    fig.autofmt_xdate(rotation=45)
    fig.tight_layout()
    fig.savefig(out_path, dpi=150, bbox_inches="tight")
    plt.close(fig)


def plot_tag_histogram(rows: list[dict], title: str, out_path: str) -> None:
    """Horizontal bar chart of a ``histogram`` result."""
    df = pd.DataFrame(rows, columns=["label", "count", "percentage"])
    fig, ax = plt.subplots(figsize=(10, 6))
    sns.barplot(data=df, x="percentage", y="label", color="slateblue", ax=ax)
    ax.set_title(title, fontsize=14, pad=20)
    ax.set_xlabel("Share of Tags (%)", fontsize=12)
    ax.set_ylabel("")
    fig.tight_layout()
    fig.savefig(out_path, dpi=150, bbox_inches="tight")
    plt.close(fig)


def render_charts(payload: dict, output_dir: str = "dream_stats") -> list[str]:
    """Write every chart for *payload* into *output_dir*.

    Tag charts are skipped when their histogram is empty.

    Returns:
        Paths of the files written.
    """
    os.makedirs(output_dir, exist_ok=True)
    written = []

    path = os.path.join(output_dir, "daily_activity.png")
    plot_daily_activity(daily_frame(payload["daily"]), path)
    written.append(path)

    for name, title in (("categories", "Dream Themes"), ("moods", "Dream Emotions")):
        if not payload.get(name):
            continue
        path = os.path.join(output_dir, f"{name}.png")
        plot_tag_histogram(payload[name], title, path)
        written.append(path)

    return written


def main(path: str = "dreams.json", period: str = "week", output_dir: str = "dream_stats") -> None:
    try:
        records = load_records(path)
    except FileNotFoundError:
        logger.error("File '%s' not found.", path)
        sys.exit(1)
    except (json.JSONDecodeError, StoreError) as e:
        logger.error("'%s' is not a valid dream store: %s", path, e)
        sys.exit(1)

    sns.set_theme(style="whitegrid")
    files = render_charts(build_dashboard_payload(records, period=period), output_dir)
    print(f"Charts saved: {', '.join(os.path.basename(f) for f in files)} in {output_dir}")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    parser = argparse.ArgumentParser(description="Render dream journal charts")
    parser.add_argument("path", nargs="?", default="dreams.json")
    parser.add_argument("--period", "-p", choices=sorted(PERIOD_WINDOWS), default="week")
    parser.add_argument("--output-dir", "-o", default="dream_stats")
    args = parser.parse_args()
    main(args.path, args.period, args.output_dir)
