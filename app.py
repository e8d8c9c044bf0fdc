"""FastAPI service for the Dream Journal statistics.

Serves the journal records and a cached statistics payload computed from
the JSON record store (short TTL; the cache is dropped on every delete).

Deployment: uvicorn app:app --host 127.0.0.1 --port 8204
"""

from __future__ import annotations

import json
import logging
import os
import threading
import time
from pathlib import Path
from typing import Any

from fastapi import FastAPI, HTTPException, Response
from pydantic import BaseModel

from dream_stats import PERIOD_WINDOWS, build_dashboard_payload
from response_parser import parse_analysis
from store import JsonRecordStore, StoreError, load_records

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------
DREAMS_PATH = Path(os.environ.get("DREAMS_PATH", Path(__file__).parent / "dreams.json"))
CACHE_TTL_SECONDS = int(os.environ.get("CACHE_TTL_SECONDS", "300"))

# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Dream Journal Statistics",
    root_path=os.environ.get("ROOT_PATH", ""),
)


class ParseRequest(BaseModel):
    raw_output: str
    original_input: str = ""


# ---------------------------------------------------------------------------
# Thread-safe cache
# ---------------------------------------------------------------------------
_cache_lock = threading.Lock()
_cache: dict[str, Any] = {
    "data": {},
    "built_at": {},
}
_store_lock = threading.Lock()


def _load_records() -> list[dict]:
    """Read the record store, mapping file problems to HTTP errors."""
    try:
        return load_records(DREAMS_PATH)
    except FileNotFoundError:
        logger.error("Dream store not found at %s", DREAMS_PATH)
        raise HTTPException(status_code=503, detail="Data file not found")
    except (json.JSONDecodeError, StoreError) as e:
        logger.error("Dream store at %s is unreadable: %s", DREAMS_PATH, e)
        raise HTTPException(status_code=500, detail=f"Invalid data in {DREAMS_PATH.name}")


def _get_cached_data(period: str = "week", force_refresh: bool = False) -> dict[str, Any]:
    """Return cached dashboard data for *period*, rebuilding if stale or forced."""
    if period not in PERIOD_WINDOWS:
        raise HTTPException(status_code=400, detail=f"Unknown period: {period}")

    now = time.monotonic()
    with _cache_lock:
        if (
            not force_refresh
            and _cache["data"].get(period) is not None
            and (now - _cache["built_at"].get(period, 0.0)) < CACHE_TTL_SECONDS
        ):
            return _cache["data"][period]

    data = build_dashboard_payload(_load_records(), period=period)

    with _cache_lock:
        _cache["data"][period] = data
        _cache["built_at"][period] = time.monotonic()

    return data


def _invalidate_cache() -> None:
    with _cache_lock:
        _cache["data"].clear()
        _cache["built_at"].clear()


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
@app.get("/health")
@app.get("/healthz")
def healthz():
    return {"status": "ok"}


@app.get("/api/data")
def api_data(period: str = "week"):
    """Return the full dashboard JSON payload."""
    return _get_cached_data(period)


@app.get("/api/refresh")
def api_refresh(period: str = "week"):
    """Force a cache rebuild and return fresh data."""
    data = _get_cached_data(period, force_refresh=True)
    return {
        "status": "refreshed",
        "generated_at": data["generated_at"],
    }


@app.get("/api/dreams")
def api_dreams(owner_id: str | None = None):
    """List records, newest first, optionally for one owner."""
    records = _load_records()
    if owner_id is not None:
        records = [r for r in records if r.get("owner_id") == owner_id]
    return records


@app.delete("/api/dreams/{record_id}", status_code=204)
def api_delete_dream(record_id: str):
    try:
        # load, change and save must not interleave across requests
        with _store_lock:
            JsonRecordStore(DREAMS_PATH).delete(record_id)
    except StoreError as e:
        logger.error("Delete of %s failed: %s", record_id, e)
        raise HTTPException(status_code=500, detail="Could not update the data file")
    _invalidate_cache()
    return Response(status_code=204)


@app.post("/api/parse")
def api_parse(request: ParseRequest):
    """Parse an analysis reply into record fields."""
    return parse_analysis(request.raw_output, original_input=request.original_input)
