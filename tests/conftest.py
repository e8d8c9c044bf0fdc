"""Shared fixtures for the dream journal tests."""

from __future__ import annotations

import json
from datetime import date
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from helpers import make_record


@pytest.fixture()
def sample_records() -> list[dict]:
    """A small journal across three days with mixed-case tags."""
    return [
        make_record("2024-01-15", 9, id="a", owner_id="u1", title="Flood",
                    category_tags=["Water", "house"], mood_tags=["Fear"], rating=7),
        make_record("2024-01-15", 22, id="b", owner_id="u2", title="Sea",
                    category_tags=["water"], mood_tags=["joy", "fear"], rating=8),
        make_record("2024-01-14", 7, id="c", owner_id="u1", title="Fire",
                    category_tags=["fire"], mood_tags=["Joy"], rating=9,
                    narrative="I knew I was dreaming, a lucid moment."),
        make_record("2024-01-12", 6, id="d", owner_id=None, title="Empty"),
    ]


@pytest.fixture()
def dreams_file(tmp_path, sample_records):
    """The sample journal written as a JSON store file."""
    path = tmp_path / "dreams.json"
    path.write_text(json.dumps({"dreams": sample_records}), encoding="utf-8")
    return path


@pytest.fixture()
def client(dreams_file):
    """TestClient for app.py backed by the sample store file.

    Points DREAMS_PATH at the temp file and gives each test an empty cache.
    """
    import app as app_module

    with patch.object(app_module, "DREAMS_PATH", dreams_file):
        with patch.object(app_module, "_cache", {"data": {}, "built_at": {}}):
            with TestClient(app_module.app) as tc:
                yield tc


@pytest.fixture()
def today() -> date:
    return date.today()
