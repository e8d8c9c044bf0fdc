"""Tests for the FastAPI app (app.py) routes and caching behaviour."""

from __future__ import annotations

import json
import threading
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import patch

from fastapi import HTTPException

from helpers import TURKISH_REPLY, make_record


# ── Health check ──────────────────────────────


class TestHealthCheck:
    def test_healthz_returns_200(self, client):
        response = client.get("/healthz")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_health_alias(self, client):
        assert client.get("/health").status_code == 200


# ── JSON API routes ───────────────────────────


class TestApiData:
    def test_returns_200(self, client):
        response = client.get("/api/data")
        assert response.status_code == 200
        assert "application/json" in response.headers["content-type"]

    def test_payload_sections(self, client):
        data = client.get("/api/data").json()
        for key in ("generated_at", "summary", "daily", "categories", "moods", "tag_filters", "achievements"):
            assert key in data, f"Missing key: {key}"

    def test_summary_from_store(self, client):
        summary = client.get("/api/data").json()["summary"]
        assert summary["count"] == 4
        assert summary["average_rating"] == 8.0
        # /api/data reads the store newest first, so record "b" is seen first
        # and its "water" and "joy" win the ties
        assert summary["top_category"] == "water"
        assert summary["top_mood"] == "joy"

    def test_period_selects_window(self, client):
        assert len(client.get("/api/data").json()["daily"]) == 7
        assert len(client.get("/api/data?period=month").json()["daily"]) == 30
        assert len(client.get("/api/data?period=year").json()["daily"]) == 365

    def test_unknown_period_400(self, client):
        response = client.get("/api/data?period=decade")
        assert response.status_code == 400


class TestApiRefresh:
    def test_response_has_status_refreshed(self, client):
        data = client.get("/api/refresh").json()
        assert data["status"] == "refreshed"
        assert "generated_at" in data


class TestApiDreams:
    def test_lists_newest_first(self, client):
        ids = [r["id"] for r in client.get("/api/dreams").json()]
        assert ids == ["b", "a", "c", "d"]

    def test_owner_filter(self, client):
        ids = [r["id"] for r in client.get("/api/dreams?owner_id=u1").json()]
        assert ids == ["a", "c"]

    def test_delete_returns_204(self, client, dreams_file):
        response = client.delete("/api/dreams/a")
        assert response.status_code == 204
        stored = json.loads(dreams_file.read_text(encoding="utf-8"))["dreams"]
        assert "a" not in [r["id"] for r in stored]

    def test_delete_unknown_id_is_noop(self, client):
        assert client.delete("/api/dreams/missing").status_code == 204
        assert len(client.get("/api/dreams").json()) == 4

    def test_delete_invalidates_cache(self, client):
        assert client.get("/api/data").json()["summary"]["count"] == 4
        client.delete("/api/dreams/b")
        assert client.get("/api/data").json()["summary"]["count"] == 3

    def test_parallel_deletes_all_succeed(self, client, dreams_file):
        records = [make_record("2024-01-15", i % 24, id=f"r{i}") for i in range(40)]
        dreams_file.write_text(json.dumps({"dreams": records}), encoding="utf-8")
        barrier = threading.Barrier(len(records))

        def delete(record_id):
            barrier.wait()
            return client.delete(f"/api/dreams/{record_id}").status_code

        with ThreadPoolExecutor(max_workers=len(records)) as pool:
            statuses = list(pool.map(delete, [r["id"] for r in records]))

        assert statuses == [204] * len(records)
        assert json.loads(dreams_file.read_text(encoding="utf-8"))["dreams"] == []
        assert list(dreams_file.parent.glob("*.tmp")) == []


class TestApiParse:
    def test_parses_reply(self, client):
        response = client.post("/api/parse", json={"raw_output": TURKISH_REPLY})
        assert response.status_code == 200
        data = response.json()
        assert data["title"] == "Test Title"
        assert data["categories"] == ["water", "fire"]

    def test_fallback_title_from_input(self, client):
        data = client.post(
            "/api/parse",
            json={"raw_output": "nothing useful", "original_input": "A red door. Behind it, stairs."},
        ).json()
        assert data["title"] == "A red door"

    def test_missing_body_field_422(self, client):
        assert client.post("/api/parse", json={}).status_code == 422


# ── Error handling ────────────────────────────


class TestMissingDataFile:
    def test_api_data_503_when_data_missing(self, client, dreams_file):
        dreams_file.unlink()
        response = client.get("/api/data")
        assert response.status_code == 503
        assert response.json()["detail"] == "Data file not found"

    def test_api_dreams_503_when_data_missing(self, client, dreams_file):
        dreams_file.unlink()
        assert client.get("/api/dreams").status_code == 503

    def test_503_passed_through(self, client):
        with patch(
            "app._get_cached_data",
            side_effect=HTTPException(status_code=503, detail="Data file not found"),
        ):
            assert client.get("/api/data").status_code == 503


class TestInvalidJsonFile:
    def test_api_data_500_when_json_invalid(self, client, dreams_file):
        dreams_file.write_text("{broken", encoding="utf-8")
        assert client.get("/api/data").status_code == 500

    def test_api_data_500_when_shape_invalid(self, client, dreams_file):
        dreams_file.write_text(json.dumps({"dreams": 42}), encoding="utf-8")
        assert client.get("/api/data").status_code == 500

    def test_delete_500_when_json_invalid(self, client, dreams_file):
        dreams_file.write_text("{broken", encoding="utf-8")
        assert client.delete("/api/dreams/a").status_code == 500


# ── Caching behaviour ────────────────────────


class TestCaching:
    def test_second_request_uses_cache(self, client):
        """Two requests for the same period build the payload once."""
        with patch("app.build_dashboard_payload") as mock_build:
            mock_build.return_value = {"generated_at": "2024-01-15T12:00:00", "summary": {}}
            client.get("/api/data")
            client.get("/api/data")
            assert mock_build.call_count == 1

    def test_periods_cached_separately(self, client):
        with patch("app.build_dashboard_payload") as mock_build:
            mock_build.return_value = {"generated_at": "2024-01-15T12:00:00", "summary": {}}
            client.get("/api/data?period=week")
            client.get("/api/data?period=month")
            assert mock_build.call_count == 2

    def test_refresh_forces_rebuild(self, client):
        with patch("app.build_dashboard_payload") as mock_build:
            mock_build.return_value = {"generated_at": "2024-01-15T12:00:00", "summary": {}}
            client.get("/api/data")
            assert mock_build.call_count == 1
            client.get("/api/refresh")
            assert mock_build.call_count == 2

    def test_expired_entry_rebuilt(self, client):
        with patch("app.build_dashboard_payload") as mock_build, patch("app.CACHE_TTL_SECONDS", 0):
            mock_build.return_value = {"generated_at": "2024-01-15T12:00:00", "summary": {}}
            client.get("/api/data")
            client.get("/api/data")
            assert mock_build.call_count == 2


# ── 404 for unknown routes ───────────────────


class TestNotFound:
    def test_unknown_route_returns_404(self, client):
        assert client.get("/nonexistent").status_code == 404

    def test_unknown_api_route_returns_404(self, client):
        assert client.get("/api/nonexistent").status_code == 404
