"""
tests/test_api.py — HTTP surface of the Classroom Data API.

Covers:
    - Opinions ledger endpoints (GET/POST /api/opinions, tally)
    - Dataset, well-being, clock and ranking endpoints
    - Probes, security headers, request size limits, rate limiting

The ledger is redirected to tmp_path via dependency overrides; datasets
come from the real bundled CSVs.
"""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from classroom.api import app, get_datasets, get_ledger, limiter
from classroom.constants import FEATURED_COUNTRIES, LEDGER_COLUMNS
from classroom.dataset_cache import DatasetCache
from classroom.ledger import VoteLedger

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_rate_limits() -> Iterator[None]:
    limiter.reset()
    yield
    limiter.reset()


@pytest.fixture()
def ledger(tmp_path: Path) -> VoteLedger:
    return VoteLedger(tmp_path / "opinions.csv")


@pytest.fixture()
def client(ledger: VoteLedger) -> Iterator[TestClient]:
    """Test client writing votes to a per-test ledger."""
    datasets = DatasetCache()
    app.dependency_overrides[get_ledger] = lambda: ledger
    app.dependency_overrides[get_datasets] = lambda: datasets
    yield TestClient(app)
    app.dependency_overrides.clear()


def _vote(client: TestClient, best: str, worst: str):
    return client.post("/api/opinions", json={"bestCountry": best, "worstCountry": worst})


# ===========================================================================
# Opinions
# ===========================================================================


class TestOpinions:
    def test_empty_ledger_lists_nothing(self, client: TestClient, ledger: VoteLedger):
        resp = client.get("/api/opinions")
        assert resp.status_code == 200
        assert resp.json() == []
        assert ledger.path.read_text(encoding="utf-8") == ",".join(LEDGER_COLUMNS)

    def test_submit_returns_record(self, client: TestClient):
        resp = _vote(client, "Finland", "Cambodia")
        assert resp.status_code == 200
        body = resp.json()
        assert set(body) == set(LEDGER_COLUMNS)
        assert body["bestCountry"] == "Finland"
        assert body["worstCountry"] == "Cambodia"
        assert body["timestamp"].endswith("Z")

    def test_submissions_listed_in_order(self, client: TestClient):
        first = _vote(client, "Finland", "Cambodia").json()
        second = _vote(client, "Japan", "Brazil").json()
        assert client.get("/api/opinions").json() == [first, second]

    def test_extra_fields_ignored(self, client: TestClient):
        resp = client.post(
            "/api/opinions",
            json={"bestCountry": "Finland", "worstCountry": "Cambodia", "id": "forged"},
        )
        assert resp.status_code == 200
        assert resp.json()["id"] != "forged"

    @pytest.mark.parametrize("payload", [
        {},
        {"bestCountry": "Finland"},
        {"worstCountry": "Cambodia"},
        {"bestCountry": "", "worstCountry": "Cambodia"},
        {"bestCountry": "Finland", "worstCountry": "   "},
        {"bestCountry": "Finland", "worstCountry": 3},
        {"bestCountry": None, "worstCountry": None},
    ])
    def test_missing_fields(self, client: TestClient, ledger: VoteLedger, payload):
        resp = client.post("/api/opinions", json=payload)
        assert resp.status_code == 400
        assert resp.json() == {"error": "Missing fields"}
        assert client.get("/api/opinions").json() == []

    def test_multiline_value_rejected(self, client: TestClient, ledger: VoteLedger):
        resp = _vote(client, "North\nKorea", "Brazil")
        assert resp.status_code == 400
        assert resp.json() == {"error": "Missing fields"}
        assert ledger.read_all() == []

    @pytest.mark.parametrize("content", [b"not json", b"[1, 2]", b'"Finland"'])
    def test_non_object_body(self, client: TestClient, content: bytes):
        resp = client.post(
            "/api/opinions", content=content, headers={"content-type": "application/json"},
        )
        assert resp.status_code == 400
        assert "error" in resp.json()

    def test_write_failure_is_500(self, tmp_path: Path):
        app.dependency_overrides[get_ledger] = lambda: VoteLedger(tmp_path)
        try:
            client = TestClient(app)
            resp = _vote(client, "Finland", "Cambodia")
            assert resp.status_code == 500
            assert resp.json() == {"error": "Failed to save opinion"}
            resp = client.get("/api/opinions")
            assert resp.status_code == 500
            assert resp.json() == {"error": "Failed to read opinions"}
        finally:
            app.dependency_overrides.clear()

    def test_tally(self, client: TestClient):
        _vote(client, "Finland", "Cambodia")
        _vote(client, "Finland", "Brazil")
        _vote(client, "Japan", "Cambodia")
        resp = client.get("/api/opinions/tally")
        assert resp.status_code == 200
        assert resp.json() == {
            "best": {"Finland": 2, "Japan": 1},
            "worst": {"Cambodia": 2, "Brazil": 1},
        }

    def test_no_store(self, client: TestClient):
        assert client.get("/api/opinions").headers["cache-control"] == "no-store"


# ===========================================================================
# Datasets and charts
# ===========================================================================


class TestDatasets:
    def test_country_report(self, client: TestClient):
        resp = client.get("/api/datasets/country_report")
        assert resp.status_code == 200
        body = resp.json()
        assert body["kind"] == "country_report"
        assert body["count"] == len(FEATURED_COUNTRIES)
        finland = next(r for r in body["records"] if r["country"] == "Finland")
        assert finland["math_score"] == 500.0

    def test_country_filter(self, client: TestClient):
        resp = client.get("/api/datasets/spider", params={"countries": ["Japan", "Korea, Rep."]})
        body = resp.json()
        assert body["count"] == 2
        korea = next(r for r in body["records"] if r["country"] == "Korea, Rep.")
        assert korea["code"] == "KOR"

    def test_featured_only(self, client: TestClient):
        body = client.get("/api/datasets/spider", params={"featured_only": "true"}).json()
        assert {r["country"] for r in body["records"]} == set(FEATURED_COUNTRIES)

    def test_missing_values_are_null(self, client: TestClient):
        body = client.get("/api/datasets/spider", params={"countries": ["Cambodia"]}).json()
        assert body["records"][0]["stats"]["Reading"] is None

    def test_facts_in_ranking_order(self, client: TestClient):
        records = client.get("/api/datasets/facts").json()["records"]
        assert [r["ranking"] for r in records] == sorted(r["ranking"] for r in records)

    def test_unknown_kind(self, client: TestClient):
        assert client.get("/api/datasets/pie").status_code == 404

    def test_missing_data_is_503(self, client: TestClient, tmp_path: Path):
        app.dependency_overrides[get_datasets] = lambda: DatasetCache(data_dir=tmp_path)
        assert client.get("/api/datasets/spider").status_code == 503
        assert client.get("/api/ranking").status_code == 503

    def test_public_cache_header(self, client: TestClient):
        resp = client.get("/api/datasets/facts")
        assert resp.headers["cache-control"] == "public, max-age=60"


class TestWellbeing:
    def test_default_view(self, client: TestClient):
        body = client.get("/api/wellbeing").json()
        assert len(body["rows"]) == 6
        assert body["view"]["metrics"] == ["BELONG", "BULLIED", "FEELSAFE"]

    def test_sort_desc_nulls_last(self, client: TestClient):
        body = client.get(
            "/api/wellbeing", params={"sort_by": "FEELSAFE", "sort_order": "desc"},
        ).json()
        countries = [r["country"] for r in body["rows"]]
        assert countries[0] == "Finland"
        assert countries[-1] == "Japan"

    def test_filter_and_project(self, client: TestClient):
        body = client.get(
            "/api/wellbeing", params={"countries": ["USA", "Japan"], "metrics": ["BELONG"]},
        ).json()
        assert [r["country"] for r in body["rows"]] == ["USA", "Japan"]
        assert all(set(r) == {"country", "BELONG"} for r in body["rows"])

    def test_unknown_metric(self, client: TestClient):
        assert client.get("/api/wellbeing", params={"metrics": ["IQ"]}).status_code == 400
        assert client.get("/api/wellbeing", params={"sort_by": "IQ"}).status_code == 400

    def test_bad_sort_order(self, client: TestClient):
        assert client.get("/api/wellbeing", params={"sort_order": "up"}).status_code == 400


class TestClock:
    def test_all_countries(self, client: TestClient):
        body = client.get("/api/clock").json()
        assert body["count"] == 6
        for face in body["clocks"]:
            assert sum(s["hours"] for s in face["segments"]) == pytest.approx(24.0)

    def test_country_filter(self, client: TestClient):
        body = client.get("/api/clock", params={"countries": ["Cambodia"]}).json()
        assert body["count"] == 1
        assert body["clocks"][0]["education_hours"] == 10.5


class TestRanking:
    def test_ranking(self, client: TestClient):
        body = client.get("/api/ranking").json()
        assert body["best"] == "Singapore"
        assert body["lowest"] == "Cambodia"
        assert [r["rank"] for r in body["ranking"]] == [1, 2, 3, 4, 5, 6]
        assert {t["field"] for t in body["terms"]} >= {"math_score", "bullying"}

    def test_deterministic(self, client: TestClient):
        assert client.get("/api/ranking").json() == client.get("/api/ranking").json()

    def test_correct_guess(self, client: TestClient):
        resp = client.post("/api/ranking/guess", json={"best": "Singapore", "lowest": "Cambodia"})
        assert resp.status_code == 200
        assert resp.json()["all_correct"] is True

    def test_wrong_guess(self, client: TestClient):
        body = client.post(
            "/api/ranking/guess", json={"best": "Finland", "lowest": "Cambodia"},
        ).json()
        assert body["correct_best"] is False
        assert body["correct_lowest"] is True
        assert body["best"] == "Singapore"

    def test_same_country_rejected(self, client: TestClient):
        resp = client.post("/api/ranking/guess", json={"best": "Japan", "lowest": "Japan"})
        assert resp.status_code == 400
        assert resp.json() == {"error": "Please choose different countries for best and lowest."}

    def test_missing_guess(self, client: TestClient):
        resp = client.post("/api/ranking/guess", json={"best": "Japan"})
        assert resp.status_code == 400


# ===========================================================================
# Probes and hardening
# ===========================================================================


class TestProbesAndHardening:
    def test_health(self, client: TestClient):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"

    def test_ready(self, client: TestClient):
        body = client.get("/ready").json()
        assert body["ready"] is True
        assert body["data_present"] is True

    def test_request_id_generated_and_echoed(self, client: TestClient):
        assert client.get("/health").headers["x-request-id"]
        resp = client.get("/health", headers={"X-Request-ID": "abc123"})
        assert resp.headers["x-request-id"] == "abc123"

    def test_security_headers(self, client: TestClient):
        headers = client.get("/health").headers
        assert headers["x-content-type-options"] == "nosniff"
        assert headers["x-frame-options"] == "DENY"
        assert headers["referrer-policy"] == "no-referrer"

    def test_oversized_body(self, client: TestClient):
        resp = client.post(
            "/api/opinions", json={"bestCountry": "x" * 5000, "worstCountry": "y"},
        )
        assert resp.status_code == 413

    def test_docs_disabled_in_prod(self, client: TestClient):
        assert client.get("/docs").status_code == 404

    def test_rate_limit(self, client: TestClient):
        statuses = [_vote(client, "Finland", "Cambodia").status_code for _ in range(31)]
        assert statuses[:30] == [200] * 30
        assert statuses[30] == 429
