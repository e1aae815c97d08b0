from __future__ import annotations

import time
from contextlib import asynccontextmanager
from datetime import date

from fastapi import FastAPI
from fastapi.testclient import TestClient

from cfr_cache.api.admin import router as admin_router
from cfr_cache.api.agencies import router as agencies_router
from cfr_cache.api.titles import router as titles_router
from cfr_cache.cache_query import CacheQueryEngine
from cfr_cache.db import build_engine, build_session_factory, init_models
from cfr_cache.history import HistoryBuilder
from cfr_cache.refresher import BackgroundRefresher
from cfr_cache.schemas.ecfr import Agency, CfrReference, TitleInfo
from cfr_cache.services import CacheServices
from cfr_cache.snapshot_store import SnapshotStore

from helpers import FakeUpstream, no_sleep, xml_with_words

LATEST = date(2025, 2, 6)


def _upstream() -> FakeUpstream:
    return FakeUpstream(
        content={
            (36, LATEST): xml_with_words(12),
            (36, date(2025, 1, 1)): xml_with_words(10),
        },
        titles=[TitleInfo(number=36, name="Parks, Forests, and Public Property", latest_issue_date=LATEST)],
        agencies=[Agency(name="Forest Service", slug="forest-service", cfr_references=[CfrReference(title=36)])],
    )


def _app(db_url: str, upstream: FakeUpstream, *, start_refresher: bool = True) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine = build_engine(db_url)
        await init_models(engine)
        factory = build_session_factory(engine)
        store, query = SnapshotStore(factory), CacheQueryEngine(factory)
        refresher = BackgroundRefresher(store, upstream, upstream, interval_s=3600, delay_s=0)
        app.state.services = CacheServices(
            store=store,
            query=query,
            client=upstream,  # type: ignore[arg-type]
            history=HistoryBuilder(store, query, upstream, upstream, upstream, fetch_delay=0, sleep=no_sleep),
            refresher=refresher,
        )
        if start_refresher:
            refresher.start()
        yield
        await refresher.stop()
        await engine.dispose()

    app = FastAPI(lifespan=lifespan)
    app.include_router(titles_router)
    app.include_router(agencies_router)
    app.include_router(admin_router)
    return app


def _wait_for_completed_pass(client: TestClient) -> dict:
    for _ in range(200):
        body = client.get("/api/admin/cache/status").json()
        if body["last_completed_at"] is not None and body["state"] == "IDLE":
            return body
        time.sleep(0.02)
    raise AssertionError("refresh pass did not complete")


def test_word_count_exact_and_nearest_prior(db_url: str) -> None:
    with TestClient(_app(db_url, _upstream())) as client:
        missing = client.get("/api/titles/36/word-count", params={"date": "2025-02-06"})
        assert missing.status_code == 404

        fallback = client.get("/api/titles/36/word-count", params={"date": "2025-02-06", "exact": "false"})
        assert fallback.status_code == 200
        assert fallback.json()["word_count"] == 0

        assert client.post("/api/admin/cache/refresh").json() == {"status": "started"}
        status = _wait_for_completed_pass(client)
        assert status["total_snapshots"] == 1
        assert status["distinct_titles"] == 1
        assert status["last_report"]["refreshed"] == 1

        exact = client.get("/api/titles/36/word-count", params={"date": "2025-02-06"})
        assert exact.json()["word_count"] == 12
        later = client.get("/api/titles/36/word-count", params={"date": "2025-03-01", "exact": "false"})
        assert later.json()["word_count"] == 12
        assert client.get("/api/titles/36/snapshots").json()["dates"] == ["2025-02-06"]


def test_agency_history_endpoint(db_url: str) -> None:
    with TestClient(_app(db_url, _upstream())) as client:
        resp = client.get(
            "/api/agencies/forest-service/word-count-history",
            params={"start_date": "2025-01-01", "end_date": "2025-02-06", "interval_days": 90},
        )
        assert resp.status_code == 200
        body = resp.json()
        assert [d["word_count"] for d in body["dates"]] == [10, 12]
        assert body["total_words_added"] == 2

        bad_range = client.get(
            "/api/agencies/forest-service/word-count-history",
            params={"start_date": "2025-02-06", "end_date": "2024-01-01"},
        )
        assert bad_range.status_code == 400

        unknown = client.get("/api/agencies/nope/word-count-history")
        assert unknown.status_code == 404


def test_invalid_title_number_is_rejected(db_url: str) -> None:
    with TestClient(_app(db_url, _upstream())) as client:
        resp = client.get("/api/titles/0/word-count", params={"date": "2025-02-06"})
        assert resp.status_code == 422


def test_catalog_listings_and_agency_lookup(db_url: str) -> None:
    with TestClient(_app(db_url, _upstream())) as client:
        titles = client.get("/api/titles").json()["titles"]
        assert [(t["number"], t["latest_issue_date"]) for t in titles] == [(36, "2025-02-06")]

        agencies = client.get("/api/agencies").json()["agencies"]
        assert [a["slug"] for a in agencies] == ["forest-service"]

        agency = client.get("/api/agencies/Forest-Service")
        assert agency.status_code == 200
        assert agency.json()["name"] == "Forest Service"

        missing = client.get("/api/agencies/nope")
        assert missing.status_code == 404
        assert "forest-service" in missing.json()["detail"]


def test_agency_titles_endpoint_counts_and_caches(db_url: str) -> None:
    upstream = _upstream()
    with TestClient(_app(db_url, upstream)) as client:
        resp = client.get("/api/agencies/forest-service/titles")
        assert resp.status_code == 200
        body = resp.json()
        assert [(t["number"], t["word_count"]) for t in body["titles"]] == [(36, 12)]
        assert body["total_word_count"] == 12

        again = client.get("/api/agencies/forest-service/titles")
        assert again.json()["total_word_count"] == 12
        assert upstream.calls == [(36, LATEST)]
        assert client.get("/api/titles/36/snapshots").json()["dates"] == ["2025-02-06"]

        assert client.get("/api/agencies/nope/titles").status_code == 404


def test_refresh_rejected_when_refresher_not_running(db_url: str) -> None:
    upstream = _upstream()
    with TestClient(_app(db_url, upstream, start_refresher=False)) as client:
        resp = client.post("/api/admin/cache/refresh")
        assert resp.status_code == 503
        assert client.get("/api/admin/cache/status").json()["last_completed_at"] is None
    assert upstream.catalog_calls == 0
