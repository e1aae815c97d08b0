"""Shared fakes for store, refresher and history tests."""
from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import date
from typing import AsyncIterator

from cfr_cache.cache_query import CacheQueryEngine
from cfr_cache.db import build_engine, build_session_factory, init_models
from cfr_cache.errors import UpstreamUnavailable
from cfr_cache.schemas.ecfr import Agency, TitleInfo
from cfr_cache.snapshot_store import SnapshotStore


def xml_with_words(n: int) -> str:
    words = " ".join(f"word{i}" for i in range(n))
    return f"<DIV1 N='1' TYPE='TITLE'><P>{words}</P></DIV1>"


@asynccontextmanager
async def open_cache(db_url: str) -> AsyncIterator[tuple[SnapshotStore, CacheQueryEngine]]:
    engine = build_engine(db_url)
    await init_models(engine)
    factory = build_session_factory(engine)
    try:
        yield SnapshotStore(factory), CacheQueryEngine(factory)
    finally:
        await engine.dispose()


class FakeUpstream:
    """In-memory eCFR: content per (title, date), optional failures, call log."""

    def __init__(
        self,
        content: dict[tuple[int, date], str] | None = None,
        titles: list[TitleInfo] | None = None,
        agencies: list[Agency] | None = None,
        failing: set[int] | None = None,
    ):
        self.content = dict(content or {})
        self.titles = list(titles or [])
        self.agencies = list(agencies or [])
        self.failing = set(failing or ())
        self.calls: list[tuple[int, date]] = []
        self.catalog_calls = 0

    async def fetch_title_content(self, title_number: int, when: date) -> str:
        self.calls.append((title_number, when))
        if title_number in self.failing:
            raise UpstreamUnavailable(f"boom for title {title_number}", status_code=500)
        try:
            return self.content[(title_number, when)]
        except KeyError:
            raise UpstreamUnavailable(f"no content for {title_number} {when}", status_code=404)

    async def list_titles(self) -> list[TitleInfo]:
        self.catalog_calls += 1
        return self.titles

    async def list_agencies(self) -> list[Agency]:
        self.catalog_calls += 1
        return self.agencies


async def no_sleep(_: float) -> None:
    return None
