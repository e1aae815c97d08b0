"""Word-count history for titles and agencies over a date range.

Dates are walked forward from the start date at a fixed interval and the end
date is always the last point. Missing points are fetched from eCFR and
written to the cache as a side effect, so repeated requests are served from
the store.
"""
from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Awaitable, Callable, Iterable

from cfr_cache.agencies import collect_title_numbers, resolve_agency
from cfr_cache.cache_query import CacheQueryEngine
from cfr_cache.config import settings
from cfr_cache.errors import InvalidRange, UpstreamError
from cfr_cache.schemas.cache import (
    AgencyTitle,
    AgencyTitles,
    AgencyWordCountHistory,
    DateWordCount,
    TitleWordCountHistory,
    WordCountPoint,
)
from cfr_cache.schemas.ecfr import Agency, TitleInfo
from cfr_cache.snapshot_store import SnapshotStore, as_date
from cfr_cache.upstream import AgencyCatalog, TitleCatalog, UpstreamFetcher
from cfr_cache.wordcount import count_words

logger = logging.getLogger(__name__)


def build_date_range(
    start: date | datetime, end: date | datetime, interval_days: int
) -> list[date]:
    start, end = as_date(start), as_date(end)
    if start > end:
        raise InvalidRange(start, end)
    if interval_days < 1:
        raise ValueError(f"interval_days must be at least 1, got {interval_days}")

    dates: list[date] = []
    current = start
    step = timedelta(days=interval_days)
    while current < end:
        dates.append(current)
        current += step
    dates.append(end)
    return dates


def annotate_deltas(points: Iterable[WordCountPoint]) -> list[WordCountPoint]:
    """Sort by date and fill the since-last-snapshot fields in place."""
    ordered = sorted(points, key=lambda p: p.date)
    for previous, current in zip(ordered, ordered[1:]):
        current.words_added_since_last_snapshot = current.word_count - previous.word_count
        current.days_since_last_snapshot = (current.date - previous.date).days
        if current.days_since_last_snapshot > 0:
            current.words_per_day = (
                current.words_added_since_last_snapshot / current.days_since_last_snapshot
            )
        else:
            current.words_per_day = 0.0
    return ordered


class HistoryBuilder:
    def __init__(
        self,
        store: SnapshotStore,
        query: CacheQueryEngine,
        fetcher: UpstreamFetcher,
        titles: TitleCatalog,
        agencies: AgencyCatalog,
        *,
        title_concurrency: int = settings.TITLE_CONCURRENCY,
        date_concurrency: int = settings.DATE_CONCURRENCY,
        fetch_delay: float = settings.HISTORY_FETCH_DELAY_S,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._store = store
        self._query = query
        self._fetcher = fetcher
        self._titles = titles
        self._agencies = agencies
        self._title_concurrency = title_concurrency
        self._date_concurrency = date_concurrency
        self._fetch_delay = fetch_delay
        self._sleep = sleep

    async def title_history(
        self,
        title_number: int,
        start: date | datetime,
        end: date | datetime,
        interval_days: int = settings.HISTORY_INTERVAL_DAYS,
        *,
        title_name: str = "",
    ) -> TitleWordCountHistory:
        dates = build_date_range(start, end, interval_days)
        points = await self._points_for_title(title_number, dates)
        return TitleWordCountHistory(
            title_number=title_number, title_name=title_name, word_counts=points
        )

    async def agency_history(
        self,
        slug: str,
        start: date | datetime,
        end: date | datetime,
        interval_days: int = settings.HISTORY_INTERVAL_DAYS,
    ) -> AgencyWordCountHistory:
        # Validate before touching upstream.
        dates = build_date_range(start, end, interval_days)

        agency, titles = await self._agency_and_titles(slug)
        logger.info(
            "Building word-count history for agency %s: %s titles, %s dates",
            agency.name,
            len(titles),
            len(dates),
        )

        limiter = asyncio.Semaphore(self._title_concurrency)

        async def one_title(title_number: int, title_name: str) -> TitleWordCountHistory:
            async with limiter:
                points = await self._points_for_title(title_number, dates)
            return TitleWordCountHistory(
                title_number=title_number, title_name=title_name, word_counts=points
            )

        histories = await asyncio.gather(*(one_title(t.number, t.name) for t in titles))

        totals: dict[date, int] = defaultdict(int)
        for history in histories:
            for point in history.word_counts:
                totals[point.date] += point.word_count

        return AgencyWordCountHistory(
            agency=agency,
            start_date=dates[0],
            end_date=dates[-1],
            interval_days=interval_days,
            title_histories=sorted(histories, key=lambda h: h.title_number),
            dates=[DateWordCount(date=d, word_count=totals[d]) for d in sorted(totals)],
        )

    async def agency_titles(self, slug: str) -> AgencyTitles:
        """Word count of each of the agency's titles at its latest issue date."""
        agency, titles = await self._agency_and_titles(slug)
        logger.info("Getting word counts for %s titles of agency %s", len(titles), agency.name)

        limiter = asyncio.Semaphore(self._title_concurrency)

        async def one_title(title: TitleInfo) -> AgencyTitle:
            entry = AgencyTitle(
                number=title.number, name=title.name, latest_issue_date=title.latest_issue_date
            )
            if title.latest_issue_date is None:
                logger.warning("Title %s has no issue date, reporting 0 words", title.number)
                return entry
            async with limiter:
                point = await self._point(title.number, title.latest_issue_date)
            entry.word_count = point.word_count
            entry.estimated = point.estimated
            return entry

        result = AgencyTitles(
            agency=agency, titles=list(await asyncio.gather(*(one_title(t) for t in titles)))
        )
        logger.info("Total word count for %s: %s", agency.name, result.total_word_count)
        return result

    async def _agency_and_titles(self, slug: str) -> tuple[Agency, list[TitleInfo]]:
        agency = await resolve_agency(self._agencies, slug)
        wanted = set(collect_title_numbers(agency))
        titles = [t for t in await self._titles.list_titles() if t.number in wanted]
        return agency, sorted(titles, key=lambda t: t.number)

    async def _points_for_title(self, title_number: int, dates: list[date]) -> list[WordCountPoint]:
        limiter = asyncio.Semaphore(self._date_concurrency)

        async def one_date(when: date) -> WordCountPoint:
            async with limiter:
                return await self._point(title_number, when)

        points = await asyncio.gather(*(one_date(d) for d in dates))
        return annotate_deltas(points)

    async def _point(self, title_number: int, when: date) -> WordCountPoint:
        if await self._store.has_exact_snapshot(title_number, when):
            word_count = await self._query.get_word_count(title_number, when)
            return WordCountPoint(date=when, word_count=word_count)

        try:
            await self._sleep(self._fetch_delay)
            content = await self._fetcher.fetch_title_content(title_number, when)
        except UpstreamError as exc:
            if await self._store.has_any_snapshot_on_or_before(title_number, when):
                logger.warning(
                    "Fetch failed for title %s on %s, using nearest prior snapshot: %s",
                    title_number,
                    when,
                    exc,
                )
            else:
                logger.error(
                    "Fetch failed for title %s on %s and nothing cached before it: %s",
                    title_number,
                    when,
                    exc,
                )
            word_count = await self._query.get_word_count_nearest_prior(title_number, when)
            return WordCountPoint(date=when, word_count=word_count, estimated=True)

        await self._store.upsert(title_number, when, content)
        return WordCountPoint(date=when, word_count=count_words(content))
