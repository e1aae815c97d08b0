"""Background refresher — keeps the latest issue of every title cached.

Two states, IDLE and REFRESHING. A pass starts when the refresh interval has
elapsed since the previous pass started, or on `trigger_refresh()`. State is
only changed by the refresher's own coroutine and never across an ``await``,
so the trigger cannot race the completion of a pass.
"""
from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone

from opentelemetry import trace

from cfr_cache.config import settings
from cfr_cache.metrics import (
    REFRESH_PASSES_TOTAL,
    REFRESH_STATE_GAUGE,
    REFRESH_TITLES_TOTAL,
)
from cfr_cache.observability import get_tracer
from cfr_cache.schemas.cache import RefreshReport, RefreshState, RefreshStatus
from cfr_cache.snapshot_store import SnapshotStore
from cfr_cache.upstream import TitleCatalog, UpstreamFetcher

logger = logging.getLogger(__name__)


class BackgroundRefresher:
    def __init__(
        self,
        store: SnapshotStore,
        fetcher: UpstreamFetcher,
        catalog: TitleCatalog,
        *,
        interval_s: float = settings.REFRESH_INTERVAL_S,
        delay_s: float = settings.REFRESH_DELAY_S,
        run_on_start: bool = settings.REFRESH_ON_STARTUP,
        tracer: trace.Tracer | None = None,
    ):
        self._store = store
        self._fetcher = fetcher
        self._catalog = catalog
        self._interval_s = interval_s
        self._delay_s = delay_s
        self._run_on_start = run_on_start
        self._tracer = tracer or get_tracer()

        self._state = RefreshState.IDLE
        self._trigger = asyncio.Event()
        self._stop = asyncio.Event()
        self._task: asyncio.Task | None = None
        self._last_started_monotonic: float | None = None
        self.last_started_at: datetime | None = None
        self.last_completed_at: datetime | None = None
        self.last_report: RefreshReport | None = None

    @property
    def state(self) -> RefreshState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def trigger_refresh(self) -> bool:
        """Ask for a pass now.

        Returns False (no-op) while a pass is running or when the loop is not
        started, since nothing would pick the trigger up.
        """
        if not self.is_running:
            logger.warning("Refresher is not running, trigger ignored")
            return False
        if self._state is RefreshState.REFRESHING:
            logger.info("Refresh already in progress, trigger ignored")
            return False
        self._trigger.set()
        return True

    def start(self) -> asyncio.Task:
        if self.is_running:
            return self._task  # type: ignore[return-value]
        self._stop.clear()
        self._task = asyncio.create_task(self.run(), name="title-cache-refresher")
        return self._task

    async def stop(self) -> None:
        """Signal the loop to stop and wait for it; completed upserts are kept."""
        self._stop.set()
        task, self._task = self._task, None
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise

    async def run(self) -> None:
        if self._run_on_start:
            self._trigger.set()
        while not self._stop.is_set():
            await self._wait_for_next_pass()
            if self._stop.is_set():
                break
            self._trigger.clear()
            try:
                await self.refresh_once()
            except Exception:
                logger.exception("Error occurred while updating title cache")

    async def refresh_once(self) -> RefreshReport | None:
        """Run one pass over every title; None if a pass is already running."""
        if self._state is RefreshState.REFRESHING:
            return None
        self._state = RefreshState.REFRESHING
        REFRESH_STATE_GAUGE.set(1)
        self._last_started_monotonic = time.monotonic()
        self.last_started_at = datetime.now(timezone.utc)
        report = RefreshReport(started_at=self.last_started_at)
        with self._tracer.start_as_current_span("cache.refresh_pass") as span:
            try:
                await self._pass(report)
            finally:
                report.finished_at = datetime.now(timezone.utc)
                self.last_report = report
                self.last_completed_at = report.finished_at
                self._state = RefreshState.IDLE
                REFRESH_STATE_GAUGE.set(0)

            result = "cancelled" if report.cancelled else ("error" if report.error else "completed")
            if report.failed and result == "completed":
                result = "partial"
            span.set_attribute("refresh.result", result)
            span.set_attribute("refresh.titles_seen", report.titles_seen)
            span.set_attribute("refresh.refreshed", report.refreshed)
            span.set_attribute("refresh.failed", len(report.failed))
        REFRESH_PASSES_TOTAL.labels(result=result).inc()
        logger.info(
            "Cache update %s. Refreshed %s, skipped %s, failed %s of %s titles",
            result,
            report.refreshed,
            report.skipped,
            len(report.failed),
            report.titles_seen,
        )
        return report

    async def refresh_status(self) -> RefreshStatus:
        stats = await self._store.statistics()
        return RefreshStatus(
            state=self._state,
            last_started_at=self.last_started_at,
            last_completed_at=self.last_completed_at,
            last_report=self.last_report,
            total_snapshots=stats.total_snapshots,
            distinct_titles=stats.distinct_titles,
            oldest_snapshot_date=stats.oldest_snapshot_date,
            latest_update=stats.latest_update,
        )

    async def _pass(self, report: RefreshReport) -> None:
        try:
            titles = list(await self._catalog.list_titles())
        except Exception as exc:
            logger.exception("Could not list titles, aborting refresh pass")
            report.error = str(exc)
            return

        total = len(titles)
        for title in titles:
            if self._stop.is_set():
                logger.info("Refresh cancelled after %s of %s titles", report.titles_seen, total)
                report.cancelled = True
                return
            report.titles_seen += 1

            latest = title.latest_issue_date
            if latest is None:
                report.skipped += 1
                REFRESH_TITLES_TOTAL.labels(outcome="no_issue_date").inc()
                continue

            try:
                if await self._store.has_exact_snapshot(title.number, latest):
                    report.skipped += 1
                    REFRESH_TITLES_TOTAL.labels(outcome="cached").inc()
                    continue

                content = await self._fetcher.fetch_title_content(title.number, latest)
                await self._store.upsert(title.number, latest, content)
            except Exception:
                report.failed.append(title.number)
                REFRESH_TITLES_TOTAL.labels(outcome="failed").inc()
                logger.exception("Error updating cache for title %s", title.number)
            else:
                report.refreshed += 1
                REFRESH_TITLES_TOTAL.labels(outcome="refreshed").inc()
                logger.info(
                    "Updated cache for title %s at date %s (%s%% complete)",
                    title.number,
                    latest,
                    (report.titles_seen * 100) // total,
                )

            # Throttle upstream calls; a stop request cuts the wait short.
            if await self._sleep_or_stop(self._delay_s):
                report.cancelled = True
                return

    async def _wait_for_next_pass(self) -> None:
        if self._last_started_monotonic is None:
            timeout = self._interval_s
        else:
            elapsed = time.monotonic() - self._last_started_monotonic
            timeout = max(0.0, self._interval_s - elapsed)

        trigger = asyncio.ensure_future(self._trigger.wait())
        stop = asyncio.ensure_future(self._stop.wait())
        try:
            await asyncio.wait({trigger, stop}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        finally:
            trigger.cancel()
            stop.cancel()

    async def _sleep_or_stop(self, delay: float) -> bool:
        """Sleep `delay` seconds; True if a stop was requested meanwhile."""
        if delay <= 0:
            return self._stop.is_set()
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return False
        return True
