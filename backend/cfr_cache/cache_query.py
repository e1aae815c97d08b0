"""Read side of the cache: exact and nearest-prior word-count lookups."""
from __future__ import annotations

import logging
from datetime import date, datetime

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cfr_cache.errors import SnapshotNotFound, StorageFailure
from cfr_cache.metrics import CACHE_LOOKUPS_TOTAL
from cfr_cache.models.word_count import TitleWordCount
from cfr_cache.snapshot_store import as_date, check_title_number

logger = logging.getLogger(__name__)


class CacheQueryEngine:
    """Read-only word-count queries; never writes to the store."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def is_cached(self, title_number: int, when: date | datetime) -> bool:
        stmt = (
            select(TitleWordCount.id)
            .where(
                TitleWordCount.title_number == check_title_number(title_number),
                TitleWordCount.snapshot_date == as_date(when),
            )
            .limit(1)
        )
        return await self._scalar(stmt) is not None

    async def get_word_count(self, title_number: int, when: date | datetime) -> int:
        """Word count stored for exactly this date.

        Raises `SnapshotNotFound` when only other dates are cached; callers that
        want a fallback must use `get_word_count_nearest_prior`.
        """
        snapshot_date = as_date(when)
        stmt = select(TitleWordCount.word_count).where(
            TitleWordCount.title_number == check_title_number(title_number),
            TitleWordCount.snapshot_date == snapshot_date,
        )
        word_count = await self._scalar(stmt)
        if word_count is None:
            CACHE_LOOKUPS_TOTAL.labels(mode="exact", result="miss").inc()
            raise SnapshotNotFound(title_number, snapshot_date)
        CACHE_LOOKUPS_TOTAL.labels(mode="exact", result="hit").inc()
        return word_count

    async def get_word_count_nearest_prior(self, title_number: int, when: date | datetime) -> int:
        """Word count of the latest snapshot dated on or before `when`, else 0."""
        stmt = (
            select(TitleWordCount.word_count)
            .where(
                TitleWordCount.title_number == check_title_number(title_number),
                TitleWordCount.snapshot_date <= as_date(when),
            )
            .order_by(TitleWordCount.snapshot_date.desc())
            .limit(1)
        )
        word_count = await self._scalar(stmt)
        CACHE_LOOKUPS_TOTAL.labels(
            mode="nearest_prior", result="miss" if word_count is None else "hit"
        ).inc()
        return word_count or 0

    async def _scalar(self, stmt):
        try:
            async with self._session_factory() as session:
                return (await session.execute(stmt)).scalar()
        except SQLAlchemyError as exc:
            raise StorageFailure("Word-count lookup failed") from exc
