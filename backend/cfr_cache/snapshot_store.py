"""Persistent (title, date) → snapshot storage.

Both tables are keyed by (title_number, snapshot_date). Writes go through a
dialect-native ``INSERT … ON CONFLICT DO UPDATE`` so two concurrent upserts of
the same key converge on one row instead of raising a duplicate-key error.
The snapshot write only applies when the fingerprint differs, and its
``RETURNING`` row decides whether the word-count row is touched at all.
"""
from __future__ import annotations

import logging
from datetime import date, datetime, timezone

from sqlalchemy import distinct, func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cfr_cache.errors import StorageFailure
from cfr_cache.fingerprint import fingerprint
from cfr_cache.metrics import SNAPSHOT_UPSERTS_TOTAL
from cfr_cache.models.snapshot import TitleSnapshot
from cfr_cache.models.word_count import TitleWordCount
from cfr_cache.schemas.cache import CacheStatistics, UpsertOutcome
from cfr_cache.wordcount import count_words

logger = logging.getLogger(__name__)

_KEY_COLUMNS = ["title_number", "snapshot_date"]


def as_date(value: date | datetime) -> date:
    """Drop the time of day; snapshots are keyed by calendar date only."""
    if isinstance(value, datetime):
        return value.date()
    return value


def check_title_number(title_number: int) -> int:
    if title_number < 1:
        raise ValueError(f"Title number must be positive, got {title_number}")
    return title_number


def _insert_for(session: AsyncSession):
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert
    if dialect == "sqlite":
        return sqlite_insert
    raise StorageFailure(f"Unsupported database dialect for upsert: {dialect}")


class SnapshotStore:
    """Snapshot persistence over an async session factory."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def has_exact_snapshot(self, title_number: int, when: date | datetime) -> bool:
        stmt = (
            select(TitleWordCount.id)
            .where(
                TitleWordCount.title_number == check_title_number(title_number),
                TitleWordCount.snapshot_date == as_date(when),
            )
            .limit(1)
        )
        return await self._first(stmt) is not None

    is_cached = has_exact_snapshot

    async def has_any_snapshot_on_or_before(self, title_number: int, when: date | datetime) -> bool:
        stmt = (
            select(TitleWordCount.id)
            .where(
                TitleWordCount.title_number == check_title_number(title_number),
                TitleWordCount.snapshot_date <= as_date(when),
            )
            .limit(1)
        )
        return await self._first(stmt) is not None

    async def upsert(self, title_number: int, when: date | datetime, content: str) -> UpsertOutcome:
        """Store `content` for (title, date); a matching fingerprint is a no-op."""
        title_number = check_title_number(title_number)
        snapshot_date = as_date(when)
        digest = fingerprint(content)
        words = count_words(content)
        now = datetime.now(timezone.utc)

        try:
            async with self._session_factory() as session:
                existing = (
                    await session.execute(
                        select(TitleSnapshot.fingerprint).where(
                            TitleSnapshot.title_number == title_number,
                            TitleSnapshot.snapshot_date == snapshot_date,
                        )
                    )
                ).scalar_one_or_none()
                if existing == digest:
                    SNAPSHOT_UPSERTS_TOTAL.labels(outcome=UpsertOutcome.UNCHANGED.value).inc()
                    logger.debug(
                        "Content unchanged for title %s on %s, skipping write",
                        title_number,
                        snapshot_date,
                    )
                    return UpsertOutcome.UNCHANGED

                insert = _insert_for(session)

                snap_stmt = insert(TitleSnapshot).values(
                    title_number=title_number,
                    snapshot_date=snapshot_date,
                    content=content,
                    word_count=words,
                    fingerprint=digest,
                    last_updated=now,
                )
                snap_stmt = snap_stmt.on_conflict_do_update(
                    index_elements=_KEY_COLUMNS,
                    set_={
                        "content": snap_stmt.excluded.content,
                        "word_count": snap_stmt.excluded.word_count,
                        "fingerprint": snap_stmt.excluded.fingerprint,
                        "last_updated": snap_stmt.excluded.last_updated,
                    },
                    where=TitleSnapshot.fingerprint != snap_stmt.excluded.fingerprint,
                ).returning(TitleSnapshot.id)
                written = (await session.execute(snap_stmt)).scalar_one_or_none()
                if written is None:
                    # A concurrent writer stored the same content first.
                    await session.rollback()
                    SNAPSHOT_UPSERTS_TOTAL.labels(outcome=UpsertOutcome.UNCHANGED.value).inc()
                    logger.debug(
                        "Content for title %s on %s already stored, skipping write",
                        title_number,
                        snapshot_date,
                    )
                    return UpsertOutcome.UNCHANGED

                count_stmt = insert(TitleWordCount).values(
                    title_number=title_number,
                    snapshot_date=snapshot_date,
                    word_count=words,
                    last_updated=now,
                )
                count_stmt = count_stmt.on_conflict_do_update(
                    index_elements=_KEY_COLUMNS,
                    set_={
                        "word_count": count_stmt.excluded.word_count,
                        "last_updated": count_stmt.excluded.last_updated,
                    },
                )
                await session.execute(count_stmt)
                await session.commit()
        except SQLAlchemyError as exc:
            raise StorageFailure(
                f"Failed to upsert snapshot for title {title_number} on {snapshot_date}"
            ) from exc

        outcome = UpsertOutcome.CREATED if existing is None else UpsertOutcome.UPDATED
        SNAPSHOT_UPSERTS_TOTAL.labels(outcome=outcome.value).inc()
        logger.info(
            "Snapshot %s for title %s on %s (%s words)",
            outcome.value.lower(),
            title_number,
            snapshot_date,
            words,
        )
        return outcome

    async def list_snapshot_dates(self, title_number: int) -> list[date]:
        stmt = (
            select(TitleWordCount.snapshot_date)
            .where(TitleWordCount.title_number == check_title_number(title_number))
            .order_by(TitleWordCount.snapshot_date.asc())
        )
        try:
            async with self._session_factory() as session:
                return list((await session.execute(stmt)).scalars().all())
        except SQLAlchemyError as exc:
            raise StorageFailure(f"Failed to list snapshots for title {title_number}") from exc

    async def statistics(self) -> CacheStatistics:
        stmt = select(
            func.count(TitleSnapshot.id),
            func.count(distinct(TitleSnapshot.title_number)),
            func.min(TitleSnapshot.snapshot_date),
            func.min(TitleSnapshot.last_updated),
            func.max(TitleSnapshot.last_updated),
        )
        try:
            async with self._session_factory() as session:
                total, titles, oldest_date, oldest_update, latest_update = (
                    await session.execute(stmt)
                ).one()
        except SQLAlchemyError as exc:
            raise StorageFailure("Failed to read cache statistics") from exc
        return CacheStatistics(
            total_snapshots=total or 0,
            distinct_titles=titles or 0,
            oldest_snapshot_date=oldest_date,
            oldest_update=oldest_update,
            latest_update=latest_update,
        )

    async def _first(self, stmt):
        try:
            async with self._session_factory() as session:
                return (await session.execute(stmt)).scalar()
        except SQLAlchemyError as exc:
            raise StorageFailure("Snapshot lookup failed") from exc
