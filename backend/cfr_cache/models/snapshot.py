"""TitleSnapshot model — full content of a title as of an issue date."""
from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import Date, DateTime, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from cfr_cache.db import Base


class TitleSnapshot(Base):
    """Raw title XML for one (title, date); rewritten only when the fingerprint changes."""

    __tablename__ = "title_snapshots"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title_number: Mapped[int] = mapped_column(Integer, nullable=False)
    snapshot_date: Mapped[date] = mapped_column(Date, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    word_count: Mapped[int] = mapped_column(Integer, nullable=False)
    fingerprint: Mapped[str] = mapped_column(
        String(64), nullable=False, comment="SHA-256 of content"
    )
    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("title_number", "snapshot_date", name="uq_title_snapshots_title_date"),
    )

    def __repr__(self) -> str:
        return (
            f"<TitleSnapshot title={self.title_number} date={self.snapshot_date} "
            f"words={self.word_count}>"
        )
