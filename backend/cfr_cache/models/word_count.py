"""TitleWordCount model — lightweight lookup table for word counts."""
from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import Date, DateTime, Integer, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from cfr_cache.db import Base


class TitleWordCount(Base):
    """Projection of TitleSnapshot without content, for exact and nearest-prior reads."""

    __tablename__ = "title_word_counts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title_number: Mapped[int] = mapped_column(Integer, nullable=False)
    snapshot_date: Mapped[date] = mapped_column(Date, nullable=False)
    word_count: Mapped[int] = mapped_column(Integer, nullable=False)
    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        # Leading title_number + snapshot_date also serves the ORDER BY date DESC lookups.
        UniqueConstraint("title_number", "snapshot_date", name="uq_title_word_counts_title_date"),
    )

    def __repr__(self) -> str:
        return (
            f"<TitleWordCount title={self.title_number} date={self.snapshot_date} "
            f"words={self.word_count}>"
        )
