"""Result types returned by the cache, the history builder and the refresher."""
from __future__ import annotations

import enum
import datetime as dt
from typing import Optional

from pydantic import BaseModel, Field, computed_field

from cfr_cache.schemas.ecfr import Agency


class UpsertOutcome(str, enum.Enum):
    CREATED = "CREATED"
    UPDATED = "UPDATED"
    UNCHANGED = "UNCHANGED"


class RefreshState(str, enum.Enum):
    IDLE = "IDLE"
    REFRESHING = "REFRESHING"


class CacheStatistics(BaseModel):
    total_snapshots: int = 0
    distinct_titles: int = 0
    oldest_snapshot_date: Optional[dt.date] = None
    oldest_update: Optional[dt.datetime] = None
    latest_update: Optional[dt.datetime] = None


class RefreshReport(BaseModel):
    """Outcome of one refresh pass."""

    started_at: dt.datetime
    finished_at: Optional[dt.datetime] = None
    titles_seen: int = 0
    refreshed: int = 0
    skipped: int = 0
    failed: list[int] = Field(default_factory=list)
    cancelled: bool = False
    error: Optional[str] = None


class RefreshStatus(BaseModel):
    state: RefreshState
    last_started_at: Optional[dt.datetime] = None
    last_completed_at: Optional[dt.datetime] = None
    last_report: Optional[RefreshReport] = None
    total_snapshots: int = 0
    distinct_titles: int = 0
    oldest_snapshot_date: Optional[dt.date] = None
    latest_update: Optional[dt.datetime] = None


class WordCountPoint(BaseModel):
    """Word count of a title at one date of a history series."""

    date: dt.date
    word_count: int
    words_added_since_last_snapshot: int = 0
    days_since_last_snapshot: int = 0
    words_per_day: float = 0.0
    estimated: bool = Field(
        default=False, description="True when the upstream fetch failed and the nearest prior snapshot was used"
    )


class TitleWordCountHistory(BaseModel):
    title_number: int
    title_name: str = ""
    word_counts: list[WordCountPoint] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_words_added(self) -> int:
        if len(self.word_counts) < 2:
            return 0
        return self.word_counts[-1].word_count - self.word_counts[0].word_count

    @computed_field  # type: ignore[prop-decorator]
    @property
    def average_words_per_day(self) -> float:
        if len(self.word_counts) < 2:
            return 0.0
        span_days = (self.word_counts[-1].date - self.word_counts[0].date).days
        if span_days <= 0:
            return 0.0
        return self.total_words_added / span_days


class DateWordCount(BaseModel):
    date: dt.date
    word_count: int


class AgencyWordCountHistory(BaseModel):
    agency: Agency
    start_date: dt.date
    end_date: dt.date
    interval_days: int
    title_histories: list[TitleWordCountHistory] = Field(default_factory=list)
    dates: list[DateWordCount] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_words_added(self) -> int:
        return sum(h.total_words_added for h in self.title_histories)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def average_words_per_day(self) -> float:
        return sum(h.average_words_per_day for h in self.title_histories)


class AgencyTitle(BaseModel):
    """A title referenced by an agency with its word count at the latest issue."""

    number: int
    name: str = ""
    latest_issue_date: Optional[dt.date] = None
    word_count: int = 0
    estimated: bool = False


class AgencyTitles(BaseModel):
    agency: Agency
    titles: list[AgencyTitle] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_word_count(self) -> int:
        return sum(t.word_count for t in self.titles)
