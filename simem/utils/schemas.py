"""
Pydantic Schemas - Data Validation Models

Defines all Pydantic schemas shared across the extraction pipeline:
- Cache entries and cache statistics
- Network fetch outcomes
- Progress snapshots and the terminal extraction result
- Record summaries

Usage:
    from simem.utils.schemas import DateRange, ExtractionResult

    date_range = DateRange(start=date(2024, 1, 1), end=date(2024, 1, 3))
    assert date_range.day_count == 3

Records are opaque upstream mappings; the pipeline never inspects them except
in the record summary.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Any, Iterator, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator
from pydantic.alias_generators import to_camel

Record = dict[str, Any]

DATE_FORMAT = "%Y-%m-%d"


def format_day(day: date) -> str:
    """Canonical YYYY-MM-DD cache key for a calendar day."""
    return day.strftime(DATE_FORMAT)


class CamelModel(BaseModel):
    """Base for payloads handed to outer layers with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DateRange(BaseModel):
    """Validated, inclusive calendar range."""

    start: date
    end: date

    @model_validator(mode="after")
    def check_order(self) -> "DateRange":
        if self.end < self.start:
            raise ValueError("end date must not precede start date")
        return self

    @property
    def day_count(self) -> int:
        return (self.end - self.start).days + 1

    def days(self) -> Iterator[date]:
        current = self.start
        while current <= self.end:
            yield current
            current += timedelta(days=1)


class CacheEntry(BaseModel):
    """One cached day: the full record list plus bookkeeping."""

    date: str = Field(..., pattern=r"^\d{4}-\d{2}-\d{2}$")
    records: list[Record]
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    record_count: int = Field(..., ge=0)

    @model_validator(mode="after")
    def check_count(self) -> "CacheEntry":
        if self.record_count != len(self.records):
            raise ValueError(
                f"record_count {self.record_count} != {len(self.records)} records"
            )
        return self

    @classmethod
    def build(cls, day: str, records: list[Record]) -> "CacheEntry":
        return cls(date=day, records=list(records), record_count=len(records))


class CacheDateSummary(CamelModel):
    date: str
    record_count: int
    created_at: datetime


class CacheStats(CamelModel):
    """Aggregate view over the whole cache.

    approx_size_bytes is an estimate: the length of each entry's JSON
    serialization times two, i.e. the footprint of that text held as 16-bit
    code units. It is not the on-disk size of the SQLite file.
    """

    total_dates: int = 0
    total_records: int = 0
    approx_size_bytes: int = 0
    per_date_summary: list[CacheDateSummary] = Field(default_factory=list)

    @computed_field(alias="approxSizeMb")
    @property
    def approx_size_mb(self) -> float:
        return round(self.approx_size_bytes / (1024 * 1024), 2)


class FetchResult(BaseModel):
    """Outcome of one access path (or of a whole fallback chain)."""

    success: bool
    records: list[Record] = Field(default_factory=list)
    error: Optional[str] = None
    url: Optional[str] = None


class DayResult(BaseModel):
    day: str
    records: list[Record] = Field(default_factory=list)
    from_cache: bool = False
    error: Optional[str] = None


class ExtractionProgress(CamelModel):
    """Snapshot emitted once per processed day."""

    day: str
    day_index: int
    total_days: int
    records_in_day: int
    from_cache: bool
    total_records: int
    cache_hits: int
    percentage: int
    error: Optional[str] = None


class ExtractionStats(CamelModel):
    total_records: int = 0
    days_processed: int = 0
    cache_hits: int = 0
    cache_hit_percentage: int = 0


class ExtractionResult(CamelModel):
    success: bool
    records: list[Record] = Field(default_factory=list)
    stats: ExtractionStats = Field(default_factory=ExtractionStats)
    error: Optional[str] = None
    cancelled: bool = False


class RecordSummary(CamelModel):
    total_records: int = 0
    first_timestamp: Optional[datetime] = None
    last_timestamp: Optional[datetime] = None
    variables: list[str] = Field(default_factory=list)
    avg_value: float = 0.0
    min_value: float = 0.0
    max_value: float = 0.0
