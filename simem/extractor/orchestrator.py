"""
Extraction Orchestrator - Day-by-day range extraction

Drives one extraction over an inclusive date range:

    validate range -> for each day:
        cache hit  -> take cached records
        cache miss -> access-path fallback + fetch, persist non-empty results,
                      then pause DAY_PACING_DELAY
        emit one progress snapshot
    -> ExtractionResult

Single-flight: a second extract() while one runs raises
ExtractionInProgressError. Only range validation and single-flight violations
raise; a day whose every access path fails is recorded as a zero-record day and
the loop moves on. Unexpected errors mid-loop end the call with
success=False and the records gathered so far.

Cancellation is cooperative: cancel() is honoured before the next day starts.

Progress callbacks run on a dispatcher task that outlives the call: extract()
returns, and releases the single-flight flag, without waiting for them.
wait_for_progress() waits for outstanding deliveries; close() does the same
for up to PROGRESS_DRAIN_TIMEOUT seconds and then drops the rest.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

from simem.extractor.access_paths import AccessPathStrategy, ResourceRequest
from simem.extractor.fetcher import Fetcher
from simem.extractor.progress import ProgressCallback, ProgressNotifier, percentage
from simem.utils.cache_store import CacheStore
from simem.utils.config import settings
from simem.utils.errors import ExtractionInProgressError, RangeValidationError
from simem.utils.schemas import (
    CacheStats,
    DateRange,
    DayResult,
    ExtractionProgress,
    ExtractionResult,
    ExtractionStats,
    Record,
    format_day,
)

logger = logging.getLogger(__name__)

ConfirmLargeRange = Callable[[int], Union[bool, Awaitable[bool]]]
ConfirmClear = Callable[[CacheStats], Union[bool, Awaitable[bool]]]

CANCELLED_ERROR = "Extraction cancelled"


class ExtractionState(Enum):
    """Lifecycle of a single extraction call."""

    IDLE = "idle"
    VALIDATING = "validating"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class _Tally:
    total_days: int = 0
    records: list[Record] = field(default_factory=list)
    days_processed: int = 0
    cache_hits: int = 0

    def add(self, day_result: DayResult) -> None:
        self.records.extend(day_result.records)
        self.days_processed += 1
        if day_result.from_cache:
            self.cache_hits += 1

    def stats(self) -> ExtractionStats:
        return ExtractionStats(
            total_records=len(self.records),
            days_processed=self.days_processed,
            cache_hits=self.cache_hits,
            cache_hit_percentage=percentage(self.cache_hits, self.days_processed),
        )

    def progress(self, day_result: DayResult) -> ExtractionProgress:
        return ExtractionProgress(
            day=day_result.day,
            day_index=self.days_processed,
            total_days=self.total_days,
            records_in_day=len(day_result.records),
            from_cache=day_result.from_cache,
            total_records=len(self.records),
            cache_hits=self.cache_hits,
            percentage=percentage(self.days_processed, self.total_days),
            error=day_result.error,
        )


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def parse_day(value: Union[str, date, None]) -> date:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise RangeValidationError("Both start and end dates are required")
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = str(value).strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        raise RangeValidationError(f"Invalid date: {value!r}") from None


class ExtractionOrchestrator:
    """Cache-first, single-flight extractor of per-day price records."""

    def __init__(
        self,
        cache: CacheStore,
        fetcher: Fetcher,
        access_paths: Optional[AccessPathStrategy] = None,
        dataset_id: Optional[str] = None,
        confirm_large_range: Optional[ConfirmLargeRange] = None,
        large_range_days: Optional[int] = None,
        day_delay: Optional[float] = None,
    ) -> None:
        """
        Args:
            cache: Persistent per-day cache
            fetcher: Network fetcher used for every access path
            access_paths: Fallback strategy, defaults to one built from settings
            dataset_id: Upstream dataset, defaults to settings.SIMEM_DATASET_ID
            confirm_large_range: Predicate called with the day count when a range
                exceeds large_range_days; None declines every large range
            large_range_days: Largest span accepted without confirmation,
                defaults to settings.LARGE_RANGE_DAYS
            day_delay: Pause after each cache-miss day, defaults to settings.DAY_PACING_DELAY
        """
        self.cache = cache
        self.fetcher = fetcher
        self.access_paths = access_paths or AccessPathStrategy()
        self.dataset_id = dataset_id or settings.SIMEM_DATASET_ID
        self.confirm_large_range = confirm_large_range
        self.large_range_days = (
            settings.LARGE_RANGE_DAYS if large_range_days is None else large_range_days
        )
        self.day_delay = settings.DAY_PACING_DELAY if day_delay is None else day_delay

        self.state = ExtractionState.IDLE
        self._extracting = False
        self._cancel_requested = False
        self._progress_tasks: set[asyncio.Task] = set()

    @property
    def is_extracting(self) -> bool:
        return self._extracting

    def cancel(self) -> None:
        """Ask the running extraction to stop before its next day."""
        if self._extracting:
            logger.info("Cancellation requested")
            self._cancel_requested = True

    async def validate_date_range(
        self,
        start: Union[str, date, None],
        end: Union[str, date, None],
    ) -> DateRange:
        """Parse and check a raw range.

        Raises:
            RangeValidationError: If a date is missing or invalid, the range is
                inverted, or a large range is not confirmed
        """
        start_day = parse_day(start)
        end_day = parse_day(end)
        if end_day < start_day:
            raise RangeValidationError("End date must not precede start date")

        date_range = DateRange(start=start_day, end=end_day)
        days = date_range.day_count

        if days > self.large_range_days:
            approved = False
            if self.confirm_large_range is not None:
                approved = bool(await _resolve(self.confirm_large_range(days)))
            if not approved:
                raise RangeValidationError(
                    f"Operation cancelled by user: {days} days requested, "
                    f"confirmation required above {self.large_range_days}"
                )

        return date_range

    async def fetch_day(self, day: date) -> DayResult:
        """Records for one day, from the cache or the network."""
        key = format_day(day)

        if await self.cache.exists(key):
            cached = await self.cache.get(key)
            if cached:
                return DayResult(day=key, records=cached, from_cache=True)

        result = await self.access_paths.fetch(
            ResourceRequest(day=day, dataset_id=self.dataset_id), self.fetcher
        )
        if not result.success:
            return DayResult(day=key, error=result.error)

        if result.records:
            await self.cache.put(key, result.records)

        return DayResult(day=key, records=result.records)

    async def extract(
        self,
        start: Union[str, date, None],
        end: Union[str, date, None],
        progress_callback: Optional[ProgressCallback] = None,
    ) -> ExtractionResult:
        """Extract every day of [start, end].

        Args:
            start: First day (YYYY-MM-DD)
            end: Last day, inclusive (YYYY-MM-DD)
            progress_callback: Receives one ExtractionProgress per day; never awaited,
                neither by the day loop nor before returning

        Returns:
            ExtractionResult with all records gathered, also on failure or cancellation

        Raises:
            ExtractionInProgressError: If another extraction is running
            RangeValidationError: If the range is rejected
        """
        if self._extracting:
            raise ExtractionInProgressError("An extraction is already in progress")

        self._extracting = True
        self._cancel_requested = False
        notifier = ProgressNotifier(progress_callback)
        tally = _Tally()

        try:
            self.state = ExtractionState.VALIDATING
            try:
                date_range = await self.validate_date_range(start, end)
            except RangeValidationError:
                self.state = ExtractionState.FAILED
                raise

            tally.total_days = date_range.day_count
            self.state = ExtractionState.RUNNING
            logger.info(
                "Extraction started",
                extra={
                    "start": format_day(date_range.start),
                    "end": format_day(date_range.end),
                    "days": tally.total_days,
                },
            )

            try:
                for day in date_range.days():
                    if self._cancel_requested:
                        self.state = ExtractionState.FAILED
                        logger.info("Extraction cancelled", extra={"days_processed": tally.days_processed})
                        return ExtractionResult(
                            success=False,
                            records=tally.records,
                            stats=tally.stats(),
                            error=CANCELLED_ERROR,
                            cancelled=True,
                        )

                    day_result = await self.fetch_day(day)
                    tally.add(day_result)

                    progress = tally.progress(day_result)
                    logger.debug("Day processed", extra=progress.model_dump())
                    notifier.notify(progress)

                    if not day_result.from_cache:
                        await asyncio.sleep(self.day_delay)

            except Exception as e:
                self.state = ExtractionState.FAILED
                logger.error(
                    "Extraction failed mid-range",
                    extra={"days_processed": tally.days_processed, "error": str(e)},
                    exc_info=True,
                )
                return ExtractionResult(
                    success=False,
                    records=tally.records,
                    stats=tally.stats(),
                    error=str(e),
                )

            self.state = ExtractionState.COMPLETED
            stats = tally.stats()
            logger.info("Extraction completed", extra=stats.model_dump())
            return ExtractionResult(success=True, records=tally.records, stats=stats)

        finally:
            self._extracting = False
            self._track_progress(notifier.finish())

    # ------------------------------------------------------------------
    # Progress delivery
    # ------------------------------------------------------------------

    def _track_progress(self, task: Optional[asyncio.Task]) -> None:
        if task is None:
            return
        self._progress_tasks.add(task)
        task.add_done_callback(self._progress_done)

    def _progress_done(self, task: asyncio.Task) -> None:
        self._progress_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("Progress dispatcher crashed", exc_info=error)

    async def wait_for_progress(self, timeout: Optional[float] = None) -> bool:
        """Wait for progress callbacks still running after extract() returned.

        Args:
            timeout: Seconds to wait, None waits without limit

        Returns:
            True if every queued snapshot has been delivered
        """
        pending = set(self._progress_tasks)
        if not pending:
            return True
        _, pending = await asyncio.wait(pending, timeout=timeout)
        return not pending

    # ------------------------------------------------------------------
    # Cache management
    # ------------------------------------------------------------------

    async def cache_exists(self, day: str) -> bool:
        return await self.cache.exists(day)

    async def cache_get(self, day: str) -> Optional[list[Record]]:
        return await self.cache.get(day)

    async def cache_put(self, day: str, records: list[Record]) -> bool:
        return await self.cache.put(day, records)

    async def cache_delete(self, day: str) -> bool:
        return await self.cache.delete(day)

    async def cache_stats(self) -> CacheStats:
        return await self.cache.stats()

    async def cache_clear(self, confirm: Optional[ConfirmClear] = None) -> bool:
        """Clear the whole cache.

        Args:
            confirm: Optional gate shown the current stats; a falsy answer
                leaves the cache untouched

        Returns:
            True if the cache was cleared
        """
        if confirm is not None:
            stats = await self.cache.stats()
            if not await _resolve(confirm(stats)):
                logger.info("Cache clear declined")
                return False
        return await self.cache.clear()

    async def close(self) -> None:
        if not await self.wait_for_progress(settings.PROGRESS_DRAIN_TIMEOUT):
            logger.warning(
                "Dropping undelivered progress",
                extra={"pending_dispatchers": len(self._progress_tasks)},
            )
            for task in list(self._progress_tasks):
                task.cancel()
        await self.fetcher.close()
        await self.cache.close()


def build_orchestrator(
    confirm_large_range: Optional[ConfirmLargeRange] = None,
) -> ExtractionOrchestrator:
    """Orchestrator wired from settings."""
    return ExtractionOrchestrator(
        cache=CacheStore(settings.CACHE_DB_PATH),
        fetcher=Fetcher(),
        access_paths=AccessPathStrategy(),
        confirm_large_range=confirm_large_range,
    )
