"""
Extraction CLI - On-demand extraction and cache management

Usage:
    # Extract a range, writing JSONL to OUTPUT_DIR
    python -m simem.extractor extract 2024-01-01 2024-01-31

    # Large ranges ask for confirmation unless --yes is given
    python -m simem.extractor extract 2024-01-01 2024-03-31 --yes

    # Cache management
    python -m simem.extractor cache stats
    python -m simem.extractor cache clear
    python -m simem.extractor cache delete 2024-01-15

SIGINT/SIGTERM during an extraction stop it after the current day and the
records gathered so far are still written. A second signal aborts at once.
"""

import argparse
import asyncio
import logging
import signal
import sys
from typing import Any, Optional

import orjson

from simem.extractor.orchestrator import ExtractionOrchestrator, build_orchestrator, parse_day
from simem.extractor.output import default_output_path, write_records_jsonl
from simem.extractor.summary import summarize_records, variable_display_name
from simem.utils.config import settings
from simem.utils.errors import ExtractionError
from simem.utils.logging import setup_logging
from simem.utils.schemas import CacheStats, DateRange, ExtractionProgress

logger = logging.getLogger(__name__)


def _print_json(payload: dict) -> None:
    print(orjson.dumps(payload, option=orjson.OPT_INDENT_2, default=str).decode("utf-8"))


async def _ask(question: str) -> bool:
    answer = await asyncio.to_thread(input, f"{question} [y/N] ")
    return answer.strip().lower() in ("y", "yes")


class ExtractionRunner:
    """
    Runs one CLI command against an orchestrator.

    Handles:
    - Confirmation prompts for large ranges and cache clearing
    - Progress logging
    - Signal handling for cooperative cancellation
    """

    def __init__(self, assume_yes: bool = False) -> None:
        self.assume_yes = assume_yes
        self.orchestrator: ExtractionOrchestrator = build_orchestrator(
            confirm_large_range=self.confirm_large_range
        )

    async def confirm_large_range(self, days: int) -> bool:
        if self.assume_yes:
            return True
        return await _ask(f"You are about to query {days} days. This may take several minutes. Continue?")

    async def confirm_clear(self, stats: CacheStats) -> bool:
        if self.assume_yes:
            return True
        return await _ask(
            f"Clear the whole cache? {stats.total_dates} dates, "
            f"{stats.total_records} records, ~{stats.approx_size_mb} MB"
        )

    @staticmethod
    def log_progress(progress: ExtractionProgress) -> None:
        source = "cache" if progress.from_cache else "network"
        if progress.error:
            logger.warning(
                "[%d/%d] %s: no data (%s)",
                progress.day_index, progress.total_days, progress.day, progress.error,
            )
            return
        logger.info(
            "[%d/%d] %s: %d records from %s (%d%%)",
            progress.day_index, progress.total_days, progress.day,
            progress.records_in_day, source, progress.percentage,
        )

    def setup_signal_handlers(self) -> dict[int, Any]:
        """Setup handlers for cooperative cancellation on SIGINT/SIGTERM.

        The first signal cancels the extraction after the current day; a second
        one raises KeyboardInterrupt.

        Returns:
            The handlers that were installed before, for restore_signal_handlers()
        """
        interrupted = False

        def signal_handler(signum: int, frame: object) -> None:
            nonlocal interrupted
            if interrupted:
                logger.warning(f"Received signal {signum} again, aborting")
                raise KeyboardInterrupt
            interrupted = True
            logger.info(f"Received signal {signum}, cancelling extraction")
            self.orchestrator.cancel()

        previous = {sig: signal.getsignal(sig) for sig in (signal.SIGINT, signal.SIGTERM)}
        for sig in previous:
            signal.signal(sig, signal_handler)
        return previous

    @staticmethod
    def restore_signal_handlers(previous: dict[int, Any]) -> None:
        for sig, handler in previous.items():
            if handler is not None:
                signal.signal(sig, handler)

    async def extract(self, start: str, end: str, output: Optional[str], write_output: bool) -> int:
        previous = self.setup_signal_handlers()

        try:
            result = await self.orchestrator.extract(start, end, self.log_progress)
            await self.orchestrator.wait_for_progress(settings.PROGRESS_DRAIN_TIMEOUT)
        except ExtractionError as e:
            logger.error("Extraction rejected: %s", e)
            return 1
        finally:
            self.restore_signal_handlers(previous)

        if write_output and result.records:
            date_range = DateRange(start=parse_day(start), end=parse_day(end))
            write_records_jsonl(result.records, output or default_output_path(date_range))

        summary = summarize_records(result.records)
        _print_json({
            "success": result.success,
            "error": result.error,
            "stats": result.stats.model_dump(by_alias=True),
            "summary": {
                **summary.model_dump(by_alias=True),
                "variables": [variable_display_name(v) for v in summary.variables],
            },
        })
        return 0 if result.success else 1

    async def cache_stats(self) -> int:
        stats = await self.orchestrator.cache_stats()
        _print_json(stats.model_dump(by_alias=True))
        return 0

    async def cache_clear(self) -> int:
        cleared = await self.orchestrator.cache_clear(confirm=self.confirm_clear)
        print("Cache cleared" if cleared else "Cache not cleared")
        return 0 if cleared else 1

    async def cache_delete(self, day: str) -> int:
        deleted = await self.orchestrator.cache_delete(day)
        print(f"Deleted {day}" if deleted else f"Could not delete {day}")
        return 0 if deleted else 1

    async def close(self) -> None:
        await self.orchestrator.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="simem-extract",
        description="SIMEM exchange price extraction with a persistent per-day cache",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  simem-extract extract 2024-01-01 2024-01-31
  simem-extract extract 2024-01-01 2024-03-31 --yes --output prices.jsonl
  simem-extract cache stats
  simem-extract cache delete 2024-01-15
""",
    )
    parser.add_argument("--log-level", default=settings.LOG_LEVEL, help="DEBUG, INFO, WARNING, ...")
    parser.add_argument("--log-format", default=settings.LOG_FORMAT, choices=["text", "json"])

    commands = parser.add_subparsers(dest="command", required=True)

    extract = commands.add_parser("extract", help="Extract an inclusive date range")
    extract.add_argument("start", help="First day, YYYY-MM-DD")
    extract.add_argument("end", help="Last day, YYYY-MM-DD")
    extract.add_argument("--output", help="JSONL destination (default: OUTPUT_DIR/records_<start>_<end>.jsonl)")
    extract.add_argument("--no-output", action="store_true", help="Do not write a JSONL file")
    extract.add_argument("--yes", "-y", action="store_true", help="Confirm large ranges without prompting")

    cache = commands.add_parser("cache", help="Inspect or manage the cache")
    cache_commands = cache.add_subparsers(dest="cache_command", required=True)
    cache_commands.add_parser("stats", help="Print cache statistics")
    clear = cache_commands.add_parser("clear", help="Delete every cached day")
    clear.add_argument("--yes", "-y", action="store_true", help="Do not ask for confirmation")
    delete = cache_commands.add_parser("delete", help="Delete one cached day")
    delete.add_argument("date", help="Day to delete, YYYY-MM-DD")

    return parser


async def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point for the extraction CLI."""
    args = build_parser().parse_args(argv)
    setup_logging(level=args.log_level, format_type=args.log_format)

    runner = ExtractionRunner(assume_yes=getattr(args, "yes", False))
    try:
        if args.command == "extract":
            return await runner.extract(args.start, args.end, args.output, not args.no_output)
        if args.cache_command == "stats":
            return await runner.cache_stats()
        if args.cache_command == "clear":
            return await runner.cache_clear()
        return await runner.cache_delete(args.date)
    finally:
        await runner.close()


def run() -> None:
    """Console script entry point."""
    sys.exit(asyncio.run(main()))
