"""
JSONL Output

Writes extracted records one JSON object per line:

    data/extractions/records_2024-01-01_2024-01-31.jsonl
"""

import logging
from pathlib import Path
from typing import Iterable, Optional

import orjson

from simem.utils.config import settings
from simem.utils.schemas import DateRange, Record, format_day

logger = logging.getLogger(__name__)


def default_output_path(date_range: DateRange, output_dir: Optional[str] = None) -> Path:
    base = Path(output_dir or settings.OUTPUT_DIR)
    return base / f"records_{format_day(date_range.start)}_{format_day(date_range.end)}.jsonl"


def write_records_jsonl(records: Iterable[Record], path: Path) -> int:
    """
    Write records to a JSONL file, replacing any existing file.

    Args:
        records: Records to write
        path: Destination file; parent directories are created

    Returns:
        Number of lines written

    Raises:
        OSError: If the file cannot be written
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    count = 0
    with open(path, "wb") as f:
        for record in records:
            f.write(orjson.dumps(record, default=str) + b"\n")
            count += 1

    logger.info("Records written", extra={"path": str(path), "records": count})
    return count
