"""
Access-Path Fallback

The same upstream day query can be reached through several routes (direct, or
through public relays). Paths are tried strictly in order; the first one that
succeeds after its own retries wins. A fixed pause separates consecutive
failed paths. Exhausting every path yields a failed FetchResult, never an
exception.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional
from urllib.parse import quote

import httpx

from simem.extractor.fetcher import Fetcher
from simem.utils.config import settings
from simem.utils.schemas import FetchResult, format_day

logger = logging.getLogger(__name__)

EXHAUSTED_ERROR = "no data after trying every access path"


@dataclass(frozen=True)
class ResourceRequest:
    """Logical upstream request: one dataset for one calendar day."""

    day: date
    dataset_id: str


class AccessPathStrategy:
    """Builds and walks the ordered list of access paths for a request."""

    def __init__(
        self,
        templates: Optional[list[str]] = None,
        api_base: Optional[str] = None,
        path_delay: Optional[float] = None,
    ) -> None:
        """
        Args:
            templates: Path templates with {url} / {encoded_url} placeholders,
                defaults to settings.ACCESS_PATH_TEMPLATES
            api_base: Upstream endpoint, defaults to settings.SIMEM_API_BASE
            path_delay: Seconds between failed paths, defaults to settings.PATH_FALLBACK_DELAY
        """
        self.templates = list(settings.ACCESS_PATH_TEMPLATES if templates is None else templates)
        if not self.templates:
            raise ValueError("At least one access path template is required")
        self.api_base = api_base or settings.SIMEM_API_BASE
        self.path_delay = settings.PATH_FALLBACK_DELAY if path_delay is None else path_delay

    def upstream_url(self, request: ResourceRequest) -> str:
        day = format_day(request.day)
        url = httpx.URL(
            self.api_base,
            params={"startDate": day, "endDate": day, "datasetId": request.dataset_id},
        )
        return str(url)

    def paths(self, request: ResourceRequest) -> list[str]:
        url = self.upstream_url(request)
        encoded = quote(url, safe="")
        return [t.format(url=url, encoded_url=encoded) for t in self.templates]

    async def fetch(self, request: ResourceRequest, fetcher: Fetcher) -> FetchResult:
        """Try each path in order until one succeeds."""
        paths = self.paths(request)
        last_error = None

        for index, path in enumerate(paths):
            result = await fetcher.fetch_with_retry(path)
            if result.success:
                if index > 0:
                    logger.info(
                        "Fell back to alternate access path",
                        extra={"day": format_day(request.day), "path_index": index},
                    )
                return result

            last_error = result.error
            if index < len(paths) - 1:
                await asyncio.sleep(self.path_delay)

        logger.warning(
            "All access paths exhausted",
            extra={
                "day": format_day(request.day),
                "paths": len(paths),
                "last_error": last_error,
            },
        )
        return FetchResult(success=False, error=f"{EXHAUSTED_ERROR} (last: {last_error})")
