"""
Network Fetcher - Single-path GET with linear-backoff retries

Issues one GET against one access path and checks the SIMEM envelope:

    {"success": true, "result": {"records": [...]}}

Any HTTP error status, transport error, undecodable body or envelope mismatch
is a failed FetchResult carrying the reason; nothing is raised to the caller.
Retries are sequential and wait FETCH_RETRY_DELAY * attempt between attempts.
"""

import logging
from typing import Any, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    before_sleep_log,
    retry_if_result,
    stop_after_attempt,
    wait_incrementing,
)

from simem.utils.config import settings
from simem.utils.schemas import FetchResult

logger = logging.getLogger(__name__)

NO_VALID_DATA = "no valid data"


def _is_failure(result: FetchResult) -> bool:
    return not result.success


def _last_result(retry_state: RetryCallState) -> FetchResult:
    return retry_state.outcome.result()


class Fetcher:
    """HTTP fetcher for SIMEM envelopes."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        max_retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
        timeout: Optional[float] = None,
    ) -> None:
        """
        Args:
            client: Shared async client; one is created (and owned) if omitted
            max_retries: Retries after the first attempt, defaults to settings.FETCH_MAX_RETRIES
            retry_delay: Linear backoff base in seconds, defaults to settings.FETCH_RETRY_DELAY
            timeout: Request timeout for an owned client, defaults to settings.API_TIMEOUT
        """
        self.max_retries = settings.FETCH_MAX_RETRIES if max_retries is None else max_retries
        self.retry_delay = settings.FETCH_RETRY_DELAY if retry_delay is None else retry_delay
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            timeout=settings.API_TIMEOUT if timeout is None else timeout,
            follow_redirects=True,
        )

    async def fetch_once(self, url: str) -> FetchResult:
        """Single GET with envelope validation."""
        try:
            response = await self.client.get(url)
        except httpx.HTTPError as e:
            return FetchResult(success=False, error=f"request failed: {e}", url=url)

        if not response.is_success:
            return FetchResult(
                success=False,
                error=f"HTTP {response.status_code} {response.reason_phrase}".strip(),
                url=url,
            )

        try:
            body = response.json()
        except ValueError:
            return FetchResult(success=False, error=NO_VALID_DATA, url=url)

        records = _extract_records(body)
        if records is None:
            return FetchResult(success=False, error=NO_VALID_DATA, url=url)

        return FetchResult(success=True, records=records, url=url)

    async def fetch_with_retry(
        self,
        url: str,
        max_retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
    ) -> FetchResult:
        """fetch_once, retried on failure.

        Returns:
            The first successful result, or the last failure once the retry
            budget is spent
        """
        retries = self.max_retries if max_retries is None else max_retries
        delay = self.retry_delay if retry_delay is None else retry_delay

        retrying = AsyncRetrying(
            stop=stop_after_attempt(retries + 1),
            wait=wait_incrementing(start=delay, increment=delay),
            retry=retry_if_result(_is_failure),
            retry_error_callback=_last_result,
            before_sleep=before_sleep_log(logger, logging.WARNING),
        )
        result = await retrying(self.fetch_once, url)

        if not result.success:
            logger.warning(
                "Access path failed after retries",
                extra={"url": url, "attempts": retries + 1, "error": result.error},
            )
        return result

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()


def _extract_records(body: Any) -> Optional[list[Any]]:
    if not isinstance(body, dict) or not body.get("success"):
        return None
    result = body.get("result")
    if not isinstance(result, dict):
        return None
    records = result.get("records")
    if not isinstance(records, list) or not all(isinstance(r, dict) for r in records):
        return None
    return records
