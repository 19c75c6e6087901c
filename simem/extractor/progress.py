"""
Progress Reporting

ProgressNotifier hands snapshots to a consumer callback without the producer
waiting on it: notify() only enqueues, and a single dispatcher task delivers
events in enqueue order. Callbacks may be plain functions or coroutines.
A failing callback is logged and does not affect later events.
"""

import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Optional, Union

from simem.utils.schemas import ExtractionProgress

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ExtractionProgress], Union[None, Awaitable[None]]]

_STOP = object()


def percentage(part: int, whole: int) -> int:
    """Integer percentage, rounded half up; 0 when whole is 0."""
    if whole <= 0:
        return 0
    return (part * 200 + whole) // (2 * whole)


class ProgressNotifier:
    """Ordered, non-blocking delivery of progress snapshots."""

    def __init__(self, callback: Optional[ProgressCallback] = None) -> None:
        self.callback = callback
        self._queue: Optional[asyncio.Queue] = None
        self._task: Optional[asyncio.Task] = None
        self.delivered = 0

    def notify(self, progress: ExtractionProgress) -> None:
        """Queue a snapshot for delivery. Never blocks; must run inside the event loop."""
        if self.callback is None:
            return
        if self._task is None:
            self._queue = asyncio.Queue()
            self._task = asyncio.create_task(self._dispatch())
        self._queue.put_nowait(progress)

    async def _dispatch(self) -> None:
        while True:
            item = await self._queue.get()
            if item is _STOP:
                return
            try:
                outcome = self.callback(item)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                logger.warning(
                    "Progress callback failed",
                    extra={"day": item.day, "error": str(e)},
                    exc_info=True,
                )
            self.delivered += 1

    def finish(self) -> Optional[asyncio.Task]:
        """Stop accepting snapshots without waiting for delivery.

        Returns:
            The dispatcher task, which ends once everything queued so far has
            been delivered, or None if nothing was ever queued
        """
        task, self._task = self._task, None
        if task is not None:
            self._queue.put_nowait(_STOP)
            self._queue = None
        return task

    async def aclose(self) -> None:
        """Deliver everything queued so far, then stop the dispatcher."""
        task = self.finish()
        if task is not None:
            await task
