"""
Concurrent fetches.

A Multi collects requests and performs them concurrently, reporting
each outcome to per-request callbacks. Every request uses its own
handle; a handle performs only one transfer at a time.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from .exceptions import HTTPHandleError
from .fetch import fetch_memory
from .handle import Handle
from .transfer import FetchResult

logger = logging.getLogger(__name__)


@dataclass
class _Pending:
    url: str
    handle: Optional[Handle]
    done: Optional[Callable[[FetchResult], Any]]
    fail: Optional[Callable[[str], Any]]


async def _call(callback: Optional[Callable], argument: Any) -> None:
    if callback is None:
        return
    outcome = callback(argument)
    if hasattr(outcome, "__await__"):
        await outcome


class Multi:
    """
    Pool of requests performed concurrently by ``run``.

    Args:
        total_con: Maximum transfers in flight at once
    """

    DEFAULT_TOTAL_CON = 50

    def __init__(self, total_con: int = DEFAULT_TOTAL_CON) -> None:
        if total_con < 1:
            raise ValueError("total_con must be at least 1")
        self._total_con = total_con
        self._pending: List[_Pending] = []

    def add(
        self,
        url: str,
        done: Optional[Callable[[FetchResult], Any]] = None,
        fail: Optional[Callable[[str], Any]] = None,
        handle: Optional[Handle] = None,
    ) -> "Multi":
        """
        Queue a request.

        ``done`` receives the FetchResult of a completed request, whatever
        its status; ``fail`` receives the error message of a failed one.
        """
        if handle is not None and any(p.handle is handle for p in self._pending):
            raise HTTPHandleError("Handle is already queued in this pool")
        self._pending.append(_Pending(url, handle, done, fail))
        return self

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def run(self, timeout: Optional[float] = None) -> Dict[str, int]:
        """
        Perform all queued requests.

        Requests still in flight when ``timeout`` expires are cancelled
        and stay queued for the next run.

        Returns:
            Counts of succeeded, failed and still pending requests
        """
        queued, self._pending = self._pending, []
        semaphore = asyncio.Semaphore(self._total_con)
        counts = {"success": 0, "error": 0}

        async def perform(item: _Pending) -> None:
            async with semaphore:
                try:
                    result = await fetch_memory(item.url, handle=item.handle)
                except HTTPHandleError as e:
                    logger.debug(f"Request to {item.url} failed: {e}")
                    counts["error"] += 1
                    await _call(item.fail, str(e))
                    return
            counts["success"] += 1
            await _call(item.done, result)

        tasks = {asyncio.ensure_future(perform(item)): item for item in queued}
        if tasks:
            done, not_done = await asyncio.wait(tasks, timeout=timeout)
            for task in not_done:
                task.cancel()
            if not_done:
                await asyncio.gather(*not_done, return_exceptions=True)
                self._pending.extend(tasks[task] for task in not_done)
                logger.debug(f"{len(not_done)} requests still pending after {timeout}s")
            for task in done:
                # Exceptions from user callbacks propagate
                task.result()

        return {**counts, "pending": len(self._pending)}
