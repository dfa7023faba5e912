"""Scheduler - garbage collection and interval refetching.

A single background task wakes every ``tick_interval`` and calls ``tick``:
unobserved entries older than their cache_time are removed, and observed
entries with a refetch_interval get a (deduplicated) fetch when their
interval has elapsed. ``tick`` can also be called directly.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from contextlib import suppress
from dataclasses import dataclass

from swrq.cache import QueryCache
from swrq.tracker import FetchTracker
from swrq.types import QueryKey

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TickReport:
    """What a single scheduler tick did."""

    collected: list[QueryKey]
    refetched: list[QueryKey]


class Scheduler:
    """Time-driven GC sweep and interval refetch for a QueryCache."""

    def __init__(
        self,
        cache: QueryCache,
        tracker: FetchTracker,
        *,
        clock: Callable[[], int],
        tick_interval: int | None,
    ) -> None:
        self._cache = cache
        self._tracker = tracker
        self._clock = clock
        self._tick_interval = tick_interval
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> bool:
        """Start the background loop if a loop is running and ticking is enabled."""
        if self.running or self._tick_interval is None:
            return False
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return False
        self._task = loop.create_task(self._run(self._tick_interval / 1000))
        logger.debug("Scheduler started (tick every %dms)", self._tick_interval)
        return True

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task
        logger.debug("Scheduler stopped")

    def tick(self, now: int | None = None) -> TickReport:
        """Run one GC sweep and interval-refetch pass."""
        if now is None:
            now = self._clock()
        collected: list[QueryKey] = []
        refetched: list[QueryKey] = []

        for entry in self._cache:
            if entry.gc_due(now):
                self._cache.remove(entry.key)
                collected.append(entry.key)
                logger.debug("Collected %r", entry.key)
            elif entry.refetch_due(now):
                interval = entry.options.refetch_interval_ms
                entry.next_refetch_at = now + interval if interval else None
                if self._tracker.ensure_fetch(entry) is not None:
                    refetched.append(entry.key)
                    logger.debug("Interval refetch for %r", entry.key)

        return TickReport(collected=collected, refetched=refetched)

    async def _run(self, delay: float) -> None:
        while True:
            await asyncio.sleep(delay)
            try:
                self.tick()
            except Exception:
                logger.exception("Scheduler tick failed")


__all__ = ["Scheduler", "TickReport"]
