"""Shared pytest fixtures."""

import asyncio
from collections.abc import AsyncIterator, Callable
from contextlib import suppress
from typing import Any

import pytest

from swrq import FetchError, MemoryPersister, QueryClient, parse_duration
from swrq.types import Duration


class ManualClock:
    """A clock in integer milliseconds that only moves when told to."""

    def __init__(self, start: int = 1_700_000_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, duration: Duration) -> None:
        self.now += parse_duration(duration)


class CountingFetcher:
    """Async fetcher that counts calls and can be gated or made to fail."""

    def __init__(self, produce: Callable[[Any], Any] | None = None) -> None:
        self._produce = produce or (lambda key: {"key": key})
        self.calls = 0
        self.keys: list[Any] = []
        self.error: Exception | None = None
        self.gate: asyncio.Event | None = None

    async def __call__(self, key: Any) -> Any:
        self.calls += 1
        self.keys.append(key)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self._produce(key)


async def settle(client: QueryClient) -> None:
    """Wait for every fetch currently in flight to finish."""
    for entry in client.cache:
        if entry.in_flight is not None:
            with suppress(FetchError):
                await entry.in_flight


@pytest.fixture
def clock() -> ManualClock:
    """Create a fresh ManualClock for each test."""
    return ManualClock()


@pytest.fixture
def fetcher() -> CountingFetcher:
    """Create a CountingFetcher returning {"key": key}."""
    return CountingFetcher()


@pytest.fixture
def persister() -> MemoryPersister:
    """Create a fresh MemoryPersister for each test."""
    return MemoryPersister()


@pytest.fixture
async def client(clock: ManualClock) -> AsyncIterator[QueryClient]:
    """Create a QueryClient driven by the manual clock, with manual ticking."""
    client = QueryClient(clock=clock, tick_interval=None)
    yield client
    await client.close()
