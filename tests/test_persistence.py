"""Tests for persisting resolved values through a client."""

import asyncio

import pytest

from swrq import (
    MemoryPersister,
    PersistedQuery,
    QueryClient,
    QueryOptions,
    serialize_key,
)

from conftest import CountingFetcher, ManualClock, settle


@pytest.fixture
async def persisted_client(clock: ManualClock, persister: MemoryPersister):
    """Create a QueryClient backed by the memory persister."""
    client = QueryClient(clock=clock, tick_interval=None, persister=persister)
    yield client
    await client.close()


class TestPersistWrites:
    """Resolutions are written to the persister."""

    async def test_resolution_is_persisted(
        self,
        persisted_client: QueryClient,
        persister: MemoryPersister,
        fetcher: CountingFetcher,
        clock: ManualClock,
    ) -> None:
        persisted_client.register_query(("user", "1"), fetcher)
        await settle(persisted_client)
        await persisted_client.flush()

        stored = await persister.retrieve(serialize_key(("user", "1")))
        assert stored == PersistedQuery(data={"key": ("user", "1")}, updated_at=clock())

    async def test_set_data_is_persisted(
        self, persisted_client: QueryClient, persister: MemoryPersister
    ) -> None:
        persisted_client.set_data("todos", ["a"])
        await persisted_client.flush()
        stored = await persister.retrieve("todos")
        assert stored is not None and stored.data == ["a"]

    async def test_remove_deletes_persisted_value(
        self, persisted_client: QueryClient, persister: MemoryPersister
    ) -> None:
        persisted_client.set_data("todos", ["a"])
        await persisted_client.flush()

        persisted_client.remove("todos")
        await persisted_client.flush()
        assert await persister.retrieve("todos") is None

    async def test_clear_clears_persister(
        self, persisted_client: QueryClient, persister: MemoryPersister
    ) -> None:
        persisted_client.set_data("a", 1)
        persisted_client.set_data("b", 2)
        await persisted_client.flush()

        persisted_client.clear()
        await persisted_client.flush()
        assert len(persister) == 0

    async def test_close_keeps_persisted_values(
        self, clock: ManualClock, persister: MemoryPersister
    ) -> None:
        client = QueryClient(clock=clock, tick_interval=None, persister=persister)
        client.set_data("todos", ["a"])
        await client.close()
        assert await persister.retrieve("todos") is not None


class TestRestore:
    """New entries are seeded from the persister."""

    async def test_new_entry_restored_without_fetch(
        self,
        persisted_client: QueryClient,
        persister: MemoryPersister,
        fetcher: CountingFetcher,
        clock: ManualClock,
    ) -> None:
        await persister.persist("todos", PersistedQuery(data=["saved"], updated_at=clock()))
        options = QueryOptions(stale_time="1m")

        persisted_client.cache.get_or_create("todos", options, fetcher)
        await persisted_client.flush()

        observer = persisted_client.register_query("todos", fetcher, options)
        assert observer.result.data == ["saved"]
        assert fetcher.calls == 0

    async def test_restored_value_is_not_written_back(
        self, clock: ManualClock, fetcher: CountingFetcher
    ) -> None:
        class RecordingPersister(MemoryPersister):
            def __init__(self) -> None:
                super().__init__()
                self.writes: list[str] = []

            async def persist(self, key: str, query: PersistedQuery[object]) -> None:
                self.writes.append(key)
                await super().persist(key, query)

        persister = RecordingPersister()
        await persister.persist("todos", PersistedQuery(data=["saved"], updated_at=clock()))
        persister.writes.clear()
        client = QueryClient(clock=clock, tick_interval=None, persister=persister)

        client.cache.get_or_create("todos", QueryOptions(stale_time="1m"), fetcher)
        await client.flush()
        assert client.get_query_data("todos") == ["saved"]
        assert persister.writes == []

        clock.advance("1s")
        client.set_data("todos", ["changed"])
        await client.flush()
        assert persister.writes == ["todos"]
        await client.close()

    async def test_set_data_during_fetch_is_persisted(
        self,
        persisted_client: QueryClient,
        persister: MemoryPersister,
        fetcher: CountingFetcher,
    ) -> None:
        fetcher.gate = asyncio.Event()
        persisted_client.register_query("todos", fetcher)
        persisted_client.set_data("todos", ["optimistic"])
        await asyncio.sleep(0)
        await persisted_client.flush()

        stored = await persister.retrieve("todos")
        assert stored is not None and stored.data == ["optimistic"]
        fetcher.gate.set()
        await settle(persisted_client)

    async def test_restore_does_not_overwrite_newer_data(
        self,
        persisted_client: QueryClient,
        persister: MemoryPersister,
        clock: ManualClock,
    ) -> None:
        await persister.persist(
            "todos", PersistedQuery(data=["old"], updated_at=clock() - 60_000)
        )
        persisted_client.set_data("todos", ["new"])
        await persisted_client.flush()
        assert persisted_client.get_query_data("todos") == ["new"]

    async def test_failing_persister_is_logged_not_raised(
        self, clock: ManualClock, caplog: pytest.LogCaptureFixture
    ) -> None:
        class BrokenPersister(MemoryPersister):
            async def persist(self, key: str, query: PersistedQuery[object]) -> None:
                raise ConnectionError("down")

        client = QueryClient(clock=clock, tick_interval=None, persister=BrokenPersister())
        client.set_data("todos", ["a"])
        await client.flush()

        assert client.get_query_data("todos") == ["a"]
        assert "Persister operation failed" in caplog.text
        await client.close()
