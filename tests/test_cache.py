"""Tests for the QueryCache mapping and its event stream."""

from swrq import CacheEvent, CacheEventType, QueryClient, QueryOptions

from conftest import CountingFetcher, settle


class TestGetOrCreate:
    """Lookup-or-insert never fetches."""

    async def test_creates_absent_entry(
        self, client: QueryClient, fetcher: CountingFetcher
    ) -> None:
        entry = client.cache.get_or_create("todos", QueryOptions(), fetcher)
        assert entry.state.status.value == "absent"
        assert entry.in_flight is None
        assert fetcher.calls == 0

    async def test_returns_existing_entry(self, client: QueryClient) -> None:
        first = client.cache.get_or_create("todos")
        assert client.cache.get_or_create("todos") is first
        assert len(client.cache) == 1
        assert client.cache.keys() == ["todos"]


class TestCacheEvents:
    """Cache subscribers see entry lifecycle events."""

    async def test_event_sequence(
        self, client: QueryClient, fetcher: CountingFetcher
    ) -> None:
        events: list[CacheEvent] = []
        client.cache.subscribe(events.append)

        observer = client.register_query("todos", fetcher)
        await settle(client)
        client.unregister(observer)
        client.remove("todos")

        assert [e.type for e in events] == [
            CacheEventType.CREATED,
            CacheEventType.OBSERVER_ADDED,
            CacheEventType.UPDATED,  # loading
            CacheEventType.UPDATED,  # resolved
            CacheEventType.OBSERVER_REMOVED,
            CacheEventType.REMOVED,
        ]
        assert all(e.key == "todos" for e in events)
        assert events[1].observer_count == 1
        assert events[4].observer_count == 0

    async def test_new_subscriber_sees_existing_entries(
        self, client: QueryClient
    ) -> None:
        client.set_data("a", 1)
        client.set_data("b", 2)
        events: list[CacheEvent] = []
        client.cache.subscribe(events.append)
        assert [(e.type, e.key) for e in events] == [
            (CacheEventType.CREATED, "a"),
            (CacheEventType.CREATED, "b"),
        ]

    async def test_unsubscribe_stops_events(self, client: QueryClient) -> None:
        events: list[CacheEvent] = []
        unsubscribe = client.cache.subscribe(events.append)
        unsubscribe()
        client.set_data("a", 1)
        assert events == []

    async def test_detached_entry_emits_no_update(
        self, client: QueryClient, fetcher: CountingFetcher
    ) -> None:
        """A fetch finishing after removal does not resurrect the key."""
        events: list[CacheEvent] = []
        client.register_query("todos", fetcher)
        invocation = client.cache.get("todos").in_flight
        client.remove("todos")
        client.cache.subscribe(events.append)

        await invocation
        assert events == []
        assert "todos" not in client.cache
