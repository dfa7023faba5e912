"""Redis persister."""

from __future__ import annotations

import json
from typing import Any

from swrq.duration import parse_optional_duration
from swrq.types import Duration, PersistedQuery


def _serialize(query: PersistedQuery[object]) -> str:
    """Serialize a persisted query to JSON."""
    return json.dumps({"data": query.data, "updated_at": query.updated_at})


def _deserialize(data: bytes | str) -> PersistedQuery[object]:
    """Deserialize JSON to a persisted query."""
    if isinstance(data, bytes):
        data = data.decode("utf-8")
    obj = json.loads(data)
    return PersistedQuery(data=obj["data"], updated_at=obj["updated_at"])


class RedisPersister:
    """Async Redis persister. Values must be JSON-serializable."""

    def __init__(
        self,
        client: Any,  # redis.asyncio.Redis
        *,
        prefix: str = "swrq",
        max_age: Duration | None = None,
    ) -> None:
        self._client = client
        self._prefix = prefix
        self._max_age = parse_optional_duration(max_age)

    def _query_key(self, key: str) -> str:
        """Generate full Redis key for a persisted query."""
        return f"{self._prefix}:query:{key}"

    async def retrieve(self, key: str) -> PersistedQuery[object] | None:
        """Get a persisted value by key."""
        data = await self._client.get(self._query_key(key))
        if data is None:
            return None
        return _deserialize(data)

    async def persist(self, key: str, query: PersistedQuery[object]) -> None:
        """Store a resolved value, expiring max_age after it resolved."""
        if self._max_age is None:
            await self._client.set(self._query_key(key), _serialize(query))
            return
        await self._client.set(
            self._query_key(key),
            _serialize(query),
            pxat=query.updated_at + self._max_age,
        )

    async def remove(self, key: str) -> None:
        """Delete a persisted value."""
        await self._client.delete(self._query_key(key))

    async def clear(self) -> None:
        """Delete all persisted values under this prefix."""
        # Use SCAN to find and delete all query keys
        cursor: int = 0
        pattern = f"{self._prefix}:query:*"
        while True:
            result = await self._client.scan(cursor, match=pattern, count=100)
            cursor = result[0]
            keys = result[1]
            if keys:
                await self._client.delete(*keys)
            if cursor == 0:
                break

    async def disconnect(self) -> None:
        """Close the Redis connection."""
        await self._client.aclose()
