"""Per-query options."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Final

from swrq.duration import parse_optional_duration
from swrq.types import Duration


class _Unset:
    """Marker for an option that was not supplied."""

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Final = _Unset()


@dataclass(frozen=True, slots=True)
class QueryOptions:
    """Configuration for a query.

    Durations are ``"30s"``-style strings or milliseconds. ``None`` means
    never for ``stale_time`` and ``cache_time`` and disables
    ``refetch_interval``.
    """

    stale_time: Duration | None = 0
    cache_time: Duration | None = "5m"
    refetch_interval: Duration | None = None
    default_value: Any = UNSET

    def __post_init__(self) -> None:
        parse_optional_duration(self.stale_time)
        parse_optional_duration(self.cache_time)
        if parse_optional_duration(self.refetch_interval) == 0:
            raise ValueError("refetch_interval must be greater than zero")

    @property
    def stale_ms(self) -> int | None:
        return parse_optional_duration(self.stale_time)

    @property
    def cache_ms(self) -> int | None:
        return parse_optional_duration(self.cache_time)

    @property
    def refetch_interval_ms(self) -> int | None:
        return parse_optional_duration(self.refetch_interval)

    @property
    def has_default(self) -> bool:
        return self.default_value is not UNSET


__all__ = ["UNSET", "QueryOptions"]
