"""Exceptions raised by swrq."""

from typing import Any


class SwrqError(Exception):
    """Base class for all swrq errors."""


class FetchError(SwrqError):
    """The fetcher for a query failed.

    Every waiter joined to the failing invocation receives the same instance,
    and the entry stores it as its ``error``. The original exception is
    available as ``cause`` and is chained as ``__cause__``.
    """

    def __init__(self, key: Any, cause: BaseException) -> None:
        super().__init__(f"Fetch failed for {key!r}: {cause!r}")
        self.key = key
        self.cause = cause
        self.__cause__ = cause


class ClientClosedError(SwrqError):
    """Operation attempted on a closed QueryClient."""
