"""Tests for package exports."""

import swrq


def test_public_api_importable() -> None:
    """Test that the public API is importable from the package root."""
    from swrq import (
        FetchError,
        MemoryPersister,
        QueryClient,
        QueryObserver,
        QueryOptions,
        QueryResult,
        QueryStatus,
        key_prefix,
        parse_duration,
    )

    assert QueryClient is not None
    assert QueryObserver is not None
    assert QueryOptions is not None
    assert QueryResult is not None
    assert QueryStatus is not None
    assert FetchError is not None
    assert MemoryPersister is not None
    assert key_prefix is not None
    assert parse_duration is not None


def test_all_names_resolve() -> None:
    """Every name in __all__ is an attribute, except optional persisters."""
    optional = {"RedisPersister"}
    missing = [
        name
        for name in swrq.__all__
        if name not in optional and not hasattr(swrq, name)
    ]
    assert missing == []


def test_errors_share_base() -> None:
    assert issubclass(swrq.FetchError, swrq.SwrqError)
    assert issubclass(swrq.ClientClosedError, swrq.SwrqError)
