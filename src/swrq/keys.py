"""Query key utilities."""

from collections.abc import Callable, Hashable

_ESCAPE_MAP = {"\\": "\\\\", ":": "\\:"}


def serialize_key(key: Hashable) -> str:
    """Serialize a query key to a string for storage keys.

    Tuple keys are joined with ``:`` after escaping each part; any other key
    is rendered with ``str``.
    """

    def escape(part: object) -> str:
        result = str(part)
        for char, escaped in _ESCAPE_MAP.items():
            result = result.replace(char, escaped)
        return result

    if isinstance(key, tuple):
        return ":".join(escape(p) for p in key)
    return escape(key)


def is_key_prefix(parent: tuple[Hashable, ...], child: Hashable) -> bool:
    """Check if parent is a prefix of child (for bulk invalidation)."""
    if not isinstance(child, tuple):
        return False
    if len(parent) > len(child):
        return False
    return child[: len(parent)] == parent


def key_prefix(*parts: Hashable) -> Callable[[Hashable], bool]:
    """Build a predicate matching every tuple key that starts with ``parts``.

    Example:
        client.invalidate_matching(key_prefix("user"))
        # matches ("user",), ("user", "123"), ("user", "123", "posts")
    """
    return lambda key: is_key_prefix(parts, key)
