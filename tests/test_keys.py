"""Tests for query key utilities."""

from swrq import is_key_prefix, key_prefix, serialize_key


class TestSerializeKey:
    """Tests for serialize_key function."""

    def test_tuple_key(self) -> None:
        """Tuple keys are joined with colons."""
        assert serialize_key(("user", "123", "posts")) == "user:123:posts"

    def test_non_string_parts(self) -> None:
        """Non-string parts are rendered with str."""
        assert serialize_key(("user", 42)) == "user:42"

    def test_scalar_key(self) -> None:
        """Non-tuple keys serialize to their string form."""
        assert serialize_key("todos") == "todos"

    def test_colon_is_escaped(self) -> None:
        """Colons inside parts cannot collide with separators."""
        assert serialize_key(("a:b", "c")) == "a\\:b:c"
        assert serialize_key(("a:b", "c")) != serialize_key(("a", "b:c"))

    def test_backslash_is_escaped(self) -> None:
        assert serialize_key(("a\\", "b")) == "a\\\\:b"


class TestKeyPrefix:
    """Tests for prefix matching."""

    def test_exact_match(self) -> None:
        assert is_key_prefix(("user", "1"), ("user", "1"))

    def test_parent_matches_child(self) -> None:
        assert is_key_prefix(("user",), ("user", "1", "posts"))

    def test_child_does_not_match_parent(self) -> None:
        assert not is_key_prefix(("user", "1"), ("user",))

    def test_sibling_does_not_match(self) -> None:
        assert not is_key_prefix(("user", "1"), ("user", "2"))

    def test_non_tuple_key_never_matches(self) -> None:
        assert not is_key_prefix(("user",), "user")

    def test_key_prefix_predicate(self) -> None:
        predicate = key_prefix("user")
        assert predicate(("user", "1"))
        assert not predicate(("post", "1"))
