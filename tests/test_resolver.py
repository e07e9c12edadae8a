"""
Unit tests for ordered duration resolution.
"""

from media_ledger.core.resolver import (
    DURATION_SOURCES,
    lookup_path,
    positive_seconds,
    resolve_duration_seconds,
    resolve_first,
)


class TestLookupPath:

    def test_nested_lookup(self):
        assert lookup_path({"a": {"b": {"c": 3}}}, "a.b.c") == 3

    def test_missing_hop(self):
        assert lookup_path({"a": {}}, "a.b.c") is None
        assert lookup_path({"a": "text"}, "a.b") is None
        assert lookup_path(None, "a") is None


class TestResolveDuration:
    """Test that the first valid source wins."""

    def test_earlier_source_wins(self):
        item = {"media": {"duration": "12.5"}, "durationSeconds": 30}
        assert resolve_duration_seconds(item) == 12.5

    def test_invalid_values_fall_through(self):
        item = {
            "media": {"durationSeconds": 0, "duration": "abc", "meta": {"duration": 7}},
            "durationSeconds": 99,
        }
        assert resolve_duration_seconds(item) == 7

    def test_non_mapping_branch_skipped(self):
        item = {"media": "not a dict", "audio": {"durationSeconds": 9}}
        assert resolve_duration_seconds(item) == 9

    def test_result_meta_is_last_resort(self):
        item = {"results": {"mediaMeta": {"durationSeconds": 42}}}
        assert resolve_duration_seconds(item) == 42

    def test_nothing_usable(self):
        assert resolve_duration_seconds({}) is None
        assert resolve_duration_seconds({"media": {"durationSeconds": True}}) is None
        assert resolve_duration_seconds({"durationSeconds": float("nan")}) is None
        assert resolve_duration_seconds({"durationSeconds": -1}) is None

    def test_source_order(self):
        assert DURATION_SOURCES[0] == "media.durationSeconds"
        assert DURATION_SOURCES[-1] == "results.mediaMeta.durationSeconds"
        assert len(DURATION_SOURCES) == len(set(DURATION_SOURCES))


class TestResolveFirst:

    def test_custom_coercion(self):
        source = {"a": "x", "b": "", "c": "lang"}

        def non_empty(value):
            return value or None

        assert resolve_first(source, ["missing", "b", "c", "a"], non_empty) == "lang"

    def test_positive_seconds(self):
        assert positive_seconds("3") == 3.0
        assert positive_seconds(False) is None
        assert positive_seconds(None) is None
