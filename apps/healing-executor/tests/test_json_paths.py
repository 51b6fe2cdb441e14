from __future__ import annotations

import pytest

from healing_executor.json_paths import (
    MISSING,
    compare_values,
    extract_all_paths,
    find_alternative_path,
    get_value_by_path,
    get_value_by_path_with_healing,
    string_similarity,
)

BODY = {
    "user": {"firstName": "Ada", "roles": ["admin", "dev"], "manager": None},
    "items": [{"id": 1}, {"id": 2}],
    "matrix": [[1, 2], [3, 4]],
}


def test_get_value_by_path_handles_keys_and_indices() -> None:
    assert get_value_by_path(BODY, "user.firstName") == "Ada"
    assert get_value_by_path(BODY, "items[1].id") == 2
    assert get_value_by_path(BODY, "matrix[1][0]") == 3
    assert get_value_by_path([{"a": 1}], "[0].a") == 1


def test_get_value_by_path_distinguishes_null_from_missing() -> None:
    assert get_value_by_path(BODY, "user.manager") is None
    assert get_value_by_path(BODY, "user.lastName") is MISSING
    assert get_value_by_path(BODY, "items[5].id") is MISSING
    assert get_value_by_path(BODY, "user.firstName.length") is MISSING


@pytest.mark.parametrize(
    ("actual", "expected", "operator", "outcome"),
    [
        ({"b": 1, "a": 2}, {"a": 2, "b": 1}, "equals", True),
        (1, "1", "equals", False),
        (1.0, 1, "equals", True),
        ({"price": 10.0, "tags": [2.0, True]}, {"price": 10, "tags": [2, True]}, "equals", True),
        (True, 1, "equals", False),
        (1.5, 1, "equals", False),
        ([1.0, 2], 2, "contains", True),
        ("hello world", "lo w", "contains", True),
        (["a", {"k": 1}], {"k": 1}, "contains", True),
        (5, 5, "contains", False),
        ("ORD-123", r"^ORD-\d+$", "matches", True),
        (123, r"\d+", "matches", False),
        (None, None, "exists", False),
        (MISSING, None, "exists", False),
        (0, None, "exists", True),
        ([], "array", "type", True),
        (True, "boolean", "type", True),
        (1.5, "number", "type", True),
        (None, "object", "type", True),
        (MISSING, "undefined", "type", True),
        ("x", "x", "unknown-operator", False),
    ],
)
def test_compare_values(actual, expected, operator, outcome) -> None:
    assert compare_values(actual, expected, operator) is outcome


def test_extract_all_paths_lists_every_node() -> None:
    assert extract_all_paths({"a": {"b": 1}, "c": [True]}) == ["a", "a.b", "c", "c[0]"]


def test_string_similarity_bounds() -> None:
    assert string_similarity("", "") == 1.0
    assert string_similarity("abc", "abc") == 1.0
    assert string_similarity("abc", "xyz") == 0.0
    assert string_similarity("kitten", "sitting") == pytest.approx(1 - 3 / 7)


def test_find_alternative_path_prefers_similar_key() -> None:
    body = {"data": {"userName": "ada", "email": "a@example.com"}}

    candidate = find_alternative_path(body, "data.username")

    assert candidate is not None
    assert candidate.path == "data.userName"
    assert candidate.confidence == pytest.approx(1.0)


def test_healing_lookup_reports_used_path() -> None:
    body = {"data": {"user_name": "ada"}}

    direct = get_value_by_path_with_healing(body, "data.user_name")
    healed = get_value_by_path_with_healing(body, "data.userName")
    missing = get_value_by_path_with_healing(body, "totally.unrelated")

    assert direct.healed is False and direct.value == "ada"
    assert healed.healed is True
    assert healed.used_path == "data.user_name"
    assert healed.value == "ada"
    assert 0.7 <= healed.confidence <= 1.0
    assert missing.found is False and missing.healed is False


def test_lookup_of_nested_and_absent_values() -> None:
    assert get_value_by_path({"a": {"b": [{"c": 1}]}}, "a.b[0].c") == 1
    assert get_value_by_path({}, "a.b") is MISSING
    assert get_value_by_path(None, "x") is MISSING


def test_snake_case_path_heals_to_camel_case_key() -> None:
    lookup = get_value_by_path_with_healing({"data": {"userName": "Alice"}}, "data.user_name", 0.5)

    assert lookup.healed is True
    assert lookup.used_path == "data.userName"
    assert lookup.value == "Alice"


def test_alternative_never_scores_below_minimum() -> None:
    body = {"data": {"user_name": "ada", "email": "e"}}

    assert find_alternative_path(body, "data.userName", min_confidence=0.99) is None
    candidate = find_alternative_path(body, "data.userName", min_confidence=0.5)
    assert candidate is not None and candidate.confidence >= 0.5
