"""JSON path lookup, value comparison and path self-healing for API assertions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional
import json
import re

_SEGMENT_PATTERN = re.compile(r"^(?P<key>[^\[\]]*)(?P<indexes>(?:\[\d+\])+)$")
_INDEX_PATTERN = re.compile(r"\[(\d+)\]")

DEFAULT_MIN_CONFIDENCE = 0.7
KEY_WEIGHT = 0.7
FULL_PATH_WEIGHT = 0.3


class _Missing:
    """Marker for an absent value; ``None`` is a real JSON null."""

    _instance: Optional["_Missing"] = None

    def __new__(cls) -> "_Missing":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()


@dataclass(frozen=True)
class PathCandidate:
    path: str
    confidence: float


@dataclass(frozen=True)
class PathLookup:
    """Result of a lookup that may have fallen back to a similar path."""

    value: Any
    healed: bool
    used_path: Optional[str] = None
    confidence: Optional[float] = None

    @property
    def found(self) -> bool:
        return self.value is not MISSING


def get_value_by_path(value: Any, path: str) -> Any:
    """Walk ``path`` (``a.b[0].c``) through nested dicts/lists; ``MISSING`` when absent."""

    current = value
    for segment in path.split("."):
        key, indexes = _split_segment(segment)
        if key:
            if not isinstance(current, dict):
                return MISSING
            current = current.get(key, MISSING)
            if current is MISSING:
                return MISSING
        for index in indexes:
            if not isinstance(current, list) or index >= len(current):
                return MISSING
            current = current[index]
    return current


def path_exists(value: Any, path: str) -> bool:
    return get_value_by_path(value, path) is not MISSING


def compare_values(actual: Any, expected: Any, operator: str) -> bool:
    """Evaluate an api-assert operator against a looked-up value."""

    if operator == "equals":
        return _serialize(actual) == _serialize(expected)
    if operator == "contains":
        if isinstance(actual, str) and isinstance(expected, str):
            return expected in actual
        if isinstance(actual, list):
            target = _serialize(expected)
            return any(_serialize(item) == target for item in actual)
        return False
    if operator == "matches":
        if isinstance(actual, str) and isinstance(expected, str):
            return re.search(expected, actual) is not None
        return False
    if operator == "exists":
        return actual is not MISSING and actual is not None
    if operator == "type":
        return type_name(actual) == expected
    return False


def type_name(value: Any) -> str:
    """JSON-flavoured type name: array, object, string, number, boolean, undefined."""

    if value is MISSING:
        return "undefined"
    if isinstance(value, list):
        return "array"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    return "object"


def extract_all_paths(value: Any, prefix: str = "") -> list[str]:
    """Every concrete path reachable inside ``value``, bracketed indices included."""

    paths: list[str] = []
    if isinstance(value, list):
        for index, item in enumerate(value):
            item_path = f"{prefix}[{index}]"
            paths.append(item_path)
            paths.extend(extract_all_paths(item, item_path))
    elif isinstance(value, dict):
        for key, item in value.items():
            item_path = f"{prefix}.{key}" if prefix else str(key)
            paths.append(item_path)
            paths.extend(extract_all_paths(item, item_path))
    return paths


def edit_distance(first: str, second: str) -> int:
    """Levenshtein distance with unit insert/delete/substitute costs."""

    if len(first) < len(second):
        first, second = second, first
    previous = list(range(len(second) + 1))
    for i, left in enumerate(first, start=1):
        current = [i]
        for j, right in enumerate(second, start=1):
            cost = 0 if left == right else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def string_similarity(first: str, second: str) -> float:
    """1.0 for identical strings, 0.0 for completely different ones."""

    longest = max(len(first), len(second))
    if longest == 0:
        return 1.0
    return 1 - edit_distance(first, second) / longest


def find_alternative_path(
    value: Any,
    original_path: str,
    min_confidence: float = DEFAULT_MIN_CONFIDENCE,
) -> PathCandidate | None:
    """Best-scoring existing path similar to ``original_path``, or ``None``."""

    original_key = _last_segment(original_path).lower()
    original_full = original_path.lower()

    best: PathCandidate | None = None
    for candidate in extract_all_paths(value):
        key_similarity = string_similarity(original_key, _last_segment(candidate).lower())
        full_similarity = string_similarity(original_full, candidate.lower())
        confidence = KEY_WEIGHT * key_similarity + FULL_PATH_WEIGHT * full_similarity
        if confidence < min_confidence:
            continue
        if best is None or confidence > best.confidence:
            best = PathCandidate(path=candidate, confidence=confidence)
    return best


def get_value_by_path_with_healing(
    value: Any,
    original_path: str,
    min_confidence: float = DEFAULT_MIN_CONFIDENCE,
) -> PathLookup:
    """Exact lookup first; on a miss fall back to the most similar existing path."""

    direct = get_value_by_path(value, original_path)
    if direct is not MISSING:
        return PathLookup(value=direct, healed=False)

    alternative = find_alternative_path(value, original_path, min_confidence)
    if alternative is not None:
        healed_value = get_value_by_path(value, alternative.path)
        if healed_value is not MISSING:
            return PathLookup(
                value=healed_value,
                healed=True,
                used_path=alternative.path,
                confidence=alternative.confidence,
            )
    return PathLookup(value=MISSING, healed=False)


def _split_segment(segment: str) -> tuple[str, list[int]]:
    match = _SEGMENT_PATTERN.match(segment)
    if match is None:
        return segment, []
    indexes = [int(raw) for raw in _INDEX_PATTERN.findall(match.group("indexes"))]
    return match.group("key"), indexes


def _last_segment(path: str) -> str:
    return path.rsplit(".", 1)[-1]


def _normalize_numbers(value: Any) -> Any:
    """Whole floats become ints so ``1.0`` and ``1`` serialize alike."""
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, dict):
        return {key: _normalize_numbers(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_normalize_numbers(item) for item in value]
    return value


def _serialize(value: Any) -> str | None:
    if value is MISSING:
        return None
    return json.dumps(_normalize_numbers(value), sort_keys=True, default=str)
