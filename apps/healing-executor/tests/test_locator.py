from __future__ import annotations

import pytest

from fakes import FakeElement, FakePage
from healing_executor.errors import ElementNotFoundError
from healing_executor.locator import (
    HealingContext,
    LocatorResolver,
    calculate_healing_confidence,
    sort_strategies,
)
from healing_executor.models import CssStrategy, ElementLocator, RoleStrategy, TestIdStrategy, TextStrategy


def _submit_locator(**healing) -> ElementLocator:
    return ElementLocator(
        display_name="Submit button",
        strategies=[
            {"type": "css", "selector": "button.submit", "priority": 3},
            {"type": "testId", "value": "submit", "priority": 1},
            {"type": "role", "role": "button", "name": "Submit", "priority": 2},
        ],
        healing=healing or {},
    )


@pytest.mark.asyncio
async def test_primary_strategy_match_is_not_healed() -> None:
    element = FakeElement()
    page = FakePage({("testId", "submit"): element})

    result = await LocatorResolver().resolve(_submit_locator(), page)

    assert result.locator is element
    assert result.healed is False
    assert result.confidence == 1.0
    assert result.used_strategy.type == "testId"
    assert page.located == [("testId", "submit")]


@pytest.mark.asyncio
async def test_fallback_strategy_heals_with_base_confidence() -> None:
    page = FakePage({("role", ("button", "Submit")): FakeElement()})

    result = await LocatorResolver().resolve(_submit_locator(), page)

    assert result.healed is True
    assert result.used_strategy.type == "role"
    assert result.primary_strategy.type == "testId"
    assert result.confidence == pytest.approx(0.95)


@pytest.mark.asyncio
async def test_multiple_matches_use_first_with_reduced_confidence() -> None:
    element = FakeElement(matches=3)
    page = FakePage({("css", "button.submit"): element})

    result = await LocatorResolver().resolve(_submit_locator(), page)

    assert result.confidence == pytest.approx(0.7)
    assert ("first",) in element.actions


@pytest.mark.asyncio
async def test_no_match_raises_with_attempted_strategies() -> None:
    with pytest.raises(ElementNotFoundError) as excinfo:
        await LocatorResolver().resolve(_submit_locator(), FakePage())

    assert str(excinfo.value) == "Element not found: Submit button"
    assert [strategy.type for strategy in excinfo.value.attempted_strategies] == ["testId", "role", "css"]


@pytest.mark.asyncio
async def test_disabled_healing_only_tries_primary() -> None:
    page = FakePage({("role", ("button", "Submit")): FakeElement()})

    with pytest.raises(ElementNotFoundError):
        await LocatorResolver().resolve(_submit_locator(enabled=False), page)

    assert page.located == [("testId", "submit")]


@pytest.mark.asyncio
async def test_pinned_strategy_is_tried_first() -> None:
    page = FakePage({("testId", "submit"): FakeElement(), ("css", "button.submit"): FakeElement()})
    pinned = CssStrategy(selector="button.submit", priority=3)

    result = await LocatorResolver().resolve(_submit_locator(), page, pinned=pinned)

    assert result.used_strategy == pinned
    assert result.healed is False
    assert page.located == [("css", "button.submit")]


@pytest.mark.asyncio
async def test_pinned_miss_falls_back_to_primary_without_healing() -> None:
    page = FakePage({("testId", "submit"): FakeElement()})
    pinned = CssStrategy(selector="button.submit", priority=3)

    result = await LocatorResolver().resolve(_submit_locator(), page, pinned=pinned)

    assert result.used_strategy.type == "testId"
    assert result.healed is False
    assert result.confidence == 1.0
    assert result.primary_strategy.type == "testId"
    assert page.located == [("css", "button.submit"), ("testId", "submit")]


@pytest.mark.asyncio
async def test_driver_errors_count_as_misses() -> None:
    class BrokenPage(FakePage):
        def locate(self, strategy):
            if strategy.type == "testId":
                raise RuntimeError("selector engine crashed")
            return super().locate(strategy)

    page = BrokenPage({("css", "button.submit"): FakeElement()})

    result = await LocatorResolver().resolve(_submit_locator(), page)

    assert result.used_strategy.type == "css"
    assert result.confidence == pytest.approx(0.8)


def test_sort_strategies_is_stable() -> None:
    first = TextStrategy(value="a", priority=1)
    second = TextStrategy(value="b", priority=1)
    zero = TestIdStrategy(value="z", priority=0)

    assert sort_strategies([first, second, zero]) == [zero, first, second]


def test_calculate_healing_confidence_applies_penalties() -> None:
    test_id = TestIdStrategy(value="x", priority=1)
    role = RoleStrategy(role="button", priority=2)
    css = CssStrategy(selector=".x", priority=3)

    assert calculate_healing_confidence(test_id, role) == pytest.approx(0.9)
    assert calculate_healing_confidence(test_id, css) == pytest.approx(0.7)
    assert calculate_healing_confidence(css, role) == pytest.approx(0.8)
    assert calculate_healing_confidence(
        test_id, role, HealingContext(position_changed=True, parent_changed=True)
    ) == pytest.approx(0.65)
    assert calculate_healing_confidence(test_id, role, HealingContext(text_similarity=0.95)) == pytest.approx(1.0)
    assert calculate_healing_confidence(
        test_id, role, HealingContext(position_changed=True, parent_changed=True, text_similarity=0.95)
    ) == pytest.approx(0.75)
