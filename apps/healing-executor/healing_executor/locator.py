"""Multi-strategy element resolution with self-healing confidence scoring."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol, Sequence

import structlog

from .drivers import ElementHandle
from .errors import ElementNotFoundError
from .models import ElementLocator, LocatorStrategy

LOGGER = structlog.get_logger("healing_executor")

BASE_CONFIDENCE = {
    "testId": 1.0,
    "role": 0.95,
    "text": 0.9,
    "label": 0.9,
    "css": 0.8,
    "xpath": 0.7,
}
UNKNOWN_STRATEGY_CONFIDENCE = 0.5
MULTIPLE_MATCH_CONFIDENCE = 0.7

TYPE_CHANGE_PENALTY = {
    ("testId", "role"): 0.1,
    ("testId", "text"): 0.15,
    ("testId", "css"): 0.3,
    ("role", "text"): 0.1,
    ("role", "css"): 0.25,
    ("text", "css"): 0.2,
}
DEFAULT_TYPE_CHANGE_PENALTY = 0.2
POSITION_CHANGED_PENALTY = 0.1
PARENT_CHANGED_PENALTY = 0.15
TEXT_SIMILARITY_BONUS = 0.1
TEXT_SIMILARITY_BONUS_THRESHOLD = 0.9


class DrivingContext(Protocol):
    """Anything that can turn a strategy into an element handle (usually a page)."""

    def locate(self, strategy: LocatorStrategy) -> ElementHandle: ...


@dataclass
class ResolveResult:
    locator: ElementHandle
    used_strategy: LocatorStrategy
    healed: bool
    confidence: float
    primary_strategy: Optional[LocatorStrategy] = None


@dataclass
class HealingContext:
    """Observed differences between the original and the healed element."""

    position_changed: bool = False
    parent_changed: bool = False
    text_similarity: float = 0.0


class LocatorResolver:
    """Tries locator strategies in ascending priority until one matches."""

    async def resolve(
        self,
        element_locator: ElementLocator,
        context: DrivingContext,
        pinned: Optional[LocatorStrategy] = None,
    ) -> ResolveResult:
        """Resolve ``element_locator``; ``pinned`` is tried before every other strategy."""

        own = sort_strategies(element_locator.strategies)
        if not own:
            raise ElementNotFoundError(element_locator, own)
        # healing is judged against the locator's own primary, never the pinned strategy
        primary = own[0]
        strategies = own if element_locator.healing.enabled else own[:1]
        if pinned is not None:
            strategies = [pinned] + [strategy for strategy in strategies if strategy != pinned]

        for strategy in strategies:
            handle, confidence = await self._try_strategy(strategy, context)
            if handle is None:
                continue
            healed = strategy is not primary and strategy is not pinned
            if healed:
                LOGGER.info(
                    "locator_healed",
                    locator=element_locator.display_name,
                    original=primary.type,
                    used=strategy.type,
                    confidence=confidence,
                )
            return ResolveResult(
                locator=handle,
                used_strategy=strategy,
                healed=healed,
                confidence=confidence if healed else 1.0,
                primary_strategy=primary,
            )

        raise ElementNotFoundError(element_locator, strategies)

    async def _try_strategy(
        self,
        strategy: LocatorStrategy,
        context: DrivingContext,
    ) -> tuple[Optional[ElementHandle], float]:
        try:
            handle = context.locate(strategy)
            count = await handle.count()
        except Exception as exc:  # a strategy the driver cannot express is a miss
            LOGGER.debug("locator_strategy_error", strategy=strategy.type, error=str(exc))
            return None, 0.0
        if count == 0:
            return None, 0.0
        if count > 1:
            return handle.first(), MULTIPLE_MATCH_CONFIDENCE
        return handle, strategy_confidence(strategy)


def sort_strategies(strategies: Sequence[LocatorStrategy]) -> list[LocatorStrategy]:
    """Ascending priority; the sort is stable for equal priorities."""

    return sorted(strategies, key=lambda strategy: strategy.priority)


def strategy_confidence(strategy: LocatorStrategy) -> float:
    return BASE_CONFIDENCE.get(strategy.type, UNKNOWN_STRATEGY_CONFIDENCE)


def calculate_healing_confidence(
    original: LocatorStrategy,
    healed: LocatorStrategy,
    context: Optional[HealingContext] = None,
) -> float:
    """Score the quality of a strategy change, independent of the resolver's own score."""

    score = 1.0 - TYPE_CHANGE_PENALTY.get((original.type, healed.type), DEFAULT_TYPE_CHANGE_PENALTY)

    if context is not None:
        if context.position_changed:
            score -= POSITION_CHANGED_PENALTY
        if context.parent_changed:
            score -= PARENT_CHANGED_PENALTY
        if context.text_similarity > TEXT_SIMILARITY_BONUS_THRESHOLD:
            score += TEXT_SIMILARITY_BONUS

    return max(0.0, min(1.0, score))
