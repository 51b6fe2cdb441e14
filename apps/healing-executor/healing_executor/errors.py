"""Error types raised by the execution core."""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from .models import ElementLocator, LocatorStrategy


class ExecutorError(Exception):
    """Base class for failures raised by the execution core."""


class ElementNotFoundError(ExecutorError):
    """Every locator strategy was attempted and none matched."""

    def __init__(self, locator: ElementLocator, attempted_strategies: Sequence[LocatorStrategy]) -> None:
        super().__init__(f"Element not found: {locator.display_name}")
        self.locator = locator
        self.attempted_strategies = list(attempted_strategies)


class ComponentExpansionError(ExecutorError):
    """A component step could not be expanded into inline steps."""


class HttpRequestError(ExecutorError):
    """Network failure or timeout while performing an API request."""


class ApiAssertionError(ExecutorError, AssertionError):
    """An api-assert step did not hold against the saved response."""


class StepTimeoutError(ExecutorError, TimeoutError):
    """A step handler exceeded its time budget."""
