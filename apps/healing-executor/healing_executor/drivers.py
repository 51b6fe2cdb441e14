"""Browser driver capability and its Playwright implementation."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncContextManager, AsyncIterator, Callable, Optional, Protocol

import structlog
from playwright.async_api import Locator, Page, async_playwright

from .models import LocatorStrategy

LOGGER = structlog.get_logger("healing_executor")

DEFAULT_VIEWPORT = (1280, 720)


class ElementHandle(Protocol):
    """Lazy handle on zero or more page elements."""

    async def count(self) -> int: ...

    def first(self) -> "ElementHandle": ...

    async def click(self, button: str = "left", click_count: int = 1) -> None: ...

    async def fill(self, value: str) -> None: ...

    async def clear(self) -> None: ...

    async def hover(self) -> None: ...

    async def select_option(self, value: str) -> None: ...

    async def is_visible(self) -> bool: ...

    async def is_hidden(self) -> bool: ...

    async def text_content(self) -> Optional[str]: ...

    async def input_value(self) -> str: ...

    async def get_attribute(self, name: str) -> Optional[str]: ...

    async def wait_for(self) -> None: ...


class BrowserPage(Protocol):
    """Page-level operations the executor needs from a browser session."""

    async def goto(self, url: str) -> None: ...

    def locate(self, strategy: LocatorStrategy) -> ElementHandle: ...

    def set_default_timeout(self, timeout_ms: float) -> None: ...

    async def title(self) -> str: ...

    def url(self) -> str: ...

    async def wait_for_timeout(self, timeout_ms: float) -> None: ...

    async def wait_for_load_state(self, state: str) -> None: ...

    async def screenshot(self, path: str, full_page: bool = False) -> None: ...

    async def evaluate(self, expression: str, arg: Any = None) -> Any: ...


BrowserFactory = Callable[..., AsyncContextManager[BrowserPage]]


class PlaywrightElement:
    """ElementHandle backed by a Playwright ``Locator``."""

    def __init__(self, locator: Locator) -> None:
        self._locator = locator

    async def count(self) -> int:
        return await self._locator.count()

    def first(self) -> "PlaywrightElement":
        return PlaywrightElement(self._locator.first)

    async def click(self, button: str = "left", click_count: int = 1) -> None:
        await self._locator.click(button=button, click_count=click_count)  # type: ignore[arg-type]

    async def fill(self, value: str) -> None:
        await self._locator.fill(value)

    async def clear(self) -> None:
        await self._locator.clear()

    async def hover(self) -> None:
        await self._locator.hover()

    async def select_option(self, value: str) -> None:
        await self._locator.select_option(value)

    async def is_visible(self) -> bool:
        return await self._locator.is_visible()

    async def is_hidden(self) -> bool:
        return await self._locator.is_hidden()

    async def text_content(self) -> Optional[str]:
        return await self._locator.text_content()

    async def input_value(self) -> str:
        return await self._locator.input_value()

    async def get_attribute(self, name: str) -> Optional[str]:
        return await self._locator.get_attribute(name)

    async def wait_for(self) -> None:
        await self._locator.wait_for()


class PlaywrightPage:
    """BrowserPage backed by a Playwright ``Page``."""

    def __init__(self, page: Page) -> None:
        self._page = page

    async def goto(self, url: str) -> None:
        await self._page.goto(url)

    def locate(self, strategy: LocatorStrategy) -> PlaywrightElement:
        page = self._page
        if strategy.type == "testId":
            locator = page.get_by_test_id(strategy.value)
        elif strategy.type == "role":
            locator = page.get_by_role(strategy.role, name=strategy.name)  # type: ignore[arg-type]
        elif strategy.type == "text":
            locator = page.get_by_text(strategy.value, exact=strategy.exact)
        elif strategy.type == "label":
            locator = page.get_by_label(strategy.value)
        elif strategy.type == "css":
            locator = page.locator(strategy.selector)
        elif strategy.type == "xpath":
            locator = page.locator(f"xpath={strategy.expression}")
        else:
            raise ValueError(f"Strategy type '{strategy.type}' cannot locate page elements")
        return PlaywrightElement(locator)

    def set_default_timeout(self, timeout_ms: float) -> None:
        self._page.set_default_timeout(timeout_ms)

    async def title(self) -> str:
        return await self._page.title()

    def url(self) -> str:
        return self._page.url

    async def wait_for_timeout(self, timeout_ms: float) -> None:
        await self._page.wait_for_timeout(timeout_ms)

    async def wait_for_load_state(self, state: str) -> None:
        await self._page.wait_for_load_state(state)  # type: ignore[arg-type]

    async def screenshot(self, path: str, full_page: bool = False) -> None:
        await self._page.screenshot(path=path, full_page=full_page)

    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        return await self._page.evaluate(expression, arg)


@asynccontextmanager
async def playwright_session(
    *,
    headless: bool = True,
    timeout: float = 30000,
    viewport: tuple[int, int] = DEFAULT_VIEWPORT,
) -> AsyncIterator[PlaywrightPage]:
    """Launch Chromium, yield one page and always close the browser afterwards."""

    async with async_playwright() as playwright:
        browser = await playwright.chromium.launch(headless=headless)
        LOGGER.debug("browser_launched", headless=headless)
        try:
            context = await browser.new_context(viewport={"width": viewport[0], "height": viewport[1]})
            context.set_default_timeout(timeout)
            page = await context.new_page()
            yield PlaywrightPage(page)
        finally:
            await browser.close()
            LOGGER.debug("browser_closed")
