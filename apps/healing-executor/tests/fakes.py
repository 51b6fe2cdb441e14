"""In-memory stand-ins for the browser session and HTTP client."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Optional

from healing_executor.http_executor import ApiRequest, ApiResponse


def strategy_key(strategy: Any) -> tuple[str, Any]:
    if strategy.type == "testId":
        return ("testId", strategy.value)
    if strategy.type == "role":
        return ("role", (strategy.role, strategy.name))
    if strategy.type in ("text", "label"):
        return (strategy.type, strategy.value)
    if strategy.type == "css":
        return ("css", strategy.selector)
    if strategy.type == "xpath":
        return ("xpath", strategy.expression)
    raise ValueError(f"unsupported strategy {strategy.type}")


class FakeElement:
    def __init__(
        self,
        matches: int = 1,
        text: Optional[str] = "",
        value: str = "",
        attributes: Optional[dict[str, str]] = None,
        visible: bool = True,
    ) -> None:
        self.matches = matches
        self.text = text
        self.value = value
        self.attributes = attributes or {}
        self.visible = visible
        self.actions: list[tuple[Any, ...]] = []

    async def count(self) -> int:
        return self.matches

    def first(self) -> "FakeElement":
        self.actions.append(("first",))
        return self

    async def click(self, button: str = "left", click_count: int = 1) -> None:
        self.actions.append(("click", button, click_count))

    async def fill(self, value: str) -> None:
        self.value = value
        self.actions.append(("fill", value))

    async def clear(self) -> None:
        self.value = ""
        self.actions.append(("clear",))

    async def hover(self) -> None:
        self.actions.append(("hover",))

    async def select_option(self, value: str) -> None:
        self.value = value
        self.actions.append(("select", value))

    async def is_visible(self) -> bool:
        return self.visible

    async def is_hidden(self) -> bool:
        return not self.visible

    async def text_content(self) -> Optional[str]:
        return self.text

    async def input_value(self) -> str:
        return self.value

    async def get_attribute(self, name: str) -> Optional[str]:
        return self.attributes.get(name)

    async def wait_for(self) -> None:
        self.actions.append(("wait_for",))


class FakePage:
    def __init__(
        self,
        elements: Optional[dict[tuple[str, Any], FakeElement]] = None,
        *,
        title: str = "Home",
        fail_goto: Optional[str] = None,
        evaluate: Optional[Callable[[str, Any], Any]] = None,
    ) -> None:
        self.elements = elements or {}
        self.page_title = title
        self.current_url = "about:blank"
        self.fail_goto = fail_goto
        self._evaluate = evaluate
        self.visited: list[str] = []
        self.located: list[tuple[str, Any]] = []
        self.timeouts: list[float] = []
        self.waits: list[Any] = []
        self.screenshots: list[tuple[str, bool]] = []
        self.evaluated: list[tuple[str, Any]] = []

    async def goto(self, url: str) -> None:
        if self.fail_goto and self.fail_goto in url:
            raise RuntimeError(f"net::ERR_CONNECTION_REFUSED at {url}")
        self.visited.append(url)
        self.current_url = url

    def locate(self, strategy: Any) -> FakeElement:
        key = strategy_key(strategy)
        self.located.append(key)
        return self.elements.get(key, FakeElement(matches=0))

    def set_default_timeout(self, timeout_ms: float) -> None:
        self.timeouts.append(timeout_ms)

    async def title(self) -> str:
        return self.page_title

    def url(self) -> str:
        return self.current_url

    async def wait_for_timeout(self, timeout_ms: float) -> None:
        self.waits.append(("time", timeout_ms))

    async def wait_for_load_state(self, state: str) -> None:
        self.waits.append(("load_state", state))

    async def screenshot(self, path: str, full_page: bool = False) -> None:
        self.screenshots.append((path, full_page))

    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        self.evaluated.append((expression, arg))
        if self._evaluate is None:
            return {"defined": False}
        return self._evaluate(expression, arg)


class FakeBrowser:
    """Browser factory yielding one ``FakePage`` and recording the session lifecycle."""

    def __init__(self, page: Optional[FakePage] = None) -> None:
        self.page = page or FakePage()
        self.opened = 0
        self.closed = 0
        self.launch_kwargs: dict[str, Any] = {}

    @asynccontextmanager
    async def __call__(self, **kwargs: Any) -> AsyncIterator[FakePage]:
        self.opened += 1
        self.launch_kwargs = kwargs
        try:
            yield self.page
        finally:
            self.closed += 1


class FakeApiClient:
    def __init__(self, *responses: ApiResponse) -> None:
        self.responses = list(responses)
        self.requests: list[ApiRequest] = []

    async def request(self, api_request: ApiRequest) -> ApiResponse:
        self.requests.append(api_request)
        return self.responses.pop(0)


def json_response(body: Any, status: int = 200, headers: Optional[dict[str, str]] = None) -> ApiResponse:
    return ApiResponse(
        status=status,
        status_text="OK" if status < 400 else "Error",
        headers={"content-type": "application/json", **(headers or {})},
        body=body,
        duration=1.0,
    )
