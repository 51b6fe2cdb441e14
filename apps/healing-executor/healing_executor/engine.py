"""Step execution state machine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, Sequence
from urllib.parse import urlparse
import asyncio
import json
import time
import traceback

import structlog

from .components import ComponentLoader, expand_steps
from .drivers import BrowserFactory, BrowserPage, playwright_session
from .errors import ApiAssertionError, ExecutorError, StepTimeoutError
from .events import EventType, ProgressSink, RunEvent, publish
from .healing import HealingTracker
from .http_executor import ApiClient, ApiRequest, ApiResponse
from .interpolation import apply_parameters_to_config, build_variables, interpolate
from .json_paths import MISSING, compare_values, get_value_by_path_with_healing
from .locator import LocatorResolver
from .models import (
    ApiAssertStep,
    ApiPathStrategy,
    ApiRequestStep,
    AssertStep,
    ClickStep,
    ElementLocator,
    Environment,
    ExecutionResult,
    FillStep,
    HealingConfig,
    HealingEvent,
    HealingInfo,
    HoverStep,
    NavigateStep,
    RunEnvironment,
    RunStatus,
    RunSummary,
    Scenario,
    ScreenshotStep,
    ScriptStep,
    SelectStep,
    Step,
    StepContext,
    StepError,
    StepResult,
    StepResultStatus,
    StepType,
    TestRun,
    WaitStep,
)

LOGGER = structlog.get_logger("healing_executor")

DEFAULT_WAIT_MS = 1000
# HTTP transport gives up this far ahead of the step budget so its own timeout error surfaces
API_TRANSPORT_MARGIN_MS = 100
DEFAULT_SCREENSHOT_DIR = Path("screenshots")

# Runs the step code as the body of an async function whose parameters are the
# run variables, so ``return`` and ``await`` work and variables read as names.
_SCRIPT_RUNNER = """
async ({ names, values, code }) => {
  const AsyncFunction = Object.getPrototypeOf(async function () {}).constructor;
  const fn = new AsyncFunction(...names, code);
  const value = await fn(...values);
  return value === undefined ? { defined: false } : { defined: true, value };
}
"""


@dataclass
class ExecutionOptions:
    headless: bool = True
    timeout: Optional[int] = None
    variables: dict[str, Any] = field(default_factory=dict)
    component_loader: Optional[ComponentLoader] = None
    subscribers: list[ProgressSink] = field(default_factory=list)
    screenshot_dir: Path = DEFAULT_SCREENSHOT_DIR
    use_approved_healing: bool = True


@dataclass
class _RunState:
    """Resources owned by one run; never shared between runs."""

    run: TestRun
    scenario: Scenario
    page: BrowserPage
    screenshot_dir: Path
    use_approved_healing: bool
    responses: dict[str, ApiResponse] = field(default_factory=dict)
    last_response: Optional[ApiResponse] = None

    @property
    def variables(self) -> dict[str, Any]:
        return self.run.environment.variables

    @property
    def base_url(self) -> str:
        return self.run.environment.base_url


@dataclass
class _StepContext:
    step: Step
    index: int
    timeout: int
    logs: list[str] = field(default_factory=list)
    healing: Optional[HealingInfo] = None
    healed_target: Optional[str] = None
    healing_config: Optional[HealingConfig] = None
    screenshot_path: Optional[str] = None


StepHandler = Callable[[_RunState, _StepContext], Awaitable[None]]


class TestExecutor:
    """Executes scenarios step by step against a browser session and HTTP APIs.

    One executor owns one ``HealingTracker``; use separate executors for
    concurrent runs.
    """

    __test__ = False

    def __init__(
        self,
        *,
        browser_factory: BrowserFactory = playwright_session,
        api_client: Optional[ApiClient] = None,
        tracker: Optional[HealingTracker] = None,
        resolver: Optional[LocatorResolver] = None,
    ) -> None:
        self._browser_factory = browser_factory
        self._api_client = api_client or ApiClient()
        self.tracker = tracker or HealingTracker()
        self._resolver = resolver or LocatorResolver()
        self.handlers: dict[StepType, StepHandler] = {
            StepType.NAVIGATE: self._execute_navigate,
            StepType.CLICK: self._execute_click,
            StepType.FILL: self._execute_fill,
            StepType.SELECT: self._execute_select,
            StepType.HOVER: self._execute_hover,
            StepType.WAIT: self._execute_wait,
            StepType.ASSERT: self._execute_assert,
            StepType.SCREENSHOT: self._execute_screenshot,
            StepType.API_REQUEST: self._execute_api_request,
            StepType.API_ASSERT: self._execute_api_assert,
            StepType.COMPONENT: self._execute_component,
            StepType.SCRIPT: self._execute_script,
        }
        missing = set(StepType) - set(self.handlers)
        if missing:
            raise RuntimeError(f"No handler registered for step types: {sorted(t.value for t in missing)}")

    async def execute(
        self,
        scenario: Scenario,
        environment: Environment,
        options: Optional[ExecutionOptions] = None,
    ) -> ExecutionResult:
        options = options or ExecutionOptions()
        timeout = options.timeout or environment.default_timeout
        started_at = _utcnow()
        run = TestRun(
            scenario_id=scenario.id,
            status=RunStatus.RUNNING,
            environment=RunEnvironment(
                base_url=environment.base_url,
                variables=build_variables(scenario, options.variables),
            ),
            created_at=started_at,
            started_at=started_at,
        )
        logger = LOGGER.bind(run_id=run.id, scenario=scenario.name)
        subscribers = options.subscribers
        step_results: list[StepResult] = []
        healing_events: list[HealingEvent] = []

        await publish(
            subscribers,
            RunEvent(
                type=EventType.RUN_STARTED,
                run_id=run.id,
                data={
                    "scenario_id": scenario.id,
                    "scenario_name": scenario.name,
                    "total_steps": len(scenario.steps),
                    "base_url": environment.base_url,
                },
            ),
        )
        logger.info("run_started", steps=len(scenario.steps), base_url=environment.base_url)

        try:
            async with self._browser_factory(headless=options.headless, timeout=timeout) as page:
                await page.goto(environment.base_url)
                steps = await expand_steps(scenario.steps, run.environment.variables, options.component_loader)
                state = _RunState(
                    run=run,
                    scenario=scenario,
                    page=page,
                    screenshot_dir=Path(options.screenshot_dir),
                    use_approved_healing=options.use_approved_healing,
                )
                for index, step in enumerate(steps):
                    await publish(
                        subscribers,
                        RunEvent(
                            type=EventType.STEP_STARTED,
                            run_id=run.id,
                            data={
                                "step_index": index,
                                "step_id": step.id,
                                "step_type": step.type.value,
                                "description": step.description,
                            },
                        ),
                    )
                    result, event, healing_config = await self._execute_step(state, step, index, timeout)
                    step_results.append(result)
                    await publish(
                        subscribers,
                        RunEvent(
                            type=EventType.STEP_COMPLETED,
                            run_id=run.id,
                            data=result.model_dump(mode="json"),
                        ),
                    )
                    if event is not None:
                        healing_events.append(event)
                        event_id = self.tracker.record_event(event, healing_config)
                        await publish(
                            subscribers,
                            RunEvent(
                                type=EventType.STEP_HEALED,
                                run_id=run.id,
                                data={"event_id": event_id, "step_index": index, **event.model_dump(mode="json")},
                            ),
                        )
                    if result.status == StepResultStatus.FAILED and not step.continue_on_error:
                        logger.info("run_halted", step_index=index, remaining=len(steps) - index - 1)
                        break
            run.status = determine_run_status(step_results)
        except Exception as exc:
            logger.exception("run_aborted", error=str(exc))
            run.status = RunStatus.FAILED
            run.error = str(exc) or exc.__class__.__name__
        finally:
            run.finished_at = _utcnow()
            run.duration = round((run.finished_at - started_at).total_seconds() * 1000, 3)
            run.summary = summarize(scenario, step_results)

        logger.info(
            "run_finished",
            status=run.status.value,
            duration_ms=run.duration,
            passed=run.summary.passed_steps,
            failed=run.summary.failed_steps,
            healed=run.summary.healed_steps,
        )
        await publish(
            subscribers,
            RunEvent(
                type=EventType.RUN_FINISHED,
                run_id=run.id,
                data={
                    "status": run.status.value,
                    "summary": run.summary.model_dump(mode="json"),
                    "duration": run.duration,
                    "error": run.error,
                },
            ),
        )
        return ExecutionResult(run=run, step_results=step_results, healing_events=healing_events)

    async def _execute_step(
        self,
        state: _RunState,
        step: Step,
        index: int,
        default_timeout: int,
    ) -> tuple[StepResult, Optional[HealingEvent], Optional[HealingConfig]]:
        step_timeout = step.timeout if step.timeout is not None else default_timeout
        ctx = _StepContext(step=step, index=index, timeout=step_timeout)
        logger = LOGGER.bind(run_id=state.run.id, step_index=index, step_type=step.type.value)
        timer = time.perf_counter()
        error: Optional[StepError] = None

        try:
            state.page.set_default_timeout(step_timeout)
            await self._run_handler(state, ctx)
        except ExecutorError as exc:
            error = StepError(message=str(exc))
        except Exception as exc:
            error = StepError(message=str(exc) or exc.__class__.__name__, stack=traceback.format_exc())
        duration = round((time.perf_counter() - timer) * 1000, 3)

        if error is not None:
            status = StepResultStatus.FAILED
            logger.warning("step_failed", error=error.message, duration_ms=duration)
        elif ctx.healing is not None:
            status = StepResultStatus.HEALED
            logger.info("step_healed", confidence=ctx.healing.confidence, duration_ms=duration)
        else:
            status = StepResultStatus.PASSED
            logger.info("step_passed", duration_ms=duration)

        healing = ctx.healing if status == StepResultStatus.HEALED else None
        context = None
        if ctx.logs or ctx.screenshot_path:
            context = StepContext(screenshot_path=ctx.screenshot_path, console_log=ctx.logs)

        result = StepResult(
            run_id=state.run.id,
            step_id=step.id,
            step_index=index,
            status=status,
            duration=duration,
            error=error,
            healing=healing,
            context=context,
        )

        event = None
        if healing is not None:
            event = HealingEvent(
                scenario_id=state.scenario.id,
                step_id=step.id,
                run_id=state.run.id,
                locator_display_name=ctx.healed_target or step.description,
                original_strategy=healing.original_strategy,
                healed_strategy=healing.used_strategy,
                confidence=healing.confidence,
            )
        return result, event, ctx.healing_config if event is not None else None

    async def _run_handler(self, state: _RunState, ctx: _StepContext) -> None:
        handler = self.handlers[ctx.step.type]
        try:
            await asyncio.wait_for(handler(state, ctx), timeout=ctx.timeout / 1000)
        except asyncio.TimeoutError as exc:
            raise StepTimeoutError(f"Step timed out after {ctx.timeout}ms") from exc

    async def _resolve(self, state: _RunState, ctx: _StepContext, locator: ElementLocator):
        pinned = None
        if state.use_approved_healing:
            pinned = self.tracker.should_use_healed_strategy(state.scenario.id, ctx.step.id)
        result = await self._resolver.resolve(locator, state.page, pinned=pinned)
        if result.healed:
            ctx.healing = HealingInfo(
                original_strategy=result.primary_strategy,
                used_strategy=result.used_strategy,
                confidence=result.confidence,
            )
            ctx.healed_target = locator.display_name
            ctx.healing_config = locator.healing
        return result.locator

    # -- UI steps -----------------------------------------------------------

    async def _execute_navigate(self, state: _RunState, ctx: _StepContext) -> None:
        step: NavigateStep = ctx.step  # type: ignore[assignment]
        url = _absolute_url(state.base_url, interpolate(step.config.url, state.variables))
        await state.page.goto(url)
        ctx.logs.append(f"Navigated to {url}")

    async def _execute_click(self, state: _RunState, ctx: _StepContext) -> None:
        step: ClickStep = ctx.step  # type: ignore[assignment]
        element = await self._resolve(state, ctx, step.config.locator)
        await element.click(button=step.config.button, click_count=step.config.click_count)

    async def _execute_fill(self, state: _RunState, ctx: _StepContext) -> None:
        step: FillStep = ctx.step  # type: ignore[assignment]
        element = await self._resolve(state, ctx, step.config.locator)
        value = interpolate(step.config.value, state.variables)
        if step.config.clear_before:
            await element.clear()
        await element.fill(value)

    async def _execute_select(self, state: _RunState, ctx: _StepContext) -> None:
        step: SelectStep = ctx.step  # type: ignore[assignment]
        element = await self._resolve(state, ctx, step.config.locator)
        await element.select_option(interpolate(step.config.value, state.variables))

    async def _execute_hover(self, state: _RunState, ctx: _StepContext) -> None:
        step: HoverStep = ctx.step  # type: ignore[assignment]
        element = await self._resolve(state, ctx, step.config.locator)
        await element.hover()

    async def _execute_wait(self, state: _RunState, ctx: _StepContext) -> None:
        step: WaitStep = ctx.step  # type: ignore[assignment]
        config = step.config
        if config.type == "time":
            await state.page.wait_for_timeout(config.timeout if config.timeout is not None else DEFAULT_WAIT_MS)
        elif config.type == "element":
            if config.locator is None:
                raise ValueError("Wait for element requires a locator")
            element = await self._resolve(state, ctx, config.locator)
            await element.wait_for()
        else:
            await state.page.wait_for_load_state("networkidle")

    async def _execute_assert(self, state: _RunState, ctx: _StepContext) -> None:
        step: AssertStep = ctx.step  # type: ignore[assignment]
        config = step.config
        expected = interpolate(config.expected, state.variables) if config.expected is not None else None

        if config.type in ("url", "title"):
            if expected is None:
                raise ValueError(f"Assertion '{config.type}' requires an expected value")
            if config.type == "url":
                url = state.page.url()
                if expected not in url:
                    raise AssertionError(f'URL mismatch: expected to contain "{expected}", got "{url}"')
            else:
                title = await state.page.title()
                if title != expected:
                    raise AssertionError(f'Title mismatch: expected "{expected}", got "{title}"')
            return

        if config.locator is None:
            raise ValueError(f"Assertion '{config.type}' requires a locator")
        element = await self._resolve(state, ctx, config.locator)
        name = config.locator.display_name

        if config.type == "visible":
            if not await element.is_visible():
                raise AssertionError(f"Element not visible: {name}")
        elif config.type == "hidden":
            if not await element.is_hidden():
                raise AssertionError(f"Element not hidden: {name}")
        else:
            if expected is None:
                raise ValueError(f"Assertion '{config.type}' requires an expected value")
            if config.type == "text":
                actual = await element.text_content()
                label = "Text"
            elif config.type == "value":
                actual = await element.input_value()
                label = "Value"
            else:
                if not config.attribute:
                    raise ValueError("Attribute assertion requires an attribute name")
                actual = await element.get_attribute(config.attribute)
                label = f"Attribute '{config.attribute}'"
            if actual != expected:
                raise AssertionError(f'{label} mismatch: expected "{expected}", got "{actual}"')

    async def _execute_screenshot(self, state: _RunState, ctx: _StepContext) -> None:
        step: ScreenshotStep = ctx.step  # type: ignore[assignment]
        name = interpolate(step.config.name, state.variables) if step.config.name else str(int(time.time() * 1000))
        state.screenshot_dir.mkdir(parents=True, exist_ok=True)
        path = state.screenshot_dir / f"{name}.png"
        await state.page.screenshot(str(path), full_page=step.config.full_page)
        ctx.screenshot_path = str(path)
        ctx.logs.append(f"Screenshot saved to {path}")

    # -- API steps ----------------------------------------------------------

    async def _execute_api_request(self, state: _RunState, ctx: _StepContext) -> None:
        step: ApiRequestStep = ctx.step  # type: ignore[assignment]
        config = step.config
        url = _absolute_url(state.base_url, interpolate(config.url, state.variables))
        headers = {key: interpolate(value, state.variables) for key, value in (config.headers or {}).items()}
        body = apply_parameters_to_config(config.body, state.variables)

        api_request = ApiRequest(
            method=config.method, url=url, headers=headers, body=body, timeout=_transport_timeout(ctx.timeout)
        )
        response = await self._api_client.request(api_request)
        state.last_response = response
        ctx.logs.append(f"{config.method} {url} -> {response.status} {response.status_text} ({response.duration:.0f}ms)")
        if config.save_response_as:
            state.responses[config.save_response_as] = response
            state.variables[config.save_response_as] = response.body
            ctx.logs.append(f"Response saved as: {config.save_response_as}")

    async def _execute_api_assert(self, state: _RunState, ctx: _StepContext) -> None:
        step: ApiAssertStep = ctx.step  # type: ignore[assignment]
        config = step.config
        response = _pick_response(state, config.response_ref)
        expected = apply_parameters_to_config(config.expected, state.variables)

        if config.type == "status":
            wanted = config.status if config.status is not None else expected
            if wanted is None:
                raise ValueError("Status assertion requires 'status' or 'expected'")
            if response.status != int(wanted):
                raise ApiAssertionError(f"Status mismatch: expected {wanted}, got {response.status}")
            return

        if config.type == "header":
            if not config.header_name:
                raise ValueError("Header assertion requires 'headerName'")
            raw = response.header(config.header_name)
            actual = MISSING if raw is None else raw
            if not compare_values(actual, expected, config.operator):
                raise ApiAssertionError(
                    f"Header '{config.header_name}' assertion failed: expected {config.operator} {expected!r}, got {raw!r}"
                )
            return

        if config.path:
            lookup = get_value_by_path_with_healing(response.body, config.path, config.min_confidence)
            if lookup.healed:
                ctx.healing = HealingInfo(
                    original_strategy=ApiPathStrategy(path=config.path, priority=0),
                    used_strategy=ApiPathStrategy(path=lookup.used_path, priority=1),
                    confidence=lookup.confidence,
                )
                ctx.healed_target = config.path
                ctx.logs.append(f"Path healed: {config.path} -> {lookup.used_path} (confidence {lookup.confidence:.2f})")
            actual = lookup.value
        else:
            actual = response.body

        if not compare_values(actual, expected, config.operator):
            shown = None if actual is MISSING else actual
            raise ApiAssertionError(
                f"Body assertion failed at '{config.path or '$'}': expected {config.operator} {expected!r}, got {shown!r}"
            )

    # -- other steps --------------------------------------------------------

    async def _execute_component(self, state: _RunState, ctx: _StepContext) -> None:
        raise ExecutorError("Component steps should be expanded before execution")

    async def _execute_script(self, state: _RunState, ctx: _StepContext) -> None:
        # Runs caller-supplied code in the page with the run variables in scope.
        # Isolation of that code is the embedding system's responsibility.
        step: ScriptStep = ctx.step  # type: ignore[assignment]
        code = interpolate(step.config.code, state.variables)
        names = [name for name in state.variables if name.isidentifier()]
        outcome = await state.page.evaluate(
            _SCRIPT_RUNNER,
            {"names": names, "values": [state.variables[name] for name in names], "code": code},
        )
        defined = bool(outcome and outcome.get("defined"))
        value = outcome.get("value") if defined else None

        ctx.logs.append("Script executed successfully")
        if step.config.save_result_as:
            state.variables[step.config.save_result_as] = value
            ctx.logs.append(f"Result saved as: {step.config.save_result_as}")
        if defined:
            ctx.logs.append(f"Return value: {json.dumps(value, separators=(',', ':'))}")


def determine_run_status(results: Sequence[StepResult]) -> RunStatus:
    """Failed iff any step failed; healed and skipped steps count as passing."""

    if any(result.status == StepResultStatus.FAILED for result in results):
        return RunStatus.FAILED
    return RunStatus.PASSED


def summarize(scenario: Scenario, results: Sequence[StepResult]) -> RunSummary:
    def _count(status: StepResultStatus) -> int:
        return sum(1 for result in results if result.status == status)

    return RunSummary(
        total_steps=len(scenario.steps),
        passed_steps=_count(StepResultStatus.PASSED),
        failed_steps=_count(StepResultStatus.FAILED),
        skipped_steps=_count(StepResultStatus.SKIPPED),
        healed_steps=_count(StepResultStatus.HEALED),
    )


def _pick_response(state: _RunState, reference: Optional[str]) -> ApiResponse:
    if reference:
        response = state.responses.get(reference)
        if response is None:
            raise ApiAssertionError(f"No saved response found for reference '{reference}'")
        return response
    if state.last_response is None:
        raise ApiAssertionError("No API response available; run an api-request step first")
    return state.last_response


def _absolute_url(base_url: str, url: str) -> str:
    if urlparse(url).scheme:
        return url
    return f"{base_url.rstrip('/')}/{url.lstrip('/')}"


def _transport_timeout(step_timeout: float) -> float:
    return max(step_timeout - API_TRANSPORT_MARGIN_MS, step_timeout * 0.9)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)
