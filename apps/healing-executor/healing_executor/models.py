"""Scenario, locator and runtime models."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def _new_id() -> str:
    return str(uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _Model(BaseModel):
    """Accepts snake_case and the camelCase keys found in exported scenarios."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Locator strategies
# ---------------------------------------------------------------------------


class TestIdStrategy(_Model):
    __test__ = False

    type: Literal["testId"] = "testId"
    value: str
    priority: int


class RoleStrategy(_Model):
    type: Literal["role"] = "role"
    role: str
    name: Optional[str] = None
    priority: int


class TextStrategy(_Model):
    type: Literal["text"] = "text"
    value: str
    exact: bool = True
    priority: int


class LabelStrategy(_Model):
    type: Literal["label"] = "label"
    value: str
    priority: int


class CssStrategy(_Model):
    type: Literal["css"] = "css"
    selector: str
    priority: int


class XPathStrategy(_Model):
    type: Literal["xpath"] = "xpath"
    expression: str
    priority: int


class ApiPathStrategy(_Model):
    type: Literal["api-path"] = "api-path"
    path: str
    priority: int


LocatorStrategy = Annotated[
    Union[
        TestIdStrategy,
        RoleStrategy,
        TextStrategy,
        LabelStrategy,
        CssStrategy,
        XPathStrategy,
        ApiPathStrategy,
    ],
    Field(discriminator="type"),
]


class HealingConfig(_Model):
    enabled: bool = True
    auto_approve: bool = False
    confidence_threshold: float = Field(default=0.9, ge=0, le=1)


class ElementLocator(_Model):
    """A named UI element with ordered fallbacks."""

    display_name: str
    strategies: list[LocatorStrategy] = Field(default_factory=list)
    healing: HealingConfig = Field(default_factory=HealingConfig)


# ---------------------------------------------------------------------------
# Steps
# ---------------------------------------------------------------------------


class StepType(str, Enum):
    NAVIGATE = "navigate"
    CLICK = "click"
    FILL = "fill"
    SELECT = "select"
    HOVER = "hover"
    WAIT = "wait"
    ASSERT = "assert"
    SCREENSHOT = "screenshot"
    API_REQUEST = "api-request"
    API_ASSERT = "api-assert"
    COMPONENT = "component"
    SCRIPT = "script"


class NavigateConfig(_Model):
    url: str


class ClickConfig(_Model):
    locator: ElementLocator
    button: Literal["left", "right", "middle"] = "left"
    click_count: int = 1


class FillConfig(_Model):
    locator: ElementLocator
    value: str
    clear_before: bool = True


class SelectConfig(_Model):
    locator: ElementLocator
    value: str


class HoverConfig(_Model):
    locator: ElementLocator


class WaitConfig(_Model):
    type: Literal["time", "element", "navigation"]
    timeout: Optional[int] = None
    locator: Optional[ElementLocator] = None


class AssertConfig(_Model):
    type: Literal["visible", "hidden", "text", "value", "attribute", "url", "title"]
    locator: Optional[ElementLocator] = None
    expected: Optional[str] = None
    attribute: Optional[str] = None


class ScreenshotConfig(_Model):
    name: Optional[str] = None
    full_page: bool = False


class ApiRequestConfig(_Model):
    method: Literal["GET", "POST", "PUT", "PATCH", "DELETE"]
    url: str
    headers: Optional[dict[str, str]] = None
    body: Any = None
    save_response_as: Optional[str] = None


class ApiAssertConfig(_Model):
    type: Literal["status", "body", "header"]
    path: Optional[str] = None
    expected: Any = None
    operator: Literal["equals", "contains", "matches", "exists", "type"] = "equals"
    status: Optional[int] = None
    header_name: Optional[str] = None
    response_ref: Optional[str] = None
    min_confidence: float = Field(default=0.7, ge=0, le=1)


class ComponentConfig(_Model):
    component_id: str
    parameters: dict[str, Any] = Field(default_factory=dict)


class ScriptConfig(_Model):
    code: str
    save_result_as: Optional[str] = None


class _StepBase(_Model):
    id: str = Field(default_factory=_new_id)
    description: str = ""
    timeout: Optional[int] = None
    continue_on_error: bool = False


class NavigateStep(_StepBase):
    type: Literal[StepType.NAVIGATE] = StepType.NAVIGATE
    config: NavigateConfig


class ClickStep(_StepBase):
    type: Literal[StepType.CLICK] = StepType.CLICK
    config: ClickConfig


class FillStep(_StepBase):
    type: Literal[StepType.FILL] = StepType.FILL
    config: FillConfig


class SelectStep(_StepBase):
    type: Literal[StepType.SELECT] = StepType.SELECT
    config: SelectConfig


class HoverStep(_StepBase):
    type: Literal[StepType.HOVER] = StepType.HOVER
    config: HoverConfig


class WaitStep(_StepBase):
    type: Literal[StepType.WAIT] = StepType.WAIT
    config: WaitConfig


class AssertStep(_StepBase):
    type: Literal[StepType.ASSERT] = StepType.ASSERT
    config: AssertConfig


class ScreenshotStep(_StepBase):
    type: Literal[StepType.SCREENSHOT] = StepType.SCREENSHOT
    config: ScreenshotConfig = Field(default_factory=ScreenshotConfig)


class ApiRequestStep(_StepBase):
    type: Literal[StepType.API_REQUEST] = StepType.API_REQUEST
    config: ApiRequestConfig


class ApiAssertStep(_StepBase):
    type: Literal[StepType.API_ASSERT] = StepType.API_ASSERT
    config: ApiAssertConfig


class ComponentStep(_StepBase):
    type: Literal[StepType.COMPONENT] = StepType.COMPONENT
    config: ComponentConfig


class ScriptStep(_StepBase):
    type: Literal[StepType.SCRIPT] = StepType.SCRIPT
    config: ScriptConfig


Step = Annotated[
    Union[
        NavigateStep,
        ClickStep,
        FillStep,
        SelectStep,
        HoverStep,
        WaitStep,
        AssertStep,
        ScreenshotStep,
        ApiRequestStep,
        ApiAssertStep,
        ComponentStep,
        ScriptStep,
    ],
    Field(discriminator="type"),
]


# ---------------------------------------------------------------------------
# Scenarios and components
# ---------------------------------------------------------------------------


class Variable(_Model):
    name: str
    type: Literal["string", "number", "boolean", "json"] = "string"
    default_value: Any = None
    description: Optional[str] = None


class Scenario(_Model):
    """Ordered steps plus declared variables; the unit of execution."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str = Field(default_factory=_new_id)
    name: str
    feature_id: Optional[str] = None
    description: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    priority: Literal["critical", "high", "medium", "low"] = "medium"
    variables: list[Variable] = Field(default_factory=list)
    steps: list[Step] = Field(default_factory=list)
    version: int = 1


class ParameterDef(_Model):
    name: str
    type: Literal["string", "number", "boolean", "enum"] = "string"
    required: bool = True
    default_value: Any = None
    options: Optional[list[str]] = None
    description: Optional[str] = None


class Component(_Model):
    """Reusable, parameterised bundle of steps expanded inline at run time."""

    id: str = Field(default_factory=_new_id)
    name: str
    description: Optional[str] = None
    type: Literal["flow", "assertion", "setup", "teardown"] = "flow"
    parameters: list[ParameterDef] = Field(default_factory=list)
    steps: list[Step] = Field(default_factory=list)


class Environment(_Model):
    """Target service a scenario runs against."""

    base_url: str
    default_timeout: int = 30000
    name: Optional[str] = None


# ---------------------------------------------------------------------------
# Runtime records
# ---------------------------------------------------------------------------


class RunStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    PASSED = "passed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class StepResultStatus(str, Enum):
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"
    HEALED = "healed"


class RunEnvironment(_Model):
    base_url: str
    variables: dict[str, Any] = Field(default_factory=dict)


class RunSummary(_Model):
    total_steps: int
    passed_steps: int
    failed_steps: int
    skipped_steps: int
    healed_steps: int


class TestRun(_Model):
    """One execution of a scenario; mutated only by the executor."""

    __test__ = False

    id: str = Field(default_factory=_new_id)
    scenario_id: str
    status: RunStatus = RunStatus.PENDING
    environment: RunEnvironment
    created_at: datetime = Field(default_factory=_utcnow)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    duration: Optional[float] = None
    summary: Optional[RunSummary] = None
    error: Optional[str] = None


class StepError(_Model):
    message: str
    stack: Optional[str] = None


class HealingInfo(_Model):
    original_strategy: LocatorStrategy
    used_strategy: LocatorStrategy
    confidence: float


class StepContext(_Model):
    screenshot_path: Optional[str] = None
    console_log: list[str] = Field(default_factory=list)


class StepResult(_Model):
    """Outcome of a single executed step."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str = Field(default_factory=_new_id)
    run_id: str
    step_id: str
    step_index: int
    status: StepResultStatus
    duration: float
    error: Optional[StepError] = None
    healing: Optional[HealingInfo] = None
    context: Optional[StepContext] = None
    created_at: datetime = Field(default_factory=_utcnow)


class HealingStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    AUTO_APPROVED = "auto_approved"


class HealingEvent(_Model):
    """A non-primary strategy (or JSON path) succeeded for a step."""

    scenario_id: str
    step_id: str
    run_id: str
    locator_display_name: str
    original_strategy: LocatorStrategy
    healed_strategy: LocatorStrategy
    confidence: float

    @property
    def event_id(self) -> str:
        return f"{self.run_id}-{self.step_id}"


class HealingDecision(_Model):
    event_id: str
    status: HealingStatus
    reviewed_by: Optional[str] = None
    review_note: Optional[str] = None


class ExecutionResult(_Model):
    run: TestRun
    step_results: list[StepResult] = Field(default_factory=list)
    healing_events: list[HealingEvent] = Field(default_factory=list)
