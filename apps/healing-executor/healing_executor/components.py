"""Expansion of component steps into inline steps with bound parameters."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Mapping, Optional, Sequence
from uuid import uuid4

import structlog

from .errors import ComponentExpansionError
from .interpolation import apply_parameters_to_config, interpolate
from .models import Component, ComponentStep, Step, StepType

LOGGER = structlog.get_logger("healing_executor")

ComponentLoader = Callable[[str], Awaitable[Optional[Component]]]


async def expand_steps(
    steps: Sequence[Step],
    variables: Mapping[str, Any],
    component_loader: Optional[ComponentLoader] = None,
    _stack: tuple[str, ...] = (),
) -> list[Step]:
    """Flatten ``steps``, replacing every component step (recursively) by its steps."""

    expanded: list[Step] = []
    for step in steps:
        if step.type == StepType.COMPONENT:
            expanded.extend(await expand_component_step(step, variables, component_loader, _stack))
        else:
            expanded.append(step)
    return expanded


async def expand_component_step(
    step: ComponentStep,
    variables: Mapping[str, Any],
    component_loader: Optional[ComponentLoader] = None,
    _stack: tuple[str, ...] = (),
) -> list[Step]:
    config = step.config
    if component_loader is None:
        raise ComponentExpansionError("Component loader not provided. Cannot expand component steps.")
    if config.component_id in _stack:
        chain = " -> ".join(_stack + (config.component_id,))
        raise ComponentExpansionError(f"Component cycle detected: {chain}")

    component = await component_loader(config.component_id)
    if component is None:
        raise ComponentExpansionError(f"Component not found: {config.component_id}")

    bound = bind_component_parameters(component, config.parameters, variables)
    inline = [_clone_step(component_step, bound) for component_step in component.steps]
    LOGGER.debug(
        "component_expanded",
        component=component.name,
        component_id=component.id,
        steps=len(inline),
    )
    return await expand_steps(inline, bound, component_loader, _stack + (config.component_id,))


def bind_component_parameters(
    component: Component,
    provided: Mapping[str, Any],
    variables: Mapping[str, Any],
) -> dict[str, Any]:
    """Inherited scope overlaid with the component's resolved parameter values."""

    bound: dict[str, Any] = dict(variables)
    for parameter in component.parameters:
        value = provided.get(parameter.name)
        if isinstance(value, str) and "{{" in value:
            value = interpolate(value, variables)
        if value is None:
            value = parameter.default_value
        if value is None and parameter.required:
            raise ComponentExpansionError(
                f"Required parameter '{parameter.name}' not provided for component '{component.name}'"
            )
        bound[parameter.name] = value
    return bound


def _clone_step(step: Step, variables: Mapping[str, Any]) -> Step:
    raw_config = step.config.model_dump(mode="json", by_alias=True, exclude_none=True)
    config = type(step.config).model_validate(apply_parameters_to_config(raw_config, variables))
    return step.model_copy(
        update={
            "id": str(uuid4()),
            "config": config,
            "description": interpolate(step.description, variables),
        }
    )
