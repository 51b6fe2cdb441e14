"""Variable scope and ``{{name}}`` placeholder substitution."""

from __future__ import annotations

import json
import re
from typing import Any, Mapping

from .models import Scenario

_PLACEHOLDER_PATTERN = re.compile(r"\{\{(\w+)\}\}")


def build_variables(scenario: Scenario, overrides: Mapping[str, Any] | None = None) -> dict[str, Any]:
    """Scenario variable defaults overridden by caller-supplied values."""

    variables: dict[str, Any] = {variable.name: variable.default_value for variable in scenario.variables}
    if overrides:
        variables.update(overrides)
    return variables


def interpolate(text: str, variables: Mapping[str, Any]) -> str:
    """Replace ``{{name}}`` tokens; unknown names are left in place, braces included."""

    def _substitute(match: re.Match[str]) -> str:
        value = variables.get(match.group(1))
        if value is None:
            return match.group(0)
        return _stringify(value)

    return _PLACEHOLDER_PATTERN.sub(_substitute, text)


def apply_parameters_to_config(config: Any, variables: Mapping[str, Any]) -> Any:
    """Interpolate every string inside a JSON-like tree; other leaves pass through."""

    if isinstance(config, str):
        return interpolate(config, variables)
    if isinstance(config, list):
        return [apply_parameters_to_config(item, variables) for item in config]
    if isinstance(config, dict):
        return {key: apply_parameters_to_config(value, variables) for key, value in config.items()}
    return config


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)
