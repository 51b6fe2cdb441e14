"""Scenario and component loading utilities."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional
import json

import structlog
import yaml

from .models import Component, Scenario

LOGGER = structlog.get_logger("healing_executor")

SUPPORTED_SUFFIXES = {".yaml", ".yml", ".json"}


def _read_mapping(path: Path) -> dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() == ".json":
        data = json.loads(text)
    else:
        data = yaml.safe_load(text)
    if not isinstance(data, dict):
        raise ValueError(f"File {path} must contain a mapping")
    return data


def load_scenario(path: Path) -> Scenario:
    """Load and validate a scenario YAML or JSON file."""

    return Scenario.model_validate(_read_mapping(path))


def load_component(path: Path) -> Component:
    return Component.model_validate(_read_mapping(path))


class ComponentLibrary:
    """Component loader backed by a directory of YAML/JSON files.

    Components are indexed by their ``id`` on first use; the instance is an
    async callable so it can be passed straight to ``ExecutionOptions``.
    """

    def __init__(self, root: Path) -> None:
        self.root = root
        self._components: Optional[dict[str, Component]] = None

    async def __call__(self, component_id: str) -> Component | None:
        return self.get(component_id)

    def get(self, component_id: str) -> Component | None:
        return self._index().get(component_id)

    def _index(self) -> dict[str, Component]:
        if self._components is not None:
            return self._components
        components: dict[str, Component] = {}
        if self.root.is_dir():
            for path in sorted(self.root.rglob("*")):
                if path.suffix.lower() not in SUPPORTED_SUFFIXES or not path.is_file():
                    continue
                component = load_component(path)
                if component.id in components:
                    raise ValueError(f"Duplicate component id {component.id} in {path}")
                components[component.id] = component
        LOGGER.debug("components_indexed", root=str(self.root), count=len(components))
        self._components = components
        return components
