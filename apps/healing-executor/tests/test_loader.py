from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest
import yaml

from healing_executor.loader import ComponentLibrary, load_scenario
from healing_executor.models import ClickStep, StepType


def test_load_scenario_accepts_camel_case_yaml(tmp_path: Path) -> None:
    path = tmp_path / "scenario.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "id": "checkout",
                "name": "Checkout",
                "featureId": "cart",
                "steps": [
                    {
                        "type": "click",
                        "continueOnError": True,
                        "config": {
                            "locator": {
                                "displayName": "Pay",
                                "strategies": [{"type": "role", "role": "button", "name": "Pay", "priority": 1}],
                                "healing": {"enabled": True, "autoApprove": False, "confidenceThreshold": 0.85},
                            },
                            "clickCount": 2,
                        },
                    }
                ],
            }
        ),
        encoding="utf-8",
    )

    scenario = load_scenario(path)

    step = scenario.steps[0]
    assert isinstance(step, ClickStep)
    assert step.type == StepType.CLICK
    assert step.continue_on_error is True
    assert step.config.click_count == 2
    assert step.config.locator.healing.confidence_threshold == 0.85
    assert scenario.feature_id == "cart"


def test_load_scenario_rejects_non_mapping(tmp_path: Path) -> None:
    path = tmp_path / "scenario.json"
    path.write_text(json.dumps([1, 2]), encoding="utf-8")

    with pytest.raises(ValueError, match="must contain a mapping"):
        load_scenario(path)


def test_component_library_indexes_by_id(tmp_path: Path) -> None:
    (tmp_path / "nested").mkdir()
    (tmp_path / "login.yaml").write_text(
        yaml.safe_dump({"id": "login", "name": "Login", "steps": [{"type": "navigate", "config": {"url": "/login"}}]}),
        encoding="utf-8",
    )
    (tmp_path / "nested" / "logout.json").write_text(
        json.dumps({"id": "logout", "name": "Logout"}),
        encoding="utf-8",
    )
    (tmp_path / "README.md").write_text("ignored", encoding="utf-8")
    library = ComponentLibrary(tmp_path)

    assert asyncio.run(library("login")).name == "Login"
    assert library.get("logout").name == "Logout"
    assert library.get("unknown") is None


def test_component_library_rejects_duplicate_ids(tmp_path: Path) -> None:
    for name in ("a.yaml", "b.yaml"):
        (tmp_path / name).write_text(yaml.safe_dump({"id": "same", "name": name}), encoding="utf-8")

    with pytest.raises(ValueError, match="Duplicate component id same"):
        ComponentLibrary(tmp_path).get("same")
