from __future__ import annotations

import pytest

from healing_executor.console_reporter import ConsoleReporter
from healing_executor.events import EventType, RunEvent
from healing_executor.output_config import OutputFormat


def _events() -> list[RunEvent]:
    return [
        RunEvent(type=EventType.RUN_STARTED, run_id="r1", data={"scenario_name": "Checkout", "total_steps": 2}),
        RunEvent(
            type=EventType.STEP_STARTED,
            run_id="r1",
            data={"step_index": 0, "step_type": "click", "description": "Pay"},
        ),
        RunEvent(
            type=EventType.STEP_COMPLETED,
            run_id="r1",
            data={"step_index": 0, "status": "healed", "duration": 12.0, "error": None},
        ),
        RunEvent(
            type=EventType.STEP_HEALED,
            run_id="r1",
            data={
                "locator_display_name": "Pay",
                "original_strategy": {"type": "testId"},
                "healed_strategy": {"type": "css"},
                "confidence": 0.8,
            },
        ),
        RunEvent(
            type=EventType.STEP_STARTED,
            run_id="r1",
            data={"step_index": 1, "step_type": "assert", "description": "Receipt"},
        ),
        RunEvent(
            type=EventType.STEP_COMPLETED,
            run_id="r1",
            data={"step_index": 1, "status": "failed", "duration": 3.0, "error": {"message": "Element not visible"}},
        ),
        RunEvent(
            type=EventType.RUN_FINISHED,
            run_id="r1",
            data={
                "status": "failed",
                "duration": 20.0,
                "error": None,
                "summary": {"total_steps": 2, "passed_steps": 0, "healed_steps": 1, "failed_steps": 1},
            },
        ),
    ]


def test_plain_reporter_prints_progress(capsys: pytest.CaptureFixture[str]) -> None:
    reporter = ConsoleReporter(OutputFormat.PLAIN)
    for event in _events():
        reporter(event)

    out = capsys.readouterr().out
    assert "Running scenario: Checkout" in out
    assert "[1] click Pay ... ✚ HEALED (12ms)" in out
    assert "Healed 'Pay': testId -> css (confidence 0.80)" in out
    assert "Error: Element not visible" in out
    assert "Total: 2 | Passed: 0 | Healed: 1 | Failed: 1" in out
    assert "SCENARIO FAILED" in out


def test_json_reporter_is_silent(capsys: pytest.CaptureFixture[str]) -> None:
    reporter = ConsoleReporter(OutputFormat.JSON)
    for event in _events():
        reporter(event)

    assert capsys.readouterr().out == ""
