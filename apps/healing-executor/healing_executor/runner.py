"""Scenario file runner that executes a scenario and records run artifacts."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, TextIO
import asyncio
import xml.etree.ElementTree as ET

import structlog

from .config import ExecutorSettings
from .console_reporter import ConsoleReporter
from .drivers import BrowserFactory, playwright_session
from .engine import ExecutionOptions, TestExecutor
from .events import RunEvent
from .healing import HealingTracker
from .http_executor import ApiClient
from .loader import ComponentLibrary, load_scenario
from .models import Environment, ExecutionResult, Scenario, StepResultStatus
from .output_config import OutputFormat

LOGGER = structlog.get_logger("healing_executor")


@dataclass
class RunArtifacts:
    run_dir: Path
    events_file: Path
    summary_file: Path
    junit_file: Path


class _EventLog:
    """Subscriber appending each run event as one JSON line."""

    def __init__(self, handle: TextIO) -> None:
        self._handle = handle

    def __call__(self, event: RunEvent) -> None:
        self._handle.write(event.model_dump_json() + "\n")
        self._handle.flush()


class ScenarioRunner:
    """Executes a scenario file and writes events, summary and JUnit artifacts."""

    def __init__(
        self,
        *,
        scenario_file: Path,
        output_root: Path,
        run_label: str,
        settings: ExecutorSettings,
        components_dir: Optional[Path] = None,
        variables: Optional[dict[str, Any]] = None,
        output_format: OutputFormat = OutputFormat.AUTO,
        browser_factory: BrowserFactory = playwright_session,
    ) -> None:
        if not scenario_file.exists():
            raise FileNotFoundError(f"Scenario file not found: {scenario_file}")
        self.scenario_file = scenario_file
        self.output_root = output_root
        self.run_label = run_label
        self.settings = settings
        self.components_dir = components_dir
        self.variables = variables or {}
        self._reporter = ConsoleReporter(output_format=output_format)
        self._executor = TestExecutor(
            browser_factory=browser_factory,
            api_client=ApiClient(default_timeout=settings.timeout_ms),
            tracker=HealingTracker(settings.auto_approve_threshold),
        )

    @property
    def tracker(self) -> HealingTracker:
        return self._executor.tracker

    def run(self) -> ExecutionResult:
        scenario = load_scenario(self.scenario_file)
        artifacts = self._prepare_artifacts()
        environment = Environment(base_url=self.settings.base_url, default_timeout=self.settings.timeout_ms)
        component_loader = ComponentLibrary(self.components_dir) if self.components_dir else None

        with artifacts.events_file.open("w", encoding="utf-8") as events_handle:
            options = ExecutionOptions(
                headless=self.settings.headless,
                timeout=self.settings.timeout_ms,
                variables=self.variables,
                component_loader=component_loader,
                subscribers=[_EventLog(events_handle), self._reporter],
                screenshot_dir=self.settings.screenshot_dir,
            )
            result = asyncio.run(self._executor.execute(scenario, environment, options))

        artifacts.summary_file.write_text(result.model_dump_json(indent=2), encoding="utf-8")
        self._write_junit(result, scenario, artifacts.junit_file)
        LOGGER.info(
            "run_artifacts_written",
            run_id=result.run.id,
            summary_file=str(artifacts.summary_file),
            junit_file=str(artifacts.junit_file),
        )
        return result

    def _prepare_artifacts(self) -> RunArtifacts:
        run_dir = self.output_root / self.run_label
        run_dir.mkdir(parents=True, exist_ok=True)
        return RunArtifacts(
            run_dir=run_dir,
            events_file=run_dir / "events.jsonl",
            summary_file=run_dir / "summary.json",
            junit_file=run_dir / "results.junit.xml",
        )

    def _write_junit(self, result: ExecutionResult, scenario: Scenario, junit_file: Path) -> None:
        step_results = result.step_results
        failures = [r for r in step_results if r.status == StepResultStatus.FAILED]
        suite = ET.Element(
            "testsuite",
            attrib={
                "name": scenario.name,
                "tests": str(len(step_results)),
                "failures": str(len(failures)),
                "errors": "1" if result.run.error else "0",
                "time": str((result.run.duration or 0) / 1000),
            },
        )
        for step_result in step_results:
            case = ET.SubElement(
                suite,
                "testcase",
                attrib={
                    "classname": scenario.name,
                    "name": f"step-{step_result.step_index + 1}",
                    "time": str(step_result.duration / 1000),
                },
            )
            if step_result.status == StepResultStatus.FAILED:
                error = step_result.error
                failure = ET.SubElement(
                    case,
                    "failure",
                    attrib={"message": error.message if error else "Step failed"},
                )
                failure.text = (error.stack or error.message) if error else ""
            elif step_result.healing is not None:
                props = ET.SubElement(case, "properties")
                ET.SubElement(
                    props,
                    "property",
                    attrib={"name": "healed_strategy", "value": step_result.healing.used_strategy.type},
                )
        if result.run.error:
            error_case = ET.SubElement(suite, "testcase", attrib={"classname": scenario.name, "name": "run"})
            ET.SubElement(error_case, "error", attrib={"message": result.run.error})
        tree = ET.ElementTree(suite)
        tree.write(junit_file, encoding="utf-8", xml_declaration=True)
