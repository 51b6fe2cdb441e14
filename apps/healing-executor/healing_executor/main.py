"""CLI entrypoint for healing-executor."""

from __future__ import annotations

import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import typer
import yaml
from pydantic import ValidationError

if __package__ in {None, ""}:
    current_file = Path(__file__).resolve()
    package_root = current_file.parents[1]
    if str(package_root) not in sys.path:
        sys.path.insert(0, str(package_root))
    __package__ = "healing_executor"

from .config import ExecutorSettings
from .drivers import playwright_session
from .loader import ComponentLibrary, load_scenario
from .logging_utils import configure_logging
from .models import RunStatus, StepType
from .output_config import OutputFormat, get_output_format, log_format_for
from .runner import ScenarioRunner

app = typer.Typer(help="Execute UI and API test scenarios with self-healing locators.")

DEFAULT_OUTPUT_DIR = Path("artifacts/runs")

# Looked up at call time so tests can swap in a fake browser session.
browser_factory = playwright_session


def _parse_variables(pairs: list[str]) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for item in pairs:
        if "=" not in item:
            raise typer.BadParameter("Variables must be in key=value format")
        key, value = item.split("=", 1)
        key = key.strip()
        if not key:
            raise typer.BadParameter("Variable name cannot be empty")
        result[key] = value
    return result


def _default_run_id() -> str:
    return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


@app.command()
def run(
    scenario: Path = typer.Option(
        ...,
        "--scenario",
        exists=True,
        readable=True,
        help="Path to the scenario YAML or JSON file.",
    ),
    components_dir: Optional[Path] = typer.Option(
        None,
        "--components-dir",
        help="Directory of component YAML/JSON files used to expand component steps.",
    ),
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        help="Target base URL (overrides HEALING_EXECUTOR_BASE_URL).",
    ),
    var: list[str] = typer.Option(
        [],
        "--var",
        help="Scenario variable overrides in key=value format.",
    ),
    timeout: Optional[int] = typer.Option(
        None,
        "--timeout",
        min=1,
        help="Default step timeout in milliseconds.",
    ),
    headed: bool = typer.Option(
        False,
        "--headed",
        help="Show the browser window instead of running headless.",
    ),
    output_dir: Path = typer.Option(
        DEFAULT_OUTPUT_DIR,
        "--output-dir",
        help="Directory where run artifacts (events, summary, JUnit) are written.",
    ),
    run_id: Optional[str] = typer.Option(
        None,
        "--run-id",
        help="Label for the artifact directory; defaults to a UTC timestamp.",
    ),
    output_format: Optional[str] = typer.Option(
        None,
        "--output-format",
        help="Console output format: auto, rich, plain or json (overrides CONSOLE_OUTPUT_FORMAT).",
    ),
    log_level: str = typer.Option("INFO", "--log-level", help="Log verbosity."),
) -> None:
    """Execute a scenario and write its run artifacts."""

    fmt = get_output_format(output_format)
    configure_logging(log_level, log_format_for(fmt))
    variables = _parse_variables(var)

    overrides: dict[str, Any] = {"base_url": base_url, "timeout_ms": timeout}
    if headed:
        overrides["headless"] = False
    try:
        settings = ExecutorSettings.resolve(overrides)
    except ValidationError as exc:
        raise typer.BadParameter(f"Invalid executor settings: {exc}") from exc

    runner = ScenarioRunner(
        scenario_file=scenario,
        output_root=output_dir,
        run_label=run_id or _default_run_id(),
        settings=settings,
        components_dir=components_dir,
        variables=variables,
        output_format=fmt,
        browser_factory=browser_factory,
    )
    result = runner.run()

    if fmt == OutputFormat.JSON:
        typer.echo(result.model_dump_json(indent=2))

    if result.run.status != RunStatus.PASSED:
        raise typer.Exit(code=1)


@app.command()
def validate(
    scenario: Path = typer.Option(
        ...,
        "--scenario",
        exists=True,
        readable=True,
        help="Path to the scenario YAML or JSON file.",
    ),
    components_dir: Optional[Path] = typer.Option(
        None,
        "--components-dir",
        help="Directory of component files; referenced components must exist there.",
    ),
) -> None:
    """Check that a scenario file parses and its component references resolve."""

    try:
        parsed = load_scenario(scenario)
    except (ValidationError, ValueError, yaml.YAMLError) as exc:
        typer.secho(f"Invalid scenario {scenario}: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc

    component_ids = [step.config.component_id for step in parsed.steps if step.type == StepType.COMPONENT]
    if component_ids:
        if components_dir is None:
            typer.secho("Scenario uses component steps; pass --components-dir", fg=typer.colors.RED, err=True)
            raise typer.Exit(code=1)
        library = ComponentLibrary(components_dir)
        try:
            missing = [component_id for component_id in component_ids if library.get(component_id) is None]
        except (ValidationError, ValueError, yaml.YAMLError) as exc:
            typer.secho(f"Invalid component in {components_dir}: {exc}", fg=typer.colors.RED, err=True)
            raise typer.Exit(code=1) from exc
        if missing:
            typer.secho(f"Unknown components: {', '.join(missing)}", fg=typer.colors.RED, err=True)
            raise typer.Exit(code=1)

    typer.secho(
        f"Scenario '{parsed.name}' is valid ({len(parsed.steps)} steps)",
        fg=typer.colors.GREEN,
    )


def run_cli() -> None:
    """Console_scripts hook."""

    app()


if __name__ == "__main__":  # pragma: no cover
    run_cli()
