"""Console reporter that renders run progress events."""

import os
import sys
from typing import Optional

from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskID, TextColumn, TimeElapsedColumn
from rich.table import Table
from rich.text import Text

from .events import EventType, RunEvent
from .output_config import OutputFormat

_STATUS_STYLES = {
    "passed": ("✓ PASS", "green"),
    "healed": ("✚ HEALED", "yellow"),
    "skipped": ("- SKIP", "dim"),
    "failed": ("✗ FAIL", "red"),
}


class ConsoleReporter:
    """
    Progress subscriber that adapts its rendering to the environment.

    Automatically detects:
    - Interactive terminals (use rich with progress bars)
    - CI/CD environments (use plain text)
    - Pipe/redirect scenarios (use plain text)

    JSON output mode stays silent so stdout only carries the final summary.
    """

    def __init__(self, output_format: OutputFormat = OutputFormat.AUTO):
        self.output_format = output_format
        self._detect_environment()
        self.console: Optional[Console] = Console() if self.use_rich else None
        self.progress: Optional[Progress] = None
        self.progress_task: Optional[TaskID] = None
        self.live: Optional[Live] = None
        self.results_table: Optional[Table] = None
        self._step_labels: dict[int, str] = {}

    def _detect_environment(self) -> None:
        """Detect if we should use rich output or plain text."""
        self.silent = self.output_format == OutputFormat.JSON
        if self.output_format == OutputFormat.RICH:
            self.use_rich = True
        elif self.output_format in (OutputFormat.PLAIN, OutputFormat.JSON):
            self.use_rich = False
        else:  # AUTO
            is_terminal = sys.stdout.isatty()
            is_ci = any(
                name in os.environ for name in ("CI", "JENKINS_HOME", "GITLAB_CI", "TRAVIS", "GITHUB_ACTIONS")
            )
            self.use_rich = is_terminal and not is_ci

    def __call__(self, event: RunEvent) -> None:
        if self.silent:
            return
        if event.type == EventType.RUN_STARTED:
            self._on_run_started(event)
        elif event.type == EventType.STEP_STARTED:
            self._on_step_started(event)
        elif event.type == EventType.STEP_COMPLETED:
            self._on_step_completed(event)
        elif event.type == EventType.STEP_HEALED:
            self._on_step_healed(event)
        elif event.type == EventType.RUN_FINISHED:
            self._on_run_finished(event)

    def _on_run_started(self, event: RunEvent) -> None:
        name = event.data.get("scenario_name", "")
        total = event.data.get("total_steps", 0)
        if self.use_rich:
            self.results_table = Table(show_header=True, header_style="bold cyan")
            self.results_table.add_column("Step", style="dim", width=8)
            self.results_table.add_column("Action", width=48)
            self.results_table.add_column("Status", width=12)
            self.results_table.add_column("Duration", justify="right", width=12)
            self.progress = Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                BarColumn(),
                TimeElapsedColumn(),
                console=self.console,
            )
            # Expanded components can add steps, so the bar has no fixed total.
            self.progress_task = self.progress.add_task(f"[cyan]Running {name}", total=None)
            self.live = Live(Group(self.progress, self.results_table), console=self.console, refresh_per_second=4)
            self.live.start()
        else:
            print(f"Running scenario: {name}")
            print(f"Scenario steps: {total}")
            print("-" * 80)

    def _on_step_started(self, event: RunEvent) -> None:
        index = event.data["step_index"]
        label = f"{event.data.get('step_type', '')} {event.data.get('description', '')}".strip()
        self._step_labels[index] = label
        if not self.use_rich:
            print(f"[{index + 1}] {label} ... ", end="", flush=True)

    def _on_step_completed(self, event: RunEvent) -> None:
        index = event.data["step_index"]
        status = event.data["status"]
        duration_ms = event.data.get("duration", 0.0)
        error = (event.data.get("error") or {}).get("message")
        marker, colour = _STATUS_STYLES.get(status, (status, "white"))

        if self.use_rich and self.results_table is not None and self.progress is not None:
            self.results_table.add_row(
                str(index + 1),
                self._step_labels.get(index, ""),
                Text(marker, style=colour),
                f"{duration_ms:.0f}ms",
            )
            if error:
                self.results_table.add_row("", Text(f"Error: {error}", style="red"), "", "")
            self.progress.update(self.progress_task, advance=1)
        else:
            print(f"{marker} ({duration_ms:.0f}ms)")
            if error:
                print(f"  Error: {error}")

    def _on_step_healed(self, event: RunEvent) -> None:
        original = event.data["original_strategy"]["type"]
        healed = event.data["healed_strategy"]["type"]
        message = (
            f"Healed '{event.data.get('locator_display_name', '')}': {original} -> {healed} "
            f"(confidence {event.data.get('confidence', 0):.2f})"
        )
        if self.use_rich and self.results_table is not None:
            self.results_table.add_row("", Text(message, style="yellow"), "", "")
        else:
            print(f"  {message}")

    def _on_run_finished(self, event: RunEvent) -> None:
        status = event.data["status"]
        summary = event.data.get("summary") or {}
        duration_ms = event.data.get("duration") or 0.0
        failed = summary.get("failed_steps", 0)
        passed = status == "passed"
        headline = "✓ SCENARIO PASSED" if passed else "✗ SCENARIO FAILED"
        run_error = event.data.get("error")

        if self.use_rich and self.console is not None:
            if self.live:
                self.live.stop()
            summary_text = Text()
            summary_text.append(f"Total: {summary.get('total_steps', 0)}  ", style="bold")
            summary_text.append(f"Passed: {summary.get('passed_steps', 0)}  ", style="bold green")
            summary_text.append(f"Healed: {summary.get('healed_steps', 0)}  ", style="bold yellow")
            summary_text.append(f"Failed: {failed}  ", style="bold red" if failed else "bold green")
            summary_text.append(f"Duration: {duration_ms:.0f}ms", style="bold cyan")
            if run_error:
                summary_text.append(f"\nError: {run_error}", style="red")
            self.console.print()
            self.console.print(
                Panel(
                    summary_text,
                    title=Text(headline, style="bold green" if passed else "bold red"),
                    border_style="green" if passed else "red",
                )
            )
        else:
            print("-" * 80)
            print(
                f"Total: {summary.get('total_steps', 0)} | Passed: {summary.get('passed_steps', 0)} | "
                f"Healed: {summary.get('healed_steps', 0)} | Failed: {failed} | Duration: {duration_ms:.0f}ms"
            )
            if run_error:
                print(f"Error: {run_error}")
            print(headline)

    def print_error(self, message: str) -> None:
        """Print an error message."""
        if self.use_rich and self.console is not None:
            self.console.print(f"[bold red]Error:[/] {message}")
        else:
            print(f"Error: {message}", file=sys.stderr)
