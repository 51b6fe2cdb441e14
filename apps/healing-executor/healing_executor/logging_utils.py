"""Structured logging setup for the healing executor."""

from __future__ import annotations

from io import StringIO
from typing import Any, Callable
import logging
import sys

import structlog
from rich.console import Console
from rich.text import Text

from .output_config import LogFormat

LOGGER_NAME = "healing_executor"

_LEVEL_STYLES = {
    "debug": "dim cyan",
    "info": "cyan",
    "warning": "yellow",
    "error": "bold red",
    "critical": "bold white on red",
}
# Bound by the executor on every run/step log line; rendered ahead of other fields.
_CONTEXT_KEYS = ("run_id", "step_index", "step_type")
_HIDDEN_KEYS = {"color_message", "stack", "exception"}
_EVENT_COLUMN = 28


class RichConsoleRenderer:
    """structlog renderer: ``time [level] event  run/step context  key=value ...``."""

    def __init__(self, width: int = 200) -> None:
        self.width = width

    def __call__(self, logger: Any, name: str, event_dict: dict[str, Any]) -> str:
        exception = event_dict.pop("exception", None)
        event = str(event_dict.pop("event", ""))
        level = event_dict.pop("level", "info")

        line = Text.assemble(
            (event_dict.pop("timestamp", ""), "dim white"),
            " ",
            (f"[{level:<8}]", _LEVEL_STYLES.get(level, "white")),
            " ",
            (event.ljust(_EVENT_COLUMN), "bold white"),
        )
        context = [f"{key}={event_dict.pop(key)}" for key in _CONTEXT_KEYS if key in event_dict]
        if context:
            line.append(" ".join(context), style="magenta")
        for key in sorted(event_dict):
            if key in _HIDDEN_KEYS:
                continue
            line.append(f" {key}=", style="dim white")
            line.append(str(event_dict[key]), style="bright_cyan")
        if exception:
            line.append(f"\n{exception}", style="red")

        buffer = StringIO()
        Console(file=buffer, force_terminal=True, width=self.width, legacy_windows=False).print(line, end="")
        return buffer.getvalue()


_RENDERERS: dict[LogFormat, Callable[[], Any]] = {
    "console": RichConsoleRenderer,
    "plain": lambda: structlog.dev.ConsoleRenderer(colors=False),
    "json": structlog.processors.JSONRenderer,
}


def configure_logging(log_level: str = "INFO", log_format: LogFormat = "console") -> structlog.stdlib.BoundLogger:
    """Route structlog events to stderr so stdout stays free for reporter output."""

    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO
    logging.basicConfig(level=level, stream=sys.stderr, format="%(message)s", force=True)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", key="timestamp"),
            structlog.processors.format_exc_info,
            _RENDERERS.get(log_format, _RENDERERS["json"])(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    return structlog.get_logger(LOGGER_NAME)
