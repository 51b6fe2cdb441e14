"""Output and log format selection shared by the CLI, reporter and logging setup."""

import os
from enum import Enum
from typing import Literal, Optional


class OutputFormat(str, Enum):
    """How run progress is shown on the console."""
    AUTO = "auto"
    RICH = "rich"
    PLAIN = "plain"
    JSON = "json"


LogFormat = Literal["json", "console", "plain"]

ENV_VAR_NAME = "CONSOLE_OUTPUT_FORMAT"

_LOG_FORMATS: dict[OutputFormat, LogFormat] = {
    OutputFormat.AUTO: "console",
    OutputFormat.RICH: "console",
    OutputFormat.PLAIN: "plain",
    OutputFormat.JSON: "json",
}


def _parse(value: Optional[str]) -> Optional[OutputFormat]:
    if not value:
        return None
    try:
        return OutputFormat(value.strip().lower())
    except ValueError:
        return None


def get_output_format(cli_override: Optional[str] = None) -> OutputFormat:
    """
    Resolve the console output format.

    The ``--output-format`` value wins, then ``CONSOLE_OUTPUT_FORMAT``; values
    that name no known format are ignored. Falls back to ``auto``.
    """
    for candidate in (cli_override, os.environ.get(ENV_VAR_NAME)):
        parsed = _parse(candidate)
        if parsed is not None:
            return parsed
    return OutputFormat.AUTO


def log_format_for(output_format: OutputFormat) -> LogFormat:
    """structlog renderer matching a console output format (json stays json, plain stays uncoloured)."""
    return _LOG_FORMATS[output_format]
