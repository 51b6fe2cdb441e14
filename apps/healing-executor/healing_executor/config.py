"""Executor settings resolved from CLI values, environment variables and defaults."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping, Optional
import os

from pydantic import BaseModel, Field

ENV_PREFIX = "HEALING_EXECUTOR_"

DEFAULT_BASE_URL = "http://127.0.0.1:3000"
DEFAULT_TIMEOUT_MS = 30000

_ENV_FIELDS = {
    "base_url": "BASE_URL",
    "timeout_ms": "TIMEOUT_MS",
    "headless": "HEADLESS",
    "screenshot_dir": "SCREENSHOT_DIR",
    "auto_approve_threshold": "AUTO_APPROVE_THRESHOLD",
}
_FALSE_VALUES = {"0", "false", "no", "off"}


class ExecutorSettings(BaseModel):
    """Runtime knobs for a scenario run."""

    base_url: str = DEFAULT_BASE_URL
    timeout_ms: int = Field(default=DEFAULT_TIMEOUT_MS, gt=0)
    headless: bool = True
    screenshot_dir: Path = Path("screenshots")
    auto_approve_threshold: float = Field(default=0.9, ge=0, le=1)

    @classmethod
    def resolve(
        cls,
        overrides: Optional[Mapping[str, Any]] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "ExecutorSettings":
        """Priority: explicit overrides > ``HEALING_EXECUTOR_*`` environment > defaults."""

        environ = os.environ if environ is None else environ
        values: dict[str, Any] = {}
        for field_name, suffix in _ENV_FIELDS.items():
            raw = environ.get(f"{ENV_PREFIX}{suffix}")
            if raw is None or raw == "":
                continue
            if field_name == "headless":
                values[field_name] = raw.strip().lower() not in _FALSE_VALUES
            else:
                values[field_name] = raw
        for key, value in (overrides or {}).items():
            if value is not None:
                values[key] = value
        return cls.model_validate(values)
