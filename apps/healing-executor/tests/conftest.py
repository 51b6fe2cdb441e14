"""Test bootstrap for healing-executor."""

from __future__ import annotations

import sys
from pathlib import Path

TESTS_DIR = Path(__file__).resolve().parent
APP_ROOT = TESTS_DIR.parent
for path in [APP_ROOT, TESTS_DIR]:
    path_str = str(path)
    if path_str not in sys.path:
        sys.path.insert(0, path_str)
