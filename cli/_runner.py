"""
Shared CLI runner helper.

Runs a tool in a subprocess from the repository root and propagates its
exit code.
"""

from __future__ import annotations

import subprocess
import sys
from collections.abc import Sequence
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]

# Source trees checked by lint/format
SOURCE_DIRS = ("app", "cli", "tests")


def python_module(module: str, *args: str) -> list[str]:
    return [sys.executable, "-m", module, *args]


def run(cmd: Sequence[str]) -> None:
    """
    Run `cmd` in the repository root and exit with its return code.

    Example:
        >>> run(python_module("pytest", "-q"))
    """
    result = subprocess.run(list(cmd), cwd=ROOT)
    raise SystemExit(result.returncode)
