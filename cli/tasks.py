"""
Developer task entry points (see [project.scripts] in pyproject.toml).

    kure-dev      uvicorn with reload on 127.0.0.1:8000
    kure-test     pytest -q
    kure-lint     ruff check
    kure-format   ruff format

Extra command-line arguments are passed through to the underlying tool.
"""

from __future__ import annotations

import sys

from cli._runner import SOURCE_DIRS, python_module, run


def dev() -> None:
    run(
        python_module(
            "uvicorn",
            "app.main:app",
            "--reload",
            "--host",
            "127.0.0.1",
            "--port",
            "8000",
            *sys.argv[1:],
        )
    )


def test() -> None:
    run(python_module("pytest", "-q", *sys.argv[1:]))


def lint() -> None:
    run(python_module("ruff", "check", *SOURCE_DIRS, *sys.argv[1:]))


def format_code() -> None:
    run(python_module("ruff", "format", *SOURCE_DIRS, *sys.argv[1:]))
