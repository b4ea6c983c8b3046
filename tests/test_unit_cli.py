"""
Unit tests for the command-line entry points.
"""

import io
import json
from pathlib import Path
from unittest.mock import patch

import pytest
from sqlalchemy import create_engine, inspect

from cli import compile_rule, db_setup, tasks

SAMPLE_CATALOG = Path(__file__).resolve().parents[1] / "data" / "catalog.sample.json"


def write_rule(tmp_path: Path, source: str) -> Path:
    path = tmp_path / "rule.kure"
    path.write_text(source, encoding="utf-8")
    return path


def run_compile(*argv: str) -> int:
    with pytest.raises(SystemExit) as exc_info:
        compile_rule.main(list(argv))
    return exc_info.value.code


class TestCompileRuleCli:
    def test_valid_rule_prints_ast(self, tmp_path, capsys):
        path = write_rule(
            tmp_path, 'cuando consulta es por "tos" entonces dar "Loratadina" x 1 "noche"'
        )

        code = run_compile(str(path), "--catalog", str(SAMPLE_CATALOG))

        assert code == 0
        ast = json.loads(capsys.readouterr().out)
        assert ast["actions"][0]["medication"]["resolvedId"] == 6

    def test_invalid_rule_exits_1_with_diagnostics(self, tmp_path, capsys):
        path = write_rule(tmp_path, 'cuando consulta es por "tos" entonces dar "Jarabe"')

        code = run_compile(str(path), "--catalog", str(SAMPLE_CATALOG))

        assert code == 1
        err = capsys.readouterr().err
        assert "UNKNOWN_MEDICATION" in err
        assert "missing: Jarabe" in err

    def test_reads_stdin(self, capsys):
        source = 'cuando consulta es por "tos" entonces marcar "Asma"'

        with patch("sys.stdin", io.StringIO(source)):
            code = run_compile("-", "--catalog", str(SAMPLE_CATALOG), "--no-ast")

        assert code == 0
        assert capsys.readouterr().out == ""

    def test_writes_png(self, tmp_path):
        path = write_rule(tmp_path, 'cuando consulta es por "tos" entonces marcar "Asma"')
        png = tmp_path / "rule.png"

        code = run_compile(
            str(path), "--catalog", str(SAMPLE_CATALOG), "--png", str(png), "--no-ast"
        )

        assert code == 0
        assert png.read_bytes().startswith(b"\x89PNG")

    def test_missing_source_file(self, tmp_path, capsys):
        code = run_compile(str(tmp_path / "nope.kure"), "--catalog", str(SAMPLE_CATALOG))

        assert code == 2
        assert "cannot read" in capsys.readouterr().err

    def test_missing_catalog(self, tmp_path, capsys):
        path = write_rule(tmp_path, 'cuando consulta es por "tos" entonces marcar "Asma"')

        code = run_compile(str(path), "--catalog", str(tmp_path / "none.json"))

        assert code == 2
        assert "Catalog file not found" in capsys.readouterr().err


class TestDbSetup:
    def test_creates_schema(self, tmp_path):
        """The parent directory is created and the rule table exists afterwards."""
        database = tmp_path / "nested" / "rules.db"

        db_setup.main(["--database-url", f"sqlite:///{database}"])

        engine = create_engine(f"sqlite:///{database}")
        try:
            assert "stored_rules" in inspect(engine).get_table_names()
        finally:
            engine.dispose()


class TestTasks:
    def test_lint_runs_ruff_on_sources(self):
        with patch("cli.tasks.run") as run, patch("sys.argv", ["kure-lint", "--fix"]):
            tasks.lint()

        cmd = run.call_args.args[0]
        assert cmd[1:4] == ["-m", "ruff", "check"]
        assert cmd[-1] == "--fix"
        assert "app" in cmd

    def test_test_passes_arguments_to_pytest(self):
        with patch("cli.tasks.run") as run, patch("sys.argv", ["kure-test", "-k", "parser"]):
            tasks.test()

        assert run.call_args.args[0][-3:] == ["-q", "-k", "parser"]
