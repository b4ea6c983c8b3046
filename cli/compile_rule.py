"""
Compile a rule file locally.

Usage:
    kure-compile rules/cefalea.kure
    kure-compile rules/cefalea.kure --catalog data/catalog.sample.json --png cefalea.png
    echo 'cuando consulta es por "tos" entonces marcar "Asma"' | kure-compile -

Prints one line per diagnostic and, on success, the canonical AST JSON.
Exit code: 0 when the rule compiles, 1 when it does not, 2 on usage or
catalog errors.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from app.compiler.canonicalizer import to_canonical_json_pretty
from app.compiler.compiler import compile_rule
from app.compiler.renderer import render_ast
from app.core.config import settings
from app.core.errors import CatalogUnavailableError, RenderError
from app.services.catalogs import FileCatalogProvider


def _read_source(path: str) -> str:
    if path == "-":
        return sys.stdin.read()
    return Path(path).read_text(encoding="utf-8")


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(prog="kure-compile", description="Compile a clinical rule")
    parser.add_argument("source", help="Rule file, or - for stdin")
    parser.add_argument(
        "--catalog", default=settings.catalog_file, help="Catalog JSON (default: CATALOG_FILE)"
    )
    parser.add_argument("--png", type=Path, help="Write the AST diagram to this file")
    parser.add_argument("--no-ast", action="store_true", help="Only print diagnostics")
    args = parser.parse_args(argv)

    try:
        source = _read_source(args.source)
    except OSError as e:
        print(f"error: cannot read {args.source}: {e}", file=sys.stderr)
        raise SystemExit(2)

    try:
        catalogs = FileCatalogProvider(args.catalog).load_sync()
    except CatalogUnavailableError as e:
        print(f"error: {e.message} ({args.catalog})", file=sys.stderr)
        raise SystemExit(2)

    result = compile_rule(source, catalogs)

    for diagnostic in result.diagnostics:
        print(diagnostic, file=sys.stderr)

    if not result.success:
        if result.missing_references:
            print(f"missing: {', '.join(result.sorted_missing())}", file=sys.stderr)
        raise SystemExit(1)

    if not args.no_ast:
        print(to_canonical_json_pretty(result.ast.to_dict()))

    if args.png:
        try:
            args.png.write_bytes(render_ast(result.ast))
        except (RenderError, OSError) as e:
            print(f"error: cannot write diagram: {e}", file=sys.stderr)
            raise SystemExit(2)

    raise SystemExit(0)
