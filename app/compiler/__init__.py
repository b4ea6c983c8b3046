"""
Clinical rule DSL compiler.

Turns rule sources such as

    cuando consulta es por "dolor de cabeza" entonces dar "Paracetamol" x 2 "cada 8 horas"

into a validated AST.

Key Components:
- lexer: source text -> tokens
- parser: tokens -> RuleNode (recursive descent with error recovery)
- validator: resolves medication/condition references against catalogs
- compiler: runs the pipeline and assembles the CompileResult
- canonicalizer: deterministic JSON and hashes for stored ASTs
- renderer: box-and-arrow PNG diagram of a compiled rule

Design Principles:
- Malformed input never raises: every problem is a Diagnostic
- Maximal diagnostic yield: all errors in a source are reported in one pass
- Determinism: same source and catalogs produce an equal result
"""

from app.compiler.canonicalizer import canonicalize_json
from app.compiler.compiler import CompileResult, compile_rule
from app.compiler.lexer import tokenize
from app.compiler.parser import parse
from app.compiler.renderer import render_ast
from app.compiler.validator import validate_rule

__all__ = [
    "CompileResult",
    "canonicalize_json",
    "compile_rule",
    "parse",
    "render_ast",
    "tokenize",
    "validate_rule",
]
