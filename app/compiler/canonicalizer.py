"""
JSON canonicalization for stored rule ASTs.

The rule store hashes both the source text and the compiled AST so that
re-saving an unchanged rule can be detected (and so two stores can be
diffed). Hashes must be byte-for-byte stable, hence:
- dictionary keys sorted at every level
- compact separators, UTF-8 kept as-is
- source spans excluded from the AST hash (reformatting a rule moves
  spans without changing what it means)
"""

import hashlib
import json
from typing import Any

from app.compiler.nodes import RuleNode


def canonicalize_json(obj: Any) -> Any:
    """
    Return a copy of `obj` with dictionary keys sorted at every level.

    Lists keep their order: action order is meaningful.

    Example:
        >>> canonicalize_json({"z": 1, "a": {"c": 2, "b": 3}})
        {'a': {'b': 3, 'c': 2}, 'z': 1}
    """
    if isinstance(obj, dict):
        return {k: canonicalize_json(v) for k, v in sorted(obj.items())}
    if isinstance(obj, (list, tuple)):
        return [canonicalize_json(item) for item in obj]
    return obj


def strip_spans(obj: Any) -> Any:
    """Drop every "span" key, leaving only the semantic content of an AST dict."""
    if isinstance(obj, dict):
        return {k: strip_spans(v) for k, v in obj.items() if k != "span"}
    if isinstance(obj, (list, tuple)):
        return [strip_spans(item) for item in obj]
    return obj


def to_canonical_json_string(obj: Any) -> str:
    """Compact canonical JSON, e.g. '{"name":"Paracetamol","type":"MedicationRef"}'."""
    return json.dumps(
        canonicalize_json(obj), sort_keys=True, separators=(",", ":"), ensure_ascii=False
    )


def to_canonical_json_pretty(obj: Any) -> str:
    """Indented canonical JSON for humans (CLI output, debugging)."""
    return json.dumps(canonicalize_json(obj), sort_keys=True, indent=2, ensure_ascii=False)


def _sha256(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def source_hash(source: str) -> str:
    """Hash of the exact source text (the rule store's upsert key)."""
    return _sha256(source)


def ast_hash(ast: RuleNode | dict[str, Any]) -> str:
    """Span-insensitive hash of a compiled rule."""
    data = ast.to_dict() if isinstance(ast, RuleNode) else ast
    return _sha256(to_canonical_json_string(strip_spans(data)))
