"""
Rule compiler for the clinical rules API.

Single entry point used by the API, the rule store and the CLI:

    compile_rule(source, catalogs) -> CompileResult

Pipeline:
1. Lexer: source text -> tokens (never fails, bad input becomes ERROR tokens)
2. Parser: tokens -> RuleNode + diagnostics (AST only when error-free)
3. Validator: RuleNode -> resolved RuleNode + semantic diagnostics,
   run only when the parser produced an AST

The result is an immutable snapshot. Compilation is deterministic: the same
source against the same catalogs always yields an equal CompileResult.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any

from app.compiler.diagnostics import Diagnostic
from app.compiler.lexer import tokenize
from app.compiler.nodes import RuleNode
from app.compiler.parser import parse
from app.compiler.validator import CONDITION_NOT_FOUND, MEDICATION_NOT_FOUND, validate_rule
from app.core.telemetry import get_tracer
from app.domain.enums import DiagnosticCode
from app.services.catalogs import CatalogSnapshot

logger = logging.getLogger(__name__)

tracer = get_tracer(__name__)


@dataclass(frozen=True, slots=True)
class CompileResult:
    """
    Outcome of one compilation.

    `ast` is only set when `success` is true: a partially valid tree is never
    handed to the renderer or the store.
    """

    success: bool
    ast: RuleNode | None = None
    diagnostics: tuple[Diagnostic, ...] = ()
    missing_references: frozenset[str] = field(default_factory=frozenset)

    @property
    def errors(self) -> tuple[Diagnostic, ...]:
        return tuple(d for d in self.diagnostics if d.is_error)

    @property
    def warnings(self) -> tuple[Diagnostic, ...]:
        return tuple(d for d in self.diagnostics if not d.is_error)

    def codes(self) -> list[str]:
        return [d.code.value for d in self.diagnostics]

    def error_message(self) -> str | None:
        """
        Headline error shown by the rule editor.

        Unknown medications take precedence (the editor lists `missing`
        next to this message), then unknown conditions, then the first
        error diagnostic.
        """
        if self.success:
            return None

        codes = {d.code for d in self.errors}
        if DiagnosticCode.UNKNOWN_MEDICATION in codes:
            return MEDICATION_NOT_FOUND
        if DiagnosticCode.UNKNOWN_CONDITION in codes:
            return CONDITION_NOT_FOUND
        if self.errors:
            return self.errors[0].message
        return "Rule could not be compiled"

    def sorted_missing(self) -> list[str]:
        return sorted(self.missing_references, key=lambda name: (name.casefold(), name))

    def to_payload(self) -> dict[str, Any]:
        """Editor payload: {ok, error, missing, ast, diagnostics}."""
        return {
            "ok": self.success,
            "error": self.error_message(),
            "missing": self.sorted_missing() or None,
            "ast": self.ast.to_dict() if self.ast is not None else None,
            "diagnostics": [d.to_dict() for d in self.diagnostics],
        }


def compile_rule(source: str, catalogs: CatalogSnapshot) -> CompileResult:
    """
    Compile a rule source against a catalog snapshot.

    Args:
        source: Rule text in the clinical DSL
        catalogs: Read-only medication/condition snapshot

    Returns:
        CompileResult; success is true iff there are no ERROR diagnostics
        and no missing references

    Raises:
        TypeError: If `source` is not a string
    """
    start_time = time.perf_counter()

    with tracer.start_as_current_span("rule.compile") as span:
        with tracer.start_as_current_span("rule.lex"):
            tokens = tokenize(source)

        with tracer.start_as_current_span("rule.parse"):
            parsed = parse(tokens)

        diagnostics = list(parsed.diagnostics)
        missing: frozenset[str] = frozenset()
        ast = parsed.ast

        if ast is not None:
            with tracer.start_as_current_span("rule.validate"):
                semantic = validate_rule(ast, catalogs)
            diagnostics.extend(semantic.diagnostics)
            missing = semantic.missing_references
            ast = semantic.resolved_ast

        success = not missing and not any(d.is_error for d in diagnostics)
        result = CompileResult(
            success=success,
            ast=ast if success else None,
            diagnostics=tuple(diagnostics),
            missing_references=missing,
        )

        span.set_attribute("rule.success", success)
        span.set_attribute("rule.diagnostics", len(diagnostics))

    duration = time.perf_counter() - start_time
    logger.info(
        "Compiled rule: success=%s, diagnostics=%d, missing=%d, duration=%.4fs",
        success,
        len(diagnostics),
        len(missing),
        duration,
    )
    _record_compiler_metrics(result, duration)

    return result


def _record_compiler_metrics(result: CompileResult, duration: float) -> None:
    """
    Record compiler metrics to Prometheus.

    Metrics failures are logged and ignored so they never break compilation.
    """
    try:
        from app.core.observability import metrics

        status = "success" if result.success else "failure"
        metrics.rule_compilations_total.labels(status=status).inc()
        metrics.rule_compile_duration_seconds.observe(duration)
        for diagnostic in result.diagnostics:
            metrics.rule_diagnostics_total.labels(code=diagnostic.code.value).inc()
    except Exception as e:
        logger.debug("Failed to record compiler metrics: %s", e)
