"""
Source positions and diagnostics shared by every compiler stage.

All types here are immutable value objects so a CompileResult can be
handed to concurrent callers without copying.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from app.domain.enums import DiagnosticCode, DiagnosticSeverity


@dataclass(frozen=True, slots=True)
class Position:
    """A point in the rule source. Lines and columns are 1-based, offset is 0-based."""

    line: int
    column: int
    offset: int

    def to_dict(self) -> dict[str, int]:
        return {"line": self.line, "column": self.column, "offset": self.offset}


@dataclass(frozen=True, slots=True)
class Span:
    """Half-open source range [start, end)."""

    start: Position
    end: Position

    @classmethod
    def covering(cls, first: Span, last: Span) -> Span:
        return cls(first.start, last.end)

    def to_dict(self) -> dict[str, Any]:
        return {"start": self.start.to_dict(), "end": self.end.to_dict()}


@dataclass(frozen=True, slots=True)
class Diagnostic:
    """A structured error or warning produced during compilation."""

    severity: DiagnosticSeverity
    code: DiagnosticCode
    message: str
    span: Span | None = None

    @property
    def is_error(self) -> bool:
        return self.severity == DiagnosticSeverity.ERROR

    @classmethod
    def error(cls, code: DiagnosticCode, message: str, span: Span | None = None) -> Diagnostic:
        return cls(DiagnosticSeverity.ERROR, code, message, span)

    @classmethod
    def warning(cls, code: DiagnosticCode, message: str, span: Span | None = None) -> Diagnostic:
        return cls(DiagnosticSeverity.WARNING, code, message, span)

    def to_dict(self) -> dict[str, Any]:
        return {
            "severity": self.severity.value,
            "code": self.code.value,
            "message": self.message,
            "span": self.span.to_dict() if self.span else None,
        }

    def __str__(self) -> str:
        where = f"{self.span.start.line}:{self.span.start.column}" if self.span else "-"
        return f"{where} {self.severity.value} {self.code.value}: {self.message}"
