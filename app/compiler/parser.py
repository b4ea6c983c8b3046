"""
Recursive-descent parser for the clinical rule DSL.

Grammar (keywords are case-insensitive):

    rule       := "cuando" condition separator action ( ["," | "y"] action )*
    separator  := "," ["entonces"] | "entonces" | "=>"
    condition  := "consulta" "es" "por" STRING
    action     := prescribe | flag
    prescribe  := "dar" STRING ["x" NUMBER] [STRING]
    flag       := "marcar" STRING

The parser never raises for malformed input. Every problem becomes a
Diagnostic; after a syntax error it resynchronizes on the next clause
boundary ("cuando", "dar", "marcar" or end of input) and keeps going, so a
single pass reports as many independent errors as possible.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from app.compiler.diagnostics import Diagnostic, Span
from app.compiler.lexer import IMPLIES, Token
from app.compiler.nodes import (
    ActionClause,
    ConditionClause,
    ConditionRef,
    FlagAction,
    Literal,
    MedicationRef,
    PrescribeAction,
    RuleNode,
)
from app.domain.enums import DiagnosticCode, Keyword, TokenKind

logger = logging.getLogger(__name__)

# Clause boundaries used for error recovery
SYNC_KEYWORDS = (Keyword.CUANDO, Keyword.DAR, Keyword.MARCAR)
ACTION_KEYWORDS = (Keyword.DAR, Keyword.MARCAR)


@dataclass(frozen=True, slots=True)
class ParseResult:
    ast: RuleNode | None
    diagnostics: tuple[Diagnostic, ...]

    @property
    def has_errors(self) -> bool:
        return any(d.is_error for d in self.diagnostics)


class Parser:
    """Single-pass parser with one token of lookahead."""

    def __init__(self, tokens: Sequence[Token]):
        if not tokens or tokens[-1].kind != TokenKind.EOF:
            raise ValueError("token stream must end with an EOF token")

        self.tokens = tokens
        self.pos = 0
        self.previous: Token | None = None
        self.diagnostics: list[Diagnostic] = []
        self._skip_error_tokens()

    # ------------------------------------------------------------------
    # Token cursor
    # ------------------------------------------------------------------

    @property
    def current(self) -> Token:
        return self.tokens[self.pos]

    def _at_end(self) -> bool:
        return self.current.kind == TokenKind.EOF

    def _advance(self) -> Token:
        token = self.current
        if not self._at_end():
            self.pos += 1
            self.previous = token
            self._skip_error_tokens()
        return token

    def _skip_error_tokens(self) -> None:
        """Report lexer ERROR tokens and step over them."""
        while self.current.kind == TokenKind.ERROR:
            token = self.current
            self.diagnostics.append(
                Diagnostic.error(
                    DiagnosticCode.LEXICAL_ERROR,
                    token.message or f"unrecognized input {token.text!r}",
                    token.span,
                )
            )
            self.pos += 1

    def _check_keyword(self, *keywords: Keyword) -> bool:
        return self.current.is_keyword(*keywords)

    def _check_operator(self, *values: str) -> bool:
        return self.current.kind == TokenKind.OPERATOR and self.current.value in values

    def _syntax_error(self, message: str, token: Token | None = None) -> None:
        token = token or self.current
        self.diagnostics.append(Diagnostic.error(DiagnosticCode.SYNTAX_ERROR, message, token.span))

    def _expected(self, expected: str) -> None:
        token = self.current
        message = f"expected {expected}, found {token.describe()}"
        if token.kind == TokenKind.IDENTIFIER and "STRING" in expected:
            message += " (names must be quoted)"
        self._syntax_error(message, token)

    def _synchronize(self) -> None:
        """Skip forward to the next clause boundary."""
        while not self._at_end() and not self._check_keyword(*SYNC_KEYWORDS):
            self._advance()

    def _error_count(self) -> int:
        return sum(1 for d in self.diagnostics if d.is_error)

    def _span_from(self, start: Token) -> Span:
        end = self.previous or start
        return Span(start.span.start, end.span.end)

    # ------------------------------------------------------------------
    # Grammar
    # ------------------------------------------------------------------

    def parse(self) -> ParseResult:
        rule = self._parse_rule()

        # A source holds exactly one rule; anything after it is reported.
        while not self._at_end():
            token = self.current
            self._syntax_error(f"expected end of input, found {token.describe()}", token)
            if token.is_keyword(Keyword.CUANDO):
                self._parse_rule()
            elif token.is_keyword(*ACTION_KEYWORDS):
                self._parse_actions(report_empty=False)
            else:
                self._advance()
                self._synchronize()

        diagnostics = tuple(self.diagnostics)
        has_errors = any(d.is_error for d in diagnostics)
        return ParseResult(ast=None if has_errors else rule, diagnostics=diagnostics)

    def _parse_rule(self) -> RuleNode | None:
        errors_before = self._error_count()
        start = self.current

        if not self._check_keyword(Keyword.CUANDO):
            self._expected("'cuando'")
            self._synchronize()
            if self._check_keyword(Keyword.CUANDO):
                return self._parse_rule()
            self._parse_actions(report_empty=False)
            return None

        self._advance()
        trigger = self._parse_condition()
        if trigger is not None:
            self._parse_separator()

        actions = self._parse_actions(report_empty=self._error_count() == errors_before)
        if trigger is None or self._error_count() != errors_before:
            return None

        return RuleNode(trigger=trigger, actions=tuple(actions), span=self._span_from(start))

    def _parse_condition(self) -> ConditionClause | None:
        start = self.current
        for keyword in (Keyword.CONSULTA, Keyword.ES, Keyword.POR):
            if not self._check_keyword(keyword):
                self._expected(f"'{keyword.value}'")
                self._synchronize()
                return None
            self._advance()

        text = self._expect_string("STRING")
        if text is None:
            return None

        return ConditionClause(
            subject_keyword=Keyword.CONSULTA.value,
            comparison_text=text,
            span=self._span_from(start),
        )

    def _parse_separator(self) -> None:
        if self._check_operator(","):
            self._advance()
            if self._check_keyword(Keyword.ENTONCES):
                self._advance()
            return
        if self._check_keyword(Keyword.ENTONCES) or self._check_operator(IMPLIES):
            self._advance()
            return

        self._expected("',' or 'entonces'")
        # Missing separator right before an action is recoverable in place.
        if not self._check_keyword(*ACTION_KEYWORDS):
            self._synchronize()

    def _parse_actions(self, report_empty: bool) -> list[ActionClause]:
        actions: list[ActionClause] = []

        while not self._at_end() and not self._check_keyword(Keyword.CUANDO):
            if self._check_keyword(Keyword.DAR):
                action = self._parse_prescribe()
            elif self._check_keyword(Keyword.MARCAR):
                action = self._parse_flag()
            else:
                if actions or not report_empty:
                    self._expected("'dar', 'marcar' or end of input")
                else:
                    self._expected("'dar' or 'marcar'")
                report_empty = False
                self._advance()
                self._synchronize()
                continue

            if action is not None:
                actions.append(action)

            if self._check_operator(",") or self._check_keyword(Keyword.Y):
                separator = self._advance()
                if not self._check_keyword(*ACTION_KEYWORDS):
                    self._expected(f"'dar' or 'marcar' after {separator.describe()}")
                    self._synchronize()

        if not actions and report_empty:
            self._expected("'dar' or 'marcar'")

        return actions

    def _parse_prescribe(self) -> PrescribeAction | None:
        start = self._advance()

        name = self._expect_string("STRING (medication name)")
        if name is None:
            return None

        quantity = None
        if self._check_keyword(Keyword.X):
            self._advance()
            if self.current.kind != TokenKind.NUMBER:
                self._expected("NUMBER (quantity)")
                self._synchronize()
                return None
            token = self._advance()
            quantity = Literal(token.value, token.span)

        instructions = None
        if self.current.kind == TokenKind.STRING_LITERAL:
            token = self._advance()
            instructions = Literal(token.value, token.span)

        return PrescribeAction(
            medication=MedicationRef(str(name.value), name.span),
            quantity=quantity,
            instructions=instructions,
            span=self._span_from(start),
        )

    def _parse_flag(self) -> FlagAction | None:
        start = self._advance()

        name = self._expect_string("STRING (condition name)")
        if name is None:
            return None

        return FlagAction(
            condition=ConditionRef(str(name.value), name.span),
            span=self._span_from(start),
        )

    def _expect_string(self, expected: str) -> Literal | None:
        """Consume a non-blank STRING literal or report and resynchronize."""
        if self.current.kind != TokenKind.STRING_LITERAL:
            self._expected(expected)
            self._synchronize()
            return None

        token = self._advance()
        if not token.value.strip():
            self._syntax_error("string literal cannot be blank", token)
            self._synchronize()
            return None
        return Literal(token.value, token.span)


def parse(tokens: Sequence[Token]) -> ParseResult:
    """
    Parse a token stream into a RuleNode.

    Args:
        tokens: Output of `tokenize` (must end with EOF)

    Returns:
        ParseResult with the AST (None when any error was found) and all
        diagnostics in source order
    """
    result = Parser(tokens).parse()
    logger.debug(
        "Parsed %d tokens: %d diagnostics, ast=%s",
        len(tokens),
        len(result.diagnostics),
        "yes" if result.ast else "no",
    )
    return result
