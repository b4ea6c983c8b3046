"""
Lexer for the clinical rule DSL.

Turns free-text rule sources such as

    cuando consulta es por "dolor de cabeza" entonces dar "Paracetamol" x 2 "cada 8 horas"

into a flat token stream. Lexing is total: unrecognized input becomes an
ERROR token and scanning continues, so the parser can report every problem
in a single pass. The stream always ends with exactly one EOF token.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from app.compiler.diagnostics import Position, Span
from app.domain.enums import Keyword, TokenKind

KEYWORDS = {kw.value: kw for kw in Keyword}

# Opening quote -> closing quote
QUOTE_PAIRS = {
    '"': '"',
    "'": "'",
    "“": "”",
    "«": "»",
}

ESCAPES = {"n": "\n", "t": "\t"}

# Longest match first
OPERATORS = [
    ("=>", "=>"),
    ("->", "=>"),
    ("⇒", "=>"),
    ("→", "=>"),
    (",", ","),
]

IMPLIES = "=>"


@dataclass(frozen=True, slots=True)
class Token:
    """
    A lexical token.

    `text` is the raw slice of the source; `value` is the decoded payload
    (Keyword member, unescaped string, int/float, normalized operator).
    ERROR tokens carry a human-readable `message`.
    """

    kind: TokenKind
    text: str
    span: Span
    value: Any = None
    message: str | None = None

    @property
    def position(self) -> Position:
        return self.span.start

    def is_keyword(self, *keywords: Keyword) -> bool:
        return self.kind == TokenKind.KEYWORD and self.value in keywords

    def describe(self) -> str:
        """Short description used in parser error messages."""
        if self.kind == TokenKind.EOF:
            return "end of input"
        if self.kind == TokenKind.STRING_LITERAL:
            return f"string {self.text}"
        return f"'{self.text}'"

    def __repr__(self) -> str:
        where = f"{self.position.line}:{self.position.column}"
        return f"Token({self.kind.value}, {self.text!r}, {where})"


class Lexer:
    """Single-pass scanner with line/column tracking."""

    def __init__(self, source: str):
        self.source = source
        self.offset = 0
        self.line = 1
        self.column = 1

    def tokenize(self) -> list[Token]:
        tokens: list[Token] = []

        while True:
            self._skip_trivia()
            if self.offset >= len(self.source):
                break
            tokens.append(self._next_token())

        here = self._position()
        tokens.append(Token(TokenKind.EOF, "", Span(here, here)))
        return tokens

    # ------------------------------------------------------------------
    # Cursor helpers
    # ------------------------------------------------------------------

    def _position(self) -> Position:
        return Position(self.line, self.column, self.offset)

    def _peek(self, ahead: int = 0) -> str:
        index = self.offset + ahead
        if index < len(self.source):
            return self.source[index]
        return ""

    def _advance(self) -> str:
        char = self.source[self.offset]
        self.offset += 1
        if char == "\n":
            self.line += 1
            self.column = 1
        else:
            self.column += 1
        return char

    def _skip_trivia(self) -> None:
        """Skip whitespace and `//` or `#` line comments."""
        while self.offset < len(self.source):
            char = self._peek()
            if char.isspace():
                self._advance()
            elif char == "#" or (char == "/" and self._peek(1) == "/"):
                while self.offset < len(self.source) and self._peek() != "\n":
                    self._advance()
            else:
                break

    def _lexeme(self, start: Position) -> str:
        return self.source[start.offset : self.offset]

    def _make(
        self, kind: TokenKind, start: Position, value: Any = None, message: str | None = None
    ) -> Token:
        return Token(kind, self._lexeme(start), Span(start, self._position()), value, message)

    # ------------------------------------------------------------------
    # Token scanners
    # ------------------------------------------------------------------

    def _next_token(self) -> Token:
        char = self._peek()

        if char in QUOTE_PAIRS:
            return self._scan_string()
        if char.isdecimal():
            return self._scan_number()
        if char.isalpha() or char == "_":
            return self._scan_word()

        for lexeme, normalized in OPERATORS:
            if self.source.startswith(lexeme, self.offset):
                start = self._position()
                for _ in lexeme:
                    self._advance()
                return self._make(TokenKind.OPERATOR, start, value=normalized)

        start = self._position()
        self._advance()
        return self._make(TokenKind.ERROR, start, message=f"unrecognized character {char!r}")

    def _scan_string(self) -> Token:
        start = self._position()
        closing = QUOTE_PAIRS[self._advance()]
        chars: list[str] = []

        while self.offset < len(self.source):
            char = self._peek()
            if char == "\n":
                break
            self._advance()
            if char == closing:
                return self._make(TokenKind.STRING_LITERAL, start, value="".join(chars))
            if char == "\\" and self.offset < len(self.source) and self._peek() != "\n":
                escaped = self._advance()
                chars.append(ESCAPES.get(escaped, escaped))
            else:
                chars.append(char)

        return self._make(TokenKind.ERROR, start, message="unterminated string literal")

    def _scan_number(self) -> Token:
        start = self._position()
        while self._peek().isdecimal():
            self._advance()

        if self._peek() == "." and self._peek(1).isdecimal():
            self._advance()
            while self._peek().isdecimal():
                self._advance()
            return self._make(TokenKind.NUMBER, start, value=float(self._lexeme(start)))

        return self._make(TokenKind.NUMBER, start, value=int(self._lexeme(start)))

    def _scan_word(self) -> Token:
        start = self._position()

        # "x2" is the quantity marker immediately followed by the quantity
        if self._peek() in ("x", "X") and self._peek(1).isdecimal():
            self._advance()
            return self._make(TokenKind.KEYWORD, start, value=Keyword.X)

        while self._peek().isalnum() or self._peek() == "_":
            self._advance()

        word = self._lexeme(start)
        keyword = KEYWORDS.get(word.casefold())
        if keyword is not None:
            return self._make(TokenKind.KEYWORD, start, value=keyword)
        return self._make(TokenKind.IDENTIFIER, start, value=word)


def tokenize(source: str) -> list[Token]:
    """
    Convert a rule source into a token stream.

    Pure and total: never raises for malformed input. Unrecognized
    characters and unterminated strings become ERROR tokens.

    Args:
        source: Raw rule text

    Returns:
        Tokens in source order, terminated by a single EOF token
    """
    if not isinstance(source, str):
        raise TypeError(f"source must be str, got {type(source).__name__}")
    return Lexer(source).tokenize()
