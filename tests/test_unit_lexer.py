"""
Unit tests for the rule lexer.

Tests cover:
- Keywords (case-insensitive), strings, numbers, operators
- The "x2" quantity shorthand
- Comments and line/column tracking
- ERROR tokens for unterminated strings and unknown characters
"""

import pytest

from app.compiler.lexer import tokenize
from app.domain.enums import Keyword, TokenKind


def kinds(source: str) -> list[TokenKind]:
    return [t.kind for t in tokenize(source)]


class TestTokenize:
    def test_full_rule(self):
        tokens = tokenize(
            'cuando consulta es por "dolor de cabeza" entonces dar "Paracetamol" x 2 "cada 8 horas"'
        )

        assert [t.kind for t in tokens] == [
            TokenKind.KEYWORD,
            TokenKind.KEYWORD,
            TokenKind.KEYWORD,
            TokenKind.KEYWORD,
            TokenKind.STRING_LITERAL,
            TokenKind.KEYWORD,
            TokenKind.KEYWORD,
            TokenKind.STRING_LITERAL,
            TokenKind.KEYWORD,
            TokenKind.NUMBER,
            TokenKind.STRING_LITERAL,
            TokenKind.EOF,
        ]
        assert tokens[4].value == "dolor de cabeza"
        assert tokens[9].value == 2

    def test_keywords_are_case_insensitive(self):
        tokens = tokenize("CUANDO Consulta ES por")

        assert [t.value for t in tokens[:-1]] == [
            Keyword.CUANDO,
            Keyword.CONSULTA,
            Keyword.ES,
            Keyword.POR,
        ]
        assert tokens[0].text == "CUANDO"

    def test_unquoted_word_is_identifier(self):
        tokens = tokenize("dar Paracetamol")

        assert tokens[1].kind == TokenKind.IDENTIFIER
        assert tokens[1].value == "Paracetamol"

    def test_x_followed_by_digits_is_quantity_marker(self):
        tokens = tokenize("x2")

        assert tokens[0].is_keyword(Keyword.X)
        assert tokens[1].kind == TokenKind.NUMBER
        assert tokens[1].value == 2

    def test_word_starting_with_x_is_not_split(self):
        tokens = tokenize("xilocaina")

        assert tokens[0].kind == TokenKind.IDENTIFIER
        assert tokens[0].text == "xilocaina"

    def test_decimal_number(self):
        tokens = tokenize("2.5")

        assert tokens[0].value == 2.5
        assert isinstance(tokens[0].value, float)

    @pytest.mark.parametrize("arrow", ["=>", "->", "⇒", "→"])
    def test_arrows_normalize_to_implies(self, arrow):
        tokens = tokenize(arrow)

        assert tokens[0].kind == TokenKind.OPERATOR
        assert tokens[0].value == "=>"
        assert tokens[0].text == arrow

    @pytest.mark.parametrize(
        "source",
        ['"Asma"', "'Asma'", "“Asma”", "«Asma»"],
    )
    def test_quote_styles(self, source):
        tokens = tokenize(source)

        assert tokens[0].kind == TokenKind.STRING_LITERAL
        assert tokens[0].value == "Asma"

    def test_escape_sequences(self):
        tokens = tokenize(r'"dos \"veces\"\tal dia"')

        assert tokens[0].value == 'dos "veces"\tal dia'

    def test_comments_are_skipped(self):
        source = '# regla de cefalea\ncuando // disparador\n"tos"'

        assert kinds(source) == [TokenKind.KEYWORD, TokenKind.STRING_LITERAL, TokenKind.EOF]

    def test_positions_are_one_based(self):
        tokens = tokenize('cuando\n  dar "Ibuprofeno"')

        dar = tokens[1]
        assert (dar.position.line, dar.position.column) == (2, 3)
        assert dar.span.start.offset == 9
        assert tokens[2].span.end.column == 19


class TestLexicalErrors:
    def test_unterminated_string(self):
        tokens = tokenize('dar "Paracetamol')

        assert tokens[1].kind == TokenKind.ERROR
        assert tokens[1].message == "unterminated string literal"
        assert tokens[-1].kind == TokenKind.EOF

    def test_string_does_not_cross_lines(self):
        tokens = tokenize('"tos\ndar')

        assert tokens[0].kind == TokenKind.ERROR
        assert tokens[1].is_keyword(Keyword.DAR)

    def test_unrecognized_character_continues_scanning(self):
        tokens = tokenize('dar @ "Asma"')

        assert [t.kind for t in tokens] == [
            TokenKind.KEYWORD,
            TokenKind.ERROR,
            TokenKind.STRING_LITERAL,
            TokenKind.EOF,
        ]
        assert tokens[1].message == "unrecognized character '@'"

    def test_negative_sign_is_not_an_operator(self):
        tokens = tokenize("x -2")

        assert tokens[1].kind == TokenKind.ERROR


class TestStreamShape:
    @pytest.mark.parametrize("source", ["", "   \n\t", "// solo comentario"])
    def test_blank_source_is_single_eof(self, source):
        tokens = tokenize(source)

        assert len(tokens) == 1
        assert tokens[0].kind == TokenKind.EOF
        assert tokens[0].describe() == "end of input"

    def test_exactly_one_eof(self):
        tokens = tokenize('cuando @@ "x')

        assert sum(1 for t in tokens if t.kind == TokenKind.EOF) == 1
        assert tokens[-1].kind == TokenKind.EOF

    def test_non_string_source_is_rejected(self):
        with pytest.raises(TypeError):
            tokenize(None)
