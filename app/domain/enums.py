"""
Domain enums for the clinical rule DSL.

These enums are part of the wire contract: their values appear in the
serialized AST and in the diagnostic payload consumed by the rule editor.
"""

from enum import Enum


class TokenKind(str, Enum):
    """Kind of a lexical token produced by the rule lexer."""

    KEYWORD = "KEYWORD"
    IDENTIFIER = "IDENTIFIER"
    STRING_LITERAL = "STRING_LITERAL"
    NUMBER = "NUMBER"
    OPERATOR = "OPERATOR"
    ERROR = "ERROR"
    EOF = "EOF"


class Keyword(str, Enum):
    """Reserved words of the DSL (matched case-insensitively)."""

    CUANDO = "cuando"
    CONSULTA = "consulta"
    ES = "es"
    POR = "por"
    ENTONCES = "entonces"
    DAR = "dar"
    MARCAR = "marcar"
    X = "x"
    Y = "y"


class DiagnosticSeverity(str, Enum):
    """Severity of a compiler diagnostic. Only ERROR blocks success."""

    ERROR = "ERROR"
    WARNING = "WARNING"


class DiagnosticCode(str, Enum):
    """
    Machine-readable diagnostic codes.

    LEXICAL_ERROR and SYNTAX_ERROR come from the front-end, the rest from
    semantic validation against the medication and condition catalogs.
    """

    LEXICAL_ERROR = "LEXICAL_ERROR"
    SYNTAX_ERROR = "SYNTAX_ERROR"
    UNKNOWN_MEDICATION = "UNKNOWN_MEDICATION"
    UNKNOWN_CONDITION = "UNKNOWN_CONDITION"
    INVALID_QUANTITY = "INVALID_QUANTITY"
    CONTROLLED_MEDICATION = "CONTROLLED_MEDICATION"
    INSUFFICIENT_STOCK = "INSUFFICIENT_STOCK"
    DUPLICATE_ACTION = "DUPLICATE_ACTION"


class NodeType(str, Enum):
    """Discriminator of serialized AST nodes."""

    RULE = "Rule"
    CONDITION_CLAUSE = "ConditionClause"
    PRESCRIBE_ACTION = "PrescribeAction"
    FLAG_ACTION = "FlagAction"
    MEDICATION_REF = "MedicationRef"
    CONDITION_REF = "ConditionRef"
    LITERAL = "Literal"


class CatalogBackend(str, Enum):
    """Where medication/condition catalogs are loaded from."""

    FILE = "file"
    CLINIC_API = "clinic_api"
