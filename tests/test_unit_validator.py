"""
Unit tests for semantic validation of parsed rules against catalogs.
"""

import pytest

from app.compiler.lexer import tokenize
from app.compiler.parser import parse
from app.compiler.validator import validate_rule
from app.domain.enums import DiagnosticCode, DiagnosticSeverity
from app.services.catalogs import CatalogSnapshot, MedicationRecord


def ast_of(source: str):
    result = parse(tokenize(source))
    assert result.ast is not None, result.diagnostics
    return result.ast


def codes(result) -> list[DiagnosticCode]:
    return [d.code for d in result.diagnostics]


class TestReferenceResolution:
    def test_resolves_ids(self, catalogs):
        ast = ast_of(
            'cuando consulta es por "tos" entonces dar "Loratadina" x 1, marcar "Asma"'
        )

        result = validate_rule(ast, catalogs)

        assert result.diagnostics == ()
        assert result.missing_references == frozenset()
        assert result.resolved_ast.actions[0].medication.resolved_id == 6
        assert result.resolved_ast.actions[1].condition.resolved_id == 1

    def test_lookup_ignores_case_and_spacing(self, catalogs):
        ast = ast_of('cuando consulta es por "jaqueca" entonces marcar "  migrana   CRONICA "')

        result = validate_rule(ast, catalogs)

        assert result.missing_references == frozenset()
        assert result.resolved_ast.actions[0].condition.resolved_id == 4

    def test_input_ast_is_not_mutated(self, catalogs):
        ast = ast_of('cuando consulta es por "tos" entonces dar "Loratadina"')

        validate_rule(ast, catalogs)

        assert ast.actions[0].medication.resolved_id is None

    def test_unknown_medication(self, catalogs):
        ast = ast_of('cuando consulta es por "tos" entonces dar "Jarabe X"')

        result = validate_rule(ast, catalogs)

        assert codes(result) == [DiagnosticCode.UNKNOWN_MEDICATION]
        assert result.diagnostics[0].message == "Medication not found in database: 'Jarabe X'"
        assert result.missing_references == frozenset({"Jarabe X"})

    def test_unknown_condition(self, catalogs):
        ast = ast_of('cuando consulta es por "tos" entonces marcar "Gota"')

        result = validate_rule(ast, catalogs)

        assert codes(result) == [DiagnosticCode.UNKNOWN_CONDITION]
        assert result.diagnostics[0].message == "Condition not found in database: 'Gota'"
        assert result.missing_references == frozenset({"Gota"})

    def test_collects_every_missing_reference(self, empty_catalogs):
        ast = ast_of(
            'cuando consulta es por "tos" entonces '
            'dar "Paracetamol", dar "Ibuprofeno", marcar "Asma"'
        )

        result = validate_rule(ast, empty_catalogs)

        assert result.missing_references == frozenset({"Paracetamol", "Ibuprofeno", "Asma"})
        assert len(result.diagnostics) == 3

    def test_missing_names_deduplicated_case_insensitively(self, empty_catalogs):
        ast = ast_of(
            'cuando consulta es por "tos" entonces dar "Paracetamol" y dar "PARACETAMOL"'
        )

        result = validate_rule(ast, empty_catalogs)

        assert result.missing_references == frozenset({"Paracetamol"})

    def test_medication_and_condition_misses_share_one_name(self, empty_catalogs):
        """Each code is still reported, but the name is listed once."""
        ast = ast_of('cuando consulta es por "tos" entonces dar "Asma" y marcar "asma"')

        result = validate_rule(ast, empty_catalogs)

        assert codes(result) == [
            DiagnosticCode.UNKNOWN_MEDICATION,
            DiagnosticCode.UNKNOWN_CONDITION,
        ]
        assert result.missing_references == frozenset({"Asma"})


class TestQuantityChecks:
    def test_zero_quantity_is_an_error(self, catalogs):
        ast = ast_of('cuando consulta es por "tos" entonces dar "Loratadina" x 0')

        result = validate_rule(ast, catalogs)

        assert codes(result) == [DiagnosticCode.INVALID_QUANTITY]
        assert result.diagnostics[0].severity == DiagnosticSeverity.ERROR

    def test_quantity_above_stock_is_a_warning(self, catalogs):
        ast = ast_of('cuando consulta es por "crisis" entonces dar "Salbutamol" x 20')

        result = validate_rule(ast, catalogs)

        assert codes(result) == [DiagnosticCode.INSUFFICIENT_STOCK]
        assert result.diagnostics[0].severity == DiagnosticSeverity.WARNING
        assert "exceeds stock (12)" in result.diagnostics[0].message

    def test_unknown_stock_is_not_checked(self):
        snapshot = CatalogSnapshot.from_records(medications=[MedicationRecord(9, "Suero")])
        ast = ast_of('cuando consulta es por "deshidratacion" entonces dar "Suero" x 1000')

        result = validate_rule(ast, snapshot)

        assert result.diagnostics == ()


class TestWarnings:
    def test_controlled_medication(self, catalogs):
        ast = ast_of('cuando consulta es por "dolor severo" entonces dar "morfina" x 1')

        result = validate_rule(ast, catalogs)

        assert codes(result) == [DiagnosticCode.CONTROLLED_MEDICATION]
        assert "'Morfina' is a controlled medication" in result.diagnostics[0].message
        assert result.missing_references == frozenset()

    def test_duplicate_action(self, catalogs):
        ast = ast_of(
            'cuando consulta es por "tos" entonces marcar "Asma", dar "Loratadina", marcar "asma"'
        )

        result = validate_rule(ast, catalogs)

        assert codes(result) == [DiagnosticCode.DUPLICATE_ACTION]
        assert result.diagnostics[0].severity == DiagnosticSeverity.WARNING

    def test_same_name_as_medication_and_condition_is_not_duplicate(self):
        snapshot = CatalogSnapshot.from_records(
            medications=[MedicationRecord(1, "Insulina")],
        )
        ast = ast_of(
            'cuando consulta es por "glucosa alta" entonces dar "Insulina", marcar "Insulina"'
        )

        result = validate_rule(ast, snapshot)

        assert codes(result) == [DiagnosticCode.UNKNOWN_CONDITION]


class TestCallerContract:
    def test_rejects_non_rule_ast(self, catalogs):
        with pytest.raises(TypeError):
            validate_rule(None, catalogs)

    def test_rejects_non_snapshot_catalogs(self):
        ast = ast_of('cuando consulta es por "tos" entonces marcar "Asma"')

        with pytest.raises(TypeError):
            validate_rule(ast, {"medications": {}})
