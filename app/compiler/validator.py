"""
Semantic validation for parsed rules.

Cross-checks every MedicationRef and ConditionRef of a RuleNode against
read-only catalog snapshots:
- Referenced medications exist in the inventory
- Flagged conditions exist in the condition catalog
- Prescription quantities are positive
- Controlled medications, insufficient stock and duplicated actions are
  reported as warnings

The walk never stops at the first miss: all unresolved names in the rule
are collected before returning. The input AST and the catalogs are never
mutated; resolved ids are set on a copy.
"""

import logging
from dataclasses import dataclass, replace

from app.compiler.diagnostics import Diagnostic, Span
from app.compiler.nodes import ConditionRef, FlagAction, MedicationRef, PrescribeAction, RuleNode
from app.domain.enums import DiagnosticCode
from app.services.catalogs import CatalogSnapshot, normalize_name

logger = logging.getLogger(__name__)

MEDICATION_NOT_FOUND = "Medication not found in database"
CONDITION_NOT_FOUND = "Condition not found in database"


@dataclass(frozen=True, slots=True)
class SemanticResult:
    resolved_ast: RuleNode
    diagnostics: tuple[Diagnostic, ...]
    missing_references: frozenset[str]


class _Walk:
    """Accumulator shared by the per-node checks of one validation."""

    def __init__(self, catalogs: CatalogSnapshot):
        self.catalogs = catalogs
        self.diagnostics: list[Diagnostic] = []
        # normalized name -> first raw spelling seen; medications and conditions
        # share the key so each distinct name is reported once
        self.missing: dict[str, str] = {}
        self.seen_targets: set[tuple[str, str]] = set()

    def report_missing(self, raw_name: str) -> None:
        self.missing.setdefault(normalize_name(raw_name), raw_name)

    def check_duplicate(self, kind: str, raw_name: str, span: Span | None) -> None:
        key = (kind, normalize_name(raw_name))
        if key in self.seen_targets:
            self.diagnostics.append(
                Diagnostic.warning(
                    DiagnosticCode.DUPLICATE_ACTION,
                    f"'{raw_name}' appears in more than one action of this rule",
                    span,
                )
            )
        self.seen_targets.add(key)


def validate_rule(ast: RuleNode, catalogs: CatalogSnapshot) -> SemanticResult:
    """
    Resolve catalog references of a parsed rule.

    Args:
        ast: Parsed rule (must not be None)
        catalogs: Read-only medication/condition snapshot

    Returns:
        SemanticResult with a resolved copy of the AST, diagnostics in
        action order and the case-insensitively deduplicated set of raw
        names that could not be resolved

    Raises:
        TypeError: If `ast` is not a RuleNode (caller contract violation)
    """
    if not isinstance(ast, RuleNode):
        raise TypeError(f"validate_rule expects a RuleNode, got {type(ast).__name__}")
    if not isinstance(catalogs, CatalogSnapshot):
        raise TypeError(f"catalogs must be a CatalogSnapshot, got {type(catalogs).__name__}")

    walk = _Walk(catalogs)
    actions = []
    for action in ast.actions:
        if isinstance(action, PrescribeAction):
            actions.append(_validate_prescribe(action, walk))
        elif isinstance(action, FlagAction):
            actions.append(_validate_flag(action, walk))
        else:
            raise TypeError(f"Unsupported action node: {type(action).__name__}")

    result = SemanticResult(
        resolved_ast=replace(ast, actions=tuple(actions)),
        diagnostics=tuple(walk.diagnostics),
        missing_references=frozenset(walk.missing.values()),
    )

    if result.missing_references:
        logger.debug("Unresolved references: %s", sorted(result.missing_references))
    return result


def _validate_prescribe(action: PrescribeAction, walk: _Walk) -> PrescribeAction:
    """
    Check one prescription.

    Checks:
    1. Medication exists (UNKNOWN_MEDICATION)
    2. Quantity, when given, is positive (INVALID_QUANTITY)
    3. Controlled medication (warning)
    4. Quantity does not exceed recorded stock (warning)
    5. Medication not already used in this rule (warning)
    """
    medication = _resolve_medication(action.medication, walk)
    quantity = action.quantity.value if action.quantity is not None else None

    if quantity is not None and quantity <= 0:
        walk.diagnostics.append(
            Diagnostic.error(
                DiagnosticCode.INVALID_QUANTITY,
                f"Quantity for '{medication.raw_name}' must be greater than zero (got {quantity})",
                action.quantity.span,
            )
        )

    record = walk.catalogs.find_medication(medication.raw_name)
    if record is not None:
        if record.is_controlled:
            walk.diagnostics.append(
                Diagnostic.warning(
                    DiagnosticCode.CONTROLLED_MEDICATION,
                    f"'{record.name}' is a controlled medication and requires a dispense record",
                    medication.span,
                )
            )
        if quantity is not None and record.stock is not None and quantity > record.stock:
            walk.diagnostics.append(
                Diagnostic.warning(
                    DiagnosticCode.INSUFFICIENT_STOCK,
                    f"Quantity {quantity} of '{record.name}' exceeds stock ({record.stock:g})",
                    action.quantity.span,
                )
            )

    walk.check_duplicate("medication", medication.raw_name, action.span)
    return replace(action, medication=medication)


def _validate_flag(action: FlagAction, walk: _Walk) -> FlagAction:
    condition = _resolve_condition(action.condition, walk)
    walk.check_duplicate("condition", condition.raw_name, action.span)
    return replace(action, condition=condition)


def _resolve_medication(ref: MedicationRef, walk: _Walk) -> MedicationRef:
    record = walk.catalogs.find_medication(ref.raw_name)
    if record is None:
        walk.report_missing(ref.raw_name)
        walk.diagnostics.append(
            Diagnostic.error(
                DiagnosticCode.UNKNOWN_MEDICATION,
                f"{MEDICATION_NOT_FOUND}: '{ref.raw_name}'",
                ref.span,
            )
        )
        return ref
    return replace(ref, resolved_id=record.id)


def _resolve_condition(ref: ConditionRef, walk: _Walk) -> ConditionRef:
    record = walk.catalogs.find_condition(ref.raw_name)
    if record is None:
        walk.report_missing(ref.raw_name)
        walk.diagnostics.append(
            Diagnostic.error(
                DiagnosticCode.UNKNOWN_CONDITION,
                f"{CONDITION_NOT_FOUND}: '{ref.raw_name}'",
                ref.span,
            )
        )
        return ref
    return replace(ref, resolved_id=record.id)
