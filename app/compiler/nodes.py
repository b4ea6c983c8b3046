"""
AST node types for the clinical rule DSL.

The tree is made of frozen dataclasses: each node owns its children and
carries the source span it was parsed from. Nodes are never mutated; the
semantic validator produces a resolved copy with `dataclasses.replace`.

Serialized form (see `to_dict`) is the JSON stored with each rule and
returned to the rule editor:

    {
        "type": "Rule",
        "trigger": {"type": "ConditionClause", "subject": "consulta",
                    "comparison": {"type": "Literal", "value": "dolor de cabeza"}},
        "actions": [
            {"type": "PrescribeAction",
             "medication": {"type": "MedicationRef", "name": "Paracetamol", "resolvedId": 7},
             "quantity": {"type": "Literal", "value": 2},
             "instructions": {"type": "Literal", "value": "cada 8 horas"}}
        ]
    }
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any, Union

from app.compiler.diagnostics import Position, Span
from app.domain.enums import NodeType


@dataclass(frozen=True, slots=True)
class Literal:
    value: str | int | float
    span: Span | None = field(default=None, compare=False)

    def children(self) -> tuple[Node, ...]:
        return ()

    def to_dict(self) -> dict[str, Any]:
        return {"type": NodeType.LITERAL.value, "value": self.value, "span": _span(self.span)}


@dataclass(frozen=True, slots=True)
class MedicationRef:
    """Reference to a medication by name; `resolved_id` is set by validation."""

    raw_name: str
    span: Span | None = field(default=None, compare=False)
    resolved_id: int | None = None

    def children(self) -> tuple[Node, ...]:
        return ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": NodeType.MEDICATION_REF.value,
            "name": self.raw_name,
            "resolvedId": self.resolved_id,
            "span": _span(self.span),
        }


@dataclass(frozen=True, slots=True)
class ConditionRef:
    """Reference to a (chronic) condition by name; `resolved_id` is set by validation."""

    raw_name: str
    span: Span | None = field(default=None, compare=False)
    resolved_id: int | None = None

    def children(self) -> tuple[Node, ...]:
        return ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": NodeType.CONDITION_REF.value,
            "name": self.raw_name,
            "resolvedId": self.resolved_id,
            "span": _span(self.span),
        }


@dataclass(frozen=True, slots=True)
class ConditionClause:
    """Trigger of a rule: `consulta es por "<complaint>"`."""

    subject_keyword: str
    comparison_text: Literal
    span: Span | None = field(default=None, compare=False)

    def children(self) -> tuple[Node, ...]:
        return (self.comparison_text,)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": NodeType.CONDITION_CLAUSE.value,
            "subject": self.subject_keyword,
            "comparison": self.comparison_text.to_dict(),
            "span": _span(self.span),
        }


@dataclass(frozen=True, slots=True)
class PrescribeAction:
    """`dar "<medication>" [x <quantity>] ["<instructions>"]`."""

    medication: MedicationRef
    quantity: Literal | None = None
    instructions: Literal | None = None
    span: Span | None = field(default=None, compare=False)

    def children(self) -> tuple[Node, ...]:
        return tuple(
            n for n in (self.medication, self.quantity, self.instructions) if n is not None
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": NodeType.PRESCRIBE_ACTION.value,
            "medication": self.medication.to_dict(),
            "quantity": self.quantity.to_dict() if self.quantity else None,
            "instructions": self.instructions.to_dict() if self.instructions else None,
            "span": _span(self.span),
        }


@dataclass(frozen=True, slots=True)
class FlagAction:
    """`marcar "<condition>"`."""

    condition: ConditionRef
    span: Span | None = field(default=None, compare=False)

    def children(self) -> tuple[Node, ...]:
        return (self.condition,)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": NodeType.FLAG_ACTION.value,
            "condition": self.condition.to_dict(),
            "span": _span(self.span),
        }


ActionClause = Union[PrescribeAction, FlagAction]


@dataclass(frozen=True, slots=True)
class RuleNode:
    """Root of a compiled rule: one trigger and its ordered actions."""

    trigger: ConditionClause
    actions: tuple[ActionClause, ...] = ()
    span: Span | None = field(default=None, compare=False)

    def children(self) -> tuple[Node, ...]:
        return (self.trigger, *self.actions)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": NodeType.RULE.value,
            "trigger": self.trigger.to_dict(),
            "actions": [action.to_dict() for action in self.actions],
            "span": _span(self.span),
        }


Node = Union[
    RuleNode, ConditionClause, PrescribeAction, FlagAction, MedicationRef, ConditionRef, Literal
]


def walk(node: Node) -> Iterator[Node]:
    """Depth-first, pre-order traversal."""
    yield node
    for child in node.children():
        yield from walk(child)


# ----------------------------------------------------------------------
# (De)serialization helpers
# ----------------------------------------------------------------------


def _span(span: Span | None) -> dict[str, Any] | None:
    return span.to_dict() if span else None


def _span_from(data: dict[str, Any] | None) -> Span | None:
    if not data:
        return None
    return Span(Position(**data["start"]), Position(**data["end"]))


def _literal_from(data: dict[str, Any] | None) -> Literal | None:
    if data is None:
        return None
    return Literal(data["value"], _span_from(data.get("span")))


def _action_from(data: dict[str, Any]) -> ActionClause:
    node_type = data.get("type")
    if node_type == NodeType.PRESCRIBE_ACTION.value:
        med = data["medication"]
        return PrescribeAction(
            medication=MedicationRef(
                med["name"], _span_from(med.get("span")), med.get("resolvedId")
            ),
            quantity=_literal_from(data.get("quantity")),
            instructions=_literal_from(data.get("instructions")),
            span=_span_from(data.get("span")),
        )
    if node_type == NodeType.FLAG_ACTION.value:
        cond = data["condition"]
        return FlagAction(
            condition=ConditionRef(
                cond["name"], _span_from(cond.get("span")), cond.get("resolvedId")
            ),
            span=_span_from(data.get("span")),
        )
    raise ValueError(f"Unknown action node type: {node_type!r}")


def rule_from_dict(data: dict[str, Any]) -> RuleNode:
    """
    Rebuild a RuleNode from its serialized form (as stored by the rule store).

    Raises:
        ValueError: If the payload is not a serialized Rule
    """
    if not isinstance(data, dict) or data.get("type") != NodeType.RULE.value:
        raise ValueError("Serialized AST must be an object with type 'Rule'")

    trigger = data["trigger"]
    return RuleNode(
        trigger=ConditionClause(
            subject_keyword=trigger["subject"],
            comparison_text=_literal_from(trigger["comparison"]),
            span=_span_from(trigger.get("span")),
        ),
        actions=tuple(_action_from(action) for action in data.get("actions", [])),
        span=_span_from(data.get("span")),
    )
