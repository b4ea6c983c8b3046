from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class RuleSourceRequest(BaseModel):
    """Body of validate / ast preview requests, as sent by the rule editor."""

    rule: str = Field(description="Rule source in the clinical DSL")


class RuleSaveRequest(RuleSourceRequest):
    rule_id: str | None = Field(
        default=None, description="Replace this stored rule instead of keying by source"
    )

    @field_validator("rule_id")
    @classmethod
    def validate_rule_id(cls, v: str | None) -> str | None:
        if v is None:
            return v
        try:
            return str(uuid.UUID(v))
        except ValueError:
            raise ValueError(f"rule_id must be a UUID, got '{v}'")


class DiagnosticResponse(BaseModel):
    severity: str
    code: str
    message: str
    span: dict[str, Any] | None = None


class CompileResponse(BaseModel):
    """
    Editor payload.

    `error` is "Medication not found in database" when any medication is
    unknown; the editor then lists `missing` comma-joined.
    """

    ok: bool
    error: str | None = None
    missing: list[str] | None = None
    ast: dict[str, Any] | None = None
    diagnostics: list[DiagnosticResponse] = Field(default_factory=list)


class StoredRuleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    rule_id: str
    source_text: str
    source_hash: str
    ast: dict[str, Any]
    ast_hash: str
    created_at: datetime
    updated_at: datetime


class RuleSaveResponse(CompileResponse):
    rule: StoredRuleResponse | None = None
    created: bool | None = None


class StoredRuleListResponse(BaseModel):
    items: list[StoredRuleResponse]
    limit: int
