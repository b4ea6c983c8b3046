from __future__ import annotations

import logging
from typing import Annotated

import anyio
import anyio.to_thread
from fastapi import APIRouter, Query, Response, status
from fastapi.responses import JSONResponse

from app.api.schemas.rule import (
    CompileResponse,
    RuleSaveRequest,
    RuleSaveResponse,
    RuleSourceRequest,
    StoredRuleListResponse,
    StoredRuleResponse,
)
from app.compiler.compiler import compile_rule
from app.compiler.nodes import RuleNode, rule_from_dict
from app.compiler.renderer import render_ast
from app.core.config import settings
from app.core.dependencies import AsyncDbSession, Catalogs
from app.core.errors import NotFoundError, RenderError, StorageError, ValidationError
from app.db.models import StoredRule
from app.repos.rule_repo import get_rule, list_rules
from app.services.rule_store import save_rule

logger = logging.getLogger(__name__)

router = APIRouter(tags=["rules"])

PNG_MEDIA_TYPE = "image/png"


def _require_source(source: str) -> str:
    """Reject requests that cannot be compiled at all (400, not a diagnostic)."""
    if not source.strip():
        raise ValidationError("Rule source cannot be empty")
    size = len(source.encode("utf-8"))
    if size > settings.rule_max_source_bytes:
        raise ValidationError(
            "Rule source exceeds maximum size",
            details={"size_bytes": size, "max_bytes": settings.rule_max_source_bytes},
        )
    return source


async def _render_png(ast: RuleNode) -> Response:
    """Render off the event loop, bounded by RENDER_TIMEOUT_SECONDS."""
    try:
        with anyio.fail_after(settings.render_timeout_seconds):
            png = await anyio.to_thread.run_sync(render_ast, ast, abandon_on_cancel=True)
    except TimeoutError as e:
        raise RenderError(
            "Rule diagram rendering timed out",
            details={"timeout_seconds": settings.render_timeout_seconds},
        ) from e
    return Response(content=png, media_type=PNG_MEDIA_TYPE)


async def _stored_png(stored: StoredRule) -> Response:
    try:
        ast = rule_from_dict(stored.ast)
    except (KeyError, TypeError, ValueError) as e:
        logger.error("Stored AST for rule %s is unreadable: %s", stored.rule_id, e)
        raise StorageError(
            "Stored rule AST cannot be read", details={"rule_id": stored.rule_id}
        ) from e
    return await _render_png(ast)


@router.post("/rules/validate", response_model=CompileResponse)
async def validate_rule_source(payload: RuleSourceRequest, catalogs: Catalogs):
    """
    Compile a rule without storing it.

    Always 200: compilation problems are reported in the payload
    (`ok`, `error`, `missing`, `diagnostics`).
    """
    result = compile_rule(_require_source(payload.rule), catalogs)
    return result.to_payload()


@router.post("/rules/save", response_model=RuleSaveResponse)
async def save_rule_source(payload: RuleSaveRequest, db: AsyncDbSession, catalogs: Catalogs):
    """
    Re-validate and persist a rule.

    Nothing is written when compilation fails; the payload then carries the
    diagnostics exactly like /rules/validate.
    """
    outcome = await save_rule(
        db, _require_source(payload.rule), catalogs, rule_id=payload.rule_id
    )
    body = outcome.result.to_payload()
    if outcome.saved:
        body["rule"] = StoredRuleResponse.model_validate(outcome.rule).model_dump(mode="json")
        body["created"] = outcome.created
    return body


@router.post(
    "/rules/ast",
    response_class=Response,
    responses={200: {"content": {PNG_MEDIA_TYPE: {}}}, 422: {"model": CompileResponse}},
)
async def preview_rule_ast(payload: RuleSourceRequest, catalogs: Catalogs):
    """
    PNG diagram of a rule's AST.

    A rule that does not compile has no diagram: 422 with the compile payload.
    """
    result = compile_rule(_require_source(payload.rule), catalogs)
    if not result.success:
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content=result.to_payload()
        )
    return await _render_png(result.ast)


@router.get("/rules", response_model=StoredRuleListResponse)
async def get_rules(
    db: AsyncDbSession,
    limit: Annotated[int, Query(ge=1, le=100, description="Number of rules (max 100)")] = 50,
):
    """Stored rules, most recently updated first."""
    rules = await list_rules(db, limit=limit)
    return StoredRuleListResponse(
        items=[StoredRuleResponse.model_validate(r) for r in rules], limit=limit
    )


@router.get(
    "/rules/ast",
    response_class=Response,
    responses={200: {"content": {PNG_MEDIA_TYPE: {}}}},
)
async def get_latest_rule_ast(db: AsyncDbSession):
    """PNG diagram of the most recently saved rule."""
    latest = await list_rules(db, limit=1)
    if not latest:
        raise NotFoundError("No rules have been saved")
    return await _stored_png(latest[0])


@router.get("/rules/{rule_id}", response_model=StoredRuleResponse)
async def get_stored_rule(rule_id: str, db: AsyncDbSession):
    return await get_rule(db, rule_id)


@router.get(
    "/rules/{rule_id}/ast",
    response_class=Response,
    responses={200: {"content": {PNG_MEDIA_TYPE: {}}}},
)
async def get_stored_rule_ast(rule_id: str, db: AsyncDbSession):
    """PNG diagram of a stored rule (no recompilation)."""
    return await _stored_png(await get_rule(db, rule_id))
