"""
Repository functions for stored rules.

Persistence half of the rule store: `write_rule` / `read_rule` plus the
lookups used by the API. Functions flush but never commit; the caller owns
the transaction. Database failures are rolled back and surfaced as
StorageError without retrying.
"""

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.compiler.canonicalizer import ast_hash, canonicalize_json, source_hash
from app.core.errors import ConflictError, NotFoundError, StorageError
from app.db.models import StoredRule, utc_now

logger = logging.getLogger(__name__)

RULE_NOT_FOUND = "Rule not found"


async def read_rule(db: AsyncSession, rule_id: str) -> StoredRule | None:
    try:
        return await db.get(StoredRule, str(rule_id))
    except SQLAlchemyError as e:
        raise StorageError("Failed to read rule", details={"rule_id": str(rule_id)}) from e


async def get_rule(db: AsyncSession, rule_id: str) -> StoredRule:
    rule = await read_rule(db, rule_id)
    if rule is None:
        raise NotFoundError(RULE_NOT_FOUND, details={"rule_id": str(rule_id)})
    return rule


async def find_by_source_hash(db: AsyncSession, digest: str) -> StoredRule | None:
    stmt = select(StoredRule).where(StoredRule.source_hash == digest)
    try:
        result = await db.execute(stmt)
    except SQLAlchemyError as e:
        raise StorageError("Failed to look up rule by source", details={"error": str(e)}) from e
    return result.scalar_one_or_none()


async def list_rules(db: AsyncSession, *, limit: int = 50) -> list[StoredRule]:
    """Most recently updated first; rule_id breaks ties for a stable order."""
    stmt = (
        select(StoredRule)
        .order_by(StoredRule.updated_at.desc(), StoredRule.rule_id)
        .limit(limit)
    )
    try:
        result = await db.execute(stmt)
    except SQLAlchemyError as e:
        raise StorageError("Failed to list rules", details={"error": str(e)}) from e
    return list(result.scalars().all())


async def write_rule(
    db: AsyncSession,
    *,
    source_text: str,
    ast: dict[str, Any],
    rule_id: str | None = None,
) -> tuple[StoredRule, bool]:
    """
    Persist a compiled rule.

    With `rule_id` the stored rule is replaced as a whole. Without it the
    row is keyed by the source hash: the same text always maps to the same
    row, and re-saving only refreshes the AST and `updated_at`.

    Returns:
        (stored rule, created) where created is True for a new row

    Raises:
        NotFoundError: `rule_id` given but no such rule
        ConflictError: the source is already stored under another id
        StorageError: any database failure (the session is rolled back)
    """
    digest = source_hash(source_text)
    canonical_ast = canonicalize_json(ast)
    fields = {
        "source_text": source_text,
        "source_hash": digest,
        "ast": canonical_ast,
        "ast_hash": ast_hash(canonical_ast),
    }

    try:
        existing = await find_by_source_hash(db, digest)

        if rule_id is not None:
            rule = await get_rule(db, rule_id)
            if existing is not None and existing.rule_id != rule.rule_id:
                raise ConflictError(
                    "Rule source is already stored under another id",
                    details={"rule_id": str(rule_id), "existing_rule_id": existing.rule_id},
                )
            created = False
        elif existing is not None:
            rule = existing
            created = False
        else:
            rule = StoredRule(**fields)
            db.add(rule)
            created = True

        for key, value in fields.items():
            setattr(rule, key, value)
        if not created:
            rule.updated_at = utc_now()

        await db.flush()

    except IntegrityError as e:
        await db.rollback()
        raise ConflictError(
            "Rule source was saved concurrently", details={"source_hash": digest}
        ) from e
    except SQLAlchemyError as e:
        await db.rollback()
        logger.warning("Failed to write rule: %s", e)
        raise StorageError("Failed to write rule", details={"error": str(e)}) from e
    except StorageError:
        await db.rollback()
        raise

    logger.info("%s rule %s", "Created" if created else "Updated", rule.rule_id)
    return rule, created
