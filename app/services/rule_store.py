"""
Rule store: validate-then-persist.

`save_rule` always recompiles the source against the catalog snapshot it
is given, immediately before writing. A rule that was valid when the
editor last validated it may have gone stale (a medication removed from
inventory); such a save returns the failing CompileResult and leaves the
store untouched.

The snapshot is not locked against the clinic inventory: a medication
removed between this compile and the commit is still saved.
"""

import logging
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.compiler.compiler import CompileResult, compile_rule
from app.core.errors import RuleServiceError, StorageError
from app.db.models import StoredRule
from app.repos.rule_repo import write_rule
from app.services.catalogs import CatalogSnapshot

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SaveOutcome:
    result: CompileResult
    rule: StoredRule | None = None
    created: bool = False

    @property
    def saved(self) -> bool:
        return self.rule is not None


async def save_rule(
    db: AsyncSession,
    source: str,
    catalogs: CatalogSnapshot,
    *,
    rule_id: str | None = None,
) -> SaveOutcome:
    """
    Compile `source` and persist it when compilation succeeds.

    Either the rule is fully written and committed or nothing changes.

    Args:
        db: Session owned by the caller (committed or rolled back here)
        source: Rule text
        catalogs: Catalog snapshot to validate against
        rule_id: Replace this stored rule instead of keying by source

    Returns:
        SaveOutcome; `rule` is None when compilation failed

    Raises:
        NotFoundError, ConflictError, StorageError: from the write
    """
    result = compile_rule(source, catalogs)
    if not result.success:
        logger.info("Rule not saved: %d diagnostics", len(result.diagnostics))
        _record_save_metric("rejected")
        return SaveOutcome(result=result)

    try:
        rule, created = await write_rule(
            db, source_text=source, ast=result.ast.to_dict(), rule_id=rule_id
        )
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        _record_save_metric("error")
        logger.warning("Commit of rule failed: %s", e)
        raise StorageError("Failed to commit rule", details={"error": str(e)}) from e
    except RuleServiceError:
        _record_save_metric("error")
        raise

    _record_save_metric("created" if created else "updated")
    return SaveOutcome(result=result, rule=rule, created=created)


def _record_save_metric(outcome: str) -> None:
    try:
        from app.core.observability import metrics

        metrics.rule_saves_total.labels(outcome=outcome).inc()
    except Exception as e:
        logger.debug("Failed to record save metric: %s", e)
