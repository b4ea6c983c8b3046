"""
SQLAlchemy 2.x ORM models for the clinical rules API.

Models use the Mapped[] type annotation syntax and mapped_column. Column
types are portable between PostgreSQL and SQLite.
"""

import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import JSON, DateTime, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, validates

from app.db.validators import validate_rule_ast, validate_sha256_hex, validate_uuid_string


def utc_now() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for all ORM models."""


class StoredRule(Base):
    """
    A successfully compiled rule source and its AST.

    Created on the first successful save and replaced as a whole on
    re-save; validation alone never touches this table. `source_hash` is
    unique so saving the same text twice lands on the same row.
    """

    __tablename__ = "stored_rules"

    rule_id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    source_text: Mapped[str] = mapped_column(Text, nullable=False)
    source_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)
    ast: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    ast_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    @validates("rule_id")
    def _validate_rule_id(self, key: str, value: Any) -> str:
        return validate_uuid_string(key, value)

    @validates("source_hash", "ast_hash")
    def _validate_hashes(self, key: str, value: str) -> str:
        return validate_sha256_hex(key, value)

    @validates("ast")
    def _validate_ast(self, key: str, value: Any) -> dict[str, Any]:
        return validate_rule_ast(key, value)

    def __repr__(self) -> str:
        return f"<StoredRule(rule_id={self.rule_id}, source_hash={self.source_hash[:12]})>"
