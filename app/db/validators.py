"""Reusable SQLAlchemy validators for the rule store."""

import hashlib
import uuid
from typing import Any

from app.domain.enums import NodeType


def validate_uuid_string(_key: str, value: uuid.UUID | str) -> str:
    """Convert UUID to string and validate format.

    Used with SQLAlchemy's @validates decorator so rule ids are always
    stored as canonical UUID strings.

    Raises:
        ValueError: If the value is not a valid UUID format
    """
    if isinstance(value, uuid.UUID):
        return str(value)

    if not isinstance(value, str):
        raise ValueError(f"Expected UUID or str, got {type(value).__name__}")

    try:
        return str(uuid.UUID(value))
    except ValueError:
        raise ValueError(f"Invalid UUID format: {value}")


def validate_sha256_hex(_key: str, value: str) -> str:
    """Hash columns hold lowercase hex SHA-256 digests."""
    expected_length = hashlib.sha256().digest_size * 2
    if len(value) != expected_length or any(c not in "0123456789abcdef" for c in value):
        raise ValueError(f"Expected a {expected_length}-character hex digest, got {value!r}")
    return value


def validate_rule_ast(_key: str, value: Any) -> dict[str, Any]:
    """Only serialized Rule trees may be stored in the ast column."""
    if not isinstance(value, dict) or value.get("type") != NodeType.RULE.value:
        raise ValueError("ast must be a serialized Rule object")
    return value
