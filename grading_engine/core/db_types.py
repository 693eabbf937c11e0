"""
Dialect-aware database types.

Embedded rubric criteria and submission criterion scores are stored as
JSON documents: JSONB on PostgreSQL, generic JSON on SQLite and others.
"""
from typing import Any

from pydantic import BaseModel
from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.engine import Dialect
from sqlalchemy.types import TypeDecorator


def _plain(value: Any) -> Any:
    """Replace pydantic models (at any depth) with their JSON-ready dicts."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, (list, tuple)):
        return [_plain(item) for item in value]
    if isinstance(value, dict):
        return {key: _plain(item) for key, item in value.items()}
    return value


class UniversalJSON(TypeDecorator):
    """
    JSON column accepting plain data or pydantic models.

    Python None is stored as SQL NULL, not the JSON literal null, so
    "no criterion scores" is queryable with IS NULL on every dialect.
    """
    impl = JSON
    cache_ok = True

    def load_dialect_impl(self, dialect: Dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(JSONB(none_as_null=True))
        return dialect.type_descriptor(JSON(none_as_null=True))

    def process_bind_param(self, value: Any, dialect: Dialect) -> Any:
        if value is None:
            return None
        return _plain(value)
