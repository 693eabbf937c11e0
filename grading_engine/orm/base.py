"""
grading_engine/orm/base.py
Declarative base and shared columns for the grading tables
"""
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, DateTime, Integer, MetaData
from sqlalchemy.orm import declarative_base

# Deterministic constraint names, identical on SQLite and PostgreSQL
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "pk": "pk_%(table_name)s",
}

Base = declarative_base(metadata=MetaData(naming_convention=NAMING_CONVENTION))


def utcnow() -> datetime:
    """Naive UTC timestamp, the format every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class BaseModel(Base):
    """
    Abstract base for grading tables: integer id plus audit timestamps.
    """
    __abstract__ = True

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)

    # Services set updated_at explicitly on bulk UPDATEs, onupdate covers ORM flushes
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
