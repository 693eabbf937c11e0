"""
Grading Rubric Model

Reusable scoring template owned by an organization. Criteria and their
levels are embedded (not independently addressable) and stored as JSON.

At most one rubric per organization may be the default; the partial
unique index below makes a second default impossible at commit time.
"""
from typing import Any, Dict, List

from sqlalchemy import Boolean, Column, Index, Integer, String, Text, true

from grading_engine.core.db_types import UniversalJSON
from grading_engine.orm.base import BaseModel, isoformat
from grading_engine.schemas.rubric import Criterion, RubricDefinition


class GradingRubric(BaseModel):
    """
    Rubric owned by an organization.

    criteria holds an ordered list of serialized Criterion models.
    """
    __tablename__ = "grading_rubrics"

    organization_id = Column(Integer, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    is_default = Column(Boolean, nullable=False, default=False)
    criteria = Column(UniversalJSON, nullable=False, default=list)

    # Actor id from the identity collaborator
    created_by = Column(Integer, nullable=False)

    __table_args__ = (
        Index("idx_grading_rubrics_org_created", "organization_id", "created_at"),
    )

    @property
    def criterion_models(self) -> List[Criterion]:
        return [Criterion.model_validate(c) for c in (self.criteria or [])]

    def to_definition(self) -> RubricDefinition:
        """Typed view used by the score calculator."""
        return RubricDefinition(name=self.name, criteria=self.criterion_models)

    def __repr__(self) -> str:
        return f"<GradingRubric(id={self.id}, org={self.organization_id}, name='{self.name}', default={self.is_default})>"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "name": self.name,
            "description": self.description,
            "is_default": bool(self.is_default),
            "criteria": list(self.criteria or []),
            "created_by": self.created_by,
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }


Index(
    "uq_grading_rubrics_one_default_per_org",
    GradingRubric.organization_id,
    unique=True,
    postgresql_where=GradingRubric.is_default == true(),
    sqlite_where=GradingRubric.is_default == true(),
)
