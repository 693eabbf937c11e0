"""
Submission Model

A learner's completed attempt as seen by the grading engine. The quiz
flow owns the record; only the grading fields live here.

Status flow: pending → grading → graded, pending → graded,
auto_graded at creation only.
"""
import enum
from typing import Any, Dict, List, Optional

from sqlalchemy import Column, DateTime, Enum as SQLEnum, Index, Integer, Numeric, Text

from grading_engine.core.db_types import UniversalJSON
from grading_engine.orm.base import BaseModel, isoformat, utcnow
from grading_engine.schemas.rubric import CriterionScore


class GradingStatus(str, enum.Enum):
    """Lifecycle stage of a submission with respect to manual review."""
    PENDING = "pending"
    GRADING = "grading"
    GRADED = "graded"
    AUTO_GRADED = "auto_graded"


class Submission(BaseModel):
    """
    Grading-related view of a quiz attempt.

    manual_score and automatic_score are percentages (0-100).
    criterion_scores is present only when a rubric was used.
    """
    __tablename__ = "grading_submissions"

    organization_id = Column(Integer, nullable=False, index=True)
    instructor_id = Column(Integer, nullable=False, index=True)
    rubric_id = Column(Integer, nullable=True)

    automatic_score = Column(Numeric(6, 2), nullable=True)
    manual_score = Column(Numeric(6, 2), nullable=True)
    criterion_scores = Column(UniversalJSON, nullable=True)

    grading_status = Column(
        SQLEnum(
            GradingStatus,
            name="grading_status",
            native_enum=False,
            values_callable=lambda e: [member.value for member in e],
        ),
        nullable=False,
        default=GradingStatus.PENDING,
    )

    instructor_comments = Column(Text, nullable=True)
    graded_by = Column(Integer, nullable=True)

    completed_at = Column(DateTime, nullable=False, default=utcnow)
    graded_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("idx_grading_submissions_org_status", "organization_id", "grading_status"),
        Index("idx_grading_submissions_instructor_status", "instructor_id", "grading_status"),
    )

    @property
    def criterion_score_models(self) -> Optional[List[CriterionScore]]:
        if self.criterion_scores is None:
            return None
        return [CriterionScore.model_validate(s) for s in self.criterion_scores]

    def __repr__(self) -> str:
        return f"<Submission(id={self.id}, status={self.grading_status.value if self.grading_status else None})>"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "instructor_id": self.instructor_id,
            "rubric_id": self.rubric_id,
            "automatic_score": float(self.automatic_score) if self.automatic_score is not None else None,
            "manual_score": float(self.manual_score) if self.manual_score is not None else None,
            "criterion_scores": list(self.criterion_scores) if self.criterion_scores is not None else None,
            "grading_status": self.grading_status.value if self.grading_status else None,
            "instructor_comments": self.instructor_comments,
            "graded_by": self.graded_by,
            "completed_at": isoformat(self.completed_at),
            "graded_at": isoformat(self.graded_at),
        }
