"""
Rubric structures

Rubric → list[Criterion] → list[Level], as explicit models instead of
loose dictionaries. Level points are a PERCENTAGE (0-100) of the owning
criterion's max_points.

Domain rules (positive max_points, at least one level, non-blank names)
are enforced by the rubric service so they surface as the engine's own
ValidationError; these models only pin down field names and types.
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Level(BaseModel):
    """One selectable tier within a criterion."""
    label: str = Field(..., description="Tier label, e.g. 'Excelente'")
    points: float = Field(..., description="Percentage (0-100) of the criterion's max_points")
    description: str = Field("", description="What this tier means")


class Criterion(BaseModel):
    """One graded dimension of a rubric."""
    name: str = Field(..., description="Criterion name")
    description: str = Field("", description="Brief description")
    max_points: float = Field(..., description="Maximum points, must be positive")
    levels: List[Level] = Field(default_factory=list, description="Selectable levels, any order")


class RubricDefinition(BaseModel):
    """Scoring-relevant view of a rubric, consumed by the score calculator."""
    name: str = ""
    criteria: List[Criterion] = Field(default_factory=list)


class CriterionSelection(BaseModel):
    """Level picked by the instructor for one criterion."""
    criterion_index: int = Field(..., description="Zero-based position of the criterion in the rubric")
    level_points: float = Field(..., description="Selected level points (0-100)")


class CriterionScore(BaseModel):
    """Points awarded for one criterion, as stored on a submission."""
    criterion_index: int
    awarded_points: int


class RubricCreate(BaseModel):
    """Request to create a rubric."""
    organization_id: int
    name: str = Field(..., min_length=1)
    description: str = ""
    is_default: bool = False
    criteria: List[Criterion] = Field(default_factory=list)


class RubricUpdate(BaseModel):
    """Partial rubric update; omitted fields stay unchanged."""
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    is_default: Optional[bool] = None
    criteria: Optional[List[Criterion]] = None


class RubricResponse(BaseModel):
    """Rubric as returned to callers."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    organization_id: int
    name: str
    description: str
    is_default: bool
    criteria: List[Criterion]
    created_by: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
