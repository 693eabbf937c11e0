"""
Grading Workflow Routes.

Submission registration, grading transitions, the pending queue and
grading aggregates.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from grading_engine.core.tenant_guard import Actor, require_organization_scope, require_staff
from grading_engine.database import get_db
from grading_engine.errors import AuthorizationError
from grading_engine.orm.submission import GradingStatus
from grading_engine.routes.dependencies import check_grading_api_enabled, get_current_actor
from grading_engine.schemas.rubric import CriterionSelection
from grading_engine.services.grading_service import GradingWorkflow
from grading_engine.services.grading_stats_service import (
    get_grading_stats, get_instructor_grading_stats
)
from grading_engine.services.rubric_service import RubricService
from grading_engine.services.score_calculator import score_rubric

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/grading",
    tags=["Grading"],
    dependencies=[Depends(check_grading_api_enabled)],
)


# =============================================================================
# Pydantic Models
# =============================================================================

class RegisterSubmissionRequest(BaseModel):
    """Completed attempt handed over by the quiz flow."""
    organization_id: int
    instructor_id: int
    automatic_score: Optional[float] = Field(None, ge=0, le=100)
    requires_manual_grading: bool = True
    completed_at: Optional[datetime] = None


class RubricGradeRequest(BaseModel):
    rubric_id: int
    criterion_selections: List[CriterionSelection] = Field(default_factory=list)
    instructor_comments: Optional[str] = None


class ManualGradeRequest(BaseModel):
    score: float = Field(..., description="Percentage score (0-100)")
    instructor_comments: Optional[str] = None

    @field_validator('score')
    def validate_score(cls, v):
        if v < 0 or v > 100:
            raise ValueError('score must be between 0 and 100')
        return v


class ScorePreviewRequest(BaseModel):
    rubric_id: int
    criterion_selections: List[CriterionSelection] = Field(default_factory=list)


class SubmissionIdResponse(BaseModel):
    success: bool = True
    submission_id: int


# =============================================================================
# Submissions
# =============================================================================

@router.post("/submissions", response_model=SubmissionIdResponse, status_code=status.HTTP_201_CREATED)
async def register_submission(
    request: RegisterSubmissionRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db)
):
    """Record a completed attempt as pending, or auto_graded when no manual step is needed."""
    require_organization_scope(request.organization_id, actor)
    submission_id = await GradingWorkflow.register_submission(
        db,
        organization_id=request.organization_id,
        instructor_id=request.instructor_id,
        automatic_score=request.automatic_score,
        requires_manual_grading=request.requires_manual_grading,
        completed_at=request.completed_at,
    )
    return SubmissionIdResponse(submission_id=submission_id)


@router.get("/submissions")
async def list_submissions(
    organization_id: int = Query(...),
    grading_status: Optional[GradingStatus] = Query(None, alias="status"),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db)
) -> List[Dict[str, Any]]:
    require_staff(actor)
    require_organization_scope(organization_id, actor)
    submissions = await GradingWorkflow.get_submissions(db, organization_id, grading_status)
    return [s.to_dict() for s in submissions]


@router.get("/submissions/{submission_id}")
async def get_submission(
    submission_id: int,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db)
) -> Dict[str, Any]:
    require_staff(actor)
    submission = await GradingWorkflow.get_submission(db, submission_id)
    require_organization_scope(submission.organization_id, actor)
    return submission.to_dict()


@router.get("/pending")
async def pending_grading(
    instructor_id: Optional[int] = Query(None, description="Defaults to the calling actor"),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db)
) -> List[Dict[str, Any]]:
    """Oldest-first queue of submissions awaiting grading that the actor may grade."""
    require_staff(actor)
    target = instructor_id if instructor_id is not None else actor.id
    submissions = await GradingWorkflow.get_pending_grading(db, target, actor=actor)
    return [s.to_dict() for s in submissions]


# =============================================================================
# Transitions
# =============================================================================

@router.post("/submissions/{submission_id}/begin")
async def begin_grading(
    submission_id: int,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db)
) -> Dict[str, Any]:
    await GradingWorkflow.begin_grading(db, submission_id, actor)
    submission = await GradingWorkflow.get_submission(db, submission_id)
    return submission.to_dict()


@router.post("/submissions/{submission_id}/draft")
async def save_draft(
    submission_id: int,
    request: RubricGradeRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db)
) -> Dict[str, Any]:
    """Store partial rubric scores; the submission stays in grading."""
    draft = await GradingWorkflow.save_rubric_draft(
        db, submission_id, request.rubric_id, request.criterion_selections, actor
    )
    return {"success": True, "submission_id": submission_id, "criterion_scores": draft}


@router.post("/submissions/{submission_id}/rubric-grade")
async def grade_with_rubric(
    submission_id: int,
    request: RubricGradeRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db)
) -> Dict[str, Any]:
    score = await GradingWorkflow.grade_with_rubric(
        db,
        submission_id,
        request.rubric_id,
        request.criterion_selections,
        actor,
        instructor_comments=request.instructor_comments,
    )
    return {"success": True, "submission_id": submission_id, "score": score.to_dict()}


@router.post("/submissions/{submission_id}/manual-grade")
async def grade_manually(
    submission_id: int,
    request: ManualGradeRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db)
) -> Dict[str, Any]:
    await GradingWorkflow.grade_manually(
        db, submission_id, request.score, actor, instructor_comments=request.instructor_comments
    )
    submission = await GradingWorkflow.get_submission(db, submission_id)
    return submission.to_dict()


@router.post("/score-preview")
async def score_preview(
    request: ScorePreviewRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db)
) -> Dict[str, Any]:
    """Score selections against a rubric without touching any submission."""
    rubric = await RubricService.get_by_id(db, request.rubric_id)
    require_organization_scope(rubric.organization_id, actor)
    return score_rubric(rubric.to_definition(), request.criterion_selections).to_dict()


# =============================================================================
# Aggregates
# =============================================================================

@router.get("/stats")
async def organization_stats(
    organization_id: int = Query(...),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db)
) -> Dict[str, Any]:
    require_staff(actor)
    require_organization_scope(organization_id, actor)
    stats = await get_grading_stats(db, organization_id)
    return stats.to_dict()


@router.get("/stats/instructors/{instructor_id}")
async def instructor_stats(
    instructor_id: int,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db)
) -> Dict[str, Any]:
    """An instructor's own figures; super admins may read anyone's."""
    require_staff(actor)
    if not actor.is_super_admin and actor.id != instructor_id:
        raise AuthorizationError(
            "Instructor statistics are only visible to the instructor",
            details={"instructor_id": instructor_id},
        )
    stats = await get_instructor_grading_stats(db, instructor_id)
    return stats.to_dict()
