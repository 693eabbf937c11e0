"""
Grading Workflow Service.

Drives a submission through its grading states, binds an optional
rubric and records manual scores.

Every transition on one submission is serialized twice over:
1. the row is read with FOR UPDATE (PostgreSQL) for validation
2. the status write is a compare-and-set:
       UPDATE ... WHERE id = :id AND grading_status IN (:allowed_sources)
   zero matched rows means another writer got there first → StateError.
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from sqlalchemy import null, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from grading_engine.core.tenant_guard import Actor, can_grade, require_grading_rights
from grading_engine.errors import (
    APIError, AuthorizationError, ErrorCode, NotFoundError, StateError, ValidationError
)
from grading_engine.orm.base import utcnow
from grading_engine.orm.grading_rubric import GradingRubric
from grading_engine.orm.submission import GradingStatus, Submission
from grading_engine.schemas.rubric import CriterionSelection
from grading_engine.services.score_calculator import (
    RubricScore, index_selections, score_rubric, validate_percentage
)
from grading_engine.state_machines.grading_status import GradingStateMachine

logger = logging.getLogger(__name__)

SelectionInput = Union[CriterionSelection, Mapping[str, Any]]


class GradingWorkflow:
    """
    Grading state machine over persisted submissions.
    All mutations commit their own transaction and roll back on failure.
    """

    @staticmethod
    async def _get_or_404(db: AsyncSession, submission_id: int, lock: bool = False) -> Submission:
        query = select(Submission).where(Submission.id == submission_id)
        if lock:
            query = query.with_for_update()
        result = await db.execute(query)
        submission = result.scalar_one_or_none()
        if submission is None:
            raise NotFoundError("Submission", submission_id, code=ErrorCode.SUBMISSION_NOT_FOUND)
        return submission

    @staticmethod
    async def _get_rubric_for(db: AsyncSession, submission: Submission, rubric_id: int) -> GradingRubric:
        """Rubric of the submission's own organization."""
        result = await db.execute(select(GradingRubric).where(GradingRubric.id == rubric_id))
        rubric = result.scalar_one_or_none()
        if rubric is None:
            raise NotFoundError("Rubric", rubric_id, code=ErrorCode.RUBRIC_NOT_FOUND)
        if rubric.organization_id != submission.organization_id:
            raise AuthorizationError(
                "Rubric belongs to a different organization than the submission",
                code=ErrorCode.SCOPE_VIOLATION,
                details={"rubric_id": rubric_id, "submission_id": submission.id},
            )
        return rubric

    @staticmethod
    async def _transition(
        db: AsyncSession,
        submission: Submission,
        target: GradingStatus,
        sources: Iterable[GradingStatus],
        values: Dict[str, Any]
    ) -> None:
        """Compare-and-set the status (plus values) and commit."""
        allowed = list(sources)
        submission_id = submission.id
        result = await db.execute(
            update(Submission)
            .where(
                Submission.id == submission_id,
                Submission.grading_status.in_(allowed),
            )
            .values(grading_status=target, updated_at=utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await db.rollback()
            logger.warning(f"Concurrent grading detected on submission {submission_id}")
            raise StateError(
                f"Submission {submission_id} changed state concurrently; it can no longer move to {target.value}",
                code=ErrorCode.ALREADY_GRADED if target == GradingStatus.GRADED else ErrorCode.STATE_TRANSITION_INVALID,
                details={"submission_id": submission_id, "requested_state": target.value},
            )
        await db.commit()
        await db.refresh(submission)

    @classmethod
    async def register_submission(
        cls,
        db: AsyncSession,
        organization_id: int,
        instructor_id: int,
        automatic_score: Optional[Union[int, float, Decimal]] = None,
        requires_manual_grading: bool = True,
        completed_at: Optional[datetime] = None
    ) -> int:
        """
        Entry point for the quiz flow: record a completed attempt.

        Attempts with a free-response part start in pending; attempts
        fully resolved by objective scoring start (and stay) in auto_graded.

        Raises:
            ValidationError: automatic_score outside [0, 100], or missing for
                an auto-graded attempt
        """
        score = None
        if automatic_score is not None:
            score = validate_percentage(automatic_score, "automatic_score")
        if not requires_manual_grading and score is None:
            raise ValidationError(
                "automatic_score is required when no manual grading is needed",
                code=ErrorCode.INVALID_SCORE,
            )

        status = GradingStatus.PENDING if requires_manual_grading else GradingStatus.AUTO_GRADED

        now = utcnow()
        submission = Submission(
            organization_id=organization_id,
            instructor_id=instructor_id,
            automatic_score=score,
            grading_status=status,
            completed_at=completed_at or now,
            graded_at=now if status == GradingStatus.AUTO_GRADED else None,
        )
        db.add(submission)
        await db.commit()

        logger.info(
            f"Submission {submission.id} registered as {status.value}",
            extra={"submission_id": submission.id, "organization_id": organization_id, "status": status.value}
        )
        return submission.id

    @classmethod
    async def begin_grading(cls, db: AsyncSession, submission_id: int, actor: Actor) -> None:
        """
        pending → grading. Already-grading submissions are left as they are.

        Raises:
            NotFoundError, AuthorizationError, StateError (terminal submission)
        """
        try:
            submission = await cls._get_or_404(db, submission_id, lock=True)
            require_grading_rights(submission, actor)

            already_grading = submission.grading_status == GradingStatus.GRADING
            if already_grading:
                await db.rollback()
            else:
                GradingStateMachine.assert_transition(
                    submission.id, submission.grading_status, GradingStatus.GRADING
                )
                await cls._transition(
                    db, submission, GradingStatus.GRADING,
                    GradingStateMachine.sources_for(GradingStatus.GRADING),
                    {},
                )
        except APIError:
            await db.rollback()
            raise

        if already_grading:
            logger.debug(f"Submission {submission_id} already in grading")
        else:
            logger.info(
                f"Grading started on submission {submission_id}",
                extra={"submission_id": submission_id, "actor_id": actor.id}
            )

    @classmethod
    async def save_rubric_draft(
        cls,
        db: AsyncSession,
        submission_id: int,
        rubric_id: int,
        criterion_selections: Iterable[SelectionInput],
        actor: Actor
    ) -> List[Dict[str, int]]:
        """
        Record partial rubric scores without finalizing.

        The submission is moved to (or kept in) grading; only the selected
        criteria are stored.

        Returns:
            Stored criterion scores
        """
        try:
            submission = await cls._get_or_404(db, submission_id, lock=True)
            require_grading_rights(submission, actor)
            if submission.grading_status not in GradingStateMachine.OPEN_STATES:
                GradingStateMachine.assert_transition(
                    submission.id, submission.grading_status, GradingStatus.GRADING
                )

            rubric = await cls._get_rubric_for(db, submission, rubric_id)
            definition = rubric.to_definition()
            selections = list(criterion_selections)
            score = score_rubric(definition, selections)
            selected = index_selections(definition.criteria, selections)

            draft = [
                {"criterion_index": index, "awarded_points": score.per_criterion[index]}
                for index in sorted(selected)
            ]

            await cls._transition(
                db, submission, GradingStatus.GRADING,
                list(GradingStateMachine.OPEN_STATES),
                {"rubric_id": rubric.id, "criterion_scores": draft},
            )
        except APIError:
            await db.rollback()
            raise

        logger.info(
            f"Rubric draft saved on submission {submission_id}",
            extra={"submission_id": submission_id, "rubric_id": rubric_id, "criteria_scored": len(draft)}
        )
        return draft

    @classmethod
    async def grade_with_rubric(
        cls,
        db: AsyncSession,
        submission_id: int,
        rubric_id: int,
        criterion_selections: Iterable[SelectionInput],
        actor: Actor,
        instructor_comments: Optional[str] = None
    ) -> RubricScore:
        """
        Finalize a submission from rubric level selections.

        Stores criterion_scores, manual_score = percentage and rubric_id,
        then moves the submission to graded.

        Raises:
            NotFoundError: unknown submission or rubric
            ValidationError: malformed or incomplete selections
            StateError: submission already graded / auto_graded
        """
        try:
            submission = await cls._get_or_404(db, submission_id, lock=True)
            require_grading_rights(submission, actor)
            GradingStateMachine.assert_transition(
                submission.id, submission.grading_status, GradingStatus.GRADED
            )

            rubric = await cls._get_rubric_for(db, submission, rubric_id)
            definition = rubric.to_definition()
            selections = list(criterion_selections)
            score = score_rubric(definition, selections)

            # Finalizing needs a level for every criterion
            if len(selections) != len(definition.criteria):
                raise ValidationError(
                    f"Every criterion needs a selection to finalize: got {len(selections)} "
                    f"of {len(definition.criteria)}",
                    code=ErrorCode.INVALID_SELECTION,
                    details={"selected": len(selections), "criteria": len(definition.criteria)},
                )

            now = utcnow()
            await cls._transition(
                db, submission, GradingStatus.GRADED,
                GradingStateMachine.sources_for(GradingStatus.GRADED),
                {
                    "rubric_id": rubric.id,
                    "criterion_scores": [s.model_dump() for s in score.criterion_scores()],
                    "manual_score": score.percentage,
                    "graded_at": now,
                    "graded_by": actor.id,
                    "instructor_comments": instructor_comments,
                },
            )
        except APIError:
            await db.rollback()
            raise

        logger.info(
            f"Submission {submission_id} graded with rubric {rubric_id}: {score.total}/{score.max_possible}",
            extra={
                "submission_id": submission_id,
                "rubric_id": rubric_id,
                "total": score.total,
                "percentage": float(score.percentage),
                "graded_by": actor.id,
            }
        )
        return score

    @classmethod
    async def grade_manually(
        cls,
        db: AsyncSession,
        submission_id: int,
        score: Union[int, float, Decimal],
        actor: Actor,
        instructor_comments: Optional[str] = None
    ) -> None:
        """
        Finalize a submission with a free-form percentage score.

        Any rubric draft on the submission is discarded.

        Raises:
            ValidationError: score outside [0, 100]
            NotFoundError, AuthorizationError
            StateError: submission already graded / auto_graded
        """
        manual_score = validate_percentage(score, "score")

        try:
            submission = await cls._get_or_404(db, submission_id, lock=True)
            require_grading_rights(submission, actor)
            GradingStateMachine.assert_transition(
                submission.id, submission.grading_status, GradingStatus.GRADED
            )

            await cls._transition(
                db, submission, GradingStatus.GRADED,
                GradingStateMachine.sources_for(GradingStatus.GRADED),
                {
                    "rubric_id": None,
                    "criterion_scores": null(),
                    "manual_score": manual_score,
                    "graded_at": utcnow(),
                    "graded_by": actor.id,
                    "instructor_comments": instructor_comments,
                },
            )
        except APIError:
            await db.rollback()
            raise

        logger.info(
            f"Submission {submission_id} graded manually: {manual_score}",
            extra={"submission_id": submission_id, "manual_score": float(manual_score), "graded_by": actor.id}
        )

    @classmethod
    async def get_submission(cls, db: AsyncSession, submission_id: int) -> Submission:
        """Raises NotFoundError for an unknown submission."""
        return await cls._get_or_404(db, submission_id)

    @staticmethod
    async def get_submissions(
        db: AsyncSession,
        organization_id: int,
        status: Optional[GradingStatus] = None
    ) -> List[Submission]:
        """Organization's submissions, oldest completion first, optionally by status."""
        query = select(Submission).where(Submission.organization_id == organization_id)
        if status is not None:
            query = query.where(Submission.grading_status == status)
        query = query.order_by(Submission.completed_at.asc(), Submission.id.asc())
        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def get_pending_grading(
        db: AsyncSession,
        instructor_id: int,
        actor: Optional[Actor] = None
    ) -> List[Submission]:
        """
        Submissions assigned to instructor_id still awaiting grading
        (pending or grading), oldest completion first.

        When actor is given, submissions the actor may not grade are left out.
        """
        result = await db.execute(
            select(Submission)
            .where(
                Submission.instructor_id == instructor_id,
                Submission.grading_status.in_(list(GradingStateMachine.OPEN_STATES)),
            )
            .order_by(Submission.completed_at.asc(), Submission.id.asc())
        )
        submissions = list(result.scalars().all())
        if actor is not None:
            submissions = [s for s in submissions if can_grade(s, actor)]
        return submissions
