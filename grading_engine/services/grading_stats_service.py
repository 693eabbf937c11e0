"""
Grading Aggregates.

Counts and average score over a submission population, scoped to an
organization or an instructor. Every figure comes from one SELECT, so the
numbers are mutually consistent even while submissions are being graded.
"""
import logging
from dataclasses import asdict, dataclass
from decimal import Decimal
from typing import Any, Dict

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from grading_engine.orm.submission import Submission
from grading_engine.services.score_calculator import round_half_up, to_decimal
from grading_engine.state_machines.grading_status import GradingStateMachine

logger = logging.getLogger(__name__)

# graded + auto_graded
FINISHED_STATES = list(GradingStateMachine.TERMINAL_STATES)
# pending + grading
AWAITING_STATES = list(GradingStateMachine.OPEN_STATES)


@dataclass(frozen=True)
class GradingStats:
    total_attempts: int
    pending_grading: int
    graded: int
    avg_score: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


async def _aggregate(db: AsyncSession, scope) -> GradingStats:
    effective_score = func.coalesce(Submission.manual_score, Submission.automatic_score)

    query = select(
        func.count(Submission.id),
        func.count(case((Submission.grading_status.in_(AWAITING_STATES), 1))),
        func.count(case((Submission.grading_status.in_(FINISHED_STATES), 1))),
        func.sum(effective_score),
        func.count(effective_score),
    ).where(scope)

    row = (await db.execute(query)).one()
    total, awaiting, finished, score_sum, scored = row

    avg_score = 0
    if scored:
        avg_score = round_half_up(to_decimal(score_sum) / Decimal(scored))

    return GradingStats(
        total_attempts=total or 0,
        pending_grading=awaiting or 0,
        graded=finished or 0,
        avg_score=avg_score,
    )


async def get_grading_stats(db: AsyncSession, organization_id: int) -> GradingStats:
    """
    Aggregate grading figures for an organization.

    - total_attempts: every submission
    - pending_grading: pending or grading
    - graded: graded or auto_graded
    - avg_score: mean of manual_score, else automatic_score, over submissions
      having either; rounded half-up, 0 when none
    """
    stats = await _aggregate(db, Submission.organization_id == organization_id)
    logger.info(
        f"Grading stats for organization {organization_id}: {stats.to_dict()}",
        extra={"organization_id": organization_id}
    )
    return stats


async def get_instructor_grading_stats(db: AsyncSession, instructor_id: int) -> GradingStats:
    """Same figures over the submissions assigned to one instructor."""
    stats = await _aggregate(db, Submission.instructor_id == instructor_id)
    logger.info(
        f"Grading stats for instructor {instructor_id}: {stats.to_dict()}",
        extra={"instructor_id": instructor_id}
    )
    return stats
