"""
Stats CLI Commands

Grading aggregates for an organization or an instructor.
"""
import asyncio

from grading_engine.database import AsyncSessionLocal, close_db
from grading_engine.services.grading_stats_service import (
    get_grading_stats, get_instructor_grading_stats
)


class StatsCommand:
    """Stats CLI command handler."""

    def __init__(self, dry_run: bool = False):
        self.dry_run = dry_run

    def execute(self, args) -> int:
        """Print grading aggregates."""
        if args.org is not None:
            title = f"organization {args.org}"
        else:
            title = f"instructor {args.instructor}"

        stats = asyncio.run(self._run(args.org, args.instructor))

        print(f"=== Grading stats for {title} ===")
        print(f"Total attempts:   {stats.total_attempts}")
        print(f"Pending grading:  {stats.pending_grading}")
        print(f"Graded:           {stats.graded}")
        print(f"Average score:    {stats.avg_score}")
        return 0

    @staticmethod
    async def _run(organization_id, instructor_id):
        try:
            async with AsyncSessionLocal() as db:
                if organization_id is not None:
                    return await get_grading_stats(db, organization_id)
                return await get_instructor_grading_stats(db, instructor_id)
        finally:
            await close_db()
