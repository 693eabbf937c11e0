"""
Rubric CLI Commands

Rubric store operations: seed-default, list
"""
import asyncio
import json

from grading_engine.core.tenant_guard import ROLE_ADMIN, Actor
from grading_engine.database import AsyncSessionLocal, close_db
from grading_engine.errors import APIError
from grading_engine.services.rubric_service import DEFAULT_RUBRIC_NAME, RubricService


class RubricCommand:
    """Rubric CLI command handler."""

    def __init__(self, dry_run: bool = False):
        self.dry_run = dry_run

    def execute(self, args) -> int:
        """Execute rubric command."""
        if args.rubric_action == "seed-default":
            return self._seed_default(args)
        elif args.rubric_action == "list":
            return self._list(args)
        else:
            print("Error: Unknown rubric action")
            return 1

    def _seed_default(self, args) -> int:
        """Create the starter rubric as the organization's default."""
        print(f"=== Seed '{DEFAULT_RUBRIC_NAME}' for organization {args.org} ===")

        if self.dry_run:
            print("[DRY RUN] Would create the starter rubric and mark it default")
            return 0

        # Operators act as an admin of the target organization
        actor = Actor(id=args.actor, organization_id=args.org, role=ROLE_ADMIN)
        try:
            rubric_id = asyncio.run(self._run_seed(args.org, actor, args.if_empty))
        except APIError as e:
            print(f"Error: {e.code}: {e.message}")
            return 1

        if rubric_id is None:
            print("Organization already has rubrics, nothing seeded")
        else:
            print(f"✓ Rubric {rubric_id} created and set as default")
        return 0

    @staticmethod
    async def _run_seed(organization_id: int, actor: Actor, if_empty: bool):
        try:
            async with AsyncSessionLocal() as db:
                if if_empty:
                    return await RubricService.ensure_default_rubric(db, organization_id, actor)
                return await RubricService.create_default_rubric(db, organization_id, actor)
        finally:
            await close_db()

    def _list(self, args) -> int:
        """Print the organization's rubrics, default first."""
        rubrics = asyncio.run(self._run_list(args.org))

        if args.json:
            print(json.dumps(rubrics, indent=2, ensure_ascii=False))
            return 0

        if not rubrics:
            print(f"No rubrics for organization {args.org}")
            return 0

        for rubric in rubrics:
            marker = "*" if rubric["is_default"] else " "
            total = sum(c["max_points"] for c in rubric["criteria"])
            print(
                f"{marker} {rubric['id']:>5}  {rubric['name']}  "
                f"({len(rubric['criteria'])} criteria, {total:g} pts)"
            )
        return 0

    @staticmethod
    async def _run_list(organization_id: int):
        try:
            async with AsyncSessionLocal() as db:
                rubrics = await RubricService.get_by_organization(db, organization_id)
                return [r.to_dict() for r in rubrics]
        finally:
            await close_db()
