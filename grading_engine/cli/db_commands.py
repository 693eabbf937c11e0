"""
Database CLI Commands

Database operations: init
"""
import asyncio

from grading_engine.database import close_db, engine, init_db


class DbCommand:
    """Database CLI command handler."""

    def __init__(self, dry_run: bool = False):
        self.dry_run = dry_run

    def execute(self, args) -> int:
        """Execute database command."""
        if args.db_action == "init":
            return self._init(args)
        else:
            print("Error: Unknown database action")
            return 1

    def _init(self, args) -> int:
        """Create every missing table."""
        print("=== Database Init ===")
        print(f"Target: {engine.url.render_as_string(hide_password=True)}")

        if self.dry_run:
            print("[DRY RUN] Would create missing tables")
            return 0

        asyncio.run(self._run_init())
        print("✓ Tables ready")
        return 0

    @staticmethod
    async def _run_init() -> None:
        try:
            await init_db()
        finally:
            await close_db()
