"""
Server CLI Command

Runs the FastAPI application under uvicorn.
"""
import uvicorn


class ServeCommand:
    """HTTP server command handler."""

    def __init__(self, dry_run: bool = False):
        self.dry_run = dry_run

    def execute(self, args) -> int:
        if self.dry_run:
            print(f"[DRY RUN] Would serve grading_engine.main:app on {args.host}:{args.port}")
            return 0

        uvicorn.run(
            "grading_engine.main:app",
            host=args.host,
            port=args.port,
            reload=args.reload,
            log_level=args.log_level.lower(),
        )
        return 0
