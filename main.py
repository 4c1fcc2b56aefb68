"""CLI entry point for the candidate sourcing engine."""

import argparse
import asyncio
import logging
import signal
import sys
from collections.abc import AsyncIterator
from contextlib import AsyncExitStack, asynccontextmanager

from src.browser.session import BrowserSession
from src.capabilities.factory import build_capabilities
from src.core.config import JobRequest, Settings
from src.core.db import init_db
from src.core.errors import JobNotFoundError, RetryRejectedError, WorkflowAlreadyRunningError
from src.core.schemas import JobProgress
from src.sourcing.checkpoint import CheckpointStore
from src.sourcing.service import SourcingService

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Candidate sourcing engine - search, enrich, scrape, parse and score profiles",
    )
    parser.add_argument(
        "--config",
        default="config/settings.yaml",
        help="Path to settings YAML file (default: config/settings.yaml)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # --- run ---
    run_parser = subparsers.add_parser("run", help="Create a sourcing job from a YAML file and run it")
    run_parser.add_argument("job_file", help="Path to job YAML (title, raw_job_description, ...)")

    # --- retry ---
    retry_parser = subparsers.add_parser("retry", help="Retry a failed or rate-limited job")
    retry_parser.add_argument("job_id")

    # --- recover ---
    subparsers.add_parser("recover", help="Run one recovery sweep over stale jobs and wait for them")

    # --- sweep ---
    subparsers.add_parser("sweep", help="Run the recovery sweeper until interrupted")

    # --- status ---
    status_parser = subparsers.add_parser("status", help="Show a job's progress")
    status_parser.add_argument("job_id")
    status_parser.add_argument(
        "--top",
        type=int,
        default=5,
        help="Number of top-scored candidates to show (default: 5)",
    )

    return parser.parse_args(argv)


def setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


@asynccontextmanager
async def open_service(settings: Settings) -> AsyncIterator[SourcingService]:
    """A service wired to the configured database and capabilities.

    A browser session is only opened when the browser scraper is selected.
    """
    async with AsyncExitStack() as stack:
        page = None
        if settings.scraper == "browser":
            session = await stack.enter_async_context(BrowserSession(settings.browser))
            page = session.page
        conn = init_db(settings.database.path)
        stack.callback(conn.close)
        service = SourcingService(
            CheckpointStore(conn),
            build_capabilities(settings, page),
            workflow=settings.workflow,
            recovery=settings.recovery,
        )
        yield service


def print_progress(progress: JobProgress) -> None:
    print(f"\nJob {progress.job_id}: {progress.status.value}")
    print(f"  Stage: {progress.current_stage}")
    if progress.last_completed_stage is not None:
        print(f"  Last completed: {progress.last_completed_stage.value}")
    print(f"  Found with contact: {progress.total_profiles_found}/{progress.max_candidates}")
    print(f"  Scraped: {progress.profiles_scraped}  Parsed: {progress.profiles_parsed}  "
          f"Saved: {progress.profiles_saved}  Scored: {progress.profiles_scored}")
    if progress.retry_count:
        print(f"  Retries: {progress.retry_count}")
    if progress.rate_limit_reset_at is not None:
        print(f"  Rate limited until: {progress.rate_limit_reset_at.isoformat()}")
    if progress.error_message:
        print(f"  Message: {progress.error_message}")

    for i, candidate in enumerate(progress.top_candidates, 1):
        score = "-" if candidate.match_score is None else f"{candidate.match_score:.1f}"
        duplicate = " (seen in an earlier job)" if candidate.is_duplicate else ""
        print(f"  {i}. {candidate.full_name} [{score}] {candidate.profile_url}{duplicate}")


async def cmd_run(settings: Settings, args: argparse.Namespace) -> None:
    request = JobRequest.from_yaml(args.job_file)
    async with open_service(settings) as service:
        job = service.create_job(
            user_id=request.user_id,
            title=request.title,
            raw_job_description=request.raw_job_description,
            job_requirements=request.job_requirements,
            max_candidates=request.max_candidates,
        )
        print(f"Created job {job.id}")
        await service.run_job(job.id)
        print_progress(service.progress(job.id))


async def cmd_retry(settings: Settings, args: argparse.Namespace) -> None:
    async with open_service(settings) as service:
        await service.retry_job(args.job_id)
        print_progress(service.progress(args.job_id))


async def cmd_recover(settings: Settings, args: argparse.Namespace) -> None:
    async with open_service(settings) as service:
        summary = service.recover_stale_jobs()
        await service.drain()
    print(f"\nChecked {summary.checked} jobs: {len(summary.recovered)} recovered, "
          f"{len(summary.failed)} failed, {len(summary.max_retries_reached)} out of retries, "
          f"{len(summary.waiting)} waiting on rate limits")


async def cmd_sweep(settings: Settings, args: argparse.Namespace) -> None:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)
    async with open_service(settings) as service:
        await service.run_sweeper(stop)
        await service.drain()


def cmd_status(settings: Settings, args: argparse.Namespace) -> None:
    conn = init_db(settings.database.path)
    try:
        print_progress(CheckpointStore(conn).progress(args.job_id, args.top))
    finally:
        conn.close()


COMMANDS = {
    "run": cmd_run,
    "retry": cmd_retry,
    "recover": cmd_recover,
    "sweep": cmd_sweep,
}


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    setup_logging(args.verbose)

    try:
        settings = Settings.from_yaml(args.config)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        sys.exit(1)

    try:
        if args.command == "status":
            cmd_status(settings, args)
        else:
            asyncio.run(COMMANDS[args.command](settings, args))
    except (
        FileNotFoundError,
        ValueError,
        JobNotFoundError,
        RetryRejectedError,
        WorkflowAlreadyRunningError,
    ) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
