import argparse
import asyncio
import logging
import signal
import sys
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta
from typing import TypeVar

from ats_job_aggregator.aggregator import JobAggregator
from ats_job_aggregator.classifier import AIClassifier
from ats_job_aggregator.config import AppConfig, load_app_config
from ats_job_aggregator.db import Database
from ats_job_aggregator.scrapers.registry import SCRAPERS, UnknownSourceError
from ats_job_aggregator.verification import VerificationEngine

# Set up logging once, in the application entry point only
logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s", level=logging.INFO
)
logger = logging.getLogger(__name__)

T = TypeVar("T")


def build_verifier(db: Database, config: AppConfig) -> VerificationEngine:
    return VerificationEngine(
        db,
        cooldown_hours=config.verify_cooldown_hours,
        batch_size=config.verify_batch_size,
        batch_delay=config.verify_batch_delay,
    )


async def _with_services(
    config: AppConfig,
    action: Callable[[JobAggregator, VerificationEngine], Awaitable[T]],
) -> T:
    with Database(db_path=config.db_path) as db:
        aggregator = JobAggregator(db, AIClassifier(config), config)
        return await action(aggregator, build_verifier(db, config))


async def run_pipeline(config: AppConfig) -> None:
    """Run a single scrape-then-verify cycle."""
    logger.info("Starting ATS Job Aggregator cycle...")
    started = datetime.now(tz=UTC)

    async def cycle(aggregator: JobAggregator, verifier: VerificationEngine) -> None:
        await aggregator.ingest_all_configured()
        await verifier.verify_all()

    await _with_services(config, cycle)
    elapsed = (datetime.now(tz=UTC) - started).total_seconds()
    logger.info(f"Cycle finished in {elapsed:.2f}s")


async def run_loop(config: AppConfig, interval_minutes: int) -> None:
    """
    Run the scrape-then-verify cycle in a continuous loop with a configurable interval.

    Handles SIGINT/SIGTERM for graceful shutdown. Errors in a single cycle
    are logged but do not crash the loop.
    """
    shutdown_event = asyncio.Event()

    def _signal_handler() -> None:
        logger.info("Shutdown signal received. Finishing current cycle...")
        shutdown_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _signal_handler)

    logger.info(
        f"Starting continuous loop (interval: {interval_minutes} min). Press Ctrl+C to stop."
    )

    while not shutdown_event.is_set():
        try:
            await run_pipeline(config)
        except Exception as e:
            logger.error(f"Cycle error (will retry next cycle): {e}")

        if shutdown_event.is_set():
            break

        next_run = datetime.now(tz=UTC) + timedelta(minutes=interval_minutes)
        logger.info(f"Next run at {next_run.strftime('%Y-%m-%d %H:%M:%S UTC')}")

        try:
            await asyncio.wait_for(shutdown_event.wait(), timeout=interval_minutes * 60)
        except TimeoutError:
            # The interval elapsed without a shutdown signal
            pass

    logger.info("Shutting down gracefully.")


def parse_company(value: str) -> tuple[str, str]:
    """argparse type for "source:company" pairs."""
    source, sep, company_id = value.partition(":")
    if not sep or not source.strip() or not company_id.strip():
        raise argparse.ArgumentTypeError(f"expected SOURCE:COMPANY, got '{value}'")
    return source.strip().lower(), company_id.strip()


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="ats-job-aggregator",
        description=(
            "Scrape ATS job boards, deduplicate and classify postings, "
            "and verify that they are still open."
        ),
    )
    commands = parser.add_subparsers(dest="command", required=True)

    scrape = commands.add_parser("scrape", help="Scrape configured companies (or one company).")
    scrape.add_argument(
        "--company",
        type=parse_company,
        default=None,
        metavar="SOURCE:COMPANY",
        help=f"Scrape a single company board. Sources: {', '.join(sorted(SCRAPERS))}.",
    )

    verify = commands.add_parser("verify", help="Check that active jobs are still live.")
    verify.add_argument("--job-id", type=int, default=None, help="Verify a single job.")

    commands.add_parser("reclassify", help="AI-classify jobs that were never classified.")

    classify = commands.add_parser("classify", help="AI-classify a single stored job.")
    classify.add_argument("job_id", type=int)

    commands.add_parser("status", help="Show AI status and configured companies.")

    run = commands.add_parser("run", help="Scrape then verify, in a loop by default.")
    run.add_argument("--once", action="store_true", help="Run a single cycle and exit.")
    run.add_argument(
        "--interval",
        type=int,
        default=None,
        metavar="MINUTES",
        help=(
            "Cycle interval in minutes (overrides SCRAPE_INTERVAL env var). "
            "Must be a positive integer."
        ),
    )

    return parser.parse_args(argv)


async def dispatch(args: argparse.Namespace, config: AppConfig) -> None:
    """Run a one-shot command and log its result."""
    if args.command == "scrape":
        if args.company:
            source, company_id = args.company
            result = await _with_services(
                config, lambda agg, _: agg.ingest_company(source, company_id)
            )
        else:
            result = await _with_services(config, lambda agg, _: agg.ingest_all_configured())
    elif args.command == "verify":
        if args.job_id is not None:
            result = await _with_services(config, lambda _, ver: ver.verify_one(args.job_id))
        else:
            result = await _with_services(config, lambda _, ver: ver.verify_all())
    elif args.command == "reclassify":
        result = await _with_services(config, lambda agg, _: agg.reclassify_unclassified())
    elif args.command == "classify":
        result = await _with_services(config, lambda agg, _: agg.classify_job(args.job_id))
    else:
        raise ValueError(f"Unknown command: {args.command}")

    logger.info(f"{args.command} result: {result}")


def show_status(config: AppConfig) -> None:
    classifier = AIClassifier(config)
    print(f"AI classification: {'enabled' if classifier.is_enabled else 'disabled'}")
    print(f"Model: {classifier.model_name}")
    print("Configured companies:")
    for source, company_id in config.target_companies:
        print(f"  {source}:{company_id}")


def cli(argv: list[str] | None = None) -> None:
    """CLI entry point for the package."""
    args = parse_args(argv)

    try:
        config = load_app_config()
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)

    if args.command == "status":
        show_status(config)
        return

    if args.command == "run":
        # Determine interval: CLI flag > env var > default
        if args.interval is not None:
            if args.interval <= 0:
                logger.error("--interval must be a positive integer.")
                sys.exit(1)
            interval = args.interval
        else:
            interval = config.scrape_interval

        if args.once:
            asyncio.run(run_pipeline(config))
        else:
            asyncio.run(run_loop(config, interval))
        return

    try:
        asyncio.run(dispatch(args, config))
    except UnknownSourceError as e:
        logger.error(str(e))
        sys.exit(1)


if __name__ == "__main__":
    cli()
