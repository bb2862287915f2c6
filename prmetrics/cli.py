"""Command line entry point.

Usage::

    pr-metrics --owner octocat --repo hello-world --concurrency 8 --time

Exit codes: 0 on success, 1 on error, 130 when interrupted by SIGINT/SIGTERM.
"""

import argparse
import asyncio
import logging
import signal
import sys
from collections.abc import Sequence

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from .config import ConfigurationError, ConfigurationLoader, ScraperConfig
from .database import DatabaseConfig, DatabaseConnectionManager
from .github import (
    APIGateway,
    GitHubClient,
    GitHubError,
    OperationCancelledError,
    auth_from_token,
)
from .logging_setup import configure_logging
from .repositories import PostgresMetricSink
from .workers import (
    ListingStrategy,
    MetricsOrchestrator,
    OrchestratorConfig,
    RunSummary,
)

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_CANCELLED = 130


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pr-metrics",
        description="Collect per pull request comment and size metrics",
    )
    parser.add_argument("--owner", required=True, help="Repository owner")
    parser.add_argument("--repo", required=True, help="Repository name")
    parser.add_argument(
        "--concurrency",
        type=int,
        default=None,
        help="Number of workers (default: 4)",
    )
    parser.add_argument(
        "--time", action="store_true", help="Report the elapsed time of the run"
    )
    parser.add_argument("--config", help="Configuration file path")
    parser.add_argument("--log-level", default=None, help="Log level")
    parser.add_argument(
        "--lister",
        choices=[strategy.value for strategy in ListingStrategy],
        default=None,
        help="Pull request listing strategy",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Compute rows without writing them to the database",
    )
    return parser


def apply_cli_overrides(config: ScraperConfig, args: argparse.Namespace) -> None:
    """Command line flags win over file and environment settings."""
    if args.concurrency is not None:
        config.scraper.concurrency = max(args.concurrency, 1)
    if args.lister is not None:
        config.scraper.lister = ListingStrategy(args.lister)
    if args.log_level is not None:
        config.logging.level = args.log_level.upper()
    if args.dry_run:
        config.scraper.dry_run = True


class MetricsScraper:
    """Wires the client, gateway, sink and orchestrator for one run."""

    def __init__(
        self, config: ScraperConfig, database_config: DatabaseConfig | None = None
    ):
        self.config = config
        self.database_config = database_config or DatabaseConfig()
        self.cancel_event = asyncio.Event()
        self.github_client: GitHubClient | None = None
        self.connection_manager: DatabaseConnectionManager | None = None
        self.orchestrator: MetricsOrchestrator | None = None

    def setup_signal_handlers(self) -> None:
        """Set the cancel event on SIGINT/SIGTERM."""
        loop = asyncio.get_running_loop()

        def signal_handler(sig: signal.Signals) -> None:
            logger.info(f"Received {sig.name}, cancelling run...")
            self.cancel_event.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, signal_handler, sig)

    async def initialize(self) -> None:
        """Create the client and, unless dry-running, the database sink."""
        self.github_client = GitHubClient(
            auth=auth_from_token(self.config.github.token),
            config=self.config.github.to_client_config(),
        )
        lister = self.config.scraper.lister
        if not self.config.github.token:
            logger.warning("No GitHub token configured; using anonymous access")
            if lister is ListingStrategy.GRAPHQL:
                # GitHub rejects unauthenticated GraphQL queries.
                logger.warning("GraphQL listing needs a token; listing through REST")
                lister = ListingStrategy.REST

        gateway = APIGateway(self.github_client, policy=self.config.backoff.to_policy())

        sink = None
        if self.config.scraper.dry_run:
            logger.info("Dry run: rows will not be persisted")
        elif not self.database_config.is_configured:
            logger.warning("No database configured; rows will not be persisted")
        else:
            self.connection_manager = DatabaseConnectionManager(self.database_config)
            await self.connection_manager.connect()
            sink = PostgresMetricSink(self.connection_manager)

        self.orchestrator = MetricsOrchestrator(
            gateway,
            sink,
            OrchestratorConfig(
                progress_interval=self.config.scraper.progress_interval,
                lister_strategy=lister,
                per_page=self.config.scraper.per_page,
            ),
        )

    async def run(self, owner: str, repo: str) -> RunSummary:
        if self.orchestrator is None:
            raise RuntimeError("MetricsScraper.initialize() must be awaited first")
        return await self.orchestrator.run(
            owner,
            repo,
            concurrency=self.config.scraper.concurrency,
            cancel_event=self.cancel_event,
        )

    async def cleanup(self) -> None:
        """Close the HTTP session and dispose the engine."""
        if self.github_client is not None:
            await self.github_client.close()
        if self.connection_manager is not None:
            await self.connection_manager.close()


async def main(argv: Sequence[str] | None = None) -> int:
    """Parse arguments, run one scrape and return the exit code."""
    args = build_parser().parse_args(argv)

    try:
        config = ConfigurationLoader().load(args.config)
        apply_cli_overrides(config, args)
    except (ConfigurationError, ValidationError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_ERROR

    configure_logging(config.logging.level.value, config.logging.format)

    scraper = MetricsScraper(config)
    scraper.setup_signal_handlers()

    try:
        await scraper.initialize()
        summary = await scraper.run(args.owner, args.repo)
    except OperationCancelledError:
        logger.warning("Run cancelled")
        return EXIT_CANCELLED
    except (GitHubError, SQLAlchemyError, OSError, ValueError) as e:
        logger.error(f"Run failed: {e}", extra={"error_type": type(e).__name__})
        return EXIT_ERROR
    finally:
        await scraper.cleanup()

    logger.info(
        f"Processed {summary.processed}/{summary.total} pull requests of "
        f"{summary.owner}/{summary.repo}: {summary.inserted} inserted, "
        f"{summary.errors} errors"
    )
    if args.time:
        logger.info(f"Elapsed time: {summary.duration_seconds:.2f}s")
    return EXIT_OK


def run() -> None:
    """Console script entry point."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
