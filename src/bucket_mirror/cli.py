# src/bucket_mirror/cli.py
"""Command-line interface for the bucket-mirror tool."""

import asyncio
import dataclasses
import logging
import sys
from pathlib import Path
from typing import Any, Optional

import click
from dotenv import load_dotenv
from rich.logging import RichHandler

from bucket_mirror.config import AppConfig, Config, load_config
from bucket_mirror.coordinator import RunResult
from bucket_mirror.exceptions import ConfigError, MirrorError, ObjectSyncError
from bucket_mirror.signals import GracefulShutdown

logger: logging.Logger = logging.getLogger(__name__)

EXIT_OK: int = 0
EXIT_SYNC_FAILED: int = 1
EXIT_CONFIG_ERROR: int = 2


def setup_logging(level: str) -> None:
    """Configure rich-based logging for the application."""
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )
    # Silence noisy loggers
    for logger_name in ["botocore", "aiobotocore", "urllib3"]:
        logging.getLogger(logger_name).setLevel(logging.WARNING)


async def main_async(config: Config) -> RunResult:
    """
    Asynchronously execute one synchronization run.

    Args:
        config (Config): The application configuration.

    Returns:
        RunResult: The outcome of the run.
    """
    # Lazily import to keep the CLI fast
    from bucket_mirror.pipeline import MirrorPipeline

    async with GracefulShutdown() as shutdown_event:
        pipeline: MirrorPipeline = MirrorPipeline(config, shutdown_event)
        return await pipeline.run()


def describe_failure(error: MirrorError) -> str:
    """
    Render a failed run's error with its phase and, if known, the object key.

    Args:
        error (MirrorError): The run's terminal error.

    Returns:
        str: A one-line description.
    """
    where: str = f"phase={error.phase}"
    if isinstance(error, ObjectSyncError):
        where += f", key={error.key}"
    return f"{where}: {error}"


@click.command(context_settings=dict(help_option_names=["-h", "--help"]))
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=".config.json",
    help="Path to the JSON configuration file.",
    show_default=True,
)
@click.option(
    "--concurrency",
    type=int,
    default=None,
    help="Override the number of objects processed at once.",
)
@click.option(
    "--max-retries",
    type=int,
    default=None,
    help="Override the max attempts per request.",
)
@click.option(
    "--log-level",
    default="INFO",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Set the logging level.",
    show_default=True,
)
def cli(**kwargs: Any) -> None:
    """
    Mirror a bucket and its configuration to another account.

    Creates the destination bucket if needed, copies the source bucket's
    policy, versioning status and lifecycle rules, then copies every object
    that is missing or differs in the destination. Each copy is verified by
    size and ETag. Objects deleted from the source are left in place.

    Credentials may be given in the config file or through
    BUCKET_MIRROR_SOURCE_* / BUCKET_MIRROR_DESTINATION_* environment
    variables (a .env file is loaded automatically).
    """
    load_dotenv()
    setup_logging(kwargs["log_level"])

    try:
        config: Config = load_config(kwargs["config_path"])
        concurrency: Optional[int] = kwargs["concurrency"]
        max_retries: Optional[int] = kwargs["max_retries"]
        if concurrency is not None or max_retries is not None:
            app_config: AppConfig = AppConfig(
                concurrency=(
                    concurrency if concurrency is not None else config.app.concurrency
                ),
                max_retries=(
                    max_retries if max_retries is not None else config.app.max_retries
                ),
            )
            config = dataclasses.replace(config, app=app_config)
    except ConfigError as e:
        logger.critical(f"Invalid configuration: {e}")
        sys.exit(EXIT_CONFIG_ERROR)

    try:
        result: RunResult = asyncio.run(main_async(config))
    except Exception:
        logger.critical(
            "An unexpected error caused the application to fail:", exc_info=True
        )
        sys.exit(EXIT_SYNC_FAILED)

    if result.error is not None:
        logger.critical(
            f"Synchronization incomplete, do not assume the destination mirrors "
            f"the source. {describe_failure(result.error)}"
        )
        sys.exit(EXIT_SYNC_FAILED)

    logger.info(
        f"✅ Run completed successfully: {result.total} objects found, "
        f"{result.copied} copied, {result.skipped} skipped."
    )


if __name__ == "__main__":
    cli()
