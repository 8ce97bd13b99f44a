# src/bucket_mirror/pipeline.py
"""Core orchestration logic for a bucket-mirror run."""

import asyncio
import logging
from typing import TYPE_CHECKING, List, Optional

from aiobotocore.session import AioSession, get_session
from botocore.config import Config as BotoConfig
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)

from bucket_mirror.bucket_config import sync_bucket_config
from bucket_mirror.config import Config
from bucket_mirror.coordinator import RunResult, SyncCoordinator
from bucket_mirror.exceptions import BucketConfigError, ListingError
from bucket_mirror.lister import ObjectDescriptor, list_objects

if TYPE_CHECKING:
    from types_aiobotocore_s3.client import S3Client

logger: logging.Logger = logging.getLogger(__name__)


class MirrorPipeline:
    """Orchestrates one synchronization run from start to finish."""

    def __init__(
        self,
        config: Config,
        shutdown_event: Optional[asyncio.Event] = None,
        show_progress: bool = True,
    ) -> None:
        """
        Initializes the pipeline with the given configuration.

        Args:
            config (Config): The application configuration.
            shutdown_event (asyncio.Event, optional): Event to signal graceful
                shutdown.
            show_progress (bool): Whether to render a progress bar.
        """
        self._config: Config = config
        self._shutdown_event: asyncio.Event = shutdown_event or asyncio.Event()
        self._show_progress: bool = show_progress
        self._session: AioSession = get_session()

    def _boto_config(self) -> BotoConfig:
        """
        Build the client configuration shared by both accounts.

        Returns:
            BotoConfig: Retry policy and connection pool settings.
        """
        return BotoConfig(
            signature_version="s3v4",
            max_pool_connections=self._config.app.concurrency + 10,
            retries={
                "max_attempts": self._config.app.max_retries,
                "mode": "standard",
            },
        )

    async def run(self) -> RunResult:
        """
        Create the source and destination clients and run the synchronization.

        Returns:
            RunResult: The outcome of the run.
        """
        boto_config: BotoConfig = self._boto_config()
        async with (
            self._session.create_client(
                "s3",
                **self._config.source.as_boto_dict(),
                config=boto_config,
            ) as source_client,
            self._session.create_client(
                "s3",
                **self._config.destination.as_boto_dict(),
                config=boto_config,
            ) as dest_client,
        ):
            return await self.sync(source_client, dest_client)

    async def sync(
        self, source_client: "S3Client", dest_client: "S3Client"
    ) -> RunResult:
        """
        Run the bucket-configuration, listing and object phases in order.

        Failures of the first two phases end the run before any object is
        touched. They are returned in the result rather than raised.

        Args:
            source_client (S3Client): Client bound to the source account.
            dest_client (S3Client): Client bound to the destination account.

        Returns:
            RunResult: The outcome of the run.
        """
        source_bucket: str = self._config.source.bucket
        dest_bucket: str = self._config.destination.bucket
        logger.info(
            f"Starting bucket-mirror run: s3://{source_bucket} -> s3://{dest_bucket}"
        )

        try:
            await sync_bucket_config(
                source_client,
                dest_client,
                source_bucket,
                dest_bucket,
                self._config.destination.region,
            )
        except BucketConfigError as e:
            logger.error(f"Failed to sync bucket configuration ({e.step}): {e}")
            return RunResult.failure(e)
        logger.info("Bucket configuration synced.")

        try:
            objects: List[ObjectDescriptor] = await list_objects(
                source_client, source_bucket
            )
        except ListingError as e:
            logger.error(str(e))
            return RunResult.failure(e)
        logger.info(f"Found {len(objects)} objects in source bucket.")

        if not objects:
            return RunResult()

        return await self._sync_objects(objects, source_client, dest_client)

    async def _sync_objects(
        self,
        objects: List[ObjectDescriptor],
        source_client: "S3Client",
        dest_client: "S3Client",
    ) -> RunResult:
        """
        Run the object phase with a progress bar.

        Args:
            objects (List[ObjectDescriptor]): The complete source listing.
            source_client (S3Client): Client bound to the source account.
            dest_client (S3Client): Client bound to the destination account.

        Returns:
            RunResult: The outcome of the object phase.
        """
        progress: Progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
            transient=True,
            disable=not self._show_progress,
        )

        with progress:
            task_id: TaskID = progress.add_task("Syncing objects:", total=len(objects))
            coordinator: SyncCoordinator = SyncCoordinator(
                source_client,
                dest_client,
                self._config.source.bucket,
                self._config.destination.bucket,
                self._config.app.concurrency,
                shutdown_event=self._shutdown_event,
                on_progress=lambda: progress.advance(task_id),
            )
            result: RunResult = await coordinator.run(objects)

        if result.ok:
            logger.info(
                f"Synchronization completed: {result.copied} objects copied, "
                f"{result.skipped} objects skipped."
            )
        else:
            logger.error(
                f"Synchronization incomplete: {result.copied} copied, "
                f"{result.skipped} skipped, {result.failed} failed, "
                f"{result.not_attempted} not attempted."
            )
        return result
