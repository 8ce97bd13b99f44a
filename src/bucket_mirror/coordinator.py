# src/bucket_mirror/coordinator.py
"""
Admission-controlled fan-out of per-object work.

One unit of work runs per listed object. A fixed-size semaphore bounds how
many units are active at once. The first unit that fails stops admission of
further units; units already admitted run to completion and are counted.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, List, Optional, Set

from bucket_mirror.exceptions import (
    InterruptedRunError,
    MirrorError,
    ObjectSyncError,
)
from bucket_mirror.lister import ObjectDescriptor
from bucket_mirror.worker import ObjectOutcome, process_object

if TYPE_CHECKING:
    from types_aiobotocore_s3.client import S3Client

logger: logging.Logger = logging.getLogger(__name__)

ProgressCallback = Callable[[], None]


@dataclass(frozen=True)
class SyncCounts:
    """
    An immutable view of the outcome counters.

    Attributes:
        copied (int): Objects copied and verified.
        skipped (int): Objects already up to date.
        failed (int): Objects whose unit of work raised an error.
    """

    copied: int = 0
    skipped: int = 0
    failed: int = 0


class SyncCounters:
    """
    Outcome counters shared by all units of work.

    Units only ever call `record`; the progress callback is invoked under the
    same lock, once per successfully finalized object.
    """

    def __init__(self, on_progress: Optional[ProgressCallback] = None) -> None:
        self._lock: asyncio.Lock = asyncio.Lock()
        self._copied: int = 0
        self._skipped: int = 0
        self._failed: int = 0
        self._on_progress: Optional[ProgressCallback] = on_progress

    async def record(self, outcome: Optional[ObjectOutcome]) -> None:
        """
        Count one finished unit.

        Args:
            outcome (ObjectOutcome, optional): The unit's outcome, or None if
                it failed. Failures do not advance progress.
        """
        async with self._lock:
            if outcome is ObjectOutcome.COPIED:
                self._copied += 1
            elif outcome is ObjectOutcome.SKIPPED:
                self._skipped += 1
            else:
                self._failed += 1
                return
            if self._on_progress is not None:
                self._on_progress()

    def snapshot(self) -> SyncCounts:
        """Return the current counts."""
        return SyncCounts(self._copied, self._skipped, self._failed)


@dataclass(frozen=True)
class RunResult:
    """
    The terminal result of a synchronization run.

    Attributes:
        total (int): Objects found in the source listing.
        copied (int): Objects copied and verified.
        skipped (int): Objects already up to date.
        failed (int): Objects whose unit of work failed.
        not_attempted (int): Objects never admitted because the run stopped.
        error (MirrorError, optional): The first error that made the run fail.
    """

    total: int = 0
    copied: int = 0
    skipped: int = 0
    failed: int = 0
    not_attempted: int = 0
    error: Optional[MirrorError] = None

    @property
    def ok(self) -> bool:
        """True only if every object was copied or skipped."""
        return self.error is None

    @classmethod
    def failure(cls, error: MirrorError, total: int = 0) -> "RunResult":
        """Build a result for a run that failed before any object work."""
        return cls(total=total, not_attempted=total, error=error)


class SyncCoordinator:
    """Runs the per-object units of work under a fixed concurrency ceiling."""

    def __init__(
        self,
        source_client: "S3Client",
        dest_client: "S3Client",
        source_bucket: str,
        dest_bucket: str,
        concurrency: int,
        shutdown_event: Optional[asyncio.Event] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> None:
        """
        Initialize the coordinator.

        Args:
            source_client (S3Client): Client bound to the source account.
            dest_client (S3Client): Client bound to the destination account.
            source_bucket (str): The source bucket name.
            dest_bucket (str): The destination bucket name.
            concurrency (int): Maximum number of units active at once.
            shutdown_event (asyncio.Event, optional): External signal that
                stops admission of new units.
            on_progress (ProgressCallback, optional): Called once per object
                that is copied or skipped.
        """
        if concurrency <= 0:
            raise ValueError(f"concurrency must be positive, got {concurrency}")
        self._source_client: "S3Client" = source_client
        self._dest_client: "S3Client" = dest_client
        self._source_bucket: str = source_bucket
        self._dest_bucket: str = dest_bucket
        self._semaphore: asyncio.Semaphore = asyncio.Semaphore(concurrency)
        self._shutdown_event: asyncio.Event = shutdown_event or asyncio.Event()
        self._failed_event: asyncio.Event = asyncio.Event()
        self._first_error: Optional[ObjectSyncError] = None
        self._counters: SyncCounters = SyncCounters(on_progress)

    def _should_stop(self) -> bool:
        return self._failed_event.is_set() or self._shutdown_event.is_set()

    async def run(self, objects: List[ObjectDescriptor]) -> RunResult:
        """
        Process every object, stopping admission after the first failure.

        Args:
            objects (List[ObjectDescriptor]): The complete source listing.

        Returns:
            RunResult: The aggregated counters and the first error, if any.
        """
        in_flight: Set[asyncio.Task[None]] = set()
        admitted: int = 0

        for obj in objects:
            if not await self._wait_for_slot():
                logger.info(
                    f"Admission stopped after {admitted} of {len(objects)} objects."
                )
                break
            task: asyncio.Task[None] = asyncio.create_task(self._run_unit(obj))
            in_flight.add(task)
            task.add_done_callback(in_flight.discard)
            admitted += 1

        if in_flight:
            await asyncio.gather(*in_flight)

        counts: SyncCounts = self._counters.snapshot()
        error: Optional[MirrorError] = self._first_error
        if error is None and admitted < len(objects):
            error = InterruptedRunError(
                f"Run interrupted by shutdown signal after admitting "
                f"{admitted} of {len(objects)} objects."
            )

        return RunResult(
            total=len(objects),
            copied=counts.copied,
            skipped=counts.skipped,
            failed=counts.failed,
            not_attempted=len(objects) - admitted,
            error=error,
        )

    async def _wait_for_slot(self) -> bool:
        """
        Wait until a concurrency slot is free or admission must stop.

        Returns:
            bool: True if a slot was taken, False if a failure or shutdown
                ended admission first.
        """
        if self._should_stop():
            return False
        acquire: asyncio.Task[bool] = asyncio.ensure_future(self._semaphore.acquire())
        stops: List[asyncio.Task[bool]] = [
            asyncio.ensure_future(self._failed_event.wait()),
            asyncio.ensure_future(self._shutdown_event.wait()),
        ]
        try:
            await asyncio.wait([acquire, *stops], return_when=asyncio.FIRST_COMPLETED)
        finally:
            for waiter in stops:
                waiter.cancel()
            acquire.cancel()

        # The slot may have been granted in the same step the stop was seen.
        granted: List[Any] = await asyncio.gather(acquire, return_exceptions=True)
        if granted[0] is not True:
            return False
        if self._should_stop():
            self._semaphore.release()
            return False
        return True

    async def _run_unit(self, obj: ObjectDescriptor) -> None:
        """
        Run one unit of work and record its outcome. Always releases its slot.

        Args:
            obj (ObjectDescriptor): The object to process.
        """
        outcome: Optional[ObjectOutcome] = None
        try:
            outcome = await process_object(
                self._source_client,
                self._dest_client,
                self._source_bucket,
                self._dest_bucket,
                obj,
            )
        except ObjectSyncError as e:
            logger.error(f"Failed to sync '{obj.key}': {type(e).__name__} - {e}")
            self._record_failure(e)
        except Exception as e:
            logger.exception(f"An unexpected error occurred syncing '{obj.key}'")
            wrapped: ObjectSyncError = ObjectSyncError(
                obj.key, f"Unexpected error syncing '{obj.key}': {e}"
            )
            wrapped.__cause__ = e
            self._record_failure(wrapped)
        finally:
            try:
                await self._counters.record(outcome)
            finally:
                self._semaphore.release()

    def _record_failure(self, error: ObjectSyncError) -> None:
        if self._first_error is None:
            self._first_error = error
            logger.warning("Stopping admission of new objects after first failure.")
        self._failed_event.set()
