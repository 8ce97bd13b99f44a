# src/bucket_mirror/exceptions.py
"""Custom exceptions for the bucket-mirror application."""

from typing import Optional


class MirrorError(Exception):
    """Base exception for all application-specific errors."""

    phase: str = "run"


class ConfigError(MirrorError):
    """Raised for configuration-related issues."""

    phase = "config"


class BucketConfigError(MirrorError):
    """Raised when the bucket-configuration phase cannot be completed."""

    phase = "bucket-config"

    def __init__(self, step: str, bucket: str, message: str) -> None:
        """
        Args:
            step (str): The sub-step that failed (create, policy, versioning, lifecycle).
            bucket (str): The bucket the failing request targeted.
            message (str): A human-readable description of the failure.
        """
        super().__init__(message)
        self.step: str = step
        self.bucket: str = bucket


class ListingError(MirrorError):
    """Raised when a page of the source listing cannot be fetched."""

    phase = "listing"


class InterruptedRunError(MirrorError):
    """Raised (or recorded) when a shutdown signal stops admission of new work."""

    phase = "interrupted"


class ObjectSyncError(MirrorError):
    """Base class for failures scoped to a single object."""

    phase = "objects"

    def __init__(self, key: str, message: str) -> None:
        super().__init__(message)
        self.key: str = key


class DetectionError(ObjectSyncError):
    """Raised when the destination head fails for a reason other than not-found."""

    pass


class TransferError(ObjectSyncError):
    """Raised when any step of the copy fails permanently."""

    pass


class VerificationError(TransferError):
    """Raised when the destination object does not match the source after a copy."""

    def __init__(
        self,
        key: str,
        expected_size: int,
        actual_size: Optional[int],
        expected_etag: str,
        actual_etag: Optional[str],
    ) -> None:
        super().__init__(
            key,
            f"Verification failed for '{key}': "
            f"size (source: {expected_size}, dest: {actual_size}), "
            f"ETag (source: {expected_etag}, dest: {actual_etag})",
        )
        self.expected_size: int = expected_size
        self.actual_size: Optional[int] = actual_size
        self.expected_etag: str = expected_etag
        self.actual_etag: Optional[str] = actual_etag
