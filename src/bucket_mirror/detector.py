# src/bucket_mirror/detector.py
"""Per-object change detection against the destination bucket."""

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Optional

from botocore.exceptions import BotoCoreError, ClientError

from bucket_mirror import s3_errors
from bucket_mirror.exceptions import DetectionError
from bucket_mirror.lister import ObjectDescriptor

if TYPE_CHECKING:
    from types_aiobotocore_s3.client import S3Client


class SyncDecision(Enum):
    """Whether an object needs to be copied."""

    ABSENT = "absent"
    STALE = "stale"
    CURRENT = "current"

    @property
    def needs_copy(self) -> bool:
        return self is not SyncDecision.CURRENT


@dataclass(frozen=True)
class Detection:
    """
    The outcome of comparing one source object with the destination.

    Attributes:
        decision (SyncDecision): The classification.
        dest_size (int, optional): Destination size, None when absent.
        dest_etag (str, optional): Destination entity tag, None when absent.
    """

    decision: SyncDecision
    dest_size: Optional[int] = None
    dest_etag: Optional[str] = None


async def detect_change(
    client: "S3Client", bucket: str, obj: ObjectDescriptor
) -> Detection:
    """
    Classify an object as absent, stale or current in the destination.

    Size and entity tag must both match for the object to be current: some
    copy paths keep the size but produce a different tag.

    Args:
        client (S3Client): Client bound to the destination account.
        bucket (str): The destination bucket name.
        obj (ObjectDescriptor): The source object.

    Returns:
        Detection: The decision and the destination's observed size and tag.

    Raises:
        DetectionError: If the head request fails for a reason other than
            the object not existing.
    """
    try:
        head: Dict[str, Any] = await client.head_object(Bucket=bucket, Key=obj.key)
    except ClientError as e:
        if s3_errors.is_not_found(e):
            return Detection(SyncDecision.ABSENT)
        raise DetectionError(
            obj.key, f"Failed to head destination object '{obj.key}': {e}"
        ) from e
    except BotoCoreError as e:
        raise DetectionError(
            obj.key, f"Failed to reach destination for object '{obj.key}': {e}"
        ) from e

    dest_size: int = head["ContentLength"]
    dest_etag: str = head["ETag"]
    if dest_size != obj.size or dest_etag != obj.etag:
        return Detection(SyncDecision.STALE, dest_size, dest_etag)
    return Detection(SyncDecision.CURRENT, dest_size, dest_etag)
