# src/bucket_mirror/worker.py
"""
Defines the per-object unit of work.

A unit compares one source object with the destination and, if it is absent
or stale, performs a server-side copy that keeps metadata, tags and storage
class, then re-heads the destination to verify the result. An object only
counts as copied once that verification passes.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from bucket_mirror.detector import Detection, detect_change
from bucket_mirror.exceptions import TransferError, VerificationError
from bucket_mirror.lister import ObjectDescriptor

if TYPE_CHECKING:
    from types_aiobotocore_s3.client import S3Client
    from types_aiobotocore_s3.type_defs import (
        GetObjectTaggingOutputTypeDef,
        HeadObjectOutputTypeDef,
    )

logger: logging.Logger = logging.getLogger(__name__)


class ObjectOutcome(Enum):
    """The final, successful outcome of a unit of work."""

    COPIED = "copied"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class CopyReport:
    """
    A record of a verified copy.

    Attributes:
        key (str): The object key.
        size (int): The verified size in bytes.
        etag (str): The verified entity tag.
        storage_class (str, optional): The storage class carried over from
            the source, None for the service default.
        metadata (Dict[str, str]): The source's user metadata.
        tag_count (int): Number of tags on the source object.
    """

    key: str
    size: int
    etag: str
    storage_class: Optional[str] = None
    metadata: Dict[str, str] = field(default_factory=dict)
    tag_count: int = 0


async def copy_and_verify(
    source_client: "S3Client",
    dest_client: "S3Client",
    source_bucket: str,
    dest_bucket: str,
    key: str,
    expected_size: int,
    expected_etag: str,
) -> CopyReport:
    """
    Copy one object server-side and verify the destination matches.

    Verification compares against the size and tag recorded at listing time,
    not re-fetched ones. A mismatch is reported as an error and is not
    retried. Transient request failures are retried by the client's own
    retry policy before they reach this function.

    Args:
        source_client (S3Client): Client bound to the source account.
        dest_client (S3Client): Client bound to the destination account.
        source_bucket (str): The source bucket name.
        dest_bucket (str): The destination bucket name.
        key (str): The object key (identical on both sides).
        expected_size (int): The source size from the listing.
        expected_etag (str): The source entity tag from the listing.

    Returns:
        CopyReport: Details of the verified copy.

    Raises:
        TransferError: If any request fails.
        VerificationError: If the destination does not match after the copy.
    """
    # 1. Source metadata
    try:
        source_meta: "HeadObjectOutputTypeDef" = await source_client.head_object(
            Bucket=source_bucket, Key=key
        )
    except (ClientError, BotoCoreError) as e:
        raise TransferError(key, f"Failed to head source object '{key}': {e}") from e
    storage_class: Optional[str] = source_meta.get("StorageClass")
    metadata: Dict[str, str] = dict(source_meta.get("Metadata", {}))

    # 2. Source tags
    try:
        tagging: "GetObjectTaggingOutputTypeDef" = (
            await source_client.get_object_tagging(Bucket=source_bucket, Key=key)
        )
    except (ClientError, BotoCoreError) as e:
        raise TransferError(
            key, f"Failed to get source object tags for '{key}': {e}"
        ) from e
    tags: List[Dict[str, str]] = list(tagging.get("TagSet", []))

    # 3. Server-side copy
    copy_kwargs: Dict[str, Any] = {
        "Bucket": dest_bucket,
        "Key": key,
        "CopySource": {"Bucket": source_bucket, "Key": key},
        "MetadataDirective": "COPY",
        "TaggingDirective": "COPY",
    }
    if storage_class:
        copy_kwargs["StorageClass"] = storage_class
    try:
        await dest_client.copy_object(**copy_kwargs)
    except (ClientError, BotoCoreError) as e:
        raise TransferError(key, f"Failed to copy object '{key}': {e}") from e

    # 4. Re-head the destination
    try:
        dest_meta: "HeadObjectOutputTypeDef" = await dest_client.head_object(
            Bucket=dest_bucket, Key=key
        )
    except (ClientError, BotoCoreError) as e:
        raise TransferError(
            key, f"Failed to verify copied object '{key}': {e}"
        ) from e

    # 5. Compare against the listing values
    actual_size: Optional[int] = dest_meta.get("ContentLength")
    actual_etag: Optional[str] = dest_meta.get("ETag")
    if actual_size != expected_size or actual_etag != expected_etag:
        raise VerificationError(
            key, expected_size, actual_size, expected_etag, actual_etag
        )

    logger.debug(f"Verified copy of '{key}' ({actual_size} bytes, {actual_etag}).")
    return CopyReport(
        key=key,
        size=expected_size,
        etag=expected_etag,
        storage_class=storage_class,
        metadata=metadata,
        tag_count=len(tags),
    )


async def process_object(
    source_client: "S3Client",
    dest_client: "S3Client",
    source_bucket: str,
    dest_bucket: str,
    obj: ObjectDescriptor,
) -> ObjectOutcome:
    """
    Run change detection for one object and copy it if needed.

    Args:
        source_client (S3Client): Client bound to the source account.
        dest_client (S3Client): Client bound to the destination account.
        source_bucket (str): The source bucket name.
        dest_bucket (str): The destination bucket name.
        obj (ObjectDescriptor): The source object to process.

    Returns:
        ObjectOutcome: COPIED after a verified copy, SKIPPED if up to date.
    """
    detection: Detection = await detect_change(dest_client, dest_bucket, obj)
    if not detection.decision.needs_copy:
        logger.info(f"Object '{obj.key}' is up-to-date, skipping.")
        return ObjectOutcome.SKIPPED

    logger.debug(
        f"Object '{obj.key}' is {detection.decision.value} in destination, copying."
    )
    report: CopyReport = await copy_and_verify(
        source_client,
        dest_client,
        source_bucket,
        dest_bucket,
        obj.key,
        obj.size,
        obj.etag,
    )
    logger.info(
        f"Copied object '{report.key}' ({report.size} bytes, "
        f"storage class {report.storage_class or 'default'}, "
        f"{len(report.metadata)} metadata entries, {report.tag_count} tags)."
    )
    return ObjectOutcome.COPIED
