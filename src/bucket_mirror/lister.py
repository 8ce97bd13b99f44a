# src/bucket_mirror/lister.py
"""Enumeration of the source bucket's objects."""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, AsyncIterator, List

from botocore.exceptions import BotoCoreError, ClientError

from bucket_mirror.exceptions import ListingError

if TYPE_CHECKING:
    from types_aiobotocore_s3.client import S3Client
    from types_aiobotocore_s3.paginator import ListObjectsV2Paginator
    from types_aiobotocore_s3.type_defs import ListObjectsV2OutputTypeDef

logger: logging.Logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ObjectDescriptor:
    """
    One object of the source listing.

    Attributes:
        key (str): The object key, unique within the listing.
        size (int): Size of the object in bytes.
        etag (str): The entity tag reported by the storage service.
    """

    key: str
    size: int
    etag: str


async def list_objects(client: "S3Client", bucket: str) -> List[ObjectDescriptor]:
    """
    List every object in a bucket, following continuation tokens to the end.

    The listing is materialized in full so the total is known before any
    object is processed. A failure on any page fails the whole listing: a
    partial inventory would silently skip the unseen objects.

    Args:
        client (S3Client): Client bound to the source account.
        bucket (str): The bucket to list.

    Returns:
        List[ObjectDescriptor]: The objects, in listing order.

    Raises:
        ListingError: If any page request fails.
    """
    paginator: "ListObjectsV2Paginator" = client.get_paginator("list_objects_v2")
    pages: AsyncIterator["ListObjectsV2OutputTypeDef"] = paginator.paginate(
        Bucket=bucket
    )

    objects: List[ObjectDescriptor] = []
    page_count: int = 0
    try:
        async for page in pages:
            page_count += 1
            for content in page.get("Contents", []):
                objects.append(
                    ObjectDescriptor(
                        key=content["Key"],
                        size=content["Size"],
                        etag=content["ETag"],
                    )
                )
    except (ClientError, BotoCoreError) as e:
        raise ListingError(
            f"Failed to list source objects in '{bucket}' "
            f"(after {page_count} page(s)): {e}"
        ) from e

    logger.debug(f"Listed {len(objects)} objects from '{bucket}' in {page_count} page(s).")
    return objects
