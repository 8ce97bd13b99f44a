# src/bucket_mirror/bucket_config.py
"""
Propagation of bucket-level configuration.

Before any object is copied, the destination bucket is created (if needed)
and given the source bucket's access policy, versioning status and lifecycle
rules. Each step tolerates its "not configured" signal; every other failure
aborts the run with a `BucketConfigError`.
"""

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from bucket_mirror import s3_errors
from bucket_mirror.exceptions import BucketConfigError

if TYPE_CHECKING:
    from types_aiobotocore_s3.client import S3Client

logger: logging.Logger = logging.getLogger(__name__)

# Buckets in this region must be created without a location constraint.
DEFAULT_REGION: str = "us-east-1"


@dataclass(frozen=True)
class BucketConfigSnapshot:
    """
    The source bucket's configuration, read once before object sync starts.

    Attributes:
        policy (str, optional): The access-policy document, or None if the
            bucket has no policy.
        versioning_status (str, optional): "Enabled", "Suspended", or None
            when versioning has never been configured.
        lifecycle_rules (List[Dict[str, Any]]): The lifecycle rules; empty
            when the bucket has no lifecycle configuration.
    """

    policy: Optional[str] = None
    versioning_status: Optional[str] = None
    lifecycle_rules: List[Dict[str, Any]] = field(default_factory=list)


async def ensure_bucket(client: "S3Client", bucket: str, region: str) -> None:
    """
    Create the destination bucket, treating "already owned by you" as success.

    Args:
        client (S3Client): Client bound to the destination account.
        bucket (str): The destination bucket name.
        region (str): The destination region.

    Raises:
        BucketConfigError: If the bucket cannot be created and is not
            already accessible to the destination account.
    """
    kwargs: Dict[str, Any] = {"Bucket": bucket}
    if region and region != DEFAULT_REGION:
        kwargs["CreateBucketConfiguration"] = {"LocationConstraint": region}

    try:
        await client.create_bucket(**kwargs)
    except ClientError as e:
        if s3_errors.is_bucket_already_owned(e):
            logger.debug(f"Bucket '{bucket}' already exists and is owned by us.")
        elif s3_errors.is_bucket_already_exists(e):
            # The name is taken; it is usable only if these credentials can reach it.
            try:
                await client.head_bucket(Bucket=bucket)
            except (ClientError, BotoCoreError) as head_error:
                raise BucketConfigError(
                    "create",
                    bucket,
                    f"Destination bucket '{bucket}' exists but is not accessible: "
                    f"{head_error}",
                ) from head_error
        else:
            raise BucketConfigError(
                "create", bucket, f"Failed to create destination bucket '{bucket}': {e}"
            ) from e
    except BotoCoreError as e:
        raise BucketConfigError(
            "create", bucket, f"Failed to create destination bucket '{bucket}': {e}"
        ) from e

    logger.info(f"Ensured destination bucket '{bucket}' exists.")


async def read_bucket_config(client: "S3Client", bucket: str) -> BucketConfigSnapshot:
    """
    Read the policy, versioning status and lifecycle rules of the source bucket.

    Args:
        client (S3Client): Client bound to the source account.
        bucket (str): The source bucket name.

    Returns:
        BucketConfigSnapshot: The source bucket's configuration.

    Raises:
        BucketConfigError: If any read fails for a reason other than the
            configuration not being set.
    """
    policy: Optional[str] = None
    try:
        policy_output: Dict[str, Any] = await client.get_bucket_policy(Bucket=bucket)
        policy = policy_output.get("Policy") or None
    except ClientError as e:
        if not s3_errors.is_not_configured(e, s3_errors.NO_SUCH_BUCKET_POLICY):
            raise BucketConfigError(
                "policy", bucket, f"Failed to get source bucket policy for '{bucket}': {e}"
            ) from e
        logger.debug(f"Source bucket '{bucket}' has no policy.")
    except BotoCoreError as e:
        raise BucketConfigError(
            "policy", bucket, f"Failed to get source bucket policy for '{bucket}': {e}"
        ) from e

    try:
        versioning_output: Dict[str, Any] = await client.get_bucket_versioning(
            Bucket=bucket
        )
    except (ClientError, BotoCoreError) as e:
        raise BucketConfigError(
            "versioning",
            bucket,
            f"Failed to get source bucket versioning for '{bucket}': {e}",
        ) from e
    versioning_status: Optional[str] = versioning_output.get("Status") or None

    lifecycle_rules: List[Dict[str, Any]] = []
    try:
        lifecycle_output: Dict[str, Any] = (
            await client.get_bucket_lifecycle_configuration(Bucket=bucket)
        )
        lifecycle_rules = list(lifecycle_output.get("Rules", []))
    except ClientError as e:
        if not s3_errors.is_not_configured(
            e, s3_errors.NO_SUCH_LIFECYCLE_CONFIGURATION
        ):
            raise BucketConfigError(
                "lifecycle",
                bucket,
                f"Failed to get source lifecycle configuration for '{bucket}': {e}",
            ) from e
        logger.debug(f"Source bucket '{bucket}' has no lifecycle configuration.")
    except BotoCoreError as e:
        raise BucketConfigError(
            "lifecycle",
            bucket,
            f"Failed to get source lifecycle configuration for '{bucket}': {e}",
        ) from e

    return BucketConfigSnapshot(
        policy=policy,
        versioning_status=versioning_status,
        lifecycle_rules=lifecycle_rules,
    )


async def apply_bucket_config(
    client: "S3Client", bucket: str, snapshot: BucketConfigSnapshot
) -> None:
    """
    Write a configuration snapshot to the destination bucket verbatim.

    Args:
        client (S3Client): Client bound to the destination account.
        bucket (str): The destination bucket name.
        snapshot (BucketConfigSnapshot): The source configuration.

    Raises:
        BucketConfigError: If any write fails.
    """
    if snapshot.policy is not None:
        try:
            await client.put_bucket_policy(Bucket=bucket, Policy=snapshot.policy)
        except (ClientError, BotoCoreError) as e:
            raise BucketConfigError(
                "policy", bucket, f"Failed to sync bucket policy for '{bucket}': {e}"
            ) from e
        logger.info("Synced bucket policy.")

    # S3 rejects an empty status; a never-versioned source has nothing to carry.
    if snapshot.versioning_status is not None:
        try:
            await client.put_bucket_versioning(
                Bucket=bucket,
                VersioningConfiguration={"Status": snapshot.versioning_status},
            )
        except (ClientError, BotoCoreError) as e:
            raise BucketConfigError(
                "versioning",
                bucket,
                f"Failed to sync bucket versioning for '{bucket}': {e}",
            ) from e
        logger.info(f"Synced bucket versioning ({snapshot.versioning_status}).")
    else:
        logger.debug("Source bucket versioning was never enabled; nothing to sync.")

    if snapshot.lifecycle_rules:
        try:
            await client.put_bucket_lifecycle_configuration(
                Bucket=bucket,
                LifecycleConfiguration={"Rules": snapshot.lifecycle_rules},
            )
        except (ClientError, BotoCoreError) as e:
            raise BucketConfigError(
                "lifecycle",
                bucket,
                f"Failed to sync lifecycle rules for '{bucket}': {e}",
            ) from e
        logger.info(f"Synced {len(snapshot.lifecycle_rules)} lifecycle rule(s).")


async def sync_bucket_config(
    source_client: "S3Client",
    dest_client: "S3Client",
    source_bucket: str,
    dest_bucket: str,
    dest_region: str,
) -> BucketConfigSnapshot:
    """
    Ensure the destination bucket exists and mirrors the source configuration.

    The steps run strictly in order: create, then policy, versioning and
    lifecycle. The first fatal failure stops the phase.

    Args:
        source_client (S3Client): Client bound to the source account.
        dest_client (S3Client): Client bound to the destination account.
        source_bucket (str): The source bucket name.
        dest_bucket (str): The destination bucket name.
        dest_region (str): The destination region, used at bucket creation.

    Returns:
        BucketConfigSnapshot: The configuration that was applied.
    """
    await ensure_bucket(dest_client, dest_bucket, dest_region)
    snapshot: BucketConfigSnapshot = await read_bucket_config(
        source_client, source_bucket
    )
    await apply_bucket_config(dest_client, dest_bucket, snapshot)
    return snapshot
