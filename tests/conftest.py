# tests/conftest.py
"""
Pytest configuration and fixtures for the bucket-mirror test suite.

This module provides:
- An in-memory, asyncio-based stand-in for two S3 accounts, raising real
  botocore `ClientError`s, used by the unit tests.
- Docker fixtures (pytest-docker) for a MinIO service used by the
  end-to-end tests, which only run when BUCKET_MIRROR_E2E=1.
"""

import asyncio
import os
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, AsyncGenerator, AsyncIterator, Dict, List, Optional, Tuple

import boto3
import pytest
import pytest_asyncio
import requests
from aiobotocore.session import AioSession, get_session
from botocore.config import Config as BotoConfig
from botocore.exceptions import ClientError
from requests.exceptions import ConnectionError
from types_boto3_s3.service_resource import Bucket, S3ServiceResource

from bucket_mirror.config import AccountConfig, AppConfig, Config

# --- Constants ---
S3_ACCESS_KEY: str = "minio-key"
S3_SECRET_KEY: str = "minio-secret"
S3_REGION: str = "us-east-1"
SOURCE_BUCKET: str = "source-bucket"
DEST_BUCKET: str = "dest-bucket"


def pytest_collection_modifyitems(
    config: pytest.Config, items: List[pytest.Item]
) -> None:
    """Skip end-to-end tests unless explicitly enabled."""
    if os.environ.get("BUCKET_MIRROR_E2E") == "1":
        return
    skip_e2e: pytest.MarkDecorator = pytest.mark.skip(
        reason="set BUCKET_MIRROR_E2E=1 to run end-to-end tests"
    )
    for item in items:
        if "e2e" in item.keywords:
            item.add_marker(skip_e2e)


# --- In-memory S3 ---
def make_client_error(
    code: str, operation: str, status: int = 400, message: str = ""
) -> ClientError:
    """
    Build a botocore `ClientError` shaped like a real service response.

    Args:
        code (str): The S3 error code.
        operation (str): The API operation name.
        status (int): The HTTP status code.
        message (str): The error message.

    Returns:
        ClientError: The error.
    """
    return ClientError(
        {
            "Error": {"Code": code, "Message": message or code},
            "ResponseMetadata": {"HTTPStatusCode": status},
        },
        operation,
    )


@dataclass
class FakeObject:
    size: int
    etag: str
    metadata: Dict[str, str] = field(default_factory=dict)
    tags: List[Dict[str, str]] = field(default_factory=list)
    storage_class: Optional[str] = None


@dataclass
class FakeBucket:
    objects: Dict[str, FakeObject] = field(default_factory=dict)
    policy: Optional[str] = None
    versioning_status: Optional[str] = None
    lifecycle_rules: Optional[List[Dict[str, Any]]] = None
    location: Optional[str] = None


@dataclass
class FailureRule:
    """Makes matching calls raise `error`, after letting `skip` of them through."""

    operation: str
    error: Exception
    client: Optional[str] = None
    key: Optional[str] = None
    skip: int = 0


class FakeS3World:
    """
    The shared state behind the fake clients of both accounts.

    Attributes:
        buckets (Dict[str, FakeBucket]): Buckets by name.
        foreign_buckets (set): Names taken by another account.
        calls (List[Tuple[str, str, Dict[str, Any]]]): Every call as
            (client name, operation, kwargs), in order.
        copy_etag_overrides (Dict[str, str]): ETag given to copies of a key,
            to simulate a destination that does not match after copying.
        page_size (int): Max keys per listing page.
        latency_s (float): Simulated latency per call.
        max_active (int): Highest number of calls in flight at once.
    """

    def __init__(self) -> None:
        self.buckets: Dict[str, FakeBucket] = {}
        self.foreign_buckets: set = set()
        self.calls: List[Tuple[str, str, Dict[str, Any]]] = []
        self.rules: List[FailureRule] = []
        self.copy_etag_overrides: Dict[str, str] = {}
        self.page_size: int = 1000
        self.latency_s: float = 0.0
        self.active: int = 0
        self.max_active: int = 0

    def create_bucket(self, name: str, **kwargs: Any) -> FakeBucket:
        bucket: FakeBucket = FakeBucket(**kwargs)
        self.buckets[name] = bucket
        return bucket

    def put_object(
        self, bucket: str, key: str, size: int, etag: str, **kwargs: Any
    ) -> None:
        self.buckets[bucket].objects[key] = FakeObject(size=size, etag=etag, **kwargs)

    def fail(
        self,
        operation: str,
        error: Exception,
        client: Optional[str] = None,
        key: Optional[str] = None,
        skip: int = 0,
    ) -> None:
        self.rules.append(FailureRule(operation, error, client, key, skip))

    def operations(self, client: Optional[str] = None) -> List[str]:
        return [op for name, op, _ in self.calls if client is None or name == client]


class FakePaginator:
    """Follows continuation tokens the way a botocore paginator does."""

    def __init__(self, client: "FakeS3Client") -> None:
        self._client: FakeS3Client = client

    def paginate(self, **kwargs: Any) -> AsyncIterator[Dict[str, Any]]:
        return self._pages(**kwargs)

    async def _pages(self, **kwargs: Any) -> AsyncIterator[Dict[str, Any]]:
        token: Optional[str] = None
        while True:
            request: Dict[str, Any] = dict(kwargs)
            if token:
                request["ContinuationToken"] = token
            page: Dict[str, Any] = await self._client.list_objects_v2(**request)
            yield page
            token = page.get("NextContinuationToken")
            if not token:
                break


class FakeS3Client:
    """An async S3 client for one account, backed by a `FakeS3World`."""

    def __init__(self, world: FakeS3World, name: str) -> None:
        self._world: FakeS3World = world
        self.name: str = name

    async def _enter(self, operation: str, kwargs: Dict[str, Any]) -> None:
        self._world.calls.append((self.name, operation, kwargs))
        self._world.active += 1
        self._world.max_active = max(self._world.max_active, self._world.active)
        try:
            await asyncio.sleep(self._world.latency_s)
        finally:
            self._world.active -= 1
        for rule in self._world.rules:
            if rule.operation != operation:
                continue
            if rule.client is not None and rule.client != self.name:
                continue
            if rule.key is not None and rule.key != kwargs.get("Key"):
                continue
            if rule.skip > 0:
                rule.skip -= 1
                continue
            raise rule.error

    def _bucket(self, name: str, operation: str) -> FakeBucket:
        if name not in self._world.buckets:
            raise make_client_error("NoSuchBucket", operation, 404)
        return self._world.buckets[name]

    def get_paginator(self, operation: str) -> FakePaginator:
        assert operation == "list_objects_v2"
        return FakePaginator(self)

    async def list_objects_v2(self, **kwargs: Any) -> Dict[str, Any]:
        await self._enter("ListObjectsV2", kwargs)
        bucket: FakeBucket = self._bucket(kwargs["Bucket"], "ListObjectsV2")
        start: int = int(kwargs.get("ContinuationToken") or 0)
        keys: List[str] = sorted(bucket.objects)
        page_keys: List[str] = keys[start : start + self._world.page_size]
        page: Dict[str, Any] = {
            "KeyCount": len(page_keys),
            "IsTruncated": start + len(page_keys) < len(keys),
        }
        if page_keys:
            page["Contents"] = [
                {
                    "Key": k,
                    "Size": bucket.objects[k].size,
                    "ETag": bucket.objects[k].etag,
                }
                for k in page_keys
            ]
        if page["IsTruncated"]:
            page["NextContinuationToken"] = str(start + len(page_keys))
        return page

    async def head_object(self, **kwargs: Any) -> Dict[str, Any]:
        await self._enter("HeadObject", kwargs)
        bucket: Optional[FakeBucket] = self._world.buckets.get(kwargs["Bucket"])
        if bucket is None or kwargs["Key"] not in bucket.objects:
            raise make_client_error("404", "HeadObject", 404, "Not Found")
        obj: FakeObject = bucket.objects[kwargs["Key"]]
        head: Dict[str, Any] = {
            "ContentLength": obj.size,
            "ETag": obj.etag,
            "Metadata": dict(obj.metadata),
        }
        if obj.storage_class:
            head["StorageClass"] = obj.storage_class
        return head

    async def get_object_tagging(self, **kwargs: Any) -> Dict[str, Any]:
        await self._enter("GetObjectTagging", kwargs)
        bucket: FakeBucket = self._bucket(kwargs["Bucket"], "GetObjectTagging")
        if kwargs["Key"] not in bucket.objects:
            raise make_client_error("NoSuchKey", "GetObjectTagging", 404)
        return {"TagSet": list(bucket.objects[kwargs["Key"]].tags)}

    async def copy_object(self, **kwargs: Any) -> Dict[str, Any]:
        await self._enter("CopyObject", kwargs)
        source: Dict[str, str] = kwargs["CopySource"]
        source_bucket: FakeBucket = self._bucket(source["Bucket"], "CopyObject")
        if source["Key"] not in source_bucket.objects:
            raise make_client_error("NoSuchKey", "CopyObject", 404)
        dest_bucket: FakeBucket = self._bucket(kwargs["Bucket"], "CopyObject")
        original: FakeObject = source_bucket.objects[source["Key"]]
        etag: str = self._world.copy_etag_overrides.get(kwargs["Key"], original.etag)
        dest_bucket.objects[kwargs["Key"]] = FakeObject(
            size=original.size,
            etag=etag,
            metadata=(
                dict(original.metadata)
                if kwargs.get("MetadataDirective", "COPY") == "COPY"
                else dict(kwargs.get("Metadata", {}))
            ),
            tags=(
                list(original.tags)
                if kwargs.get("TaggingDirective", "COPY") == "COPY"
                else []
            ),
            storage_class=kwargs.get("StorageClass"),
        )
        return {"CopyObjectResult": {"ETag": etag}}

    async def create_bucket(self, **kwargs: Any) -> Dict[str, Any]:
        await self._enter("CreateBucket", kwargs)
        name: str = kwargs["Bucket"]
        if name in self._world.foreign_buckets:
            raise make_client_error("BucketAlreadyExists", "CreateBucket", 409)
        if name in self._world.buckets:
            raise make_client_error("BucketAlreadyOwnedByYou", "CreateBucket", 409)
        location: Optional[str] = kwargs.get("CreateBucketConfiguration", {}).get(
            "LocationConstraint"
        )
        self._world.create_bucket(name, location=location)
        return {"Location": f"/{name}"}

    async def head_bucket(self, **kwargs: Any) -> Dict[str, Any]:
        await self._enter("HeadBucket", kwargs)
        if kwargs["Bucket"] in self._world.foreign_buckets:
            raise make_client_error("403", "HeadBucket", 403, "Forbidden")
        self._bucket(kwargs["Bucket"], "HeadBucket")
        return {}

    async def get_bucket_policy(self, **kwargs: Any) -> Dict[str, Any]:
        await self._enter("GetBucketPolicy", kwargs)
        bucket: FakeBucket = self._bucket(kwargs["Bucket"], "GetBucketPolicy")
        if bucket.policy is None:
            raise make_client_error("NoSuchBucketPolicy", "GetBucketPolicy", 404)
        return {"Policy": bucket.policy}

    async def put_bucket_policy(self, **kwargs: Any) -> Dict[str, Any]:
        await self._enter("PutBucketPolicy", kwargs)
        self._bucket(kwargs["Bucket"], "PutBucketPolicy").policy = kwargs["Policy"]
        return {}

    async def get_bucket_versioning(self, **kwargs: Any) -> Dict[str, Any]:
        await self._enter("GetBucketVersioning", kwargs)
        bucket: FakeBucket = self._bucket(kwargs["Bucket"], "GetBucketVersioning")
        return {"Status": bucket.versioning_status} if bucket.versioning_status else {}

    async def put_bucket_versioning(self, **kwargs: Any) -> Dict[str, Any]:
        await self._enter("PutBucketVersioning", kwargs)
        bucket: FakeBucket = self._bucket(kwargs["Bucket"], "PutBucketVersioning")
        bucket.versioning_status = kwargs["VersioningConfiguration"]["Status"]
        return {}

    async def get_bucket_lifecycle_configuration(
        self, **kwargs: Any
    ) -> Dict[str, Any]:
        await self._enter("GetBucketLifecycleConfiguration", kwargs)
        bucket: FakeBucket = self._bucket(
            kwargs["Bucket"], "GetBucketLifecycleConfiguration"
        )
        if bucket.lifecycle_rules is None:
            raise make_client_error(
                "NoSuchLifecycleConfiguration", "GetBucketLifecycleConfiguration", 404
            )
        return {"Rules": list(bucket.lifecycle_rules)}

    async def put_bucket_lifecycle_configuration(
        self, **kwargs: Any
    ) -> Dict[str, Any]:
        await self._enter("PutBucketLifecycleConfiguration", kwargs)
        bucket: FakeBucket = self._bucket(
            kwargs["Bucket"], "PutBucketLifecycleConfiguration"
        )
        bucket.lifecycle_rules = list(kwargs["LifecycleConfiguration"]["Rules"])
        return {}


@pytest.fixture(scope="function")
def s3_world() -> FakeS3World:
    """
    Provide an empty in-memory world with the source bucket already created.

    Returns:
        FakeS3World: The shared state of the fake accounts.
    """
    world: FakeS3World = FakeS3World()
    world.create_bucket(SOURCE_BUCKET)
    return world


@pytest.fixture(scope="function")
def source_client(s3_world: FakeS3World) -> FakeS3Client:
    """Provide a fake client bound to the source account."""
    return FakeS3Client(s3_world, "source")


@pytest.fixture(scope="function")
def dest_client(s3_world: FakeS3World) -> FakeS3Client:
    """Provide a fake client bound to the destination account."""
    return FakeS3Client(s3_world, "dest")


@pytest.fixture(scope="function")
def mirror_config() -> Config:
    """
    Provide a Config pointing at the fake source and destination buckets.

    Returns:
        Config: A Config instance for use in tests.
    """
    return Config(
        source=AccountConfig("src-key", "src-secret", S3_REGION, SOURCE_BUCKET),
        destination=AccountConfig("dst-key", "dst-secret", S3_REGION, DEST_BUCKET),
        app=AppConfig(concurrency=3, max_retries=1),
    )


# --- Docker Fixtures ---
@pytest.fixture(scope="session")
def docker_compose_file(pytestconfig: pytest.Config) -> str:
    """
    Locate the docker-compose.yml file for the test suite.

    Args:
        pytestconfig (pytest.Config): The pytest configuration objects.

    Returns:
        str: The absolute path to the docker-compose.yml file.
    """
    return str(Path(pytestconfig.rootdir) / "tests" / "docker-compose.yml")


@pytest.fixture(scope="session")
def docker_compose_project_name() -> str:
    """Define a unique, static project name for the Docker stack."""
    return "bucket-mirror-tests"


def _is_s3_responsive(url: str) -> bool:
    """
    Check if the MinIO health endpoint is responsive.

    Args:
        url (str): The base URL of the MinIO API.

    Returns:
        bool: True if the service is responsive, False otherwise.
    """
    try:
        response: requests.Response = requests.get(f"{url}/minio/health/live")
        return response.status_code == 200
    except ConnectionError:
        return False


@pytest.fixture(scope="session")
def s3_service(docker_ip: str, docker_services: Any) -> Dict[str, Any]:
    """
    Ensure the MinIO service is running and return its connection details.

    Server-side copies cannot span two services, so both sides of the mirror
    live on this one service, in different buckets.

    Args:
        docker_ip (str): The IP address of the Docker host, provided by pytest-docker.
        docker_services (Any): The pytest-docker services fixture.

    Returns:
        Dict[str, Any]: Connection details for the S3 service.
    """
    port: int = docker_services.port_for("minio", 9000)
    api_url: str = f"http://{docker_ip}:{port}"
    docker_services.wait_until_responsive(
        timeout=30.0, pause=0.1, check=lambda: _is_s3_responsive(api_url)
    )
    return {
        "endpoint_url": api_url,
        "aws_access_key_id": S3_ACCESS_KEY,
        "aws_secret_access_key": S3_SECRET_KEY,
        "region_name": S3_REGION,
    }


@pytest_asyncio.fixture(scope="function")
async def s3_buckets(s3_service: Dict[str, Any]) -> AsyncGenerator[Dict[str, str], None]:
    """
    Create a unique source bucket and name a destination bucket for one test.

    The destination bucket is left for the run under test to create. Both
    buckets and their contents are deleted afterwards.

    Args:
        s3_service (Dict[str, Any]): Connection details for the S3 service.

    Yields:
        Dict[str, str]: The source and destination bucket names.
    """
    session: AioSession = get_session()
    suffix: str = uuid.uuid4().hex[:12]
    source_bucket: str = f"source-{suffix}"
    dest_bucket: str = f"dest-{suffix}"

    async with session.create_client("s3", **s3_service) as client:
        await client.create_bucket(Bucket=source_bucket)

    yield {"source": source_bucket, "destination": dest_bucket}

    # Cleanup: boto3 is simpler for synchronous, recursive delete
    boto_config: BotoConfig = BotoConfig(
        retries={"max_attempts": 0, "mode": "standard"}
    )
    resource: S3ServiceResource = boto3.resource(
        "s3", **s3_service, config=boto_config
    )
    for bucket in (source_bucket, dest_bucket):
        try:
            bucket_obj: Bucket = resource.Bucket(bucket)
            bucket_obj.objects.all().delete()
            bucket_obj.delete()
        except ClientError as e:
            if e.response["Error"]["Code"] != "NoSuchBucket":
                raise


@pytest.fixture(scope="function")
def e2e_config(s3_buckets: Dict[str, str], s3_service: Dict[str, Any]) -> Config:
    """
    Provide a Config pointing at the MinIO buckets of the current test.

    Args:
        s3_buckets (Dict[str, str]): The bucket names for this test.
        s3_service (Dict[str, Any]): Connection details for the S3 service.

    Returns:
        Config: A Config instance for use in tests.
    """
    return Config(
        source=AccountConfig(
            S3_ACCESS_KEY,
            S3_SECRET_KEY,
            S3_REGION,
            s3_buckets["source"],
            endpoint_url=s3_service["endpoint_url"],
        ),
        destination=AccountConfig(
            S3_ACCESS_KEY,
            S3_SECRET_KEY,
            S3_REGION,
            s3_buckets["destination"],
            endpoint_url=s3_service["endpoint_url"],
        ),
        app=AppConfig(concurrency=8, max_retries=2),
    )
