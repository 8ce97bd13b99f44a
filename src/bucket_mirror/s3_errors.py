# src/bucket_mirror/s3_errors.py
"""
Classification of S3 client errors.

Signals such as "object not found" or "bucket already owned by you" are read
from the structured botocore error response. Matching on the error text is
only a last resort, used for exceptions that carry no error code at all
(for example wrappers raised by S3-compatible gateways or test doubles).
"""

from typing import FrozenSet, Optional

from botocore.exceptions import BotoCoreError, ClientError

NOT_FOUND_CODES: FrozenSet[str] = frozenset({"404", "NotFound", "NoSuchKey"})
NO_SUCH_BUCKET_POLICY: str = "NoSuchBucketPolicy"
NO_SUCH_LIFECYCLE_CONFIGURATION: str = "NoSuchLifecycleConfiguration"
BUCKET_ALREADY_OWNED_BY_YOU: str = "BucketAlreadyOwnedByYou"
BUCKET_ALREADY_EXISTS: str = "BucketAlreadyExists"


def error_code(exc: BaseException) -> Optional[str]:
    """
    Extract the service error code from a botocore `ClientError`.

    Args:
        exc (BaseException): The exception raised by the client.

    Returns:
        Optional[str]: The error code, or None if the exception has none.
    """
    if isinstance(exc, ClientError):
        code: Optional[str] = exc.response.get("Error", {}).get("Code")
        return str(code) if code else None
    return None


def http_status(exc: BaseException) -> Optional[int]:
    """
    Extract the HTTP status code from a botocore `ClientError`.

    Args:
        exc (BaseException): The exception raised by the client.

    Returns:
        Optional[int]: The HTTP status, or None if unavailable.
    """
    if isinstance(exc, ClientError):
        return exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
    return None


def _matches(exc: BaseException, *codes: str) -> bool:
    code: Optional[str] = error_code(exc)
    if code is not None:
        return code in codes
    if isinstance(exc, (ClientError, BotoCoreError)):
        # Transport errors carry the request URL, which may contain a key.
        return False
    # Last resort: foreign exception with no structured code.
    text: str = str(exc)
    return any(c in text for c in codes)


def is_not_found(exc: BaseException) -> bool:
    """Return True if the error means the requested object does not exist."""
    if http_status(exc) == 404:
        return True
    return _matches(exc, *NOT_FOUND_CODES)


def is_bucket_already_owned(exc: BaseException) -> bool:
    """Return True if bucket creation failed because the caller already owns it."""
    return _matches(exc, BUCKET_ALREADY_OWNED_BY_YOU)


def is_bucket_already_exists(exc: BaseException) -> bool:
    """Return True if bucket creation failed because the name is taken."""
    return _matches(exc, BUCKET_ALREADY_EXISTS)


def is_not_configured(exc: BaseException, code: str) -> bool:
    """
    Return True if the error is the given "no such configuration" signal.

    Args:
        exc (BaseException): The exception raised by a bucket-configuration get.
        code (str): The expected code, e.g. `NoSuchBucketPolicy`.

    Returns:
        bool: True when the bucket simply has no such configuration.
    """
    return _matches(exc, code)
