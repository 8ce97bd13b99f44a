# src/bucket_mirror/__init__.py
"""
bucket-mirror: one-way synchronization of a bucket to another account.

Mirrors every object of a source S3-compatible bucket, together with the
bucket's policy, versioning status and lifecycle rules, into a destination
bucket that may live in another account or region. Objects are copied
server-side, incrementally (only when missing or changed), and each copy is
verified before it is counted.

The primary entry point for programmatic use is the `MirrorPipeline` class.
"""

from typing import List

from bucket_mirror.coordinator import RunResult
from bucket_mirror.pipeline import MirrorPipeline

__all__: List[str] = ["MirrorPipeline", "RunResult"]
