"""
Google Cloud Storage staging module.

Provisions the per-project staging bucket, streams source archives into it,
deletes them after the build, and records the ones that could not be
deleted.
"""

from .bucket import ensure_bucket, staging_bucket_name
from .orphans import OrphanLedger
from .uploader import StagingLocation, delete_archive, upload_archive

__all__ = [
    "OrphanLedger",
    "StagingLocation",
    "delete_archive",
    "ensure_bucket",
    "staging_bucket_name",
    "upload_archive",
]
