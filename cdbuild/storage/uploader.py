"""
Cloud Storage upload and cleanup for staged source archives.

The archive is streamed through ``Blob.open("wb")`` (a resumable upload), so
memory use does not depend on the size of the source tree. The upload is
only finalized when the whole archive was written; otherwise the resumable
session is terminated and no object is committed. Storage calls run with
the client's default retry switched off.

Example usage:
    >>> from google.cloud import storage
    >>> from cdbuild.storage import StagingLocation, upload_archive, delete_archive
    >>> client = storage.Client()
    >>> location = StagingLocation.create("cdbuild-demo", "app")
    >>> stats = upload_archive(client, location, "./app")
    >>> delete_archive(client, location)
"""

import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from google.api_core import exceptions as gexc
from google.cloud import storage

from cdbuild.archiver import ArchiveStats, write_archive
from cdbuild.errors import ArchiveError, CleanupError, UploadError
from cdbuild.utils.logging import get_logger, log_function_call

logger = get_logger(__name__)

OBJECT_PREFIX = "build/"
CONTENT_TYPE = "application/gzip"
# Resumable upload chunk size; must be a multiple of 256 KiB
CHUNK_SIZE = 8 * 1024 * 1024


@dataclass(frozen=True)
class StagingLocation:
    """
    Where one invocation's source archive lives.

    Attributes:
        bucket: Staging bucket name (without gs:// prefix)
        object_name: Object path inside the bucket
        run_id: The UUID that makes object_name unique
    """

    bucket: str
    object_name: str
    run_id: str

    @classmethod
    def create(cls, bucket: str, name: str, run_id: Optional[str] = None) -> "StagingLocation":
        """
        Build a unique location for image ``name`` (``name`` or ``name:tag``).

        Example:
            >>> StagingLocation.create("cdbuild-demo", "app:v1", run_id="1234").object_name
            'build/app-v1-1234.tar.gz'
        """
        run_id = run_id or str(uuid.uuid4())
        safe_name = name.replace(":", "-").replace("/", "-")
        return cls(
            bucket=bucket,
            object_name=f"{OBJECT_PREFIX}{safe_name}-{run_id}.tar.gz",
            run_id=run_id,
        )

    @property
    def gcs_uri(self) -> str:
        return f"gs://{self.bucket}/{self.object_name}"


@log_function_call
def upload_archive(
    client: storage.Client,
    location: StagingLocation,
    source_dir: Union[str, Path],
) -> ArchiveStats:
    """
    Stream a tar.gz of ``source_dir`` into ``location``.

    Args:
        client: Authenticated Cloud Storage client
        location: Destination bucket and object
        source_dir: Directory to archive

    Returns:
        ArchiveStats for the uploaded archive

    Raises:
        ArchiveError: A source file could not be read (upload aborted)
        UploadError: Writing to Cloud Storage failed (upload aborted)
    """
    blob = client.bucket(location.bucket).blob(location.object_name, chunk_size=CHUNK_SIZE)
    writer = blob.open("wb", ignore_flush=True, content_type=CONTENT_TYPE, retry=None)

    try:
        stats = write_archive(source_dir, writer)
    except ArchiveError:
        _abort(writer, location)
        raise
    except Exception as error:
        _abort(writer, location)
        raise UploadError(f"Could not upload {location.gcs_uri}: {error}") from error
    except BaseException:
        # KeyboardInterrupt mid-stream
        _abort(writer, location)
        raise

    try:
        writer.close()
    except Exception as error:
        raise UploadError(f"Could not finalize {location.gcs_uri}: {error}") from error

    logger.info(
        f"Uploaded {stats.files} files ({stats.bytes_read} bytes) to {location.gcs_uri}"
    )
    return stats


def _abort(writer, location: StagingLocation) -> None:
    """Terminate the resumable session so the partial object is never committed."""
    logger.warning(f"Aborting upload of {location.gcs_uri}")
    try:
        writer.terminate()
    except Exception as error:
        # Unfinished upload sessions expire server-side
        logger.warning(f"Could not terminate upload session for {location.gcs_uri}: {error}")


@log_function_call
def delete_archive(client: storage.Client, location: StagingLocation) -> None:
    """
    Delete the staged archive.

    Raises:
        CleanupError: The object could not be deleted. NotFound is treated
            as an error too: the object should exist, and its absence means
            something else touched the staging bucket.
    """
    blob = client.bucket(location.bucket).blob(location.object_name)
    try:
        blob.delete(retry=None)
    except gexc.GoogleAPIError as error:
        raise CleanupError(f"Could not delete {location.gcs_uri}: {error}") from error
