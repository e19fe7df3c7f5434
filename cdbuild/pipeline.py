"""
The cdbuild pipeline: provision, upload, submit, poll, clean up.

Example usage:
    >>> from cdbuild.pipeline import PipelineConfig, create_clients, run_pipeline
    >>> config = PipelineConfig(project="demo", name="app")
    >>> with create_clients("demo") as clients:
    ...     outcome = run_pipeline(config, clients)
    >>> print(outcome.status)
    BuildStatus.SUCCESS
"""

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

import google.auth
from google.auth.exceptions import DefaultCredentialsError
from google.cloud import storage
from google.cloud.devtools import cloudbuild_v1

from cdbuild.builder import (
    BuildRequest,
    BuildStatus,
    PollPolicy,
    cancel_build,
    image_for,
    log_url,
    submit_build,
    wait_for_build,
)
from cdbuild.errors import (
    BuildCancelledError,
    BuildSubmissionError,
    BuildTimeoutError,
    CleanupError,
    CredentialsError,
    ProvisioningError,
    StatusFetchError,
    UploadError,
)
from cdbuild.storage import (
    OrphanLedger,
    StagingLocation,
    delete_archive,
    ensure_bucket,
    staging_bucket_name,
    upload_archive,
)
from cdbuild.utils.config import DEFAULT_BUILDER_IMAGE, DEFAULT_ORPHAN_LOG
from cdbuild.utils.logging import get_logger, set_correlation_id
from cdbuild.utils.metrics import CdBuildMetrics

logger = get_logger(__name__)

CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"


@dataclass
class PipelineConfig:
    """
    Inputs for one pipeline run.

    Attributes:
        project: Google Cloud project to build in
        name: Image name, optionally ``name:tag``
        source_dir: Directory to archive and build
        builder_image: Builder step image
        poll_policy: Status polling backoff and deadline
        tolerate_cleanup_failure: Log and record a failed archive delete
            instead of failing the run
        orphan_log_path: Where undeletable archives are recorded
    """

    project: str
    name: str
    source_dir: Path = Path(".")
    builder_image: str = DEFAULT_BUILDER_IMAGE
    poll_policy: PollPolicy = field(default_factory=PollPolicy)
    tolerate_cleanup_failure: bool = False
    orphan_log_path: Path = DEFAULT_ORPHAN_LOG


@dataclass
class BuildOutcome:
    """
    Result of a pipeline run that reached a terminal build status.

    Attributes:
        build_id: Remote build id
        status: Terminal build status
        image: Image the build was asked to produce
        location: Staged archive location
        log_url: Console URL of the build log
        cleaned_up: Whether the staged archive was deleted
    """

    build_id: str
    status: BuildStatus
    image: str
    location: StagingLocation
    log_url: str
    cleaned_up: bool = True

    @property
    def succeeded(self) -> bool:
        return self.status == BuildStatus.SUCCESS


class Clients:
    """Storage and Cloud Build clients sharing one set of credentials."""

    def __init__(self, storage_client: storage.Client, build_client: cloudbuild_v1.CloudBuildClient):
        self.storage = storage_client
        self.builds = build_client

    def close(self) -> None:
        self.storage.close()
        self.builds.transport.close()

    def __enter__(self) -> "Clients":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


def create_clients(project: str) -> Clients:
    """
    Build authenticated clients from application default credentials.

    Raises:
        CredentialsError: No usable credentials in the environment
    """
    try:
        credentials, _ = google.auth.default(scopes=[CLOUD_PLATFORM_SCOPE])
    except DefaultCredentialsError as error:
        raise CredentialsError(
            f"Could not get application default credentials: {error}. "
            "Run `gcloud auth application-default login` or set "
            "GOOGLE_APPLICATION_CREDENTIALS."
        ) from error

    return Clients(
        storage.Client(project=project, credentials=credentials),
        cloudbuild_v1.CloudBuildClient(credentials=credentials),
    )


def run_pipeline(
    config: PipelineConfig,
    clients: Clients,
    metrics: Optional[CdBuildMetrics] = None,
    run_id: Optional[str] = None,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> BuildOutcome:
    """
    Archive ``config.source_dir``, build it with Cloud Build, and clean up.

    The staged archive is deleted once the build is terminal, whatever the
    status. When polling is interrupted or times out the build is cancelled
    first. When a status fetch fails the build may still need its source, so
    the archive is kept and recorded in the orphan ledger instead.

    Returns:
        BuildOutcome for the terminal build

    Raises:
        ProvisioningError, BillingNotEnabledError: Staging bucket unavailable
        ArchiveError, UploadError: Source could not be staged
        BuildSubmissionError, BuildApiDisabledError: Build not created
        StatusFetchError: Status could not be read
        BuildTimeoutError: Deadline passed (build cancelled)
        BuildCancelledError: Interrupted (build cancelled)
        CleanupError: Archive delete failed and failures are not tolerated
    """
    metrics = metrics if metrics is not None else CdBuildMetrics()
    ledger = OrphanLedger(config.orphan_log_path)

    bucket = staging_bucket_name(config.project)
    location = StagingLocation.create(bucket, config.name, run_id=run_id)
    set_correlation_id(location.run_id)

    try:
        ensure_bucket(clients.storage, config.project, bucket)
    except ProvisioningError:
        metrics.record_gcs_error("provision")
        raise

    logger.info(f"Pushing code to {location.gcs_uri}")
    try:
        with metrics.upload_duration.time():
            stats = upload_archive(clients.storage, location, config.source_dir)
    except UploadError:
        metrics.record_gcs_error("upload")
        raise
    metrics.upload_bytes.inc(stats.bytes_read)

    request = BuildRequest(
        project=config.project,
        location=location,
        image=image_for(config.project, config.name),
        builder_image=config.builder_image,
    )
    try:
        build_id = submit_build(clients.builds, request)
    except BuildSubmissionError:
        _cleanup(clients, location, ledger, metrics, fatal=False)
        raise

    url = log_url(bucket, build_id)
    logger.info(f"Logs at {url}")

    started = clock()
    try:
        status = wait_for_build(
            clients.builds, config.project, build_id, config.poll_policy, sleep=sleep, clock=clock
        )
    except KeyboardInterrupt as interrupt:
        logger.warning(f"Interrupted, cancelling build {build_id}")
        cancel_build(clients.builds, config.project, build_id)
        _cleanup(clients, location, ledger, metrics, fatal=False)
        raise BuildCancelledError(f"Build {build_id} cancelled by user") from interrupt
    except BuildTimeoutError:
        cancel_build(clients.builds, config.project, build_id)
        _cleanup(clients, location, ledger, metrics, fatal=False)
        raise
    except StatusFetchError:
        metrics.cleanup_failures.inc()
        _record_orphan(ledger, location, f"status of build {build_id} unknown")
        raise

    metrics.record_build(status.value, clock() - started)
    logger.info(f"Build status: {status.value}")

    cleaned_up = _cleanup(
        clients, location, ledger, metrics, fatal=not config.tolerate_cleanup_failure
    )
    if cleaned_up:
        logger.info("Cleaned up.")

    return BuildOutcome(
        build_id=build_id,
        status=status,
        image=request.image,
        location=location,
        log_url=url,
        cleaned_up=cleaned_up,
    )


def _cleanup(
    clients: Clients,
    location: StagingLocation,
    ledger: OrphanLedger,
    metrics: CdBuildMetrics,
    *,
    fatal: bool,
) -> bool:
    """Delete the staged archive. Returns False if it was left behind and fatal is off."""
    try:
        delete_archive(clients.storage, location)
    except CleanupError as error:
        metrics.record_gcs_error("delete")
        metrics.cleanup_failures.inc()
        _record_orphan(ledger, location, str(error))
        if fatal:
            raise
        logger.warning(f"{error}; left for garbage collection")
        return False
    return True


def _record_orphan(ledger: OrphanLedger, location: StagingLocation, reason: str) -> None:
    try:
        ledger.record(location, reason)
    except OSError as error:
        logger.error(f"Could not record orphaned archive {location.gcs_uri}: {error}")
