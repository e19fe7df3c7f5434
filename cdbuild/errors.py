"""
Exception hierarchy for cdbuild.

Pipeline modules raise these; only the CLI turns them into exit codes.
Underlying google.api_core / OSError exceptions are chained with ``from``.
"""

from typing import Optional

EXIT_FATAL = 1
EXIT_USAGE = 2
EXIT_INTERRUPTED = 130

BILLING_URL = "https://console.cloud.google.com/billing?project={project}"
CLOUDBUILD_API_URL = (
    "https://console.cloud.google.com/apis/library/cloudbuild.googleapis.com?project={project}"
)


class CdBuildError(Exception):
    """Base class for all cdbuild failures."""

    exit_code = EXIT_FATAL


class CredentialsError(CdBuildError):
    """Application default credentials could not be obtained."""


class ProvisioningError(CdBuildError):
    """The staging bucket could not be looked up or created."""


class BillingNotEnabledError(ProvisioningError):
    """Bucket creation was refused, usually because billing is off."""

    def __init__(self, project: str, bucket: str) -> None:
        self.project = project
        self.bucket = bucket
        self.remediation_url = BILLING_URL.format(project=project)
        super().__init__(
            f"Could not create staging bucket {bucket!r}: permission denied. "
            f"Make sure billing is enabled for project {project!r}: {self.remediation_url}"
        )


class ArchiveError(CdBuildError):
    """A file under the source directory could not be read."""


class UploadError(CdBuildError):
    """Writing the archive to Cloud Storage failed; the object was not finalized."""


class BuildSubmissionError(CdBuildError):
    """The build could not be created, or its id could not be read."""


class BuildApiDisabledError(BuildSubmissionError):
    """The Cloud Build API is not enabled (or not reachable) for the project."""

    def __init__(self, project: str, detail: Optional[str] = None) -> None:
        self.project = project
        self.remediation_url = CLOUDBUILD_API_URL.format(project=project)
        message = (
            f"Cloud Build is not enabled for project {project!r}. "
            f"Enable it at {self.remediation_url}"
        )
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class StatusFetchError(CdBuildError):
    """Fetching the build status failed. Not retried."""


class BuildTimeoutError(CdBuildError):
    """The build did not reach a terminal status before the deadline."""


class BuildCancelledError(CdBuildError):
    """Polling was interrupted by the user; the remote build was cancelled."""

    exit_code = EXIT_INTERRUPTED


class CleanupError(CdBuildError):
    """The staging archive could not be deleted after the build finished."""
