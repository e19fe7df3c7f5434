"""
Cloud Build submission.

Turns a BuildRequest into a ``cloudbuild_v1.Build``, submits it, and reads
the build id from the returned long-running operation.

The build id is read from the typed ``BuildOperationMetadata`` that the
``google-cloud-build`` client unpacks for us (``operation.metadata.build.id``).
Operation metadata delivered as a generic JSON struct is not supported.
"""

from dataclasses import dataclass

from google.api_core import exceptions as gexc
from google.api_core import operation as gapi_operation
from google.cloud.devtools import cloudbuild_v1

from cdbuild.errors import BuildApiDisabledError, BuildSubmissionError
from cdbuild.storage.uploader import StagingLocation
from cdbuild.utils.config import DEFAULT_BUILDER_IMAGE
from cdbuild.utils.logging import get_logger, log_function_call

logger = get_logger(__name__)

REGISTRY_HOST = "gcr.io"
LOG_URL = "https://console.cloud.google.com/m/cloudstorage/b/{bucket}/o/log-{build_id}.txt"


def image_for(project: str, name: str) -> str:
    """
    Return the registry path for image ``name`` (``name`` or ``name:tag``).

    Example:
        >>> image_for("demo", "app:v1")
        'gcr.io/demo/app:v1'
    """
    return f"{REGISTRY_HOST}/{project}/{name}"


def log_url(bucket: str, build_id: str) -> str:
    """Console URL of the build log the builder writes into the staging bucket."""
    return LOG_URL.format(bucket=bucket, build_id=build_id)


@dataclass(frozen=True)
class BuildRequest:
    """
    A single-step dockerizer build of a staged source archive.

    Attributes:
        project: Project the build runs in
        location: Staged source archive (also receives the build log)
        image: Fully qualified image to produce, e.g. gcr.io/demo/app
        builder_image: Builder that turns the source into an image
    """

    project: str
    location: StagingLocation
    image: str
    builder_image: str = DEFAULT_BUILDER_IMAGE

    def to_build(self) -> cloudbuild_v1.Build:
        return cloudbuild_v1.Build(
            source=cloudbuild_v1.Source(
                storage_source=cloudbuild_v1.StorageSource(
                    bucket=self.location.bucket,
                    object_=self.location.object_name,
                )
            ),
            steps=[cloudbuild_v1.BuildStep(name=self.builder_image, args=[self.image])],
            images=[self.image],
            logs_bucket=f"gs://{self.location.bucket}",
        )


def extract_build_id(operation: gapi_operation.Operation) -> str:
    """
    Read the build id from a ``create_build`` operation.

    Raises:
        BuildSubmissionError: The operation carries no build metadata
    """
    metadata = operation.metadata
    if metadata is None:
        raise BuildSubmissionError("Build operation has no metadata")
    build_id = metadata.build.id
    if not build_id:
        raise BuildSubmissionError("Build operation metadata has no build id")
    return build_id


@log_function_call
def submit_build(client: cloudbuild_v1.CloudBuildClient, request: BuildRequest) -> str:
    """
    Submit ``request`` and return the remote build id.

    Raises:
        BuildApiDisabledError: The Cloud Build API refused with 403/404,
            which in practice means it is not enabled for the project
        BuildSubmissionError: Any other API failure, or no build id
    """
    try:
        operation = client.create_build(project_id=request.project, build=request.to_build())
    except (gexc.Forbidden, gexc.NotFound) as error:
        raise BuildApiDisabledError(request.project, detail=error.message) from error
    except gexc.GoogleAPIError as error:
        raise BuildSubmissionError(f"Could not create build: {error}") from error

    build_id = extract_build_id(operation)
    logger.info(f"Submitted build {build_id} for {request.image}")
    return build_id
