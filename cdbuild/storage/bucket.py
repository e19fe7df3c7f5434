"""
Staging bucket provisioning.

The staging bucket is named after the project, created on first use and
reused afterwards. Creation races between concurrent runs are harmless: a
409 Conflict from ``create_bucket`` means another run won, which is success.
The client's default retry is switched off; a failed call is reported at once.
"""

from google.api_core import exceptions as gexc
from google.cloud import storage

from cdbuild.errors import BillingNotEnabledError, ProvisioningError
from cdbuild.utils.logging import get_logger, log_function_call

logger = get_logger(__name__)

STAGING_BUCKET_PREFIX = "cdbuild-"
MAX_BUCKET_NAME_LENGTH = 63


def staging_bucket_name(project: str) -> str:
    """
    Return the staging bucket name for a project.

    Example:
        >>> staging_bucket_name("demo")
        'cdbuild-demo'
    """
    name = f"{STAGING_BUCKET_PREFIX}{project}"
    if len(name) > MAX_BUCKET_NAME_LENGTH:
        raise ValueError(
            f"Staging bucket name too long: {len(name)} > {MAX_BUCKET_NAME_LENGTH} ({name})"
        )
    return name


@log_function_call
def ensure_bucket(client: storage.Client, project: str, bucket: str) -> bool:
    """
    Make sure ``bucket`` exists in ``project``, creating it if absent.

    Args:
        client: Authenticated Cloud Storage client
        project: Project that owns the bucket
        bucket: Bucket name

    Returns:
        True if this call created the bucket, False if it already existed
        (including when a concurrent run created it first)

    Raises:
        BillingNotEnabledError: Creation was refused with 403
        ProvisioningError: Any other lookup or creation failure
    """
    try:
        client.get_bucket(bucket, retry=None)
    except gexc.NotFound:
        logger.info(f"Staging bucket gs://{bucket} not found, creating it")
    except gexc.GoogleAPIError as error:
        raise ProvisioningError(f"Could not look up bucket {bucket!r}: {error}") from error
    else:
        logger.debug(f"Staging bucket gs://{bucket} exists")
        return False

    try:
        client.create_bucket(bucket, project=project, retry=None)
    except gexc.Conflict:
        logger.info(f"Staging bucket gs://{bucket} was created concurrently")
        return False
    except gexc.Forbidden as error:
        raise BillingNotEnabledError(project, bucket) from error
    except gexc.GoogleAPIError as error:
        raise ProvisioningError(f"Could not create bucket {bucket!r}: {error}") from error

    logger.info(f"Created staging bucket gs://{bucket}")
    return True
