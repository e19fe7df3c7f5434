"""
Cloud Build status polling.

The build's state machine belongs to Cloud Build
(QUEUED -> WORKING -> SUCCESS | FAILURE | ...); this module only observes it.
Polls back off exponentially up to a cap, and an optional deadline bounds
the total wait. A failed status fetch is never retried.
"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from google.api_core import exceptions as gexc
from google.cloud.devtools import cloudbuild_v1

from cdbuild.errors import BuildTimeoutError, StatusFetchError
from cdbuild.utils.backoff import Deadline, calculate_backoff_delay
from cdbuild.utils.logging import get_logger

logger = get_logger(__name__)

# Seconds before a single status request is abandoned
STATUS_REQUEST_TIMEOUT = 60.0


class BuildStatus(str, Enum):
    """Cloud Build v1 build statuses."""

    STATUS_UNKNOWN = "STATUS_UNKNOWN"
    PENDING = "PENDING"
    QUEUED = "QUEUED"
    WORKING = "WORKING"
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    TIMEOUT = "TIMEOUT"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"

    @property
    def is_terminal(self) -> bool:
        return self not in _NON_TERMINAL

    @classmethod
    def from_api(cls, status) -> "BuildStatus":
        """Convert a ``cloudbuild_v1.Build.Status`` (or its name) to BuildStatus."""
        name = getattr(status, "name", status)
        return cls(name)


_NON_TERMINAL = frozenset(
    [BuildStatus.STATUS_UNKNOWN, BuildStatus.PENDING, BuildStatus.QUEUED, BuildStatus.WORKING]
)


@dataclass(frozen=True)
class PollPolicy:
    """
    How often and how long to poll.

    Attributes:
        interval: Delay before the second poll, in seconds
        max_interval: Upper bound for the delay
        multiplier: Growth factor per poll (1.0 gives a fixed interval)
        timeout: Total seconds to wait for a terminal status; None waits forever
    """

    interval: float = 1.0
    max_interval: float = 10.0
    multiplier: float = 1.5
    timeout: Optional[float] = None

    def delay(self, attempt: int) -> float:
        return calculate_backoff_delay(
            attempt,
            base_delay=self.interval,
            max_delay=self.max_interval,
            multiplier=self.multiplier,
        )


def get_build_status(
    client: cloudbuild_v1.CloudBuildClient, project: str, build_id: str
) -> BuildStatus:
    """
    Fetch the current status of a build, once.

    The client's default retry for ``get_build`` is switched off: a failed
    fetch raises at once instead of being retried inside the call.

    Raises:
        StatusFetchError: The request failed or returned a status this
            module does not know
    """
    try:
        build = client.get_build(
            project_id=project, id=build_id, retry=None, timeout=STATUS_REQUEST_TIMEOUT
        )
    except gexc.GoogleAPIError as error:
        raise StatusFetchError(f"Could not get build status for {build_id}: {error}") from error

    try:
        return BuildStatus.from_api(build.status)
    except ValueError as error:
        raise StatusFetchError(
            f"Build {build_id} reported an unrecognized status: {build.status!r}"
        ) from error


def wait_for_build(
    client: cloudbuild_v1.CloudBuildClient,
    project: str,
    build_id: str,
    policy: PollPolicy = PollPolicy(),
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> BuildStatus:
    """
    Poll until the build reaches a terminal status and return it.

    Args:
        client: Cloud Build client
        project: Project the build runs in
        build_id: Remote build id
        policy: Backoff and deadline settings
        sleep: Sleep function (injectable for tests)
        clock: Monotonic clock (injectable for tests)

    Returns:
        The terminal BuildStatus

    Raises:
        StatusFetchError: A status request failed
        BuildTimeoutError: policy.timeout elapsed first
    """
    deadline = Deadline(policy.timeout, clock=clock)
    last_status: Optional[BuildStatus] = None
    attempt = 0

    while True:
        status = get_build_status(client, project, build_id)

        if status != last_status:
            logger.info(f"Build {build_id}: {status.value}")
            last_status = status

        if status.is_terminal:
            return status

        if deadline.expired():
            raise BuildTimeoutError(
                f"Build {build_id} still {status.value} after {policy.timeout:g}s"
            )

        sleep(deadline.clamp(policy.delay(attempt)))
        attempt += 1


def cancel_build(client: cloudbuild_v1.CloudBuildClient, project: str, build_id: str) -> bool:
    """
    Ask Cloud Build to cancel a build. Failures are logged, not raised.

    Returns:
        True if the cancel request was accepted
    """
    try:
        client.cancel_build(project_id=project, id=build_id)
    except gexc.GoogleAPIError as error:
        logger.error(f"Could not cancel build {build_id}: {error}")
        return False
    logger.warning(f"Cancelled build {build_id}")
    return True
