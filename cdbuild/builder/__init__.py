"""
Cloud Build submission and polling module.

Submits a single-step dockerizer build for a staged archive and follows it
to a terminal status.
"""

from .poller import BuildStatus, PollPolicy, cancel_build, get_build_status, wait_for_build
from .submitter import BuildRequest, extract_build_id, image_for, log_url, submit_build

__all__ = [
    "BuildRequest",
    "BuildStatus",
    "PollPolicy",
    "cancel_build",
    "extract_build_id",
    "get_build_status",
    "image_for",
    "log_url",
    "submit_build",
    "wait_for_build",
]
