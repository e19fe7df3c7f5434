"""
Prometheus metrics for cdbuild runs.

cdbuild is a one-shot command, so there is no scrape endpoint. Each run
collects into its own registry and, when asked, writes it in the node
exporter textfile-collector format so CI hosts can pick it up.

Metrics Provided:
    - cdbuild_upload_bytes_total: Counter for archive bytes read from disk
    - cdbuild_upload_duration_seconds: Histogram for archive upload latency
    - cdbuild_builds_total: Counter for finished builds by terminal status
    - cdbuild_build_duration_seconds: Histogram for submit-to-terminal time
    - cdbuild_gcs_errors_total: Counter for storage API errors by operation
    - cdbuild_cleanup_failures_total: Counter for archives left behind

Usage:
    from cdbuild.utils.metrics import CdBuildMetrics

    metrics = CdBuildMetrics()
    with metrics.upload_duration.time():
        upload_archive(...)
    metrics.write_textfile("/var/lib/node_exporter/cdbuild.prom")
"""

from pathlib import Path
from typing import Optional, Union

from prometheus_client import CollectorRegistry, Counter, Histogram, write_to_textfile

from cdbuild.utils.logging import get_logger

logger = get_logger(__name__)


class CdBuildMetrics:
    """
    Prometheus collectors for one cdbuild invocation.

    Args:
        registry: Registry to register collectors on. A fresh private
            registry is created when None, so several instances can coexist
            (tests, embedding).
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None) -> None:
        self.registry = registry if registry is not None else CollectorRegistry()

        self.upload_bytes = Counter(
            name="cdbuild_upload_bytes_total",
            documentation="Bytes of source archived and streamed to GCS",
            registry=self.registry,
        )

        self.upload_duration = Histogram(
            name="cdbuild_upload_duration_seconds",
            documentation="Time spent archiving and uploading source",
            buckets=[0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0],
            registry=self.registry,
        )

        self.builds = Counter(
            name="cdbuild_builds_total",
            documentation="Builds observed until a terminal status",
            labelnames=["status"],  # SUCCESS, FAILURE, TIMEOUT, ...
            registry=self.registry,
        )

        self.build_duration = Histogram(
            name="cdbuild_build_duration_seconds",
            documentation="Time from build submission to terminal status",
            buckets=[10.0, 30.0, 60.0, 120.0, 300.0, 600.0, 1200.0, 3600.0],
            registry=self.registry,
        )

        self.gcs_errors = Counter(
            name="cdbuild_gcs_errors_total",
            documentation="Cloud Storage API errors",
            labelnames=["operation"],  # provision, upload, delete
            registry=self.registry,
        )

        self.cleanup_failures = Counter(
            name="cdbuild_cleanup_failures_total",
            documentation="Staging archives that could not be deleted",
            registry=self.registry,
        )

    def record_gcs_error(self, operation: str) -> None:
        self.gcs_errors.labels(operation=operation).inc()

    def record_build(self, status: str, duration_seconds: float) -> None:
        self.builds.labels(status=status).inc()
        self.build_duration.observe(duration_seconds)

    def write_textfile(self, path: Union[str, Path]) -> None:
        """Write the registry in textfile-collector format (atomic rename)."""
        write_to_textfile(str(path), self.registry)
        logger.debug(f"Wrote metrics to {path}")
