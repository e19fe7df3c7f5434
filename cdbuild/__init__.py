"""
cdbuild

Builds a Docker image from a local directory with Google Cloud Build:
the directory is streamed as a tar.gz into a per-project staging bucket,
a dockerizer build is submitted against it and followed to completion,
and the staged archive is deleted afterwards.

This package provides modular components for each stage:
- archiver: Streaming tar+gzip of a directory tree
- storage: Staging bucket provisioning, upload and cleanup (GCS)
- builder: Cloud Build submission and status polling
- pipeline: The stages in order, with cancellation and cleanup
- utils: Logging, configuration, backoff and metrics
"""

__version__ = "0.1.0"
