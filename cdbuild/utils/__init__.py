"""
Utility modules for cdbuild.

This package provides shared utilities used across all pipeline stages:
- logging: Structured logging with entry/exit decorators
- config: Environment-based settings
- backoff: Exponential backoff and deadlines for status polling
- metrics: Prometheus collectors written as a textfile at exit
"""

from cdbuild.utils.logging import get_logger, log_function_call

__all__ = ["get_logger", "log_function_call"]
