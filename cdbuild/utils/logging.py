"""
Logging utilities for cdbuild.

Provides structured logging with an entry/exit decorator, JSON formatting,
correlation IDs, and colorized console output for interactive runs.

Features:
    - Structured JSON logging when LOG_FORMAT=json (CI systems, log shippers)
    - Correlation ID tracking: one ID per invocation, shared by every line
    - Entry/exit decorator with timing for pipeline stages
    - Colorized console output through coloredlogs

Example usage:
    >>> from cdbuild.utils.logging import get_logger, log_function_call, set_correlation_id
    >>>
    >>> logger = get_logger(__name__)
    >>> set_correlation_id("8d1c5a0e-...")
    >>>
    >>> @log_function_call
    >>> def ensure_bucket(client, project: str, bucket: str) -> bool:
    >>>     logger.info("Checking bucket", extra={"bucket": bucket})
    >>>     return True
"""

import functools
import json
import logging
import os
import sys
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, TypeVar, cast

import coloredlogs

# Type variable for generic decorator typing
F = TypeVar("F", bound=Callable[..., Any])

_correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Attributes present on every LogRecord; anything else came in through extra=
_STANDARD_RECORD_ATTRS = frozenset(
    [
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "thread",
        "threadName",
        "taskName",
        "exc_info",
        "exc_text",
        "stack_info",
        "message",
        "asctime",
    ]
)


# ============================================================================
# Correlation ID Management
# ============================================================================

def get_correlation_id() -> str:
    """
    Get current correlation ID or generate new one.

    Returns:
        Current correlation ID (generates UUID if not set)
    """
    corr_id = _correlation_id.get()
    if corr_id is None:
        corr_id = str(uuid.uuid4())
        _correlation_id.set(corr_id)
    return corr_id


def set_correlation_id(corr_id: str) -> None:
    """
    Set correlation ID for current context.

    The CLI sets this to the invocation's archive UUID so that log lines can
    be matched to the staging object they belong to.

    Args:
        corr_id: Correlation ID to set
    """
    _correlation_id.set(corr_id)


def clear_correlation_id() -> None:
    """Clear correlation ID for current context."""
    _correlation_id.set(None)


# ============================================================================
# JSON Formatter
# ============================================================================

class JSONFormatter(logging.Formatter):
    """
    JSON log formatter for structured logging.

    Example output:
        {
            "timestamp": "2026-10-19T10:30:15.123456Z",
            "level": "INFO",
            "logger": "cdbuild.pipeline",
            "message": "Pushing code to gs://cdbuild-demo/build/app-....tar.gz",
            "correlation_id": "8d1c5a0e-...",
            "extra": {"bucket": "cdbuild-demo"}
        }
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": get_correlation_id(),
            "source": {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            },
        }

        extra_fields = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _STANDARD_RECORD_ATTRS
        }
        if extra_fields:
            log_data["extra"] = extra_fields

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info),
            }

        return json.dumps(log_data, default=str)


def setup_logging(level: str = "INFO", enable_colors: bool = True) -> None:
    """
    Configure global logging settings for the application.

    Output always goes to stderr. Uses JSON records when LOG_FORMAT=json,
    colorized text through coloredlogs otherwise.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        enable_colors: Whether to colorize text output (default: True)

    Example:
        >>> setup_logging(level="DEBUG")
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    json_format = os.getenv("LOG_FORMAT", "text").lower() == "json"

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Remove existing handlers to avoid duplicates
    root_logger.handlers.clear()

    if json_format:
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(log_level)
        handler.setFormatter(JSONFormatter())
        root_logger.addHandler(handler)
    elif enable_colors:
        coloredlogs.install(
            level=log_level,
            fmt=LOG_FORMAT,
            datefmt=LOG_DATE_FORMAT,
            logger=root_logger,
            stream=sys.stderr,
        )
    else:
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(log_level)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
        root_logger.addHandler(handler)

    # google-auth and urllib3 are chatty at INFO
    for noisy in ("google.auth", "urllib3", "google.resumable_media"):
        logging.getLogger(noisy).setLevel(max(log_level, logging.WARNING))


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance with the specified name.

    Args:
        name: Logger name (typically __name__ of the calling module)

    Returns:
        Configured logger instance
    """
    return logging.getLogger(name)


def log_function_call(func: F) -> F:
    """
    Decorator that logs function entry and exit at DEBUG level.

    - Logs function entry with parameter values
    - Logs function exit with return value and execution time
    - Logs exceptions with their type and re-raises them unchanged

    Args:
        func: Function to be decorated

    Returns:
        Wrapped function with logging

    Example:
        >>> @log_function_call
        >>> def submit_build(client, request) -> str:
        >>>     ...
        >>>
        >>> # 2026-10-19 10:30:15 - cdbuild.builder.submitter - DEBUG - ENTER submit_build(...)
        >>> # 2026-10-19 10:30:16 - cdbuild.builder.submitter - DEBUG - EXIT submit_build -> 'b1' (0.81s)
    """
    logger = get_logger(func.__module__)

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        correlation_id = get_correlation_id()

        arg_names = func.__code__.co_varnames[: func.__code__.co_argcount]
        args_repr = [f"{name}={value!r}" for name, value in zip(arg_names, args)]
        kwargs_repr = [f"{key}={value!r}" for key, value in kwargs.items()]
        all_args = ", ".join(args_repr + kwargs_repr)

        logger.debug(
            f"ENTER {func.__name__}({all_args})",
            extra={
                "function": func.__name__,
                "correlation_id": correlation_id,
                "event": "function_entry",
            },
        )

        start_time = datetime.now()

        try:
            result = func(*args, **kwargs)
        except Exception as error:
            execution_time = (datetime.now() - start_time).total_seconds()
            logger.debug(
                f"ERROR {func.__name__} raised {type(error).__name__}: {error} "
                f"({execution_time:.2f}s)",
                extra={
                    "function": func.__name__,
                    "duration_seconds": execution_time,
                    "correlation_id": correlation_id,
                    "event": "function_error",
                    "error_type": type(error).__name__,
                },
            )
            raise

        execution_time = (datetime.now() - start_time).total_seconds()
        logger.debug(
            f"EXIT {func.__name__} -> {result!r} ({execution_time:.2f}s)",
            extra={
                "function": func.__name__,
                "duration_seconds": execution_time,
                "correlation_id": correlation_id,
                "event": "function_exit",
            },
        )
        return result

    return cast(F, wrapper)
