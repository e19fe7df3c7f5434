"""
Environment configuration loader for cdbuild.

Loads optional settings from a .env file or environment variables. The two
required inputs (project and image name) always come from the command line;
everything here has a default.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

DEFAULT_BUILDER_IMAGE = "gcr.io/cloud-builders/dockerizer"
DEFAULT_ORPHAN_LOG = Path.home() / ".cdbuild" / "orphans.jsonl"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"", "0", "false", "no", "off"}


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {raw!r}")
    return value


def _env_timeout(name: str) -> Optional[float]:
    """Seconds from the environment; unset, empty or any zero means no limit."""
    raw = os.getenv(name, "").strip()
    if not raw:
        return None
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None
    if value < 0:
        raise ValueError(f"{name} must be positive, got {raw!r}")
    return value or None


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    lowered = raw.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean (true/false), got {raw!r}")


@dataclass
class CdBuildSettings:
    """Tunable settings for a cdbuild invocation."""

    # Cloud Build
    builder_image: str = DEFAULT_BUILDER_IMAGE

    # Status polling
    poll_interval: float = 1.0
    poll_max_interval: float = 10.0
    poll_multiplier: float = 1.5
    timeout_seconds: Optional[float] = None

    # Cleanup
    tolerate_cleanup_failure: bool = False
    orphan_log_path: Path = DEFAULT_ORPHAN_LOG

    # Logging
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env_file: Optional[Path] = None) -> "CdBuildSettings":
        """
        Load settings from environment variables.

        Loads ``env_file`` (default: ``.env`` in the working directory) if it
        exists, without overriding variables that are already set.

        Returns:
            CdBuildSettings instance with loaded values

        Raises:
            ValueError: If a numeric or boolean variable cannot be parsed
        """
        env_path = env_file if env_file is not None else Path.cwd() / ".env"
        if env_path.exists():
            load_dotenv(env_path, override=False)

        timeout = _env_timeout("CDBUILD_TIMEOUT_SECONDS")

        orphan_log = os.getenv("CDBUILD_ORPHAN_LOG")

        return cls(
            builder_image=os.getenv("CDBUILD_BUILDER_IMAGE", DEFAULT_BUILDER_IMAGE),
            poll_interval=_env_float("CDBUILD_POLL_INTERVAL", 1.0),
            poll_max_interval=_env_float("CDBUILD_POLL_MAX_INTERVAL", 10.0),
            poll_multiplier=_env_float("CDBUILD_POLL_MULTIPLIER", 1.5),
            timeout_seconds=timeout,
            tolerate_cleanup_failure=_env_bool("CDBUILD_TOLERATE_CLEANUP_FAILURE", False),
            orphan_log_path=Path(orphan_log).expanduser() if orphan_log else DEFAULT_ORPHAN_LOG,
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
