"""Tests for environment configuration module."""

from pathlib import Path

import pytest

from cdbuild.utils.config import DEFAULT_BUILDER_IMAGE, DEFAULT_ORPHAN_LOG, CdBuildSettings

ENV_VARS = [
    "CDBUILD_BUILDER_IMAGE",
    "CDBUILD_POLL_INTERVAL",
    "CDBUILD_POLL_MAX_INTERVAL",
    "CDBUILD_POLL_MULTIPLIER",
    "CDBUILD_TIMEOUT_SECONDS",
    "CDBUILD_TOLERATE_CLEANUP_FAILURE",
    "CDBUILD_ORPHAN_LOG",
    "LOG_LEVEL",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Start from an empty cdbuild environment in a directory without .env."""
    monkeypatch.chdir(tmp_path)
    for name in ENV_VARS:
        # setenv first so that undo also removes values loaded from .env
        monkeypatch.setenv(name, "unset")
        monkeypatch.delenv(name)


class TestCdBuildSettings:
    """Test CdBuildSettings dataclass and loading."""

    def test_defaults(self):
        """Test from_env with nothing set."""
        settings = CdBuildSettings.from_env()

        assert settings.builder_image == DEFAULT_BUILDER_IMAGE
        assert settings.poll_interval == 1.0
        assert settings.poll_max_interval == 10.0
        assert settings.poll_multiplier == 1.5
        assert settings.timeout_seconds is None
        assert settings.tolerate_cleanup_failure is False
        assert settings.orphan_log_path == DEFAULT_ORPHAN_LOG
        assert settings.log_level == "INFO"

    def test_from_env_with_all_vars(self, monkeypatch):
        """Test from_env loads all environment variables correctly."""
        monkeypatch.setenv("CDBUILD_BUILDER_IMAGE", "gcr.io/cloud-builders/docker")
        monkeypatch.setenv("CDBUILD_POLL_INTERVAL", "2")
        monkeypatch.setenv("CDBUILD_POLL_MAX_INTERVAL", "30")
        monkeypatch.setenv("CDBUILD_POLL_MULTIPLIER", "2.0")
        monkeypatch.setenv("CDBUILD_TIMEOUT_SECONDS", "1800")
        monkeypatch.setenv("CDBUILD_TOLERATE_CLEANUP_FAILURE", "yes")
        monkeypatch.setenv("CDBUILD_ORPHAN_LOG", "/var/lib/cdbuild/orphans.jsonl")
        monkeypatch.setenv("LOG_LEVEL", "debug")

        settings = CdBuildSettings.from_env()

        assert settings.builder_image == "gcr.io/cloud-builders/docker"
        assert settings.poll_interval == 2.0
        assert settings.poll_max_interval == 30.0
        assert settings.poll_multiplier == 2.0
        assert settings.timeout_seconds == 1800.0
        assert settings.tolerate_cleanup_failure is True
        assert settings.orphan_log_path == Path("/var/lib/cdbuild/orphans.jsonl")
        assert settings.log_level == "DEBUG"

    @pytest.mark.parametrize("raw", ["", "0", "0.0", "00", " 0 "])
    def test_zero_timeout_means_unbounded(self, monkeypatch, raw):
        monkeypatch.setenv("CDBUILD_TIMEOUT_SECONDS", raw)
        assert CdBuildSettings.from_env().timeout_seconds is None

    @pytest.mark.parametrize(
        "name, raw, message",
        [
            ("CDBUILD_POLL_INTERVAL", "soon", "must be a number"),
            ("CDBUILD_POLL_MAX_INTERVAL", "-1", "must be positive"),
            ("CDBUILD_TIMEOUT_SECONDS", "-5", "must be positive"),
            ("CDBUILD_TOLERATE_CLEANUP_FAILURE", "maybe", "must be a boolean"),
        ],
    )
    def test_invalid_values(self, monkeypatch, name, raw, message):
        monkeypatch.setenv(name, raw)

        with pytest.raises(ValueError, match=f"{name} {message}"):
            CdBuildSettings.from_env()

    def test_env_file_is_loaded(self, tmp_path):
        (tmp_path / ".env").write_text(
            "CDBUILD_POLL_INTERVAL=5\nCDBUILD_TOLERATE_CLEANUP_FAILURE=true\n"
        )

        settings = CdBuildSettings.from_env()

        assert settings.poll_interval == 5.0
        assert settings.tolerate_cleanup_failure is True

    def test_environment_wins_over_env_file(self, monkeypatch, tmp_path):
        env_file = tmp_path / "cdbuild.env"
        env_file.write_text("CDBUILD_POLL_INTERVAL=5\n")
        monkeypatch.setenv("CDBUILD_POLL_INTERVAL", "3")

        settings = CdBuildSettings.from_env(env_file=env_file)

        assert settings.poll_interval == 3.0
