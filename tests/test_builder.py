"""Unit tests for Cloud Build submission and polling."""

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from google.api_core import exceptions as gexc
from google.auth.credentials import AnonymousCredentials
from google.cloud.devtools import cloudbuild_v1
from google.cloud.devtools.cloudbuild_v1.services.cloud_build.transports import (
    CloudBuildGrpcTransport,
)

from cdbuild.builder import (
    BuildRequest,
    BuildStatus,
    PollPolicy,
    cancel_build,
    extract_build_id,
    image_for,
    log_url,
    submit_build,
    wait_for_build,
)
from cdbuild.builder.poller import STATUS_REQUEST_TIMEOUT
from cdbuild.errors import (
    BuildApiDisabledError,
    BuildSubmissionError,
    BuildTimeoutError,
    StatusFetchError,
)
from cdbuild.storage import StagingLocation

from tests.fakes import make_build, make_build_client, make_operation


@pytest.fixture
def request_():
    location = StagingLocation.create("cdbuild-demo", "app", run_id="1")
    return BuildRequest(project="demo", location=location, image=image_for("demo", "app"))


class FakeClock:
    """Monotonic clock advanced by the fake sleep."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class TestBuildRequest:
    """Test BuildRequest conversion."""

    def test_image_for(self):
        assert image_for("demo", "app") == "gcr.io/demo/app"
        assert image_for("demo", "app:v1") == "gcr.io/demo/app:v1"

    def test_to_build(self, request_):
        build = request_.to_build()

        assert build.source.storage_source.bucket == "cdbuild-demo"
        assert build.source.storage_source.object_ == "build/app-1.tar.gz"
        assert len(build.steps) == 1
        assert build.steps[0].name == "gcr.io/cloud-builders/dockerizer"
        assert list(build.steps[0].args) == ["gcr.io/demo/app"]
        assert list(build.images) == ["gcr.io/demo/app"]
        assert build.logs_bucket == "gs://cdbuild-demo"

    def test_request_is_immutable(self, request_):
        with pytest.raises(AttributeError):
            request_.image = "gcr.io/other/app"

    def test_log_url(self):
        assert log_url("cdbuild-demo", "b1") == (
            "https://console.cloud.google.com/m/cloudstorage/b/cdbuild-demo/o/log-b1.txt"
        )


class TestExtractBuildId:
    """Test extract_build_id function."""

    def test_structured_metadata(self):
        assert extract_build_id(make_operation("abc-123")) == "abc-123"

    def test_missing_metadata(self):
        with pytest.raises(BuildSubmissionError, match="no metadata"):
            extract_build_id(SimpleNamespace(metadata=None))

    def test_empty_build_id(self):
        operation = SimpleNamespace(metadata=cloudbuild_v1.BuildOperationMetadata())
        with pytest.raises(BuildSubmissionError, match="no build id"):
            extract_build_id(operation)


class TestSubmitBuild:
    """Test submit_build function."""

    def test_returns_build_id(self, request_):
        client = make_build_client([], build_id="b-42")

        assert submit_build(client, request_) == "b-42"
        client.create_build.assert_called_once_with(project_id="demo", build=request_.to_build())

    @pytest.mark.parametrize(
        "error",
        [
            gexc.PermissionDenied("Cloud Build API has not been used in project demo"),
            gexc.Forbidden("forbidden"),
            gexc.NotFound("not found"),
        ],
    )
    def test_api_disabled(self, request_, error):
        client = make_build_client([])
        client.create_build.side_effect = error

        with pytest.raises(BuildApiDisabledError) as excinfo:
            submit_build(client, request_)

        assert excinfo.value.remediation_url == (
            "https://console.cloud.google.com/apis/library/cloudbuild.googleapis.com?project=demo"
        )
        assert "demo" in str(excinfo.value)

    def test_generic_error(self, request_):
        client = make_build_client([])
        client.create_build.side_effect = gexc.InternalServerError("boom")

        with pytest.raises(BuildSubmissionError, match="boom") as excinfo:
            submit_build(client, request_)
        assert not isinstance(excinfo.value, BuildApiDisabledError)


class TestBuildStatus:
    """Test BuildStatus enum."""

    @pytest.mark.parametrize("status", ["STATUS_UNKNOWN", "PENDING", "QUEUED", "WORKING"])
    def test_non_terminal(self, status):
        assert BuildStatus(status).is_terminal is False

    @pytest.mark.parametrize(
        "status", ["SUCCESS", "FAILURE", "INTERNAL_ERROR", "TIMEOUT", "CANCELLED", "EXPIRED"]
    )
    def test_terminal(self, status):
        assert BuildStatus(status).is_terminal is True

    def test_every_api_status_is_known(self):
        for api_status in cloudbuild_v1.Build.Status:
            assert BuildStatus.from_api(api_status).value == api_status.name


class TestWaitForBuild:
    """Test wait_for_build function."""

    def test_queued_working_success(self):
        client = make_build_client(["QUEUED", "WORKING", "WORKING", "SUCCESS"])
        clock = FakeClock()

        status = wait_for_build(
            client, "demo", "b1", PollPolicy(), sleep=clock.sleep, clock=clock
        )

        assert status == BuildStatus.SUCCESS
        assert client.get_build.call_count == 4
        client.get_build.assert_called_with(
            project_id="demo", id="b1", retry=None, timeout=STATUS_REQUEST_TIMEOUT
        )

    def test_backoff_grows_to_cap(self):
        client = make_build_client(["WORKING"] * 6 + ["FAILURE"])
        clock = FakeClock()
        policy = PollPolicy(interval=1.0, max_interval=4.0, multiplier=2.0)

        status = wait_for_build(client, "demo", "b1", policy, sleep=clock.sleep, clock=clock)

        assert status == BuildStatus.FAILURE
        assert clock.sleeps == [1.0, 2.0, 4.0, 4.0, 4.0, 4.0]

    def test_fixed_interval_with_multiplier_one(self):
        client = make_build_client(["QUEUED", "WORKING", "SUCCESS"])
        clock = FakeClock()
        policy = PollPolicy(interval=1.0, multiplier=1.0)

        wait_for_build(client, "demo", "b1", policy, sleep=clock.sleep, clock=clock)

        assert clock.sleeps == [1.0, 1.0]

    def test_terminal_on_first_poll_does_not_sleep(self):
        client = make_build_client(["SUCCESS"])
        clock = FakeClock()

        wait_for_build(client, "demo", "b1", sleep=clock.sleep, clock=clock)

        assert clock.sleeps == []

    def test_timeout(self):
        client = MagicMock()
        client.get_build.return_value = make_build("WORKING")
        clock = FakeClock()
        policy = PollPolicy(interval=1.0, max_interval=1.0, timeout=5.0)

        with pytest.raises(BuildTimeoutError, match="b1"):
            wait_for_build(client, "demo", "b1", policy, sleep=clock.sleep, clock=clock)

        assert clock.now == pytest.approx(5.0)

    def test_sleep_is_clamped_to_deadline(self):
        client = MagicMock()
        client.get_build.return_value = make_build("QUEUED")
        clock = FakeClock()
        policy = PollPolicy(interval=4.0, max_interval=4.0, timeout=6.0)

        with pytest.raises(BuildTimeoutError):
            wait_for_build(client, "demo", "b1", policy, sleep=clock.sleep, clock=clock)

        assert clock.sleeps == [4.0, 2.0]

    def test_status_fetch_error_is_not_retried(self):
        client = MagicMock()
        client.get_build.side_effect = gexc.ServiceUnavailable("unavailable")
        clock = FakeClock()

        with pytest.raises(StatusFetchError, match="b1"):
            wait_for_build(client, "demo", "b1", sleep=clock.sleep, clock=clock)

        assert client.get_build.call_count == 1
        assert clock.sleeps == []

    def test_client_default_retry_is_disabled(self, monkeypatch):
        """A 503 from a real client surfaces on the first call."""
        calls = []

        def flaky_get_build(request, **kwargs):
            calls.append(request)
            if len(calls) == 1:
                raise gexc.ServiceUnavailable("backend unavailable")
            return cloudbuild_v1.Build(status=cloudbuild_v1.Build.Status.SUCCESS)

        monkeypatch.setattr(
            CloudBuildGrpcTransport, "get_build", property(lambda self: flaky_get_build)
        )
        client = cloudbuild_v1.CloudBuildClient(credentials=AnonymousCredentials())
        clock = FakeClock()

        with pytest.raises(StatusFetchError, match="b1"):
            wait_for_build(client, "demo", "b1", sleep=clock.sleep, clock=clock)

        assert len(calls) == 1
        assert calls[0].id == "b1"

    @pytest.mark.parametrize("status", ["PAUSED", 99])
    def test_unrecognized_status_is_fetch_error(self, status):
        client = MagicMock()
        client.get_build.return_value = SimpleNamespace(status=status)
        clock = FakeClock()

        with pytest.raises(StatusFetchError, match="unrecognized status"):
            wait_for_build(client, "demo", "b1", sleep=clock.sleep, clock=clock)


class TestCancelBuild:
    """Test cancel_build function."""

    def test_cancel(self):
        client = MagicMock()
        assert cancel_build(client, "demo", "b1") is True
        client.cancel_build.assert_called_once_with(project_id="demo", id="b1")

    def test_cancel_failure_is_logged_not_raised(self):
        client = MagicMock()
        client.cancel_build.side_effect = gexc.FailedPrecondition("already finished")
        assert cancel_build(client, "demo", "b1") is False
