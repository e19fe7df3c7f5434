"""Unit tests for staging bucket provisioning."""

from unittest.mock import MagicMock

import pytest
from google.api_core import exceptions as gexc

from cdbuild.errors import BillingNotEnabledError, ProvisioningError
from cdbuild.storage import ensure_bucket, staging_bucket_name


class TestStagingBucketName:
    """Test staging_bucket_name function."""

    def test_name_derived_from_project(self):
        assert staging_bucket_name("demo") == "cdbuild-demo"

    def test_name_too_long(self):
        with pytest.raises(ValueError, match="too long"):
            staging_bucket_name("p" * 60)


class TestEnsureBucket:
    """Test ensure_bucket function."""

    def test_creates_missing_bucket(self, storage_client):
        """A 404 on lookup triggers creation."""
        created = ensure_bucket(storage_client, "demo", "cdbuild-demo")

        assert created is True
        assert "cdbuild-demo" in storage_client.buckets
        assert storage_client.create_calls == ["cdbuild-demo"]

    def test_existing_bucket_is_left_alone(self, storage_client):
        storage_client.create_bucket("cdbuild-demo")
        storage_client.create_calls.clear()

        assert ensure_bucket(storage_client, "demo", "cdbuild-demo") is False
        assert storage_client.create_calls == []

    def test_idempotent(self, storage_client):
        """Calling twice in a row never errors."""
        assert ensure_bucket(storage_client, "demo", "cdbuild-demo") is True
        assert ensure_bucket(storage_client, "demo", "cdbuild-demo") is False

    def test_concurrent_creation_is_success(self, storage_client):
        """409 Conflict from create means another run created it."""
        storage_client.create_error = gexc.Conflict("already exists")

        assert ensure_bucket(storage_client, "demo", "cdbuild-demo") is False

    def test_lookup_error_other_than_not_found_is_fatal(self, storage_client):
        storage_client.get_error = gexc.InternalServerError("backend error")

        with pytest.raises(ProvisioningError, match="look up"):
            ensure_bucket(storage_client, "demo", "cdbuild-demo")
        assert storage_client.create_calls == []

    def test_permission_denied_on_create_reports_billing(self, storage_client):
        storage_client.create_error = gexc.Forbidden("billing disabled")

        with pytest.raises(BillingNotEnabledError) as excinfo:
            ensure_bucket(storage_client, "demo", "cdbuild-demo")

        assert "billing" in str(excinfo.value).lower()
        assert excinfo.value.remediation_url == "https://console.cloud.google.com/billing?project=demo"
        assert isinstance(excinfo.value, ProvisioningError)

    def test_other_create_error_is_fatal(self, storage_client):
        storage_client.create_error = gexc.BadRequest("invalid bucket name")

        with pytest.raises(ProvisioningError, match="create"):
            ensure_bucket(storage_client, "demo", "cdbuild-demo")

    def test_storage_calls_are_not_retried(self):
        """Lookup and creation run with the client's default retry switched off."""
        client = MagicMock()
        client.get_bucket.side_effect = gexc.NotFound("no such bucket")

        assert ensure_bucket(client, "demo", "cdbuild-demo") is True

        client.get_bucket.assert_called_once_with("cdbuild-demo", retry=None)
        client.create_bucket.assert_called_once_with("cdbuild-demo", project="demo", retry=None)
