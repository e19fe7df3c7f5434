"""Shared fixtures for cdbuild tests."""

from typing import List

import pytest

from cdbuild.pipeline import Clients
from tests.fakes import FakeStorageClient, make_build_client


@pytest.fixture
def storage_client() -> FakeStorageClient:
    return FakeStorageClient()


@pytest.fixture
def source_tree(tmp_path):
    """A small project directory to archive."""
    root = tmp_path / "app"
    (root / "src" / "pkg").mkdir(parents=True)
    (root / "Dockerfile").write_text("FROM python:3.12-slim\nCOPY . /app\n")
    (root / "src" / "main.py").write_text("print('hello')\n")
    (root / "src" / "pkg" / "__init__.py").write_text("")
    (root / "empty").mkdir()
    return root


@pytest.fixture
def clients_factory(storage_client):
    def factory(statuses: List[str], build_id: str = "build-1234") -> Clients:
        return Clients(storage_client, make_build_client(statuses, build_id))

    return factory
