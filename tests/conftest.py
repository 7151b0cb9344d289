"""Pytest configuration helpers for test collection.

Ensure the project root is on sys.path so tests can import the package
without requiring PYTHONPATH to be set externally.
"""
import sys
from pathlib import Path

import pytest


def pytest_configure(config):
    # Insert repo root (one level up from tests/) to sys.path
    repo_root = Path(__file__).resolve().parents[1]
    sys.path.insert(0, str(repo_root))


@pytest.fixture
def server_config(tmp_path):
    from blobs_lib.server.config import ServerConfig
    return ServerConfig(directory=str(tmp_path / "blobs"), token="secret")


@pytest.fixture
def app(server_config):
    from blobs_lib.server.main import create_app
    return create_app(server_config)


@pytest.fixture
def http(app):
    from fastapi.testclient import TestClient
    return TestClient(app)
