"""Pytest configuration and shared fixtures for the sync engine tests."""

import pytest

from fakes import FakeRemoteSource
from tracker_offline_sync.store.local import LocalStore


def pytest_addoption(parser):
    parser.addoption(
        "--integration",
        action="store_true",
        default=False,
        help="Run integration tests (requires network and a tracker server)",
    )


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "integration: mark test as integration test (requires network)"
    )


def pytest_collection_modifyitems(config, items):
    if not config.getoption("--integration"):
        skip_integration = pytest.mark.skip(reason="need --integration option to run")
        for item in items:
            if "integration" in item.keywords:
                item.add_marker(skip_integration)


@pytest.fixture
def store():
    """In-memory local store, closed after the test."""
    local = LocalStore(":memory:")
    yield local
    local.close()


@pytest.fixture
def file_store(tmp_path):
    """Local store backed by a temporary SQLite file."""
    local = LocalStore(tmp_path / "offline.db")
    yield local
    local.close()


@pytest.fixture
def remote():
    return FakeRemoteSource()
