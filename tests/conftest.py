"""
Test Configuration and Fixtures

Shared fixtures for the offline sync and driver status suites.
"""

import os
from typing import Callable

import httpx
import pytest

# Set test environment variables before importing the package.
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("STORAGE_BACKEND", "memory")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("API_BASE_URL", "http://driver-api.test")
os.environ.setdefault("SUPABASE_URL", "http://backend.test")
os.environ.setdefault("SUPABASE_ANON_KEY", "anon-key")

from partsrunner.connectivity import ConnectivityMonitor  # noqa: E402
from partsrunner.notifications import CollectingNotifier  # noqa: E402
from partsrunner.storage import MemoryKeyValueStore  # noqa: E402
from tests.support.fakes import FakeSender  # noqa: E402


# =============================================================================
# PYTEST CONFIGURATION
# =============================================================================


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: Unit tests (fast, isolated)")


def pytest_collection_modifyitems(config, items):
    """Auto-assign the `unit` tier unless a test is explicitly tiered."""
    for item in items:
        if item.get_closest_marker("unit"):
            continue
        item.add_marker(pytest.mark.unit)


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def store() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def offline_monitor() -> ConnectivityMonitor:
    return ConnectivityMonitor(online=False)


@pytest.fixture
def online_monitor() -> ConnectivityMonitor:
    return ConnectivityMonitor(online=True)


@pytest.fixture
def notifier() -> CollectingNotifier:
    return CollectingNotifier()


@pytest.fixture
def sender() -> FakeSender:
    return FakeSender()


@pytest.fixture
def mock_http() -> Callable[[Callable[[httpx.Request], httpx.Response]], httpx.AsyncClient]:
    """Build an AsyncClient backed by a request handler."""

    def _build(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return _build
