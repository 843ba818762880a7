"""
Pytest fixtures for npmstats testing.

Provides sample packages, results and fakes for tests of code that uses
npmstats.
"""

from collections.abc import Generator
from typing import Any

import pytest

from npmstats.history import HistoryStore
from npmstats.testing.mock import MemoryKeyValueStore, MockDashboardClient, RecordingSleep
from npmstats.types.history import HistorySnapshot
from npmstats.types.packages import Package, UserStats


def create_mock_package(name: str = "test-package", **kwargs: Any) -> Package:
    """
    Create a Package with customizable fields.

    Args:
        name: Package name
        **kwargs: Additional fields to override

    Returns:
        Package object
    """
    defaults: dict[str, Any] = {
        "version": "1.0.0",
        "weekly_downloads": 100,
        "dependents": 0,
        "npm_url": f"https://www.npmjs.com/package/{name}",
        "last_checked": "2024-01-15T10:30:00+00:00",
    }
    defaults.update(kwargs)
    return Package(name=name, **defaults)


def create_mock_user_stats(
    username: str = "test-user",
    package_names: list[str] | None = None,
    **kwargs: Any,
) -> UserStats:
    """
    Create an un-enriched UserStats for ``package_names``.

    Each package gets 100 weekly downloads unless overridden via kwargs.
    """
    if package_names is None:
        package_names = ["pkg-1", "pkg-2", "pkg-3"]
    packages = [create_mock_package(name) for name in package_names]
    defaults: dict[str, Any] = {
        "total_downloads": sum(pkg.weekly_downloads for pkg in packages),
        "total_stars": 0,
    }
    defaults.update(kwargs)
    return UserStats(username=username, packages=packages, **defaults)


def create_mock_snapshot(
    username: str = "test-user",
    packages: list[dict[str, Any]] | None = None,
    **kwargs: Any,
) -> HistorySnapshot:
    """Create a HistorySnapshot with customizable fields."""
    packages = packages or []
    defaults: dict[str, Any] = {
        "total_downloads": sum(pkg.get("weeklyDownloads", 0) for pkg in packages),
        "total_stars": sum(pkg.get("githubStars", 0) for pkg in packages),
        "package_count": len(packages),
        "timestamp": "2024-01-14T10:30:00+00:00",
    }
    defaults.update(kwargs)
    return HistorySnapshot(username=username, packages=packages, **defaults)


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def mock_client() -> Generator[MockDashboardClient, None, None]:
    """
    Provide a MockDashboardClient.

    Example:
        ```python
        def test_my_feature(mock_client):
            mock_client.configure_github_stats("react", github_ok(stars=5))
            ...
            assert mock_client.was_called("get_github_stats")
        ```
    """
    client = MockDashboardClient()
    yield client
    client.reset()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    """Provide a sleep stand-in that records delays."""
    return RecordingSleep()


@pytest.fixture
def memory_store() -> MemoryKeyValueStore:
    """Provide an empty in-memory key-value store."""
    return MemoryKeyValueStore()


@pytest.fixture
def history_store(memory_store: MemoryKeyValueStore) -> HistoryStore:
    """Provide a HistoryStore backed by ``memory_store``."""
    return HistoryStore(memory_store, namespace="test")


@pytest.fixture
def sample_package() -> Package:
    """Provide a sample Package object."""
    return create_mock_package("sample-package", weekly_downloads=1234, dependents=5)


@pytest.fixture
def sample_user_stats() -> UserStats:
    """Provide a sample three-package result for user "alice"."""
    return create_mock_user_stats("alice", ["pkg1", "pkg2", "pkg3"])


__all__ = [
    # Fixtures (exported for documentation, actual fixtures are auto-discovered)
    "mock_client",
    "recording_sleep",
    "memory_store",
    "history_store",
    "sample_package",
    "sample_user_stats",
    # Helper functions
    "create_mock_package",
    "create_mock_user_stats",
    "create_mock_snapshot",
]
